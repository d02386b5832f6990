"""
Certificate request pipeline — turns one managed item into one
CertificateRequestResult.

Domain layer — all I/O goes through the injected Collaborators ports.

  distinct domains (primary first)
    → per domain: resolve_reuse() → ChallengeCoordinator.validate_domain()
      → every domain validated?  no → failure (no issuance)
        → request_issuance(effective primary, alternatives)
          → install_certificate()  (automated binding only)
            → read validity dates → update item → save → success

Domains are validated one after another: the vault session is a single
shared resource. Every domain is attempted even after a failure so the
result reports all of them in one pass.

The whole run sits inside RequestContext, the single failure boundary: an
exception at any step becomes a failed result carrying the item's name.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

import structlog

from cert_renewer.domain.authorization import resolve_reuse
from cert_renewer.domain.challenge import ChallengeCoordinator, DomainValidation
from cert_renewer.domain.errors import CertificateParseError
from cert_renewer.domain.models import (
    CertificateRequestResult,
    FailureKind,
    ManagedCertificateItem,
    ManagedItemType,
)
from cert_renewer.domain.ports import Collaborators, ProgressSink
from cert_renewer.execution import ProgressReporter, RequestContext

log = structlog.get_logger()

CONFIG_CHECK_PATH = "/.well-known/acme-challenge/configcheck"


def request_certificate(
    item: ManagedCertificateItem,
    collaborators: Collaborators,
    progress_sink: ProgressSink | None = None,
    *,
    reuse_identifiers: bool = False,
    now: datetime | None = None,
    context: RequestContext | None = None,
) -> CertificateRequestResult:
    """
    Validate every domain of `item`, request issuance and install the result.

    Never raises: unexpected errors are converted to a failed result with
    FailureKind.UNEXPECTED. The item is updated and saved only on success.
    Not idempotent with respect to issuance — each fully validated run
    issues a new certificate.
    """
    reporter = ProgressReporter(item, progress_sink)
    ctx = context or RequestContext()
    return ctx.execute(
        item,
        lambda: _run(item, collaborators, reporter, reuse_identifiers, now),
        reporter,
    )


def _run(
    item: ManagedCertificateItem,
    collaborators: Collaborators,
    reporter: ProgressReporter,
    reuse_identifiers: bool,
    now: datetime | None,
) -> CertificateRequestResult:
    config = item.request_config
    domains = config.distinct_domains
    coordinator = ChallengeCoordinator(collaborators.vault, collaborators.binding_admin)

    reporter.running("Registering domain identifiers")

    validations: list[DomainValidation] = []
    for domain in domains:
        reporter.running(f"Attempting domain validation: {domain}")
        decision = resolve_reuse(
            domain,
            collaborators.vault.get_domain_identifier,
            reuse_identifiers,
            now,
        )
        validations.append(coordinator.validate_domain(item, domain, decision, reporter))

    authorizations = [v.authorization for v in validations if v.validated and v.authorization]
    if len(authorizations) != len(domains):
        return reporter.finish(_validation_failure(item, validations))

    primary = authorizations[0].identifier.domain
    alternatives = [a.identifier.domain for a in authorizations[1:] if a.identifier.domain != primary]

    reporter.running("Requesting certificate")
    issuance = collaborators.vault.request_issuance(primary, alternatives)
    if not issuance.success or not issuance.artifact_path:
        log.warning(
            "request.issuance_failed",
            item_id=item.id,
            primary_domain=primary,
            error=issuance.error_message,
        )
        return reporter.finish(
            CertificateRequestResult.failed(
                item,
                "The certificate authority did not issue a valid certificate in the time allowed. "
                + (issuance.error_message or ""),
                FailureKind.ISSUANCE,
            )
        )

    artifact_path = issuance.artifact_path
    reporter.running("Completed certificate request")
    log.info("request.issued", item_id=item.id, primary_domain=primary, alternatives=alternatives)

    if item.item_type == ManagedItemType.WEB_SERVER and config.perform_automated_binding:
        reporter.running("Performing automated certificate binding")
        if not collaborators.binding_admin.install_certificate(
            config, artifact_path, cleanup_store=True
        ):
            log.error("request.installation_failed", item_id=item.id, certificate_path=artifact_path)
            return reporter.finish(
                CertificateRequestResult.failed(
                    item,
                    "An error occurred installing the certificate. "
                    f"Certificate file may not be valid: {artifact_path}",
                    FailureKind.INSTALLATION,
                    certificate_path=artifact_path,
                )
            )
        if failure := _record_renewal(item, artifact_path, collaborators, now):
            return reporter.finish(failure)
        return reporter.finish(
            CertificateRequestResult.succeeded(
                item,
                f"Certificate installed and SSL bindings updated for {config.primary_domain}",
                artifact_path,
            )
        )

    if failure := _record_renewal(item, artifact_path, collaborators, now):
        return reporter.finish(failure)
    return reporter.finish(
        CertificateRequestResult.succeeded(
            item,
            f"Certificate created ready for manual binding: {artifact_path}",
            artifact_path,
        )
    )


def _record_renewal(
    item: ManagedCertificateItem,
    artifact_path: str,
    collaborators: Collaborators,
    now: datetime | None,
) -> CertificateRequestResult | None:
    """
    Persist the item stamped with the new certificate, then apply the stamps.

    `item` is left untouched when the save fails; the returned failure keeps
    the artifact path so the issued certificate can still be bound by hand.
    Unreadable validity dates only cost the date fields, never the request.
    """
    renewed_at = now or datetime.now(UTC)
    try:
        dates = collaborators.certificate_store.read_certificate_dates(artifact_path)
    except (CertificateParseError, OSError) as e:
        log.warning(
            "request.certificate_dates_unreadable",
            item_id=item.id,
            certificate_path=artifact_path,
            error=str(e),
        )
        dates = None

    stamps: dict[str, Any] = {
        "date_issued": renewed_at,
        "date_renewed": renewed_at,
        "certificate_path": artifact_path,
    }
    if dates is not None:
        stamps["date_start"] = dates.not_before
        stamps["date_expiry"] = dates.not_after

    try:
        collaborators.repository.save(replace(item, **stamps))
    except Exception as e:
        log.error(
            "request.save_failed",
            item_id=item.id,
            certificate_path=artifact_path,
            error=str(e),
            exc_info=True,
        )
        return CertificateRequestResult.failed(
            item,
            f"{item.name}: Certificate issued but the item could not be saved - {e}",
            FailureKind.UNEXPECTED,
            certificate_path=artifact_path,
        )

    for field_name, value in stamps.items():
        setattr(item, field_name, value)
    log.info(
        "request.item_updated",
        item_id=item.id,
        certificate_path=artifact_path,
        date_expiry=item.date_expiry.isoformat() if item.date_expiry else None,
    )
    return None


def _validation_failure(
    item: ManagedCertificateItem,
    validations: list[DomainValidation],
) -> CertificateRequestResult:
    """Explain which domains failed, with remediation text for probe failures."""
    prerequisite = [v.domain for v in validations if v.failure_kind is FailureKind.PREREQUISITE]
    if prerequisite:
        urls = ", ".join(f"http://{domain}{CONFIG_CHECK_PATH}" for domain in prerequisite)
        return CertificateRequestResult.failed(
            item,
            "Automated configuration checks failed. Authorizations will not be able to complete.\n"
            f"Check you have http bindings for your site and ensure you can browse to {urls} "
            "before proceeding.",
            FailureKind.PREREQUISITE,
        )

    failed = ", ".join(v.domain for v in validations if not v.validated)
    return CertificateRequestResult.failed(
        item,
        f"Validation of the required challenges did not complete successfully ({failed}). "
        "Please ensure all domains to be referenced in the certificate can be used to access "
        "this site without redirection.",
        FailureKind.VALIDATION,
    )
