"""
Challenge coordinator — drives one domain through the domain-validation
protocol and reports where it ended up.

Flow for a domain that is not already valid:

  begin_registration_and_validation()
    → provider fast path (not pending, already valid)   → VALIDATED
    → place_challenge_response() on the web server      (web_server items)
        → prerequisite probe failed                     → FAILED (prerequisite)
    → submit_challenge()
      → complete_identifier_validation()                → VALIDATED | FAILED

Collaborator exceptions are not caught here; the request's
failure boundary turns them into a failed result.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from cert_renewer.domain.authorization import DomainValidationState, ReuseDecision, ReuseKind
from cert_renewer.domain.models import (
    FailureKind,
    IdentifierStatus,
    ManagedCertificateItem,
    ManagedItemType,
    PendingAuthorization,
)
from cert_renewer.domain.ports import BindingAdministrator, VaultClient
from cert_renewer.execution import ProgressReporter

log = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class DomainValidation:
    """Final state of one domain within a request."""

    domain: str
    state: DomainValidationState
    authorization: PendingAuthorization | None = None
    failure_kind: FailureKind | None = None

    @property
    def validated(self) -> bool:
        return self.state is DomainValidationState.VALIDATED


class ChallengeCoordinator:
    """Validate domains against the vault, using the web server for HTTP challenges."""

    def __init__(self, vault: VaultClient, binding_admin: BindingAdministrator) -> None:
        self._vault = vault
        self._binding_admin = binding_admin

    def validate_domain(
        self,
        item: ManagedCertificateItem,
        domain: str,
        decision: ReuseDecision,
        progress: ProgressReporter,
    ) -> DomainValidation:
        """
        Drive `domain` to VALIDATED or FAILED.

        A reused valid identifier returns immediately with no provider
        interaction. A reused pending identifier resumes under its existing
        handle instead of registering a new one.
        """
        log.debug("challenge.started", item_id=item.id, domain=domain, state=str(decision.initial_state))
        if decision.kind is ReuseKind.ALREADY_VALID and decision.identifier is not None:
            log.info("challenge.reused_valid", item_id=item.id, domain=domain)
            return DomainValidation(
                domain,
                DomainValidationState.VALIDATED,
                PendingAuthorization(identifier=decision.identifier),
            )

        config = item.request_config
        if decision.kind is ReuseKind.CONTINUE_PENDING and decision.identifier is not None:
            identifier_id = decision.identifier.id
        else:
            identifier_id = self._vault.compute_identifier_id(domain)

        progress.running(f"Registering and validating {domain}")
        authorization = self._vault.begin_registration_and_validation(
            config, identifier_id, config.challenge_type, domain
        )

        if not authorization.challenge_pending:
            if authorization.identifier.status == IdentifierStatus.VALID:
                log.info("challenge.already_authorized", item_id=item.id, domain=domain)
                return DomainValidation(domain, DomainValidationState.VALIDATED, authorization)
            return self._failed(item, domain, authorization, FailureKind.VALIDATION, progress)

        log.debug(
            "challenge.awaiting",
            item_id=item.id,
            domain=domain,
            state=str(DomainValidationState.AWAITING_CHALLENGE),
        )
        if item.item_type == ManagedItemType.WEB_SERVER:
            progress.running(f"Performing challenge response via web server: {domain}")
            authorization = self._binding_admin.place_challenge_response(config, authorization)
            if config.perform_auto_config and not authorization.probe_succeeded:
                return self._failed(item, domain, authorization, FailureKind.PREREQUISITE, progress)

        progress.running(f"Requesting validation: {domain}")
        self._vault.submit_challenge(identifier_id, config.challenge_type)

        if not self._vault.complete_identifier_validation(authorization.identifier.id):
            return self._failed(item, domain, authorization, FailureKind.VALIDATION, progress)

        progress.running(f"Domain validation completed: {domain}")
        log.info("challenge.validated", item_id=item.id, domain=domain)
        return DomainValidation(domain, DomainValidationState.VALIDATED, authorization)

    def _failed(
        self,
        item: ManagedCertificateItem,
        domain: str,
        authorization: PendingAuthorization,
        kind: FailureKind,
        progress: ProgressReporter,
    ) -> DomainValidation:
        if kind is FailureKind.PREREQUISITE:
            message = f"Prerequisite configuration failed: {domain}"
        else:
            message = f"Domain validation failed: {domain}"
        progress.failed(message)
        log.warning(
            "challenge.failed",
            item_id=item.id,
            domain=domain,
            failure_kind=str(kind),
            identifier_status=str(authorization.identifier.status),
        )
        return DomainValidation(domain, DomainValidationState.FAILED, authorization, kind)
