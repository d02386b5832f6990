"""
Domain models — managed certificate items, request configuration,
provider-side identifiers and request outcomes.

Value objects are frozen dataclasses. ManagedCertificateItem is the one
mutable record: the request orchestrator updates its date/path fields after a
successful request and hands it back to the repository.

All timestamps are timezone-aware UTC datetimes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum, unique

DEFAULT_CHALLENGE_TYPE = "http-01"


@unique
class ManagedItemType(StrEnum):
    """How a managed item's challenges and bindings are handled."""

    WEB_SERVER = "web_server"
    """Challenge responses and certificate bindings are automated on the local web server."""

    MANUAL = "manual"
    """Challenge responses are placed and certificates bound by an operator."""


@unique
class IdentifierStatus(StrEnum):
    """Authorization status of a domain identifier as reported by the provider."""

    UNVALIDATED = "unvalidated"
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"


@unique
class FailureKind(StrEnum):
    """Why a certificate request failed."""

    VALIDATION = "validation"
    """One or more domains did not complete challenge validation."""

    PREREQUISITE = "prerequisite"
    """The automated configuration probe could not confirm the challenge is reachable."""

    ISSUANCE = "issuance"
    """All domains validated but the provider declined or timed out issuing."""

    INSTALLATION = "installation"
    """The certificate was issued but binding/store installation failed."""

    UNEXPECTED = "unexpected"
    """Any other error caught at the request's failure boundary."""


@unique
class RequestState(StrEnum):
    """Coarse state tag carried by progress observations."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@unique
class EndpointState(StrEnum):
    """Outcome of a running check against a managed endpoint."""

    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class RequestConfig:
    """
    Certificate request configuration for one managed item.

    Immutable for the duration of a request. An empty challenge type falls
    back to the standard HTTP challenge. The primary domain is always the
    first member of `distinct_domains`.
    """

    primary_domain: str
    subject_alternative_names: tuple[str, ...] = ()
    challenge_type: str = DEFAULT_CHALLENGE_TYPE
    perform_auto_config: bool = True
    perform_automated_binding: bool = True
    perform_challenge_file_copy: bool = True
    enable_failure_notifications: bool = True
    binding_ip_address: str | None = None
    binding_port: int | None = None
    binding_use_sni: bool | None = None
    website_root_path: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "subject_alternative_names", tuple(self.subject_alternative_names))
        if not self.challenge_type:
            object.__setattr__(self, "challenge_type", DEFAULT_CHALLENGE_TYPE)

    @property
    def distinct_domains(self) -> tuple[str, ...]:
        """Primary domain followed by the alternative names, de-duplicated in order."""
        names = (self.primary_domain, *(n for n in self.subject_alternative_names if n))
        return tuple(dict.fromkeys(names))


@dataclass(slots=True)
class ManagedCertificateItem:
    """
    A configured certificate target.

    Owned by the persistence collaborator. The engine reads it at the start
    of a renewal pass and updates the date/path fields at most once per
    successful request.
    """

    id: str
    name: str
    request_config: RequestConfig
    item_type: ManagedItemType = ManagedItemType.WEB_SERVER
    include_in_auto_renew: bool = True
    date_issued: datetime | None = None
    date_renewed: datetime | None = None
    date_start: datetime | None = None
    date_expiry: datetime | None = None
    certificate_path: str | None = None
    group_id: str | None = None
    comments: str | None = None


@dataclass(frozen=True, slots=True)
class DomainIdentifier:
    """
    Provider-side authorization state for one domain name.

    `id` is the opaque handle the provider uses for the identifier.
    """

    id: str
    domain: str
    status: IdentifierStatus = IdentifierStatus.UNVALIDATED
    authorization_expiry: datetime | None = None


@dataclass(frozen=True, slots=True)
class PendingAuthorization:
    """
    Per-domain authorization produced while validating one request.

    `probe_succeeded` is None when no prerequisite configuration probe ran.
    Discarded once the request has aggregated its domains.
    """

    identifier: DomainIdentifier
    challenge_pending: bool = False
    probe_succeeded: bool | None = None


@dataclass(frozen=True, slots=True)
class IssuanceResult:
    """Outcome of a provider issuance call."""

    success: bool
    artifact_path: str | None = None
    error_message: str | None = None


@dataclass(frozen=True, slots=True)
class CertificateDates:
    """Validity window read back from an issued certificate."""

    not_before: datetime
    not_after: datetime


@dataclass(frozen=True, slots=True)
class CertificateRequestResult:
    """
    Terminal outcome of one certificate request.

    Produced exactly once per request attempt and never mutated.
    `failure_kind` is None on success.
    """

    is_success: bool
    message: str
    item: ManagedCertificateItem = field(repr=False)
    certificate_path: str | None = None
    failure_kind: FailureKind | None = None

    @staticmethod
    def succeeded(
        item: ManagedCertificateItem,
        message: str,
        certificate_path: str | None = None,
    ) -> CertificateRequestResult:
        return CertificateRequestResult(
            is_success=True,
            message=message,
            item=item,
            certificate_path=certificate_path,
        )

    @staticmethod
    def failed(
        item: ManagedCertificateItem,
        message: str,
        kind: FailureKind,
        certificate_path: str | None = None,
    ) -> CertificateRequestResult:
        return CertificateRequestResult(
            is_success=False,
            message=message,
            item=item,
            certificate_path=certificate_path,
            failure_kind=kind,
        )


@dataclass(frozen=True, slots=True)
class RequestProgressState:
    """A fire-and-forget observation emitted while a request runs."""

    state: RequestState
    message: str
    result: CertificateRequestResult | None = None


@dataclass(frozen=True, slots=True)
class SiteBinding:
    """One web-server binding as enumerated by the binding administrator."""

    site_id: str
    site_name: str
    host: str = ""
    protocol: str = "http"
    ip: str | None = None
    port: int = 80
    physical_path: str | None = None


@dataclass(frozen=True, slots=True)
class DomainOption:
    """A selectable domain offered when configuring a managed item from a site."""

    domain: str
    title: str = ""
    is_primary_domain: bool = False
    is_selected: bool = True
    is_manual_entry: bool = False
