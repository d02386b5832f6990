"""
Ports — Protocol-based interfaces for the engine's external collaborators.

These define WHAT the orchestration engine needs without specifying HOW it is
done. Following hexagonal architecture:

  Domain ← Ports (protocols) ← Adapters (implementations)

Each port is a Protocol (structural typing), so a plugin satisfies the
contract simply by implementing the methods — no inheritance.

Collaborator methods may raise. Exceptions are not handled at the port:
they travel up to the per-item failure boundary of the request.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, TypeAlias, runtime_checkable

from cert_renewer.domain.models import (
    CertificateDates,
    CertificateRequestResult,
    DomainIdentifier,
    EndpointState,
    IssuanceResult,
    ManagedCertificateItem,
    PendingAuthorization,
    RequestConfig,
    RequestProgressState,
    SiteBinding,
)

ProgressSink: TypeAlias = Callable[[RequestProgressState], None]
IdentifierLookup: TypeAlias = Callable[[str], DomainIdentifier | None]


@runtime_checkable
class VaultClient(Protocol):
    """
    Port: the ACME/vault protocol client.

    The vault serializes access through an exclusive session lock, so at
    most one certificate request may be in flight against it.
    """

    def compute_identifier_id(self, domain: str) -> str: ...

    def begin_registration_and_validation(
        self,
        config: RequestConfig,
        identifier_id: str,
        challenge_type: str,
        domain: str,
    ) -> PendingAuthorization:
        """Register the identifier (or resume it) and request authorization."""
        ...

    def submit_challenge(self, identifier_id: str, challenge_type: str) -> None: ...

    def complete_identifier_validation(self, identifier_alias: str) -> bool:
        """
        Await the provider's verdict on a submitted challenge.

        The wait is bounded by the provider; a timeout returns False.
        """
        ...

    def request_issuance(
        self,
        primary_domain: str,
        alternative_domains: list[str],
    ) -> IssuanceResult: ...

    def get_domain_identifier(self, domain: str) -> DomainIdentifier | None: ...

    def get_domain_identifiers(self) -> list[DomainIdentifier]: ...


@runtime_checkable
class BindingAdministrator(Protocol):
    """Port: the web-server binding administrator."""

    def place_challenge_response(
        self,
        config: RequestConfig,
        authorization: PendingAuthorization,
    ) -> PendingAuthorization:
        """
        Place the HTTP challenge answer on the web server.

        Returns the authorization with `probe_succeeded` set when a
        prerequisite configuration probe was performed.
        """
        ...

    def install_certificate(
        self,
        config: RequestConfig,
        artifact_path: str,
        cleanup_store: bool,
    ) -> bool:
        """Import the certificate and bind it to every matching site; False on failure."""
        ...

    def get_site_bindings(self, ignore_stopped_sites: bool) -> list[SiteBinding]: ...


@runtime_checkable
class CertificateStoreReader(Protocol):
    """
    Port: read the validity window of an issued certificate artifact.

    Raises CertificateParseError when the artifact cannot be read.
    """

    def read_certificate_dates(self, artifact_path: str) -> CertificateDates: ...


@runtime_checkable
class ManagedItemRepository(Protocol):
    """
    Port: persistence of managed certificate items.

    Raises PersistenceError when storage is unreachable.
    """

    def load_all(self) -> list[ManagedCertificateItem]:
        """Return every managed item in fleet iteration order."""
        ...

    def get(self, item_id: str) -> ManagedCertificateItem | None: ...

    def save(self, item: ManagedCertificateItem) -> None: ...


@runtime_checkable
class EndpointProbe(Protocol):
    """Port: decide whether a managed item's endpoint is currently running."""

    def check(self, item: ManagedCertificateItem) -> EndpointState: ...


@runtime_checkable
class FailureNotifier(Protocol):
    """Port: tell an operator that a certificate request failed."""

    def notify(self, result: CertificateRequestResult) -> None: ...


@dataclass(frozen=True, slots=True)
class Collaborators:
    """The set of ports one certificate request is driven against."""

    vault: VaultClient
    binding_admin: BindingAdministrator
    certificate_store: CertificateStoreReader
    repository: ManagedItemRepository
