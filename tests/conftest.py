"""
Shared test fixtures and builders for the cert-renewer test suite.

The builders return MagicMock collaborators wired for the happy path:
every domain needs a challenge, the web-server probe succeeds, the vault
validates and issues, and binding succeeds. Tests override single methods
to steer a request down a failure track.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from cert_renewer.domain.models import (
    CertificateDates,
    DomainIdentifier,
    IdentifierStatus,
    IssuanceResult,
    ManagedCertificateItem,
    ManagedItemType,
    PendingAuthorization,
    RequestConfig,
    RequestProgressState,
)
from cert_renewer.domain.ports import BindingAdministrator, Collaborators, VaultClient

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
ARTIFACT_PATH = "/var/certs/example.com.pfx"
NOT_BEFORE = datetime(2024, 6, 1, 0, 0, tzinfo=UTC)
NOT_AFTER = datetime(2024, 8, 30, 0, 0, tzinfo=UTC)


def make_item(
    item_id: str = "item-1",
    primary_domain: str = "example.com",
    subject_alternative_names: tuple[str, ...] = (),
    item_type: ManagedItemType = ManagedItemType.WEB_SERVER,
    **config_overrides: object,
) -> ManagedCertificateItem:
    """Build a managed item; extra keyword arguments go to its RequestConfig."""
    return ManagedCertificateItem(
        id=item_id,
        name=f"{primary_domain} site",
        request_config=RequestConfig(
            primary_domain=primary_domain,
            subject_alternative_names=subject_alternative_names,
            **config_overrides,  # type: ignore[arg-type]
        ),
        item_type=item_type,
    )


def pending_authorization(
    domain: str,
    identifier_id: str | None = None,
    status: IdentifierStatus = IdentifierStatus.PENDING,
    challenge_pending: bool = True,
) -> PendingAuthorization:
    return PendingAuthorization(
        identifier=DomainIdentifier(identifier_id or f"id-{domain}", domain, status),
        challenge_pending=challenge_pending,
    )


def make_vault() -> MagicMock:
    vault = MagicMock(spec=VaultClient)
    vault.compute_identifier_id.side_effect = lambda domain: f"id-{domain}"
    vault.begin_registration_and_validation.side_effect = (
        lambda config, identifier_id, challenge_type, domain: pending_authorization(domain, identifier_id)
    )
    vault.complete_identifier_validation.return_value = True
    vault.request_issuance.return_value = IssuanceResult(success=True, artifact_path=ARTIFACT_PATH)
    vault.get_domain_identifier.return_value = None
    vault.get_domain_identifiers.return_value = []
    return vault


def make_binding_admin() -> MagicMock:
    binding_admin = MagicMock(spec=BindingAdministrator)
    binding_admin.place_challenge_response.side_effect = (
        lambda config, authorization: replace(authorization, probe_succeeded=True)
    )
    binding_admin.install_certificate.return_value = True
    binding_admin.get_site_bindings.return_value = []
    return binding_admin


def make_collaborators(
    vault: MagicMock | None = None,
    binding_admin: MagicMock | None = None,
    certificate_store: MagicMock | None = None,
    repository: MagicMock | None = None,
) -> Collaborators:
    if certificate_store is None:
        certificate_store = MagicMock()
        certificate_store.read_certificate_dates.return_value = CertificateDates(NOT_BEFORE, NOT_AFTER)
    return Collaborators(
        vault=vault or make_vault(),
        binding_admin=binding_admin or make_binding_admin(),
        certificate_store=certificate_store,
        repository=repository or MagicMock(),
    )


class RecordingSink:
    """Progress sink that keeps every observation it receives."""

    def __init__(self) -> None:
        self.states: list[RequestProgressState] = []

    def __call__(self, progress: RequestProgressState) -> None:
        self.states.append(progress)

    @property
    def messages(self) -> list[str]:
        return [s.message for s in self.states]


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def collaborators() -> Collaborators:
    return make_collaborators()
