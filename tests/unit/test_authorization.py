"""
Unit tests for the authorization tracker — identifier reuse decisions.

The clock is injected, so expiry edges are tested to the second.
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from cert_renewer.domain.authorization import (
    REUSE_EXPIRY_MARGIN,
    DomainValidationState,
    ReuseKind,
    is_reusable,
    resolve_reuse,
)
from cert_renewer.domain.models import DomainIdentifier, IdentifierStatus
from tests.conftest import NOW


def _identifier(status: IdentifierStatus, expires_in: timedelta | None) -> DomainIdentifier:
    expiry = NOW + expires_in if expires_in is not None else None
    return DomainIdentifier("handle-1", "example.com", status, expiry)


# ─────────────────────── is_reusable ───────────────────────


class TestIsReusable:
    @pytest.mark.parametrize("status", [IdentifierStatus.VALID, IdentifierStatus.PENDING])
    def test_valid_or_pending_with_distant_expiry_is_reusable(self, status: IdentifierStatus) -> None:
        assert is_reusable(_identifier(status, timedelta(days=20)), NOW)

    @pytest.mark.parametrize("status", [IdentifierStatus.INVALID, IdentifierStatus.UNVALIDATED])
    def test_other_statuses_are_not_reusable(self, status: IdentifierStatus) -> None:
        assert not is_reusable(_identifier(status, timedelta(days=20)), NOW)

    def test_expiry_exactly_one_day_ahead_is_not_reusable(self) -> None:
        """
        GIVEN a valid identifier expiring exactly one day from now
        WHEN reusability is checked
        THEN it is rejected (the margin is strict).
        """
        assert not is_reusable(_identifier(IdentifierStatus.VALID, REUSE_EXPIRY_MARGIN), NOW)

    def test_expiry_just_past_margin_is_reusable(self) -> None:
        expires_in = REUSE_EXPIRY_MARGIN + timedelta(seconds=1)

        assert is_reusable(_identifier(IdentifierStatus.VALID, expires_in), NOW)

    def test_missing_expiry_is_not_reusable(self) -> None:
        assert not is_reusable(_identifier(IdentifierStatus.VALID, None), NOW)

    def test_missing_identifier_is_not_reusable(self) -> None:
        assert not is_reusable(None, NOW)


# ─────────────────────── resolve_reuse ───────────────────────


class TestResolveReuse:
    def test_disabled_reuse_never_consults_lookup(self) -> None:
        """
        GIVEN identifier reuse is disabled
        WHEN a domain is resolved
        THEN the decision is FRESH and the vault lookup is never called.
        """
        lookup = MagicMock()

        decision = resolve_reuse("example.com", lookup, reuse_enabled=False, now=NOW)

        assert decision.kind is ReuseKind.FRESH
        lookup.assert_not_called()

    def test_valid_identifier_is_reused_as_already_valid(self) -> None:
        existing = _identifier(IdentifierStatus.VALID, timedelta(days=10))

        decision = resolve_reuse("example.com", lambda _: existing, reuse_enabled=True, now=NOW)

        assert decision.kind is ReuseKind.ALREADY_VALID
        assert decision.identifier is existing
        assert decision.initial_state is DomainValidationState.REUSED_VALID

    def test_pending_identifier_continues_pending(self) -> None:
        existing = _identifier(IdentifierStatus.PENDING, timedelta(days=10))

        decision = resolve_reuse("example.com", lambda _: existing, reuse_enabled=True, now=NOW)

        assert decision.kind is ReuseKind.CONTINUE_PENDING
        assert decision.initial_state is DomainValidationState.REUSED_PENDING

    def test_nearly_expired_identifier_is_validated_fresh(self) -> None:
        existing = _identifier(IdentifierStatus.VALID, timedelta(hours=12))

        decision = resolve_reuse("example.com", lambda _: existing, reuse_enabled=True, now=NOW)

        assert decision.kind is ReuseKind.FRESH
        assert decision.initial_state is DomainValidationState.UNVALIDATED

    def test_unknown_domain_is_validated_fresh(self) -> None:
        decision = resolve_reuse("example.com", lambda _: None, reuse_enabled=True, now=NOW)

        assert decision.kind is ReuseKind.FRESH
        assert decision.identifier is None
