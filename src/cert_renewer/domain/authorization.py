"""
Authorization tracker — decides whether a domain's existing provider
identifier can be reused for the current request.

Pure decision logic: no I/O beyond the injected identifier lookup, and the
clock is injectable so expiry edges are testable.

Validation of a single domain moves through DomainValidationState:

  UNVALIDATED ──begin──▶ AWAITING_CHALLENGE ──submit──▶ VALIDATED | FAILED
  REUSED_PENDING ──────▶ AWAITING_CHALLENGE
  REUSED_VALID ────────▶ VALIDATED  (no provider interaction)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum, unique

from cert_renewer.domain.models import DomainIdentifier, IdentifierStatus
from cert_renewer.domain.ports import IdentifierLookup

# Reused authorizations must outlive the request by at least this margin.
REUSE_EXPIRY_MARGIN = timedelta(days=1)

_REUSABLE_STATUSES = frozenset({IdentifierStatus.VALID, IdentifierStatus.PENDING})


@unique
class ReuseKind(StrEnum):
    FRESH = "fresh"
    ALREADY_VALID = "already_valid"
    CONTINUE_PENDING = "continue_pending"


@unique
class DomainValidationState(StrEnum):
    """Where one domain stands within a certificate request."""

    UNVALIDATED = "unvalidated"
    REUSED_PENDING = "reused_pending"
    REUSED_VALID = "reused_valid"
    AWAITING_CHALLENGE = "awaiting_challenge"
    VALIDATED = "validated"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ReuseDecision:
    """
    Whether to validate a domain fresh or carry on with an existing identifier.

    `identifier` is set for ALREADY_VALID and CONTINUE_PENDING.
    """

    kind: ReuseKind
    identifier: DomainIdentifier | None = None

    @staticmethod
    def fresh() -> ReuseDecision:
        return ReuseDecision(ReuseKind.FRESH)

    @property
    def initial_state(self) -> DomainValidationState:
        match self.kind:
            case ReuseKind.ALREADY_VALID:
                return DomainValidationState.REUSED_VALID
            case ReuseKind.CONTINUE_PENDING:
                return DomainValidationState.REUSED_PENDING
            case _:
                return DomainValidationState.UNVALIDATED


def is_reusable(identifier: DomainIdentifier | None, now: datetime) -> bool:
    """
    True if the identifier is valid or pending and its authorization expires
    strictly more than one day after `now`.
    """
    if identifier is None or identifier.authorization_expiry is None:
        return False
    if identifier.status not in _REUSABLE_STATUSES:
        return False
    return identifier.authorization_expiry > now + REUSE_EXPIRY_MARGIN


def resolve_reuse(
    domain: str,
    identifier_lookup: IdentifierLookup,
    reuse_enabled: bool,
    now: datetime | None = None,
) -> ReuseDecision:
    """
    Decide how `domain` should be validated for the current request.

    With reuse disabled the lookup is never consulted. With reuse enabled a
    reusable "valid" identifier skips the challenge entirely and a reusable
    "pending" identifier continues the challenge under its existing handle.
    Anything else is registered and validated fresh.
    """
    if not reuse_enabled:
        return ReuseDecision.fresh()

    existing = identifier_lookup(domain)
    if not is_reusable(existing, now or datetime.now(UTC)):
        return ReuseDecision.fresh()

    assert existing is not None  # guaranteed by is_reusable
    if existing.status == IdentifierStatus.VALID:
        return ReuseDecision(ReuseKind.ALREADY_VALID, existing)
    return ReuseDecision(ReuseKind.CONTINUE_PENDING, existing)
