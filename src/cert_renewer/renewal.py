"""
Renewal pass — decides which managed items need a certificate request and
drives the request pipeline for each, strictly one after another.

An item is processed iff it is due AND its endpoint is running (or the
skip-stopped policy is off). The running check fails open: only an explicit
EndpointState.STOPPED skips an item; an unknown state or a check that raises
counts as running, and validation will fail later if the endpoint really is
unreachable.

Renewal policy is an explicit RenewalPolicy value passed in per call, so any
combination of flags can be exercised without global state.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum, unique
from typing import TypeAlias

import structlog

from cert_renewer.domain.models import (
    CertificateRequestResult,
    EndpointState,
    ManagedCertificateItem,
)
from cert_renewer.domain.ports import FailureNotifier, ProgressSink
from cert_renewer.execution import ProgressReporter

log = structlog.get_logger()

RequestFn: TypeAlias = Callable[[ManagedCertificateItem, ProgressSink | None], CertificateRequestResult]
RunningCheck: TypeAlias = Callable[[ManagedCertificateItem], EndpointState]

_ONE_DAY = timedelta(days=1)


@unique
class SkipReason(StrEnum):
    NOT_DUE = "not_due"
    ENDPOINT_STOPPED = "endpoint_stopped"


SKIP_MESSAGES: dict[SkipReason, str] = {
    SkipReason.NOT_DUE: "Skipping renewal, existing certificate still OK. ",
    SkipReason.ENDPOINT_STOPPED: (
        "Site stopped, renewal skipped as domain validation cannot be performed. "
    ),
}


@dataclass(frozen=True, slots=True)
class RenewalPolicy:
    """
    Policy for one renewal pass.

    With renewal_interval_days=0 every included item is renewed on every pass.
    """

    auto_renew_only: bool = True
    renewal_interval_days: int = 30
    skip_stopped_endpoints: bool = False


def days_since_renewal(item: ManagedCertificateItem, now: datetime) -> float | None:
    """
    Days elapsed since the item was last renewed, or None if it never was.

    A renewal timestamp in the future (clock skew, bad import) counts as
    renewed just now.
    """
    if item.date_renewed is None:
        return None
    elapsed = (now - item.date_renewed) / _ONE_DAY
    return max(elapsed, 0.0)


def is_renewal_due(item: ManagedCertificateItem, renewal_interval_days: int, now: datetime) -> bool:
    """True if the item was never renewed or its last renewal is older than the interval."""
    elapsed = days_since_renewal(item, now)
    if elapsed is None:
        return True
    return elapsed > renewal_interval_days


def is_endpoint_running(item: ManagedCertificateItem, running_check: RunningCheck | None) -> bool:
    """Fail-open running check: only an explicit STOPPED answer returns False."""
    if running_check is None:
        return True
    try:
        state = running_check(item)
    except Exception as e:
        log.warning("renewal.running_check_failed", item_id=item.id, error=str(e))
        return True
    return state != EndpointState.STOPPED


def run_renewal_pass(
    items: Iterable[ManagedCertificateItem],
    policy: RenewalPolicy,
    request_fn: RequestFn,
    running_check: RunningCheck | None = None,
    progress_sinks: Mapping[str, ProgressSink] | None = None,
    *,
    notifier: FailureNotifier | None = None,
    now: datetime | None = None,
) -> list[CertificateRequestResult]:
    """
    Run one renewal pass over `items` in iteration order.

    Returns one result per processed item, in processing order. Skipped
    items produce no result, only a progress message on their sink and a
    log event. A failed item never stops the pass.
    """
    now = now or datetime.now(UTC)
    candidates = [i for i in items if i.include_in_auto_renew] if policy.auto_renew_only else list(items)
    sinks = progress_sinks or {}

    results: list[CertificateRequestResult] = []
    for item in candidates:
        sink = sinks.get(item.id)

        if item.date_renewed is not None and item.date_renewed > now:
            log.warning(
                "renewal.future_renewal_date",
                item_id=item.id,
                date_renewed=item.date_renewed.isoformat(),
            )

        due = is_renewal_due(item, policy.renewal_interval_days, now)
        running = True
        if due and policy.skip_stopped_endpoints:
            running = is_endpoint_running(item, running_check)

        if due and running:
            result = request_fn(item, sink)
            results.append(result)
            if not result.is_success:
                _notify_failure(notifier, result)
            continue

        reason = SkipReason.ENDPOINT_STOPPED if due else SkipReason.NOT_DUE
        ProgressReporter(item, sink).succeeded(SKIP_MESSAGES[reason])
        log.info("renewal.skipped", item_id=item.id, item_name=item.name, reason=str(reason))

    log.info(
        "renewal.pass_completed",
        candidates=len(candidates),
        processed=len(results),
        succeeded=sum(1 for r in results if r.is_success),
        failed=sum(1 for r in results if not r.is_success),
    )
    return results


def _notify_failure(notifier: FailureNotifier | None, result: CertificateRequestResult) -> None:
    if notifier is None or not result.item.request_config.enable_failure_notifications:
        return
    try:
        notifier.notify(result)
    except Exception as e:
        log.warning("renewal.notification_failed", item_id=result.item.id, error=str(e))
