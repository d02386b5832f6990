"""
Execution context for certificate requests — the single failure boundary
and best-effort progress emission.

The request orchestrator describes WHAT happens and returns a
CertificateRequestResult. RequestContext describes HOW it runs: it logs
entry, exit, duration and outcome, and turns any exception escaping the
computation into a failed result so one item can never abort its siblings.

ProgressReporter delivers RequestProgressState observations to an optional
sink. Delivery is one-way: the engine never waits on, retries or inspects it,
and a sink that raises is logged and ignored.
"""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog

from cert_renewer.domain.models import (
    CertificateRequestResult,
    FailureKind,
    ManagedCertificateItem,
    RequestProgressState,
    RequestState,
)
from cert_renewer.domain.ports import ProgressSink

log = structlog.get_logger()


class ProgressReporter:
    """Emit progress observations for one managed item."""

    def __init__(self, item: ManagedCertificateItem, sink: ProgressSink | None = None) -> None:
        self._item = item
        self._sink = sink

    def running(self, message: str) -> None:
        self.emit(RequestProgressState(RequestState.RUNNING, message))

    def succeeded(self, message: str, result: CertificateRequestResult | None = None) -> None:
        self.emit(RequestProgressState(RequestState.SUCCEEDED, message, result))

    def failed(self, message: str, result: CertificateRequestResult | None = None) -> None:
        self.emit(RequestProgressState(RequestState.FAILED, message, result))

    def finish(self, result: CertificateRequestResult) -> CertificateRequestResult:
        """Emit the terminal observation for `result` and return it unchanged."""
        if result.is_success:
            self.succeeded(result.message, result)
        else:
            self.failed(result.message, result)
        return result

    def emit(self, progress: RequestProgressState) -> None:
        if self._sink is None:
            return
        try:
            self._sink(progress)
        except Exception as e:
            log.warning(
                "progress.sink_error",
                item_id=self._item.id,
                state=str(progress.state),
                error=str(e),
            )


class RequestContext:
    """
    Failure boundary around one certificate request.

        ctx = RequestContext(operation="CertificateRequest")
        result = ctx.execute(item, lambda: orchestrate(item), reporter)
    """

    def __init__(self, operation: str = "CertificateRequest") -> None:
        self._operation = operation

    def execute(
        self,
        item: ManagedCertificateItem,
        computation: Callable[[], CertificateRequestResult],
        progress: ProgressReporter,
    ) -> CertificateRequestResult:
        bound = log.bind(operation=self._operation, item_id=item.id, item_name=item.name)
        bound.info("request.started")
        start = time.monotonic()

        try:
            result = computation()
        except Exception as e:
            elapsed = time.monotonic() - start
            bound.error(
                "request.unexpected_error",
                elapsed_seconds=round(elapsed, 3),
                error=str(e),
                exc_info=True,
            )
            result = CertificateRequestResult.failed(
                item,
                f"{item.name}: Request failed - {e}",
                FailureKind.UNEXPECTED,
            )
            return progress.finish(result)

        elapsed = time.monotonic() - start
        bound.info(
            "request.completed",
            elapsed_seconds=round(elapsed, 3),
            success=result.is_success,
            failure_kind=str(result.failure_kind) if result.failure_kind else None,
        )
        return result
