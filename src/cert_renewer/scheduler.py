"""
Scheduler — periodic renewal passes.

Infrastructure layer — uses APScheduler (3.x) for in-process scheduling
driven by a standard 5-field cron expression. The scheduler only triggers
passes; which items get renewed is decided by the renewal pass itself.

Graceful shutdown: handles SIGINT/SIGTERM to stop the scheduler cleanly.
"""

from __future__ import annotations

import signal
import sys
from collections.abc import Callable
from typing import TypeAlias

import structlog
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from cert_renewer.domain.models import CertificateRequestResult

log = structlog.get_logger()

JOB_ID = "cert_renewer_renewal"

RenewalFn: TypeAlias = Callable[[], list[CertificateRequestResult]]


def create_scheduler(
    renewal_fn: RenewalFn,
    cron: str = "0 3 * * *",
    run_on_startup: bool = True,
) -> BlockingScheduler:
    """
    Create a configured APScheduler that runs renewal passes on a cron schedule.

    Args:
        renewal_fn: Zero-argument callable running one pass and returning its results.
        cron: Standard 5-field cron expression (minute hour dom month dow).
        run_on_startup: If True, run one pass immediately before entering the loop.

    Returns:
        A configured BlockingScheduler (call .start() to begin).
    """
    scheduler = BlockingScheduler()
    job = _make_job(renewal_fn)

    minute, hour, dom, month, dow = cron.split()
    scheduler.add_job(
        job,
        trigger=CronTrigger(
            minute=minute,
            hour=hour,
            day=dom,
            month=month,
            day_of_week=dow,
        ),
        id=JOB_ID,
        name="Managed certificate renewal",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    if run_on_startup:
        log.info("scheduler.startup_run", message="Running renewal pass immediately on startup")
        job()

    _register_shutdown_signals(scheduler)

    return scheduler


def _make_job(renewal_fn: RenewalFn) -> Callable[[], None]:
    def _job() -> None:
        """One renewal pass; a pass that cannot start is logged, not raised into APScheduler."""
        try:
            results = renewal_fn()
        except Exception as e:
            log.error("scheduler.job_failed", error=str(e))
            return
        log.info(
            "scheduler.job_completed",
            processed=len(results),
            succeeded=sum(1 for r in results if r.is_success),
            failed=sum(1 for r in results if not r.is_success),
        )

    return _job


def _register_shutdown_signals(scheduler: BlockingScheduler) -> None:
    """Register SIGINT and SIGTERM handlers for graceful shutdown."""

    def _shutdown(signum: int, frame: object) -> None:
        log.info("scheduler.shutdown_requested", signal=signal.Signals(signum).name)
        scheduler.shutdown(wait=False)
        sys.exit(0)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
