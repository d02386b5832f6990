"""
FastAPI + Uvicorn ASGI application for Kubernetes deployment.

Runs cert-renewer as a web service: the cron scheduler runs renewal passes
in a background thread while the API exposes health probes and lets an
operator trigger a pass, request one item, or import items from the vault.

All blocking work is pushed to a worker thread with asyncio.to_thread; the
RenewalService serializes it against the single provider session.

Entry point for production: uvicorn cert_renewer.asgi:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from cert_renewer import __version__
from cert_renewer.config import AppSettings
from cert_renewer.domain.models import CertificateRequestResult
from cert_renewer.main import configure_structlog, create_service
from cert_renewer.scheduler import JOB_ID, create_scheduler
from cert_renewer.service import RenewalService

# ─────────────────────── Global State ───────────────────────
# Set during app startup and read by the probes and endpoints.

_scheduler_thread: threading.Thread | None = None
_scheduler_started = False
_scheduler_ready = False
_error_message: str | None = None
_service: RenewalService | None = None
log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup: load settings, build the service and start the scheduler thread.
    Shutdown: stop the scheduler and join the thread.
    """
    global _scheduler_thread, _scheduler_started, _scheduler_ready, _error_message, _service

    log.info("asgi.startup")

    try:
        settings = AppSettings()
    except Exception as e:
        _error_message = f"Configuration error: {e}"
        log.error("asgi.startup_error", error=_error_message)
        raise

    configure_structlog(settings.log_level)

    log.info(
        "asgi.startup_config",
        version=__version__,
        log_level=settings.log_level,
        cron=settings.scheduler.cron,
        run_on_startup=settings.run_on_startup,
    )

    try:
        service = create_service(settings)
        scheduler = create_scheduler(
            renewal_fn=service.renew_all,
            cron=settings.scheduler.cron,
            # startup pass runs on the scheduler thread below
            run_on_startup=False,
        )
    except Exception as e:
        _error_message = f"Failed to initialize service/scheduler: {e}"
        log.error("asgi.init_error", error=_error_message)
        raise

    _service = service

    def run_scheduler() -> None:
        global _scheduler_started, _error_message
        try:
            _scheduler_started = True
            log.info("asgi.scheduler_thread_started")
            if settings.run_on_startup:
                scheduler.get_job(JOB_ID).func()
            scheduler.start()
        except KeyboardInterrupt:
            log.info("asgi.scheduler_interrupted")
        except Exception as e:
            _error_message = f"Scheduler error: {e}"
            log.error("asgi.scheduler_error", error=_error_message)

    _scheduler_thread = threading.Thread(target=run_scheduler, daemon=True)
    _scheduler_thread.start()

    await asyncio.sleep(0.1)
    _scheduler_ready = True

    log.info("asgi.startup_complete")

    yield

    # ──── Shutdown ────
    log.info("asgi.shutdown", reason="SIGTERM or server stop")

    try:
        scheduler.shutdown(wait=True)
        log.info("asgi.scheduler_shutdown_complete")
    except Exception as e:
        log.warning("asgi.scheduler_shutdown_error", error=str(e))

    if _scheduler_thread and _scheduler_thread.is_alive():
        _scheduler_thread.join(timeout=5.0)
        if _scheduler_thread.is_alive():
            log.warning("asgi.scheduler_thread_timeout", timeout_seconds=5.0)

    log.info("asgi.shutdown_complete")


# ─────────────────────── FastAPI Application ───────────────────────

app = FastAPI(
    title="cert-renewer",
    description="Managed TLS certificate renewal engine",
    version=__version__,
    lifespan=lifespan,
)


def _result_payload(result: CertificateRequestResult) -> dict[str, Any]:
    return {
        "item_id": result.item.id,
        "item_name": result.item.name,
        "is_success": result.is_success,
        "message": result.message,
        "failure_kind": str(result.failure_kind) if result.failure_kind else None,
        "certificate_path": result.certificate_path,
    }


def _unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"status": "unavailable", "reason": "Service not initialized"},
    )


@app.get("/health")
async def health() -> JSONResponse:
    """Liveness probe: 200 while the scheduler thread is alive and startup succeeded."""
    if _error_message:
        log.warning("health.check_failed", error=_error_message)
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "error": _error_message},
        )

    if not _scheduler_thread or not _scheduler_thread.is_alive():
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "reason": "scheduler thread not running"},
        )

    return JSONResponse(
        status_code=200,
        content={"status": "healthy", "scheduler_running": True},
    )


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe.

    202 while starting, 503 after a startup or scheduler error, 200 once the
    scheduler thread is up (not necessarily after a completed pass).
    """
    if not _scheduler_ready or not _scheduler_started:
        return JSONResponse(
            status_code=202,
            content={"status": "starting", "scheduler_started": _scheduler_started},
        )

    if _error_message:
        return JSONResponse(
            status_code=503,
            content={"status": "error", "error": _error_message},
        )

    return JSONResponse(
        status_code=200,
        content={
            "status": "ready",
            "scheduler_running": _scheduler_thread is not None and _scheduler_thread.is_alive(),
        },
    )


@app.get("/info")
async def info() -> dict[str, Any]:
    info_body: dict[str, Any] = {
        "name": "cert-renewer",
        "version": __version__,
        "scheduler_running": _scheduler_thread is not None and _scheduler_thread.is_alive(),
        "scheduler_started": _scheduler_started,
        "scheduler_ready": _scheduler_ready,
        "has_error": _error_message is not None,
    }
    if _service is not None:
        policy = _service.policy
        info_body["renewal_policy"] = {
            "auto_renew_only": policy.auto_renew_only,
            "renewal_interval_days": policy.renewal_interval_days,
            "skip_stopped_endpoints": policy.skip_stopped_endpoints,
        }
    return info_body


@app.post("/trigger")
async def trigger() -> JSONResponse:
    """
    Run one renewal pass now, without waiting for the cron schedule.

    200 with per-item results once the pass completes (individual items may
    still have failed), 500 if the pass could not run at all.
    """
    if _service is None:
        return _unavailable()

    log.info("trigger.manual_start", source="REST")

    try:
        results = await asyncio.to_thread(_service.renew_all)
    except Exception as e:
        log.error("trigger.exception", error=str(e))
        return JSONResponse(status_code=500, content={"status": "error", "error": str(e)})

    succeeded = sum(1 for r in results if r.is_success)
    log.info("trigger.completed", processed=len(results), succeeded=succeeded)
    return JSONResponse(
        status_code=200,
        content={
            "status": "success",
            "processed": len(results),
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
            "results": [_result_payload(r) for r in results],
        },
    )


@app.post("/items/{item_id}/request")
async def request_item(item_id: str) -> JSONResponse:
    """Request a certificate for one stored item regardless of its renewal schedule."""
    if _service is None:
        return _unavailable()

    log.info("request.manual_start", source="REST", item_id=item_id)

    try:
        result = await asyncio.to_thread(_service.request_certificate, item_id)
    except Exception as e:
        log.error("request.exception", item_id=item_id, error=str(e))
        return JSONResponse(status_code=500, content={"status": "error", "error": str(e)})

    if result is None:
        return JSONResponse(
            status_code=404,
            content={"status": "not_found", "item_id": item_id},
        )

    return JSONResponse(
        status_code=200 if result.is_success else 500,
        content={
            "status": "success" if result.is_success else "failed",
            **_result_payload(result),
        },
    )


@app.post("/items/import")
async def import_items(merge_as_san: bool = False, ignore_stopped_sites: bool = True) -> JSONResponse:
    """Create managed items for identifiers the vault already holds."""
    if _service is None:
        return _unavailable()

    try:
        items = await asyncio.to_thread(
            _service.import_from_vault, merge_as_san, ignore_stopped_sites
        )
    except Exception as e:
        log.error("import.exception", error=str(e))
        return JSONResponse(status_code=500, content={"status": "error", "error": str(e)})

    log.info("import.completed", imported=len(items))
    return JSONResponse(
        status_code=200,
        content={
            "status": "success",
            "imported": len(items),
            "items": [
                {
                    "id": item.id,
                    "name": item.name,
                    "primary_domain": item.request_config.primary_domain,
                    "subject_alternative_names": list(item.request_config.subject_alternative_names),
                }
                for item in items
            ],
        },
    )


if __name__ == "__main__":
    # For local testing: python -m uvicorn cert_renewer.asgi:app --reload
    import uvicorn

    uvicorn.run(
        "cert_renewer.asgi:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level="info",
    )
