"""
Application entry point — wires dependencies and starts the scheduler.

Composition root: loads settings, resolves the vault/binding plugins,
creates the concrete adapters and hands a RenewalService to the scheduler.

This is the ONLY place where concrete classes are instantiated.
Everything else depends on Protocol interfaces.
"""

from __future__ import annotations

import logging
import pkgutil
import sys
from typing import Any

import structlog

from cert_renewer import __version__
from cert_renewer.adapters.certificate_store import CryptographyCertificateStore
from cert_renewer.adapters.http_client import HttpEndpointProbe, WebhookFailureNotifier
from cert_renewer.adapters.repository import PsycopgManagedItemRepository
from cert_renewer.config import AppSettings
from cert_renewer.domain.errors import PluginLoadError
from cert_renewer.domain.ports import BindingAdministrator, Collaborators, VaultClient
from cert_renewer.scheduler import create_scheduler
from cert_renewer.service import RenewalService


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for structured logging.

    Colored, human-readable console output; bound context (item id, operation)
    is merged into every line.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _load_plugin(path: str, port: type) -> Any:
    """
    Resolve "package.module:factory", call the factory and check the result
    against the port protocol.
    """
    try:
        factory = pkgutil.resolve_name(path)
    except (ImportError, AttributeError, ValueError) as e:
        raise PluginLoadError(f"Cannot resolve plugin {path!r}: {e}") from e

    if not callable(factory):
        raise PluginLoadError(f"Plugin {path!r} is not callable")

    try:
        adapter = factory()
    except Exception as e:
        raise PluginLoadError(f"Plugin factory {path!r} failed: {e}") from e

    if not isinstance(adapter, port):
        raise PluginLoadError(f"Plugin {path!r} does not implement {port.__name__}")
    return adapter


def _create_adapters(settings: AppSettings) -> Collaborators:
    """Instantiate the four collaborators the request pipeline needs."""
    pfx_password = settings.certificate_store.pfx_password
    return Collaborators(
        vault=_load_plugin(settings.plugins.vault_client, VaultClient),
        binding_admin=_load_plugin(settings.plugins.binding_administrator, BindingAdministrator),
        certificate_store=CryptographyCertificateStore(
            pfx_password=pfx_password.get_secret_value() if pfx_password else None,
        ),
        repository=PsycopgManagedItemRepository(dsn=settings.database.get_dsn()),
    )


def create_service(settings: AppSettings) -> RenewalService:
    """Build the RenewalService from settings; raises PluginLoadError on bad plugin paths."""
    webhook_url = settings.notifications.webhook_url
    return RenewalService(
        _create_adapters(settings),
        settings.renewal.to_policy(),
        reuse_identifiers=settings.renewal.identifier_reuse,
        endpoint_probe=HttpEndpointProbe(timeout=settings.http_timeout_seconds),
        notifier=(
            WebhookFailureNotifier(webhook_url, timeout=settings.http_timeout_seconds)
            if webhook_url
            else None
        ),
    )


def main() -> None:
    """Wire dependencies and launch scheduled renewal passes."""
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    configure_structlog(settings.log_level)
    log = structlog.get_logger()

    log.info(
        "app.starting",
        version=__version__,
        log_level=settings.log_level,
        cron=settings.scheduler.cron,
        run_on_startup=settings.run_on_startup,
        renewal_interval_days=settings.renewal.renewal_interval_days,
    )

    try:
        service = create_service(settings)
    except PluginLoadError as e:
        log.error("app.plugin_error", error=str(e))
        sys.exit(1)

    scheduler = create_scheduler(
        renewal_fn=service.renew_all,
        cron=settings.scheduler.cron,
        run_on_startup=settings.run_on_startup,
    )

    log.info("app.scheduler_starting", cron=settings.scheduler.cron)

    try:
        scheduler.start()
    except KeyboardInterrupt:
        log.info("app.shutdown", reason="signal received")
    except SystemExit:
        log.info("app.shutdown", reason="signal received")
        raise
    except Exception as e:
        log.error("app.fatal_error", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
