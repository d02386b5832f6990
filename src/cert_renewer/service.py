"""
Renewal service — the entry points used by the cron trigger and the HTTP API.

The vault holds an exclusive session lock, so at most one certificate
request may be in flight per provider session. Both the scheduler thread and
API worker threads can start work, so every operation here runs under a
single mutual-exclusion lock that stands for that session. Within a pass the
items are still processed sequentially by run_renewal_pass.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager

import structlog

from cert_renewer.domain.models import CertificateRequestResult, ManagedCertificateItem
from cert_renewer.domain.ports import Collaborators, EndpointProbe, FailureNotifier, ProgressSink
from cert_renewer.importer import import_managed_items
from cert_renewer.pipeline import request_certificate
from cert_renewer.renewal import RenewalPolicy, run_renewal_pass

log = structlog.get_logger()


class RenewalService:
    """Serialize certificate work against one provider session."""

    def __init__(
        self,
        collaborators: Collaborators,
        policy: RenewalPolicy,
        *,
        reuse_identifiers: bool = False,
        endpoint_probe: EndpointProbe | None = None,
        notifier: FailureNotifier | None = None,
    ) -> None:
        self._collaborators = collaborators
        self._policy = policy
        self._reuse_identifiers = reuse_identifiers
        self._endpoint_probe = endpoint_probe
        self._notifier = notifier
        self._session_lock = threading.Lock()

    @property
    def policy(self) -> RenewalPolicy:
        return self._policy

    def request_certificate(
        self,
        item_id: str,
        progress_sink: ProgressSink | None = None,
    ) -> CertificateRequestResult | None:
        """Run one certificate request for a stored item; None if the item is unknown."""
        with self._provider_session("request"):
            item = self._collaborators.repository.get(item_id)
            if item is None:
                log.warning("service.item_not_found", item_id=item_id)
                return None
            return self._request(item, progress_sink)

    def renew_all(
        self,
        progress_sinks: Mapping[str, ProgressSink] | None = None,
    ) -> list[CertificateRequestResult]:
        """
        Load the fleet and run one renewal pass over it.

        Raises PersistenceError if the fleet cannot be loaded.
        """
        with self._provider_session("renewal"):
            items = self._collaborators.repository.load_all()
            running_check = self._endpoint_probe.check if self._endpoint_probe else None
            return run_renewal_pass(
                items,
                self._policy,
                self._request,
                running_check,
                progress_sinks,
                notifier=self._notifier,
            )

    def import_from_vault(
        self,
        merge_as_san: bool = False,
        ignore_stopped_sites: bool = True,
    ) -> list[ManagedCertificateItem]:
        """Create and store managed items for identifiers already held by the vault."""
        with self._provider_session("import"):
            identifiers = self._collaborators.vault.get_domain_identifiers()
            bindings = self._collaborators.binding_admin.get_site_bindings(ignore_stopped_sites)
            items = import_managed_items(identifiers, bindings, merge_as_san=merge_as_san)
            for item in items:
                self._collaborators.repository.save(item)
            return items

    def _request(
        self,
        item: ManagedCertificateItem,
        progress_sink: ProgressSink | None,
    ) -> CertificateRequestResult:
        return request_certificate(
            item,
            self._collaborators,
            progress_sink,
            reuse_identifiers=self._reuse_identifiers,
        )

    @contextmanager
    def _provider_session(self, operation: str) -> Iterator[None]:
        start = time.monotonic()
        with self._session_lock:
            waited = time.monotonic() - start
            log.debug("service.session_acquired", operation=operation, waited_seconds=round(waited, 3))
            yield
