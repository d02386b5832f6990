"""
HTTP adapters — endpoint running checks and failure notifications via httpx.

Adapter layer — implements the EndpointProbe and FailureNotifier ports using
httpx for sync HTTP calls.

  HttpEndpointProbe      GET http://<primary domain>/  → running / stopped / unknown
  WebhookFailureNotifier POST <webhook url> with a JSON failure summary

Retry/backoff via tenacity on transient errors (network, timeout).
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cert_renewer.domain.models import CertificateRequestResult, EndpointState, ManagedCertificateItem

log = structlog.get_logger()

_TRANSIENT = (httpx.TimeoutException, httpx.NetworkError)


class HttpEndpointProbe:
    """
    Decide whether a managed endpoint is serving HTTP.

    Implements the EndpointProbe port. Any HTTP response, whatever its
    status, means the endpoint is running. Only a connection the host
    actively refused means it is stopped; every other transport error is
    reported as unknown.
    """

    def __init__(self, timeout: int = 10, scheme: str = "http") -> None:
        self._timeout = timeout
        self._scheme = scheme

    def check(self, item: ManagedCertificateItem) -> EndpointState:
        url = f"{self._scheme}://{item.request_config.primary_domain}/"
        try:
            status_code = self._do_probe(url)
        except httpx.HTTPError as e:
            if _connection_refused(e):
                log.info("endpoint_probe.stopped", item_id=item.id, url=url, error=str(e))
                return EndpointState.STOPPED
            log.warning("endpoint_probe.unknown", item_id=item.id, url=url, error=str(e))
            return EndpointState.UNKNOWN

        log.debug("endpoint_probe.running", item_id=item.id, url=url, status_code=status_code)
        return EndpointState.RUNNING

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=0.1, max=30),
        retry=retry_if_exception_type(_TRANSIENT),
        reraise=True,
    )
    def _do_probe(self, url: str) -> int:
        """HTTP GET with retry — transport errors are classified by check()."""
        with httpx.Client(timeout=self._timeout, follow_redirects=False) as client:
            return client.get(url).status_code


def _connection_refused(error: BaseException) -> bool:
    """True when the socket-level cause of `error` is a refused connection."""
    cause: BaseException | None = error
    while cause is not None:
        if isinstance(cause, ConnectionRefusedError):
            return True
        cause = cause.__cause__ or cause.__context__
    return False


class WebhookFailureNotifier:
    """
    Post failed certificate requests to an operator webhook.

    Implements the FailureNotifier port. Errors propagate to the caller,
    which treats notification as best effort.
    """

    def __init__(self, webhook_url: str, timeout: int = 10) -> None:
        self._webhook_url = webhook_url
        self._timeout = timeout

    def notify(self, result: CertificateRequestResult) -> None:
        self._do_post(_failure_payload(result))
        log.info("notification.sent", item_id=result.item.id)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=0.1, max=30),
        retry=retry_if_exception_type(_TRANSIENT),
        reraise=True,
    )
    def _do_post(self, payload: dict[str, Any]) -> None:
        with httpx.Client(timeout=self._timeout) as client:
            response = client.post(self._webhook_url, json=payload)
            response.raise_for_status()


def _failure_payload(result: CertificateRequestResult) -> dict[str, Any]:
    item = result.item
    return {
        "event": "certificate_request_failed",
        "item_id": item.id,
        "item_name": item.name,
        "primary_domain": item.request_config.primary_domain,
        "failure_kind": str(result.failure_kind) if result.failure_kind else None,
        "message": result.message,
        "certificate_path": result.certificate_path,
    }
