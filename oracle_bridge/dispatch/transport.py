"""
Synchronous HTTP transport for oracle requests.

Direct mode
    POST ``<server>/<path>`` with the JSON request; the answer body is returned.

Polling mode (``polling: true`` in the address table)
    POST ``<server>/<path>`` answers ``{"jobId": "..."}``; then
    GET ``<server>/status/<jobId>`` every ``interval`` seconds until the body is
    ``{"status": "completed", "result": ...}`` (returned as is) or
    ``{"status": "failed", ...}`` (:class:`OracleRejected`). Exceeding
    ``max_attempts`` or ``overall_timeout`` raises ``TransportError(TIMEOUT)``.

Every call blocks the caller until it completes or times out. Nothing is
retried.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Mapping, Optional

import httpx

from ..errors import MalformedResponse, OracleRejected, TransportError
from ..logging import get_logger
from .addresses import ServerEntry

__all__ = ["OracleTransport"]

log = get_logger("oracle_bridge.dispatch.transport")


class OracleTransport:
    """
    Thin wrapper over ``httpx.Client``; safe to use as a context manager.
    """

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        headers: Optional[Mapping[str, str]] = None,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout = float(timeout)
        hdrs = {"Accept": "application/json"}
        if headers:
            hdrs.update(headers)
        self._own_client = client is None
        self._client = client or httpx.Client(headers=hdrs, timeout=self.timeout)
        self._sleep = sleep
        self._clock = clock

    # --- context management

    def close(self) -> None:
        if self._own_client:
            self._client.close()

    def __enter__(self) -> "OracleTransport":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --- public API

    def call(self, entry: ServerEntry, path: str, body: Any) -> Any:
        """Send ``body`` to ``entry``'s ``path`` and return the decoded JSON answer."""
        url = entry.url_for(path)
        if entry.polling:
            return self._poll(entry, url, body)
        timeout = entry.timeout_s if entry.timeout_s is not None else self.timeout
        return self._request("POST", url, json=body, timeout=timeout, headers=entry.headers)

    # --- internals

    def _request(
        self,
        method: str,
        url: str,
        *,
        timeout: float,
        headers: Mapping[str, str],
        json: Any = None,
    ) -> Any:
        log.debug("oracle request", extra={"method": method, "url": url})
        try:
            resp = self._client.request(method, url, json=json, timeout=timeout, headers=dict(headers))
        except httpx.TimeoutException as e:
            raise TransportError(f"{method} {url} timed out after {timeout}s", kind="TIMEOUT", url=url) from e
        except httpx.TransportError as e:
            raise TransportError(f"{method} {url} failed: {e}", kind="CONNECT", url=url) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}", kind="HTTP", url=url) from e
        return self._decode_body(resp, url)

    @staticmethod
    def _decode_body(resp: httpx.Response, url: str) -> Any:
        try:
            payload = resp.json()
        except ValueError as e:
            if resp.is_success:
                raise MalformedResponse(
                    f"response from {url} is not JSON", details={"body": resp.text, "url": url}
                ) from e
            raise TransportError(
                f"{url} answered HTTP {resp.status_code}", kind="HTTP", url=url
            ) from e
        if not resp.is_success:
            raise OracleRejected(
                f"{url} answered HTTP {resp.status_code}",
                payload=payload,
                status_code=resp.status_code,
            )
        return payload

    def _poll(self, entry: ServerEntry, url: str, body: Any) -> Any:
        cfg = entry.polling_config
        started = self._clock()
        ack = self._request("POST", url, json=body, timeout=cfg.request_timeout_s, headers=entry.headers)
        job_id = ack.get("jobId") if isinstance(ack, dict) else None
        if not isinstance(job_id, (str, int)) or isinstance(job_id, bool):
            raise OracleRejected(f"{url} did not answer with a jobId", payload=ack)
        job_id = str(job_id)

        status_url = entry.status_url(job_id)
        attempt = 0
        while True:
            elapsed = self._clock() - started
            if attempt >= cfg.max_attempts or elapsed > cfg.overall_timeout_s:
                raise TransportError(
                    f"job {job_id} not completed after {attempt} attempts ({elapsed:.1f}s)",
                    kind="TIMEOUT",
                    url=status_url,
                )
            attempt += 1
            status = self._request(
                "GET", status_url, timeout=cfg.request_timeout_s, headers=entry.headers
            )
            state = status.get("status") if isinstance(status, dict) else None
            if state == "completed":
                log.debug("job completed", extra={"job_id": job_id, "attempts": attempt})
                return status
            if state == "failed":
                raise OracleRejected(f"job {job_id} failed", payload=status)
            log.debug("job pending", extra={"job_id": job_id, "attempt": attempt, "status": state})
            self._sleep(cfg.interval_s)
