"""HTTPX client factory and request helpers for catalog and file downloads.

Provides a process-wide, thread-safe :class:`httpx.Client` shared by every
catalog client and download worker, plus two helpers:

- :func:`request_json` issues a catalog API call with Tenacity retries on
  transient transport errors and retryable statuses, and raises
  :class:`~MCPluginKit.PluginDownload.errors.CatalogError` for any other
  non-success response so callers can tell "no matches" from "service failure".
- :func:`open_stream` opens a streamed GET for a download URL and yields a
  :class:`DownloadStream` exposing the declared length and a chunk iterator.

Example:
    >>> from MCPluginKit.PluginDownload.net import get_http_client, reset_http_client
    >>> client = get_http_client()
    >>> reset_http_client()  # at process shutdown or test cleanup
"""

from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Mapping, Optional

import httpx
import tenacity
from tenacity import retry_if_exception, stop_after_attempt, wait_random_exponential

from .errors import CatalogError, DownloadFailure
from .settings import HttpSettings

__all__ = [
    "DownloadStream",
    "configure_http_client",
    "get_http_client",
    "reset_http_client",
    "request_json",
    "open_stream",
]

LOGGER = logging.getLogger(__name__)

_client: Optional[httpx.Client] = None
_client_pid: Optional[int] = None
_client_owned = False
_client_lock = threading.Lock()
_default_settings = HttpSettings()


class _RetryableStatus(Exception):
    """Internal signal carrying a response whose status should be retried."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"retryable status {response.status_code}")
        self.response = response


def _build_client(settings: HttpSettings) -> httpx.Client:
    timeout = httpx.Timeout(settings.timeout_read_s, connect=settings.timeout_connect_s)
    return httpx.Client(
        timeout=timeout,
        headers={"User-Agent": settings.user_agent},
        follow_redirects=True,
    )


def configure_http_client(
    *,
    client: Optional[httpx.Client] = None,
    settings: Optional[HttpSettings] = None,
) -> None:
    """Install ``client`` (or a client built from ``settings``) as the shared client.

    Clients passed in by the caller are not closed by :func:`reset_http_client`.
    """

    global _client, _client_pid, _client_owned, _default_settings
    with _client_lock:
        if settings is not None:
            _default_settings = settings
        if _client is not None and _client_owned:
            _client.close()
        if client is not None:
            _client, _client_owned = client, False
        else:
            _client, _client_owned = _build_client(_default_settings), True
        _client_pid = os.getpid()


def get_http_client(settings: Optional[HttpSettings] = None) -> httpx.Client:
    """Return the shared client, creating it on first use or after a fork."""

    global _client, _client_pid, _client_owned, _default_settings
    if _client is not None and _client_pid == os.getpid():
        return _client
    with _client_lock:
        if _client is not None and _client_pid == os.getpid():
            return _client
        if settings is not None:
            _default_settings = settings
        _client = _build_client(_default_settings)
        _client_owned = True
        _client_pid = os.getpid()
        LOGGER.debug("HTTP client initialized", extra={"stage": "http", "pid": _client_pid})
        return _client


def reset_http_client() -> None:
    """Close the shared client if this module created it and forget it."""

    global _client, _client_pid, _client_owned
    with _client_lock:
        if _client is not None and _client_owned:
            _client.close()
        _client = None
        _client_pid = None
        _client_owned = False


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, _RetryableStatus):
        return True
    return isinstance(
        exc,
        (
            httpx.ConnectError,
            httpx.ReadError,
            httpx.WriteError,
            httpx.TimeoutException,
            httpx.RemoteProtocolError,
        ),
    )


def _log_retry(retry_state: tenacity.RetryCallState) -> None:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    LOGGER.warning(
        "catalog request retry",
        extra={
            "stage": "http",
            "attempt": retry_state.attempt_number,
            "sleep_sec": round(getattr(retry_state.next_action, "sleep", 0.0) or 0.0, 2),
            "error": str(error),
        },
    )


def request_json(
    url: str,
    *,
    params: Optional[Mapping[str, Any]] = None,
    settings: Optional[HttpSettings] = None,
    client: Optional[httpx.Client] = None,
) -> Any:
    """GET ``url`` and decode the JSON body.

    Raises:
        CatalogError: For non-success statuses (after retries for retryable
            ones) and for bodies that are not valid JSON.
        DownloadFailure: When the transport keeps failing after retries.
    """

    active = settings or _default_settings
    http = client or get_http_client(active)
    headers: Dict[str, str] = {"User-Agent": active.user_agent, "Accept": "application/json"}
    retry_statuses = set(active.retry_statuses)

    def _perform() -> httpx.Response:
        response = http.get(url, params=params, headers=headers)
        if response.status_code in retry_statuses:
            raise _RetryableStatus(response)
        return response

    retrying = tenacity.Retrying(
        stop=stop_after_attempt(active.max_attempts),
        wait=wait_random_exponential(
            multiplier=active.backoff_multiplier_s, max=active.backoff_max_s
        ),
        retry=retry_if_exception(_is_retryable),
        before_sleep=_log_retry,
        reraise=True,
    )
    try:
        response = retrying(_perform)
    except _RetryableStatus as exc:
        raise CatalogError(exc.response.status_code, exc.response.text, url=url) from exc
    except httpx.TimeoutException as exc:
        raise DownloadFailure(f"catalog request timed out for {url}", retryable=True) from exc
    except httpx.TransportError as exc:
        raise DownloadFailure(f"catalog connection error for {url}: {exc}", retryable=True) from exc

    if not response.is_success:
        raise CatalogError(response.status_code, response.text, url=url)
    try:
        return response.json()
    except ValueError as exc:
        raise CatalogError(response.status_code, "invalid JSON payload", url=url) from exc


@dataclass(slots=True)
class DownloadStream:
    """Open download response with its declared length."""

    response: httpx.Response
    chunk_size: int = 1 << 16

    @property
    def content_length(self) -> Optional[int]:
        """Declared ``Content-Length`` or ``None`` when absent or not positive."""

        raw = self.response.headers.get("Content-Length")
        if raw is None:
            return None
        try:
            value = int(raw)
        except ValueError:
            return None
        return value if value > 0 else None

    def iter_bytes(self) -> Iterator[bytes]:
        return self.response.iter_bytes(chunk_size=self.chunk_size)


@contextmanager
def open_stream(
    url: str,
    *,
    settings: Optional[HttpSettings] = None,
    client: Optional[httpx.Client] = None,
    chunk_size: int = 1 << 16,
) -> Iterator[DownloadStream]:
    """Open a streamed GET for ``url``.

    Raises:
        CatalogError: When the server answers with a non-success status; the
            body is read so it can be reported.
        DownloadFailure: When the connection fails or drops mid-stream.
    """

    active = settings or _default_settings
    http = client or get_http_client(active)
    try:
        with http.stream("GET", url, headers={"User-Agent": active.user_agent}) as response:
            if not response.is_success:
                response.read()
                raise CatalogError(response.status_code, response.text, url=url)
            yield DownloadStream(response=response, chunk_size=chunk_size)
    except httpx.TransportError as exc:
        raise DownloadFailure(f"transfer failed for {url}: {exc}", retryable=True) from exc
