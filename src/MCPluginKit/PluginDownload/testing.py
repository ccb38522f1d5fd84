"""Test helpers for exercising catalog clients without network access."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

import httpx

from .net import configure_http_client, reset_http_client
from .settings import HttpSettings

__all__ = ["use_mock_http_client"]


@contextmanager
def use_mock_http_client(
    transport: httpx.BaseTransport,
    *,
    settings: Optional[HttpSettings] = None,
    **client_kwargs,
) -> Iterator[httpx.Client]:
    """Temporarily install an HTTPX client backed by ``transport``."""

    client = httpx.Client(transport=transport, **client_kwargs)
    configure_http_client(client=client, settings=settings)
    try:
        yield client
    finally:
        reset_http_client()
        client.close()
