"""Catalog client protocol and shared HTTP plumbing."""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from typing import Any, List, Mapping, Optional, Protocol

import httpx

from ..models import CatalogProject, CatalogVersionEntry, SourceKind
from ..net import DownloadStream, open_stream, request_json
from ..settings import HttpSettings

__all__ = ["CatalogClient", "BaseCatalogClient"]


class CatalogClient(Protocol):
    """Protocol every catalog service adapter implements.

    ``get_versions`` returns entries in the catalog's own newest-first order.
    Non-success responses surface as
    :class:`~MCPluginKit.PluginDownload.errors.CatalogError`; an empty list
    only ever means "no matches".
    """

    source: SourceKind
    digest_algorithm: str

    def search(
        self, query: str, platform: Optional[str] = None, *, strict: bool = False
    ) -> List[CatalogProject]:
        ...

    def get_project(self, identifier: str) -> CatalogProject:
        ...

    def get_versions(
        self, identifier: str, game_version: Optional[str] = None
    ) -> List[CatalogVersionEntry]:
        ...

    def open_download(self, url: str) -> AbstractContextManager[DownloadStream]:
        ...


class BaseCatalogClient:
    """Shared helpers for catalog client implementations."""

    source: SourceKind
    digest_algorithm = "sha256"

    def __init__(
        self,
        settings: Optional[HttpSettings] = None,
        *,
        client: Optional[httpx.Client] = None,
        chunk_size: int = 1 << 16,
    ) -> None:
        self.settings = settings or HttpSettings()
        self._client = client
        self._chunk_size = chunk_size
        self.logger = logging.getLogger(f"{__name__.rsplit('.', 1)[0]}.{self.source.value}")

    @property
    def base_url(self) -> str:
        raise NotImplementedError

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _get_json(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        url = self._url(path)
        self.logger.debug("catalog request", extra={"stage": "catalog", "url": url})
        return request_json(url, params=params, settings=self.settings, client=self._client)

    def open_download(self, url: str) -> AbstractContextManager[DownloadStream]:
        return open_stream(
            url, settings=self.settings, client=self._client, chunk_size=self._chunk_size
        )
