"""Modrinth catalog client (``https://api.modrinth.com/v2``)."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote

from ..compatibility import search_keys
from ..errors import CatalogError
from ..models import CandidateFile, CatalogProject, CatalogVersionEntry, SourceKind
from .base import BaseCatalogClient

__all__ = ["ModrinthClient"]


def _project_from_payload(payload: Mapping[str, Any]) -> CatalogProject:
    stable_id = payload.get("project_id") or payload.get("id") or payload.get("slug") or ""
    return CatalogProject(
        display_name=str(payload.get("title") or payload.get("slug") or stable_id),
        stable_id=str(stable_id),
        description=str(payload.get("description") or ""),
        categories=frozenset(
            str(item).lower()
            for item in list(payload.get("categories") or [])
            + list(payload.get("loaders") or [])
        ),
    )


def _file_from_payload(payload: Mapping[str, Any]) -> Optional[CandidateFile]:
    url = payload.get("url")
    filename = payload.get("filename")
    if not url or not filename:
        return None
    hashes = payload.get("hashes") or {}
    return CandidateFile(
        url=str(url),
        filename=str(filename),
        digests={str(k).lower(): str(v).lower() for k, v in hashes.items() if v},
        size_bytes=int(payload.get("size") or 0),
        primary=bool(payload.get("primary")),
    )


def _entry_from_payload(payload: Mapping[str, Any]) -> CatalogVersionEntry:
    game_versions: Tuple[str, ...] = tuple(str(v) for v in payload.get("game_versions") or ())
    loaders = [str(loader).lower() for loader in payload.get("loaders") or ()]
    files = tuple(
        candidate
        for candidate in (_file_from_payload(item) for item in payload.get("files") or ())
        if candidate is not None
    )
    return CatalogVersionEntry(
        label=str(payload.get("version_number") or payload.get("name") or ""),
        supported_platforms={loader: game_versions for loader in loaders},
        files=files,
    )


class ModrinthClient(BaseCatalogClient):
    """Catalog client for Modrinth.

    Search facets are derived from the compatibility table: a strict search
    filters on the exact loader category, a relaxed one on the exact key plus
    its fallbacks, OR-ed together.
    """

    source = SourceKind.MODRINTH
    digest_algorithm = "sha512"

    @property
    def base_url(self) -> str:
        return self.settings.modrinth_base_url

    @staticmethod
    def build_facets(platform: Optional[str], strict: bool) -> str:
        """Return the JSON facet filter for a search.

        Examples:
            >>> ModrinthClient.build_facets("spigot", strict=False)
            '[["categories:spigot", "categories:bukkit"]]'
        """

        keys = search_keys(SourceKind.MODRINTH, platform, strict)
        return json.dumps([[f"categories:{key}" for key in keys]])

    def search(
        self, query: str, platform: Optional[str] = None, *, strict: bool = False
    ) -> List[CatalogProject]:
        params: Dict[str, Any] = {
            "query": query,
            "facets": self.build_facets(platform, strict),
            "limit": self.settings.page_size,
        }
        payload = self._get_json("search", params)
        hits = payload.get("hits") if isinstance(payload, dict) else None
        if not isinstance(hits, list):
            raise CatalogError(200, "search response missing 'hits'", url=self._url("search"))
        return [_project_from_payload(hit) for hit in hits if isinstance(hit, dict)]

    def get_project(self, identifier: str) -> CatalogProject:
        path = f"project/{quote(identifier, safe='')}"
        payload = self._get_json(path)
        if not isinstance(payload, dict):
            raise CatalogError(200, "project response is not an object", url=self._url(path))
        return _project_from_payload(payload)

    def get_versions(
        self, identifier: str, game_version: Optional[str] = None
    ) -> List[CatalogVersionEntry]:
        path = f"project/{quote(identifier, safe='')}/version"
        params: Dict[str, Any] = {}
        if game_version:
            params["game_versions"] = json.dumps([game_version])
        payload = self._get_json(path, params or None)
        if not isinstance(payload, list):
            raise CatalogError(200, "version response is not a list", url=self._url(path))
        entries = [_entry_from_payload(item) for item in payload if isinstance(item, dict)]
        self.logger.debug(
            "versions listed",
            extra={"stage": "catalog", "identifier": identifier, "count": len(entries)},
        )
        return entries
