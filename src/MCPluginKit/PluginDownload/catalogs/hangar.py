"""Hangar catalog client (``https://hangar.papermc.io/api/v1``).

Hangar identifies projects as ``owner/slug`` and publishes one download per
platform (``PAPER``, ``VELOCITY``, ``WATERFALL``) for each version.  The
version listing is paginated and has no server-side game version filter, so
the client walks every page and filters against ``platformDependencies``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote, urlparse

from ..compatibility import search_keys
from ..errors import CatalogError, UserConfigError
from ..models import CandidateFile, CatalogProject, CatalogVersionEntry, SourceKind
from .base import BaseCatalogClient

__all__ = ["HangarClient", "split_identifier"]

_MAX_PAGES = 200


def split_identifier(identifier: str) -> Tuple[str, str]:
    """Split ``owner/slug`` into its parts.

    Raises:
        UserConfigError: When ``identifier`` is not ``owner/slug``.
    """

    parts = [part for part in (identifier or "").strip().split("/") if part]
    if len(parts) != 2:
        raise UserConfigError(f"invalid Hangar id '{identifier}' (expected owner/slug)")
    return parts[0], parts[1]


def _filename_for(name: str, url: str, file_info: Mapping[str, Any]) -> str:
    declared = file_info.get("name")
    if declared:
        return str(declared)
    tail = urlparse(url).path.rsplit("/", 1)[-1]
    if tail.endswith(".jar"):
        return tail
    return f"plugin-{name}.jar"


def _project_from_payload(payload: Mapping[str, Any]) -> CatalogProject:
    namespace = payload.get("namespace") or {}
    owner = str(namespace.get("owner") or "")
    slug = str(namespace.get("slug") or payload.get("name") or "")
    platforms = payload.get("supportedPlatforms") or {}
    return CatalogProject(
        display_name=str(payload.get("name") or slug),
        stable_id=f"{owner}/{slug}" if owner else slug,
        description=str(payload.get("description") or ""),
        categories=frozenset(
            str(key).lower() for key, versions in platforms.items() if versions
        ),
    )


def _entry_from_payload(
    payload: Mapping[str, Any], game_version: Optional[str]
) -> Optional[CatalogVersionEntry]:
    name = str(payload.get("name") or "")
    dependencies: Mapping[str, Any] = payload.get("platformDependencies") or {}
    supported: Dict[str, Tuple[str, ...]] = {}
    for platform, versions in dependencies.items():
        listed = tuple(str(v) for v in versions or ())
        if game_version and game_version not in listed:
            continue
        supported[str(platform).upper()] = listed
    if not supported:
        return None

    files: List[CandidateFile] = []
    for platform, download in (payload.get("downloads") or {}).items():
        key = str(platform).upper()
        if key not in supported or not isinstance(download, Mapping):
            continue
        url = download.get("downloadUrl") or download.get("externalUrl")
        if not url:
            continue
        file_info = download.get("fileInfo") or {}
        digest = file_info.get("sha256Hash")
        files.append(
            CandidateFile(
                url=str(url),
                filename=_filename_for(name, str(url), file_info),
                digests={"sha256": str(digest).lower()} if digest else {},
                size_bytes=int(file_info.get("sizeBytes") or 0),
                primary=True,
                platform=key,
            )
        )
    return CatalogVersionEntry(label=name, supported_platforms=supported, files=tuple(files))


class HangarClient(BaseCatalogClient):
    """Catalog client for PaperMC's Hangar."""

    source = SourceKind.HANGAR
    digest_algorithm = "sha256"

    @property
    def base_url(self) -> str:
        return self.settings.hangar_base_url

    def search(
        self, query: str, platform: Optional[str] = None, *, strict: bool = False
    ) -> List[CatalogProject]:
        params: Dict[str, Any] = {"q": query, "limit": self.settings.page_size, "offset": 0}
        keys = search_keys(SourceKind.HANGAR, platform, strict)
        if keys:
            params["platform"] = keys[0]
        payload = self._get_json("projects", params)
        results = payload.get("result") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            raise CatalogError(200, "search response missing 'result'", url=self._url("projects"))
        return [_project_from_payload(item) for item in results if isinstance(item, dict)]

    def get_project(self, identifier: str) -> CatalogProject:
        owner, slug = split_identifier(identifier)
        path = f"projects/{quote(owner, safe='')}/{quote(slug, safe='')}"
        payload = self._get_json(path)
        if not isinstance(payload, dict):
            raise CatalogError(200, "project response is not an object", url=self._url(path))
        return _project_from_payload(payload)

    def get_versions(
        self, identifier: str, game_version: Optional[str] = None
    ) -> List[CatalogVersionEntry]:
        owner, slug = split_identifier(identifier)
        path = f"projects/{quote(owner, safe='')}/{quote(slug, safe='')}/versions"
        limit = self.settings.page_size
        offset = 0
        entries: List[CatalogVersionEntry] = []
        for _ in range(_MAX_PAGES):
            payload = self._get_json(path, {"limit": limit, "offset": offset})
            results = payload.get("result") if isinstance(payload, dict) else None
            if not isinstance(results, list):
                raise CatalogError(200, "version response missing 'result'", url=self._url(path))
            for item in results:
                if not isinstance(item, dict):
                    continue
                entry = _entry_from_payload(item, game_version)
                if entry is not None:
                    entries.append(entry)
            pagination = payload.get("pagination") or {}
            count = int(pagination.get("count") or 0)
            offset += len(results)
            if not results or offset >= count:
                break
        self.logger.debug(
            "versions listed",
            extra={"stage": "catalog", "identifier": identifier, "count": len(entries)},
        )
        return entries
