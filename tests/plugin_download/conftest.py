"""Shared fixtures for the plugin_download test suite."""

from __future__ import annotations

import hashlib
import logging
import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Union

import pytest

from MCPluginKit.PluginDownload.lockfile import LockState
from MCPluginKit.PluginDownload.logging_utils import LOGGER_NAME
from MCPluginKit.PluginDownload.models import (
    ArtifactDeclaration,
    CandidateFile,
    CatalogProject,
    CatalogVersionEntry,
    SourceKind,
)
from MCPluginKit.PluginDownload.net import reset_http_client
from MCPluginKit.PluginDownload.pipeline import InstallContext
from MCPluginKit.PluginDownload.settings import (
    DownloadSettings,
    HttpSettings,
    PathsSettings,
    PluginKitSettings,
)


@pytest.fixture(autouse=True)
def _isolated_runtime(tmp_path_factory, monkeypatch):
    """Keep log files out of the user directory and drop shared HTTP clients."""

    log_dir = tmp_path_factory.mktemp("logs")
    monkeypatch.setenv("MCPK_LOG_DIR", str(log_dir))
    for key in [key for key in os.environ if key.startswith("MCPK_") and "__" in key]:
        monkeypatch.delenv(key, raising=False)
    yield
    reset_http_client()
    package_logger = logging.getLogger(LOGGER_NAME)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def http_settings() -> HttpSettings:
    return HttpSettings(max_attempts=2, backoff_multiplier_s=0.0, backoff_max_s=0.0, page_size=2)


@pytest.fixture
def settings(tmp_path, http_settings) -> PluginKitSettings:
    return PluginKitSettings(
        http=http_settings,
        download=DownloadSettings(plugins_dir=tmp_path / "plugins", chunk_size_bytes=4),
        paths=PathsSettings(
            manifest=tmp_path / "package.yml",
            lockfile=tmp_path / "package-lock.yml",
        ),
    )


@pytest.fixture
def make_declaration() -> Callable[..., ArtifactDeclaration]:
    def _make(
        identifier: str = "luckperms",
        *,
        name: Optional[str] = None,
        source: SourceKind = SourceKind.MODRINTH,
        version: str = "latest",
    ) -> ArtifactDeclaration:
        return ArtifactDeclaration(name or identifier.title(), source, identifier, version)

    return _make


# ---------------------------------------------------------------------------
# In-memory catalog
# ---------------------------------------------------------------------------


def sha512_hex(payload: bytes) -> str:
    return hashlib.sha512(payload).hexdigest()


def make_entry(
    label: str,
    payload: bytes = b"jar-bytes",
    *,
    platforms: Sequence[str] = ("paper",),
    url: Optional[str] = None,
    filename: Optional[str] = None,
    digest: Optional[str] = None,
) -> CatalogVersionEntry:
    """Build a Modrinth-style entry whose single file hashes to ``payload``."""

    file_url = url or f"https://cdn.example/{label}.jar"
    return CatalogVersionEntry(
        label=label,
        supported_platforms={platform: ("1.20.4",) for platform in platforms},
        files=(
            CandidateFile(
                url=file_url,
                filename=filename or f"{label}.jar",
                digests={"sha512": digest or sha512_hex(payload)},
                size_bytes=len(payload),
                primary=True,
            ),
        ),
    )


class FakeStream:
    def __init__(self, payload: bytes, *, declare_length: bool = True, chunk: int = 3) -> None:
        self.payload = payload
        self.declare_length = declare_length
        self.chunk = chunk

    @property
    def content_length(self) -> Optional[int]:
        return len(self.payload) if self.declare_length else None

    def iter_bytes(self) -> Iterator[bytes]:
        for start in range(0, len(self.payload), self.chunk):
            yield self.payload[start : start + self.chunk]


class FakeCatalog:
    """Catalog client serving canned versions and payloads from memory."""

    def __init__(
        self,
        source: SourceKind = SourceKind.MODRINTH,
        *,
        versions: Optional[Dict[str, Union[List[CatalogVersionEntry], Exception]]] = None,
        payloads: Optional[Dict[str, bytes]] = None,
        projects: Optional[List[CatalogProject]] = None,
        digest_algorithm: str = "sha512",
        download_delay: float = 0.0,
    ) -> None:
        self.source = source
        self.digest_algorithm = digest_algorithm
        self.versions = versions or {}
        self.payloads = payloads or {}
        self.projects = projects or []
        self.download_delay = download_delay
        self.downloads: List[str] = []
        self.open_streams = 0
        self.peak_open_streams = 0
        self._lock = threading.Lock()

    def search(self, query, platform=None, *, strict=False):
        return list(self.projects)

    def get_project(self, identifier):
        for project in self.projects:
            if project.stable_id == identifier:
                return project
        raise KeyError(identifier)

    def get_versions(self, identifier, game_version=None):
        value = self.versions[identifier]
        if isinstance(value, Exception):
            raise value
        return list(value)

    @contextmanager
    def open_download(self, url):
        with self._lock:
            self.downloads.append(url)
            self.open_streams += 1
            self.peak_open_streams = max(self.peak_open_streams, self.open_streams)
        try:
            time.sleep(self.download_delay)
            yield FakeStream(self.payloads[url])
        finally:
            with self._lock:
                self.open_streams -= 1


@pytest.fixture
def fake_catalog_factory():
    return FakeCatalog


@pytest.fixture
def install_context(settings) -> Callable[..., InstallContext]:
    def _build(*catalogs: FakeCatalog, server_type: Optional[str] = "paper") -> InstallContext:
        return InstallContext(
            settings=settings,
            lock_state=LockState(),
            server_type=server_type,
            game_version="1.20.4",
            catalogs={catalog.source: catalog for catalog in catalogs},
        )

    return _build


@pytest.fixture
def plugins_dir(settings) -> Path:
    return settings.download.plugins_dir


@pytest.fixture
def entry_factory():
    return make_entry


@pytest.fixture
def digest_of():
    return sha512_hex
