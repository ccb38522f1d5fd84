"""Exception hierarchy shared across plugin resolution, download, and locking.

The install pipeline spans catalog lookups, compatibility filtering, streaming
downloads, and lock file persistence.  This module groups those failure modes
so the batch coordinator can record per-plugin failures (catalog outages,
missing versions, checksum mismatches) while letting the one run-level failure,
an unwritable lock file, escape to the caller.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "PluginDownloadError",
    "CatalogError",
    "ResolutionError",
    "NoCompatibleVersion",
    "VersionNotFound",
    "ChecksumMismatch",
    "DownloadFailure",
    "PersistenceError",
    "UserConfigError",
    "ConfigError",
]


class PluginDownloadError(RuntimeError):
    """Base exception for plugin resolution, download, or locking failures."""


class CatalogError(PluginDownloadError):
    """Raised when a catalog API call returns a non-success status."""

    def __init__(self, status_code: int, body: str = "", *, url: Optional[str] = None) -> None:
        self.status_code = status_code
        self.body = body
        self.url = url
        detail = body.strip()
        if len(detail) > 200:
            detail = detail[:200] + "..."
        message = f"catalog API error {status_code}"
        if url:
            message = f"{message} for {url}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ResolutionError(PluginDownloadError):
    """Raised when no catalog version can be chosen for a declaration."""


class NoCompatibleVersion(ResolutionError):
    """Raised when compatibility filtering removed every candidate version."""

    def __init__(self, identifier: str, platform: Optional[str] = None) -> None:
        self.identifier = identifier
        self.platform = platform
        target = f" (server platform '{platform}')" if platform else ""
        super().__init__(f"no version found for any platform for {identifier}{target}")


class VersionNotFound(ResolutionError):
    """Raised when a pinned version label is absent from the candidates."""

    def __init__(self, identifier: str, label: str) -> None:
        self.identifier = identifier
        self.label = label
        super().__init__(f"version {label} not found for {identifier}")


class ChecksumMismatch(PluginDownloadError):
    """Raised when downloaded bytes do not hash to the catalog digest."""

    def __init__(self, expected: str, actual: str, filename: str) -> None:
        self.expected = expected
        self.actual = actual
        self.filename = filename
        super().__init__(
            f"checksum mismatch for {filename}: expected {expected}, actual {actual}"
        )


class DownloadFailure(PluginDownloadError):
    """Raised when an HTTP transfer or local write fails."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class PersistenceError(PluginDownloadError):
    """Raised when the lock file or manifest cannot be written."""


class UserConfigError(RuntimeError):
    """Raised when CLI arguments or YAML configuration inputs are invalid."""


# Alias used by configuration loaders.
ConfigError = UserConfigError
# === NAVMAP v1 ===
# {
#   "module": "MCPluginKit.PluginDownload.errors",
#   "purpose": "Define the exception hierarchy used across plugin resolution, download, and locking",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "catalog", "name": "Catalog Errors", "anchor": "CAT", "kind": "api"},
#     {"id": "resolution", "name": "Resolution Errors", "anchor": "RES", "kind": "api"},
#     {"id": "download", "name": "Download & Integrity Errors", "anchor": "DWN", "kind": "api"},
#     {"id": "config", "name": "Configuration & Persistence Errors", "anchor": "CFG", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
