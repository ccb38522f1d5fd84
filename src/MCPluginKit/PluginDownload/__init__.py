# === NAVMAP v1 ===
# {
#   "module": "MCPluginKit.PluginDownload",
#   "purpose": "Package initialization for MCPluginKit.PluginDownload",
#   "sections": [
#     {
#       "id": "getattr",
#       "name": "__getattr__",
#       "anchor": "function-getattr",
#       "kind": "function"
#     },
#     {
#       "id": "dir",
#       "name": "__dir__",
#       "anchor": "function-dir",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Public API for the MCPluginKit plugin resolver and downloader.

The facade exposes the batch installer, the single-plugin path, lock file
helpers and the error hierarchy.  Attributes are imported lazily so importing
the package does not build HTTP clients or pull in the CLI stack.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any, Dict, Tuple

__version__ = "0.3.0"

_EXPORTS: Dict[str, Tuple[str, str]] = {
    "ArtifactDeclaration": (".models", "ArtifactDeclaration"),
    "SourceKind": (".models", "SourceKind"),
    "InstallOutcome": (".models", "InstallOutcome"),
    "LockEntry": (".models", "LockEntry"),
    "InstallContext": (".pipeline", "InstallContext"),
    "BatchReport": (".pipeline", "BatchReport"),
    "install_all": (".pipeline", "install_all"),
    "install_one": (".pipeline", "install_one"),
    "resolve_declaration": (".pipeline", "resolve_declaration"),
    "LockState": (".lockfile", "LockState"),
    "load_lockfile": (".lockfile", "load_lockfile"),
    "save_lockfile": (".lockfile", "save_lockfile"),
    "load_manifest": (".manifest", "load_manifest"),
    "load_settings": (".settings", "load_settings"),
    "fetch_artifact": (".fetch", "fetch_artifact"),
    "PluginDownloadError": (".errors", "PluginDownloadError"),
    "CatalogError": (".errors", "CatalogError"),
    "ChecksumMismatch": (".errors", "ChecksumMismatch"),
    "PersistenceError": (".errors", "PersistenceError"),
}

__all__ = ["__version__", *_EXPORTS]


def __getattr__(name: str) -> Any:
    """Lazily import API exports on first access."""

    target = _EXPORTS.get(name)
    if target is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    module = import_module(target[0], __name__)
    value = getattr(module, target[1])
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    """Expose lazily-populated attributes in ``dir()`` results."""

    return sorted(set(globals()) | set(__all__))
