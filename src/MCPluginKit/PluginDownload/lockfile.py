"""Lock file state and persistence (``package-lock.yml``).

:class:`LockState` is the in-memory accumulator that concurrent install jobs
record into; every mutation goes through its lock.  The coordinator writes the
snapshot once per batch with :func:`save_lockfile`, which publishes the YAML
through a temp file and ``os.replace`` so readers never see half a lock file.

File layout::

    plugins:
      luckperms:
        name: LuckPerms
        version: v5.4.102-bukkit
        hash: 9d1f...
        filename: LuckPerms-Bukkit-5.4.102.jar
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional

import yaml

from .errors import PersistenceError
from .models import LockEntry

__all__ = ["LockState", "load_lockfile", "save_lockfile"]

LOGGER = logging.getLogger(__name__)


class LockState:
    """Thread-safe mapping of lock key to :class:`LockEntry`."""

    def __init__(self, entries: Optional[Dict[str, LockEntry]] = None) -> None:
        self._entries: Dict[str, LockEntry] = dict(entries or {})
        self._lock = threading.Lock()

    def record(self, key: str, entry: LockEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def remove(self, key: str) -> Optional[LockEntry]:
        with self._lock:
            return self._entries.pop(key, None)

    def get(self, key: str) -> Optional[LockEntry]:
        with self._lock:
            return self._entries.get(key)

    def snapshot(self) -> Dict[str, LockEntry]:
        """Return a copy of the entries, sorted by key."""

        with self._lock:
            return {key: self._entries[key] for key in sorted(self._entries)}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _entry_from_mapping(key: str, payload: object, path: Path) -> LockEntry:
    if not isinstance(payload, dict):
        raise PersistenceError(f"{path}: lock entry '{key}' must be a mapping")
    filename = payload.get("filename")
    return LockEntry(
        name=str(payload.get("name") or key),
        version=str(payload.get("version") or ""),
        hash=str(payload.get("hash") or ""),
        filename=str(filename) if filename else None,
    )


def load_lockfile(path: Path) -> LockState:
    """Read ``path`` into a :class:`LockState`; a missing file yields an empty state."""

    path = Path(path)
    if not path.exists():
        return LockState()
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise PersistenceError(f"cannot read lock file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise PersistenceError(f"{path}: lock file must contain a mapping")
    plugins = data.get("plugins") or {}
    if not isinstance(plugins, dict):
        raise PersistenceError(f"{path}: 'plugins' must be a mapping")
    return LockState(
        {str(key): _entry_from_mapping(str(key), value, path) for key, value in plugins.items()}
    )


def _atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
    finally:
        temp_path.unlink(missing_ok=True)


def save_lockfile(path: Path, state: LockState) -> None:
    """Write ``state`` to ``path`` atomically.

    Raises:
        PersistenceError: When the file cannot be written.
    """

    path = Path(path)
    payload = {"plugins": {key: entry.to_mapping() for key, entry in state.snapshot().items()}}
    content = yaml.safe_dump(payload, sort_keys=False, default_flow_style=False)
    try:
        _atomic_write_text(path, content)
    except OSError as exc:
        raise PersistenceError(f"cannot write lock file {path}: {exc}") from exc
    LOGGER.info("lock file written", extra={"stage": "lock", "path": str(path), "entries": len(state)})
