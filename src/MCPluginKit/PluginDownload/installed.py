"""Locate installed plugin jars in the plugins directory."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from .models import LockEntry

__all__ = ["normalize_plugin_name", "find_installed_file"]

_DISALLOWED = re.compile(r"[^A-Za-z0-9 _-]")


def normalize_plugin_name(name: str) -> str:
    """Reduce ``name`` to a filename-comparable form.

    Examples:
        >>> normalize_plugin_name("EssentialsX Chat™")
        'essentialsx-chat'
    """

    return _DISALLOWED.sub("", name).replace(" ", "-").lower()


def find_installed_file(
    plugins_dir: Path, name: str, lock_entry: Optional[LockEntry] = None
) -> Optional[Path]:
    """Return the installed jar for a plugin or ``None``.

    A lock entry that recorded the published filename is authoritative.
    Otherwise the first file whose normalised name starts with the normalised
    plugin name matches, in sorted order.
    """

    plugins_dir = Path(plugins_dir)
    if lock_entry is not None and lock_entry.filename:
        candidate = plugins_dir / lock_entry.filename
        return candidate if candidate.is_file() else None
    if not plugins_dir.is_dir():
        return None
    prefix = normalize_plugin_name(name)
    if not prefix:
        return None
    for path in sorted(plugins_dir.iterdir()):
        if path.is_file() and normalize_plugin_name(path.name).startswith(prefix):
            return path
    return None
