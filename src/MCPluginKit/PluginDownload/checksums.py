"""Checksum normalisation and streaming digest helpers.

Catalogs publish digests with different algorithms: Modrinth attaches
``sha512`` (and ``sha1``) hashes to every file while Hangar publishes
``sha256``.  This module validates the algorithms callers request, hashes files
in chunks without reading them whole, and compares digests the way the fetch
engine and the ``validate`` command both need.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Optional, Type

from .errors import ConfigError

__all__ = [
    "SUPPORTED_ALGORITHMS",
    "normalize_algorithm",
    "algorithm_for_digest",
    "digests_match",
    "hash_file",
]

SUPPORTED_ALGORITHMS = ("md5", "sha1", "sha256", "sha512")

_HEX_LENGTHS = {32: "md5", 40: "sha1", 64: "sha256", 128: "sha512"}
_HASH_CHUNK_SIZE = 1 << 16

ErrorType = Type[Exception]


def normalize_algorithm(
    algorithm: Optional[str], *, context: str = "checksum", error_cls: ErrorType = ConfigError
) -> str:
    """Return the lower-cased algorithm name or raise ``error_cls``."""

    candidate = (algorithm or "sha256").strip().lower()
    if candidate not in SUPPORTED_ALGORITHMS:
        raise error_cls(f"{context}: unsupported checksum algorithm '{candidate}'")
    return candidate


def algorithm_for_digest(value: str) -> Optional[str]:
    """Infer the algorithm that produced a hex digest from its length.

    Examples:
        >>> algorithm_for_digest("0" * 64)
        'sha256'
        >>> algorithm_for_digest("xyz") is None
        True
    """

    return _HEX_LENGTHS.get(len((value or "").strip()))


def digests_match(expected: Optional[str], actual: Optional[str]) -> bool:
    """Compare two hex digests case-insensitively; empty values never match."""

    if not expected or not actual:
        return False
    return expected.strip().lower() == actual.strip().lower()


def hash_file(path: Path, algorithm: str = "sha256") -> str:
    """Return the hex digest of ``path`` computed in fixed-size chunks."""

    hasher = hashlib.new(normalize_algorithm(algorithm))
    with Path(path).open("rb") as handle:
        for chunk in iter(lambda: handle.read(_HASH_CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()
