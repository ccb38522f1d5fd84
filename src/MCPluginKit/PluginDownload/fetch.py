# === NAVMAP v1 ===
# {
#   "module": "MCPluginKit.PluginDownload.fetch",
#   "purpose": "Stream, hash, verify and atomically publish plugin artifacts",
#   "sections": [
#     {
#       "id": "fetchresult",
#       "name": "FetchResult",
#       "anchor": "class-fetchresult",
#       "kind": "class"
#     },
#     {
#       "id": "fetch-artifact",
#       "name": "fetch_artifact",
#       "anchor": "function-fetch-artifact",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Fetch-and-verify engine for plugin and server jars.

:func:`fetch_artifact` streams a download into a temporary file created in the
destination directory, hashes the bytes while writing them, compares the
result to the catalog digest and only then publishes the file with
``os.replace``.  A file that fails verification never appears under its final
name, and an existing file is reused without touching the network unless the
caller forces a refresh.

When the rename fails (for example across filesystems or on Windows with the
target held open) the verified temp file is copied into place instead; a copy
that fails part way removes the partial destination before raising.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tempfile
from contextlib import AbstractContextManager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .checksums import digests_match, hash_file, normalize_algorithm
from .errors import ChecksumMismatch, DownloadFailure
from .net import DownloadStream
from .progress import NullProgress, ProgressReporter

__all__ = ["FetchResult", "StreamOpener", "fetch_artifact", "STATUS_CACHED", "STATUS_DOWNLOADED"]

LOGGER = logging.getLogger(__name__)

STATUS_CACHED = "cached"
STATUS_DOWNLOADED = "downloaded"

StreamOpener = Callable[[str], AbstractContextManager[DownloadStream]]


@dataclass(slots=True, frozen=True)
class FetchResult:
    """Outcome of one fetch: published path, status, digest and byte count."""

    path: Path
    status: str
    digest: str
    bytes_written: int


def _safe_filename(filename: str) -> str:
    name = (filename or "").strip()
    if not name or Path(name).name != name or name in (".", ".."):
        raise DownloadFailure(f"refusing unsafe download filename '{filename}'")
    return name


def _fsync_directory(directory: Path) -> None:
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def _publish(temp_path: Path, destination: Path) -> None:
    """Move the verified temp file onto ``destination``."""

    try:
        os.replace(temp_path, destination)
        return
    except OSError as exc:
        LOGGER.warning(
            "rename failed, copying into place",
            extra={"stage": "publish", "destination": str(destination), "error": str(exc)},
        )
    try:
        shutil.copyfile(temp_path, destination)
    except OSError as exc:
        destination.unlink(missing_ok=True)
        raise DownloadFailure(f"failed to publish {destination.name}: {exc}") from exc


def fetch_artifact(
    open_stream: StreamOpener,
    url: str,
    destination_dir: Path,
    filename: str,
    *,
    expected_digest: Optional[str] = None,
    algorithm: str = "sha256",
    progress: Optional[ProgressReporter] = None,
    force: bool = False,
) -> FetchResult:
    """Download ``url`` to ``destination_dir/filename`` with digest verification.

    Args:
        open_stream: Callable returning a context manager that yields a
            :class:`~MCPluginKit.PluginDownload.net.DownloadStream` for a URL.
        url: Download URL.
        destination_dir: Directory the file is published into; created if absent.
        filename: Final file name (no path components).
        expected_digest: Hex digest published by the catalog, if any.
        algorithm: Hash algorithm for ``expected_digest`` and the returned digest.
        progress: Reporter receiving byte counts; defaults to a no-op.
        force: Re-download even when the destination already exists.

    Returns:
        FetchResult with status ``cached`` or ``downloaded``.

    Raises:
        ChecksumMismatch: Downloaded bytes do not match ``expected_digest``.
        DownloadFailure: Transfer, write or publish failure.
        CatalogError: The download URL answered with a non-success status.
    """

    reporter = progress or NullProgress()
    algorithm = normalize_algorithm(algorithm, context="fetch", error_cls=DownloadFailure)
    destination_dir = Path(destination_dir)
    destination = destination_dir / _safe_filename(filename)

    if destination.exists() and not force:
        digest = hash_file(destination, algorithm)
        if expected_digest and not digests_match(expected_digest, digest):
            LOGGER.warning(
                "cached file digest differs from catalog digest",
                extra={"stage": "fetch", "path": str(destination), "expected": expected_digest},
            )
        reporter.set_total(1)
        reporter.advance(1)
        reporter.finish()
        LOGGER.info("file already present", extra={"stage": "fetch", "path": str(destination)})
        return FetchResult(destination, STATUS_CACHED, digest, destination.stat().st_size)

    try:
        destination_dir.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=".mcpk-", suffix=".part", dir=destination_dir)
    except OSError as exc:
        raise DownloadFailure(f"cannot create temp file in {destination_dir}: {exc}") from exc
    temp_path = Path(temp_name)
    hasher = hashlib.new(algorithm)
    written = 0
    total: Optional[int] = None

    try:
        with os.fdopen(fd, "wb") as handle:
            with open_stream(url) as stream:
                total = stream.content_length
                reporter.set_total(total)
                for chunk in stream.iter_bytes():
                    if not chunk:
                        continue
                    handle.write(chunk)
                    hasher.update(chunk)
                    written += len(chunk)
                    reporter.advance(len(chunk))
            handle.flush()
            os.fsync(handle.fileno())
        if total is None:
            reporter.set_total(written)

        digest = hasher.hexdigest()
        if expected_digest and not digests_match(expected_digest, digest):
            raise ChecksumMismatch(expected_digest.lower(), digest, destination.name)

        _publish(temp_path, destination)
        _fsync_directory(destination_dir)
    except OSError as exc:
        raise DownloadFailure(f"failed writing {destination.name}: {exc}") from exc
    finally:
        temp_path.unlink(missing_ok=True)
        reporter.finish()

    LOGGER.info(
        "artifact downloaded",
        extra={
            "stage": "fetch",
            "path": str(destination),
            "bytes": written,
            "algorithm": algorithm,
        },
    )
    return FetchResult(destination, STATUS_DOWNLOADED, digest, written)
