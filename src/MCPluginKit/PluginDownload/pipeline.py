# === NAVMAP v1 ===
# {
#   "module": "MCPluginKit.PluginDownload.pipeline",
#   "purpose": "Resolve, fetch and lock declared plugins with bounded parallelism",
#   "sections": [
#     {
#       "id": "installcontext",
#       "name": "InstallContext",
#       "anchor": "class-installcontext",
#       "kind": "class"
#     },
#     {
#       "id": "batchreport",
#       "name": "BatchReport",
#       "anchor": "class-batchreport",
#       "kind": "class"
#     },
#     {
#       "id": "resolve-declaration",
#       "name": "resolve_declaration",
#       "anchor": "function-resolve-declaration",
#       "kind": "function"
#     },
#     {
#       "id": "install-one",
#       "name": "install_one",
#       "anchor": "function-install-one",
#       "kind": "function"
#     },
#     {
#       "id": "install-all",
#       "name": "install_all",
#       "anchor": "function-install-all",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Install pipeline: resolve, select, fetch and lock declared plugins.

:func:`install_one` runs the whole chain for a single declaration and raises
on failure.  :func:`install_all` runs it for every declaration on a thread
pool bounded by ``download.concurrency``; a job's exception is recorded in the
:class:`BatchReport` and never stops its siblings.  Successful jobs record into
the shared :class:`~MCPluginKit.PluginDownload.lockfile.LockState`; writing the
lock file is left to the caller so a batch persists exactly once.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .catalogs import CatalogClient, get_catalog_client
from .compatibility import resolve_passes
from .errors import NoCompatibleVersion
from .fetch import STATUS_CACHED, fetch_artifact
from .lockfile import LockState
from .logging_utils import LOGGER_NAME, CorrelatedLogger, generate_correlation_id
from .models import (
    ArtifactDeclaration,
    InstallOutcome,
    LockEntry,
    ResolvedArtifact,
    SourceKind,
)
from .progress import ProgressRenderer, ProgressReporter
from .selection import select_version
from .settings import PluginKitSettings

__all__ = [
    "STATUS_INSTALLED",
    "STATUS_CACHED",
    "STATUS_FAILED",
    "InstallContext",
    "BatchReport",
    "resolve_declaration",
    "install_one",
    "install_all",
]

STATUS_INSTALLED = "installed"
STATUS_FAILED = "failed"

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]


@dataclass
class InstallContext:
    """Everything a job needs besides its declaration.

    Attributes:
        settings: Effective settings for the run.
        lock_state: Accumulator successful jobs record into.
        server_type: Target server platform (``paper``, ``velocity`` ...).
        game_version: Target Minecraft version; ``None`` disables filtering.
        catalogs: Clients keyed by source; missing ones are built on demand.
        renderer: Optional progress renderer handing out per-job reporters.
        logger: Logger or adapter carrying the batch correlation id.
    """

    settings: PluginKitSettings
    lock_state: LockState
    server_type: Optional[str] = None
    game_version: Optional[str] = None
    catalogs: Dict[SourceKind, CatalogClient] = field(default_factory=dict)
    renderer: Optional[ProgressRenderer] = None
    logger: LoggerLike = field(default_factory=lambda: logging.getLogger(LOGGER_NAME))
    _catalog_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def plugins_dir(self) -> Path:
        return self.settings.download.plugins_dir

    def catalog(self, source: SourceKind) -> CatalogClient:
        """Return the client for ``source``, creating it once."""

        with self._catalog_lock:
            client = self.catalogs.get(source)
            if client is None:
                client = get_catalog_client(
                    source,
                    self.settings.http,
                    chunk_size=self.settings.download.chunk_size_bytes,
                )
                self.catalogs[source] = client
            return client


class BatchReport:
    """Per-declaration outcomes of a batch, kept in declaration order."""

    def __init__(self, declarations: Sequence[ArtifactDeclaration]) -> None:
        self.total = len(declarations)
        self._outcomes: Dict[int, InstallOutcome] = {}
        self._lock = threading.Lock()

    def add(self, index: int, outcome: InstallOutcome) -> None:
        with self._lock:
            self._outcomes[index] = outcome

    @property
    def outcomes(self) -> List[InstallOutcome]:
        with self._lock:
            return [self._outcomes[index] for index in sorted(self._outcomes)]

    @property
    def successes(self) -> List[InstallOutcome]:
        return [outcome for outcome in self.outcomes if outcome.ok]

    @property
    def failures(self) -> List[InstallOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    @property
    def ok(self) -> bool:
        return not self.failures

    def __len__(self) -> int:
        with self._lock:
            return len(self._outcomes)


def resolve_declaration(
    declaration: ArtifactDeclaration,
    context: InstallContext,
    *,
    version: Optional[str] = None,
) -> ResolvedArtifact:
    """Choose the catalog version and file to install for ``declaration``.

    Args:
        declaration: Plugin to resolve.
        context: Run context providing catalogs and the target platform.
        version: Overrides the declared constraint (``update`` passes ``latest``).

    Raises:
        CatalogError: Catalog answered with a non-success status.
        NoCompatibleVersion: No version fits the server platform, or the
            chosen version has no downloadable file for it.
        VersionNotFound: A pinned version is not published for the platform.
    """

    catalog = context.catalog(declaration.source)
    project_name = declaration.name
    entries = catalog.get_versions(declaration.identifier, context.game_version)
    passes = resolve_passes(declaration.source, context.server_type, entries)
    selection = select_version(
        passes,
        declaration.version if version is None else version,
        identifier=declaration.identifier,
        target_platform=context.server_type,
        allow_fallback=context.settings.download.allow_platform_fallback,
    )
    candidate = selection.entry.primary_file(selection.platform)
    if candidate is None:
        raise NoCompatibleVersion(declaration.identifier, selection.platform)
    return ResolvedArtifact(
        declaration=declaration,
        project_name=project_name,
        entry=selection.entry,
        file=candidate,
        platform=selection.platform,
        exact=selection.exact,
    )


def install_one(
    declaration: ArtifactDeclaration,
    context: InstallContext,
    *,
    progress: Optional[ProgressReporter] = None,
    version: Optional[str] = None,
    resolved: Optional[ResolvedArtifact] = None,
) -> InstallOutcome:
    """Resolve, fetch and lock one declaration; raises on any failure.

    Callers that already resolved the declaration (to confirm a fallback
    platform, say) pass ``resolved`` to skip the catalog lookup.
    """

    log = context.logger
    if resolved is None:
        resolved = resolve_declaration(declaration, context, version=version)
    catalog = context.catalog(declaration.source)
    algorithm = catalog.digest_algorithm
    if progress is None and context.renderer is not None:
        progress = context.renderer.reporter(declaration.name)

    # A file left by a different locked version may share the new file's name.
    previous = context.lock_state.get(declaration.lock_key)
    stale = previous is not None and (
        previous.version != resolved.version or previous.filename != resolved.file.filename
    )
    if stale:
        log.debug(
            "locked version differs, forcing download",
            extra={
                "stage": "install",
                "identifier": declaration.identifier,
                "locked_version": previous.version,
                "version": resolved.version,
            },
        )

    result = fetch_artifact(
        catalog.open_download,
        resolved.file.url,
        context.plugins_dir,
        resolved.file.filename,
        expected_digest=resolved.file.digest(algorithm),
        algorithm=algorithm,
        progress=progress,
        force=context.settings.download.force or stale,
    )
    context.lock_state.record(
        declaration.lock_key,
        LockEntry(
            name=declaration.name,
            version=resolved.version,
            hash=result.digest,
            filename=result.path.name,
        ),
    )
    status = STATUS_CACHED if result.status == STATUS_CACHED else STATUS_INSTALLED
    log.info(
        "plugin installed",
        extra={
            "stage": "install",
            "identifier": declaration.identifier,
            "source": declaration.source.value,
            "version": resolved.version,
            "status": status,
            "platform": resolved.platform,
        },
    )
    return InstallOutcome(
        declaration=declaration,
        status=status,
        version=resolved.version,
        digest=result.digest,
        path=result.path,
        platform=resolved.platform,
        exact=resolved.exact,
        project_name=resolved.project_name,
    )


def install_all(
    declarations: Sequence[ArtifactDeclaration],
    *,
    context: InstallContext,
    max_workers: Optional[int] = None,
) -> BatchReport:
    """Install every declaration with at most ``max_workers`` jobs in flight.

    Per-declaration failures are captured in the returned report.  The lock
    file is not written here.
    """

    declarations = list(declarations)
    report = BatchReport(declarations)
    if not declarations:
        return report

    workers = max(1, max_workers or context.settings.download.concurrency)
    base_logger = context.logger
    if isinstance(base_logger, logging.LoggerAdapter):
        adapter = base_logger
    else:
        adapter = CorrelatedLogger(
            base_logger, extra={"correlation_id": generate_correlation_id()}
        )
    context.logger = adapter
    adapter.info(
        "starting batch",
        extra={"stage": "batch", "workers": workers, "total": len(declarations)},
    )

    def _job(index: int, declaration: ArtifactDeclaration) -> None:
        try:
            outcome = install_one(declaration, context)
        except Exception as exc:  # pylint: disable=broad-except
            adapter.error(
                "plugin install failed",
                extra={
                    "stage": "error",
                    "identifier": declaration.identifier,
                    "source": declaration.source.value,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            outcome = InstallOutcome(declaration=declaration, status=STATUS_FAILED, error=exc)
        report.add(index, outcome)

    try:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mcpk-install") as pool:
            for index, declaration in enumerate(declarations):
                pool.submit(_job, index, declaration)
    finally:
        context.logger = base_logger

    adapter.info(
        "batch complete",
        extra={
            "stage": "batch",
            "installed": len(report.successes),
            "failed": len(report.failures),
        },
    )
    return report

