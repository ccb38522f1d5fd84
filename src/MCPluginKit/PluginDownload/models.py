# === NAVMAP v1 ===
# {
#   "module": "MCPluginKit.PluginDownload.models",
#   "purpose": "Value objects flowing through plugin resolution, download, and locking",
#   "sections": [
#     {
#       "id": "sourcekind",
#       "name": "SourceKind",
#       "anchor": "class-sourcekind",
#       "kind": "class"
#     },
#     {
#       "id": "artifactdeclaration",
#       "name": "ArtifactDeclaration",
#       "anchor": "class-artifactdeclaration",
#       "kind": "class"
#     },
#     {
#       "id": "catalogproject",
#       "name": "CatalogProject",
#       "anchor": "class-catalogproject",
#       "kind": "class"
#     },
#     {
#       "id": "candidatefile",
#       "name": "CandidateFile",
#       "anchor": "class-candidatefile",
#       "kind": "class"
#     },
#     {
#       "id": "catalogversionentry",
#       "name": "CatalogVersionEntry",
#       "anchor": "class-catalogversionentry",
#       "kind": "class"
#     },
#     {
#       "id": "compatibilityverdict",
#       "name": "CompatibilityVerdict",
#       "anchor": "class-compatibilityverdict",
#       "kind": "class"
#     },
#     {
#       "id": "lockentry",
#       "name": "LockEntry",
#       "anchor": "class-lockentry",
#       "kind": "class"
#     },
#     {
#       "id": "resolvedartifact",
#       "name": "ResolvedArtifact",
#       "anchor": "class-resolvedartifact",
#       "kind": "class"
#     },
#     {
#       "id": "installoutcome",
#       "name": "InstallOutcome",
#       "anchor": "class-installoutcome",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Value objects shared by the plugin resolution and download pipeline.

Catalog clients normalise their payloads into :class:`CatalogProject`,
:class:`CatalogVersionEntry`, and :class:`CandidateFile`; the compatibility
resolver grades entries with :class:`CompatibilityVerdict`; the selector and
fetch engine hand :class:`ResolvedArtifact` and :class:`InstallOutcome` records
to the batch coordinator, which persists :class:`LockEntry` rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional, Tuple

__all__ = [
    "LATEST",
    "SourceKind",
    "ArtifactDeclaration",
    "CatalogProject",
    "CandidateFile",
    "CatalogVersionEntry",
    "CompatibilityVerdict",
    "INCOMPATIBLE",
    "INEXACT",
    "EXACT",
    "LockEntry",
    "ResolvedArtifact",
    "InstallOutcome",
]

LATEST = "latest"


class SourceKind(str, Enum):
    """Catalog services a plugin can be declared against."""

    MODRINTH = "modrinth"
    HANGAR = "hangar"

    @classmethod
    def parse(cls, value: str) -> "SourceKind":
        """Return the member matching ``value`` case-insensitively."""

        normalized = (value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(f"unknown plugin source '{value}'")


@dataclass(slots=True, frozen=True)
class ArtifactDeclaration:
    """Request to have a plugin present on the server.

    Attributes:
        name: Human readable plugin name from ``package.yml``.
        source: Catalog the plugin is fetched from.
        identifier: Catalog identifier (Modrinth id/slug or Hangar ``owner/slug``).
        version: ``"latest"``, empty, or an exact catalog version label.

    Examples:
        >>> decl = ArtifactDeclaration("LuckPerms", SourceKind.MODRINTH, "luckperms")
        >>> decl.lock_key, decl.is_latest
        ('luckperms', True)
    """

    name: str
    source: SourceKind
    identifier: str
    version: str = LATEST

    @property
    def lock_key(self) -> str:
        """Stable key used for lock file entries."""

        return self.identifier

    @property
    def is_latest(self) -> bool:
        """Return ``True`` when the declaration tracks the newest release."""

        label = (self.version or "").strip()
        return not label or label.lower() == LATEST


@dataclass(slots=True, frozen=True)
class CatalogProject:
    """Catalog metadata for a discoverable plugin."""

    display_name: str
    stable_id: str
    description: str = ""
    categories: frozenset = field(default_factory=frozenset)


@dataclass(slots=True, frozen=True)
class CandidateFile:
    """Downloadable file attached to a catalog version.

    ``platform`` holds the catalog platform key the file was published for, or
    ``None`` when the same file serves every platform of the version.
    """

    url: str
    filename: str
    digests: Mapping[str, str] = field(default_factory=dict)
    size_bytes: int = 0
    primary: bool = False
    platform: Optional[str] = None

    def digest(self, algorithm: str) -> Optional[str]:
        """Return the published hex digest for ``algorithm`` if any."""

        value = self.digests.get(algorithm)
        return value or None

    def serves(self, platform: Optional[str]) -> bool:
        """Return ``True`` when the file can be installed on ``platform``."""

        if self.platform is None or platform is None:
            return True
        return self.platform.lower() == platform.lower()


@dataclass(slots=True, frozen=True)
class CatalogVersionEntry:
    """One published release of a catalog project, newest-first ordered."""

    label: str
    supported_platforms: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    files: Tuple[CandidateFile, ...] = ()

    def platform_keys(self) -> frozenset:
        """Return the lower-cased platform keys this version declares."""

        return frozenset(key.lower() for key in self.supported_platforms)

    def primary_file(self, platform: Optional[str] = None) -> Optional[CandidateFile]:
        """Return the file to download for ``platform``.

        The primary file among those serving ``platform`` wins; otherwise the
        first serving file is used so the choice stays deterministic.
        """

        serving = [candidate for candidate in self.files if candidate.serves(platform)]
        for candidate in serving:
            if candidate.primary:
                return candidate
        return serving[0] if serving else None


@dataclass(slots=True, frozen=True)
class CompatibilityVerdict:
    """Graded compatibility of a candidate with a target platform."""

    usable: bool
    exact: bool


INCOMPATIBLE = CompatibilityVerdict(usable=False, exact=False)
INEXACT = CompatibilityVerdict(usable=True, exact=False)
EXACT = CompatibilityVerdict(usable=True, exact=True)


@dataclass(slots=True, frozen=True)
class LockEntry:
    """Persisted record of the version and digest installed for a plugin."""

    name: str
    version: str
    hash: str
    filename: Optional[str] = None

    def to_mapping(self) -> dict:
        """Return mapping representation for lock file serialisation."""

        payload = {"name": self.name, "version": self.version, "hash": self.hash}
        if self.filename:
            payload["filename"] = self.filename
        return payload


@dataclass(slots=True, frozen=True)
class ResolvedArtifact:
    """Declaration paired with the catalog version and file chosen for it."""

    declaration: ArtifactDeclaration
    project_name: str
    entry: CatalogVersionEntry
    file: CandidateFile
    platform: Optional[str]
    exact: bool = True

    @property
    def version(self) -> str:
        return self.entry.label


@dataclass(slots=True, frozen=True)
class InstallOutcome:
    """Result row for one declaration in a batch run.

    ``status`` is ``installed`` (fresh download), ``cached`` (file already on
    disk), or ``failed``; failed rows carry the captured ``error``.
    """

    declaration: ArtifactDeclaration
    status: str
    version: Optional[str] = None
    digest: Optional[str] = None
    path: Optional[Path] = None
    platform: Optional[str] = None
    exact: bool = True
    project_name: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None
