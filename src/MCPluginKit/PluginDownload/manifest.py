"""Project manifest (``package.yml``) models and persistence.

The manifest declares the server a project targets and the plugins it wants::

    name: my-server
    version: 1.0.0
    server:
      type: paper
      minecraft_version: 1.20.4
      build: latest
    plugins:
      - name: LuckPerms
        version: latest
        modrinth_id: luckperms
      - name: Chunky
        version: 1.4.10
        hangar_id: pop4959/Chunky

Unknown top-level keys (for example a ``scripts`` section) are preserved on
save.  Each plugin names exactly one catalog identifier; plugins with none
are skipped with a warning when declarations are built.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterable, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import PersistenceError, UserConfigError
from .lockfile import _atomic_write_text
from .models import LATEST, ArtifactDeclaration, InstallOutcome, SourceKind

__all__ = [
    "ServerSection",
    "PluginSpec",
    "PackageManifest",
    "default_manifest",
    "load_manifest",
    "save_manifest",
]

LOGGER = logging.getLogger(__name__)


class ServerSection(BaseModel):
    """Target server platform and game version."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    type: str = Field(default="paper", description="Server platform")
    minecraft_version: str = Field(default="", description="Game version, e.g. 1.20.4")
    build: str = Field(default=LATEST, description="Server build number or 'latest'")

    @field_validator("type")
    @classmethod
    def normalize_type(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("build", mode="before")
    @classmethod
    def coerce_build(cls, v: Any) -> str:
        return str(v) if v is not None else LATEST


class PluginSpec(BaseModel):
    """One declared plugin."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    name: str
    version: str = LATEST
    modrinth_id: Optional[str] = None
    hangar_id: Optional[str] = None
    optional: bool = False
    dependencies: List[str] = Field(default_factory=list)

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v: Any) -> str:
        if v is None:
            return LATEST
        return str(v)

    @model_validator(mode="after")
    def check_identifiers(self) -> "PluginSpec":
        if self.modrinth_id and self.hangar_id:
            raise ValueError(f"plugin '{self.name}' declares both modrinth_id and hangar_id")
        if self.hangar_id and len([part for part in self.hangar_id.split("/") if part]) != 2:
            raise ValueError(f"plugin '{self.name}': hangar_id must be 'owner/slug'")
        return self

    @property
    def source(self) -> Optional[SourceKind]:
        if self.modrinth_id:
            return SourceKind.MODRINTH
        if self.hangar_id:
            return SourceKind.HANGAR
        return None

    @property
    def identifier(self) -> Optional[str]:
        return self.modrinth_id or self.hangar_id

    def to_declaration(self) -> Optional[ArtifactDeclaration]:
        source = self.source
        if source is None:
            return None
        return ArtifactDeclaration(self.name, source, str(self.identifier), self.version)


class PackageManifest(BaseModel):
    """Contents of ``package.yml``."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="allow")

    name: str = "minecraft-server"
    version: str = "1.0.0"
    server: ServerSection = Field(default_factory=ServerSection)
    plugins: List[PluginSpec] = Field(default_factory=list)

    def to_declarations(self) -> List[ArtifactDeclaration]:
        """Return one declaration per plugin with a catalog identifier, in file order."""

        declarations: List[ArtifactDeclaration] = []
        for plugin in self.plugins:
            declaration = plugin.to_declaration()
            if declaration is None:
                LOGGER.warning(
                    "plugin has no modrinth_id or hangar_id, skipping",
                    extra={"stage": "manifest", "plugin": plugin.name},
                )
                continue
            declarations.append(declaration)
        return declarations

    def find_plugin(self, key: str) -> Optional[PluginSpec]:
        """Find a plugin by identifier, then by case-insensitive name."""

        for plugin in self.plugins:
            if key in (plugin.modrinth_id, plugin.hangar_id):
                return plugin
        lowered = key.lower()
        for plugin in self.plugins:
            if plugin.name.lower() == lowered:
                return plugin
        return None

    def upsert_plugin(
        self, name: str, source: SourceKind, identifier: str, version: str
    ) -> PluginSpec:
        """Add a plugin or update the version of the one with the same identifier."""

        for plugin in self.plugins:
            if plugin.source is source and plugin.identifier == identifier:
                plugin.version = version
                return plugin
        spec = PluginSpec(
            name=name,
            version=version,
            modrinth_id=identifier if source is SourceKind.MODRINTH else None,
            hangar_id=identifier if source is SourceKind.HANGAR else None,
        )
        self.plugins.append(spec)
        return spec

    def remove_plugins(self, keys: Iterable[str]) -> List[PluginSpec]:
        removed: List[PluginSpec] = []
        for key in keys:
            plugin = self.find_plugin(key)
            if plugin is not None and plugin not in removed:
                removed.append(plugin)
        self.plugins = [plugin for plugin in self.plugins if plugin not in removed]
        return removed

    def apply_outcomes(self, outcomes: Iterable[InstallOutcome]) -> int:
        """Write installed name, version and identifier back for each success."""

        applied = 0
        for outcome in outcomes:
            if not outcome.ok or not outcome.version:
                continue
            declaration = outcome.declaration
            self.upsert_plugin(
                declaration.name,
                declaration.source,
                declaration.identifier,
                outcome.version,
            )
            applied += 1
        return applied

    def to_yaml(self) -> str:
        payload: Dict[str, Any] = self.model_dump(mode="json", exclude_none=True)
        plugins: List[Dict[str, Any]] = []
        for entry in payload.get("plugins", []):
            if not entry.get("optional"):
                entry.pop("optional", None)
            if not entry.get("dependencies"):
                entry.pop("dependencies", None)
            plugins.append(entry)
        payload["plugins"] = plugins
        return yaml.safe_dump(payload, sort_keys=False, default_flow_style=False)


def default_manifest(
    name: str = "minecraft-server",
    *,
    server_type: str = "paper",
    minecraft_version: str = "1.20.4",
) -> PackageManifest:
    return PackageManifest(
        name=name,
        server=ServerSection(type=server_type, minecraft_version=minecraft_version),
    )


def load_manifest(path: Path) -> PackageManifest:
    """Parse ``path`` into a :class:`PackageManifest`.

    Raises:
        UserConfigError: Missing file, invalid YAML or invalid declarations.
    """

    path = Path(path)
    if not path.exists():
        raise UserConfigError(f"{path} not found; run 'mcpluginkit init' first")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise UserConfigError(f"cannot read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise UserConfigError(f"{path} must contain a mapping")
    try:
        return PackageManifest.model_validate(data)
    except ValidationError as exc:
        raise UserConfigError(f"invalid manifest {path}: {exc}") from exc


def save_manifest(path: Path, manifest: PackageManifest) -> None:
    path = Path(path)
    try:
        _atomic_write_text(path, manifest.to_yaml())
    except OSError as exc:
        raise PersistenceError(f"cannot write {path}: {exc}") from exc
