"""
Pydantic v2 Settings for the plugin downloader

Provides strict, typed configuration for the plugin pipeline:
- HTTP client settings (timeouts, retries, catalog base URLs)
- Download policy (plugins directory, concurrency cap, chunk size)
- Logging settings (level, retention, log directory)
- Project file locations (``package.yml`` and ``package-lock.yml``)

All models use extra="forbid" for strict validation. Values compose with
file < environment < CLI precedence through :func:`load_settings`:

  MCPK_HTTP__TIMEOUT_READ_S=30       ->  http.timeout_read_s = 30
  MCPK_DOWNLOAD__CONCURRENCY=8       ->  download.concurrency = 8
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional

import platformdirs
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError

_LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "MCPK_"
LOG_DIR = Path(platformdirs.user_log_dir("mcpluginkit"))

__all__ = [
    "ENV_PREFIX",
    "LOG_DIR",
    "HttpSettings",
    "DownloadSettings",
    "LoggingSettings",
    "PathsSettings",
    "PluginKitSettings",
    "load_settings",
]


# ============================================================================
# Section Models
# ============================================================================


class HttpSettings(BaseModel):
    """HTTP client behaviour shared by every catalog client."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    user_agent: str = Field(
        default="MCPluginKit/PluginDownload (+https://github.com/mcpluginkit)",
        description="User-Agent sent to catalog APIs",
    )
    timeout_connect_s: float = Field(default=10.0, description="Connection timeout in seconds")
    timeout_read_s: float = Field(default=60.0, description="Read timeout in seconds")
    max_attempts: int = Field(default=4, description="Total attempts per catalog request")
    backoff_multiplier_s: float = Field(default=0.5, description="Exponential backoff base")
    backoff_max_s: float = Field(default=8.0, description="Maximum backoff wait")
    retry_statuses: List[int] = Field(
        default=[429, 500, 502, 503, 504],
        description="HTTP status codes that trigger retry",
    )
    modrinth_base_url: str = Field(
        default="https://api.modrinth.com/v2", description="Modrinth API root"
    )
    hangar_base_url: str = Field(
        default="https://hangar.papermc.io/api/v1", description="Hangar API root"
    )
    page_size: int = Field(default=25, description="Page size for paginated catalog listings")

    @field_validator("timeout_connect_s", "timeout_read_s")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be > 0")
        return v

    @field_validator("max_attempts", "page_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @field_validator("backoff_multiplier_s", "backoff_max_s")
    @classmethod
    def validate_backoff(cls, v: float) -> float:
        if v < 0:
            raise ValueError("backoff values must be >= 0")
        return v


class DownloadSettings(BaseModel):
    """Download policy for plugin artifacts."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    plugins_dir: Path = Field(default=Path("plugins"), description="Plugin destination directory")
    concurrency: int = Field(default=5, description="Maximum simultaneous downloads")
    chunk_size_bytes: int = Field(default=1 << 16, description="Stream chunk size")
    force: bool = Field(default=False, description="Re-download files already on disk")
    allow_platform_fallback: bool = Field(
        default=True,
        description="Accept versions published for a compatible platform when none match exactly",
    )

    @field_validator("concurrency", "chunk_size_bytes")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v


class LoggingSettings(BaseModel):
    """Logging configuration for console and JSON log files."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    level: str = Field(default="INFO", description="Log level")
    retention_days: int = Field(default=30, description="Days to keep log files")
    max_log_size_mb: int = Field(default=20, description="Rotate log files at this size")
    log_dir: Optional[Path] = Field(default=None, description="Override log directory")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        normalized = v.strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"invalid log level '{v}'")
        return normalized


class PathsSettings(BaseModel):
    """Locations of the project manifest and lock file."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    manifest: Path = Field(default=Path("package.yml"), description="Declared plugins file")
    lockfile: Path = Field(default=Path("package-lock.yml"), description="Resolved lock file")


class PluginKitSettings(BaseModel):
    """Top-level settings; the single source of truth for a run."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    http: HttpSettings = Field(default_factory=HttpSettings)
    download: DownloadSettings = Field(default_factory=DownloadSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    paths: PathsSettings = Field(default_factory=PathsSettings)

    def config_hash(self) -> str:
        """Return a stable digest of the effective settings."""

        payload = json.dumps(self.model_dump(mode="json"), sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


# ============================================================================
# Loading Helpers
# ============================================================================


def _read_file(path: Path) -> dict[str, Any]:
    """Read a YAML or JSON settings file into a dictionary."""

    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc

    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    elif suffix == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
    else:
        raise ConfigError(f"Unsupported file format: {suffix}. Use .yaml or .json")

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _assign_nested(data: Dict[str, Any], dotted_key: str, value: Any) -> None:
    keys = dotted_key.split(".")
    current = data
    for key in keys[:-1]:
        existing = current.get(key)
        if not isinstance(existing, dict):
            existing = {}
            current[key] = existing
        current = existing
    current[keys[-1]] = value


def _coerce_env_value(value: str) -> Any:
    """Coerce an environment string into JSON scalars or containers when possible."""

    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        pass
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    return value


def _merge_env_overrides(
    data: Dict[str, Any], env_prefix: str, environ: Mapping[str, str]
) -> Dict[str, Any]:
    for env_key, env_value in environ.items():
        if not env_key.startswith(env_prefix):
            continue
        relative_key = env_key[len(env_prefix) :].lower()
        if not relative_key or "__" not in relative_key:
            continue
        dotted_key = relative_key.replace("__", ".")
        coerced = _coerce_env_value(env_value)
        _assign_nested(data, dotted_key, coerced)
        _LOGGER.debug("Environment override: %s -> %s = %r", env_key, dotted_key, coerced)
    return data


def _merge_cli_overrides(
    data: Dict[str, Any], cli_overrides: Optional[Mapping[str, Any]]
) -> Dict[str, Any]:
    if not cli_overrides:
        return data
    for key, value in cli_overrides.items():
        if value is None:
            continue
        if isinstance(value, Mapping) and isinstance(data.get(key), dict):
            data[key] = _merge_cli_overrides(data[key], value)
        elif isinstance(value, Mapping):
            data[key] = _merge_cli_overrides({}, value)
        else:
            data[key] = value
    return data


# ============================================================================
# Public API
# ============================================================================


def load_settings(
    path: Optional[Path] = None,
    *,
    env_prefix: str = ENV_PREFIX,
    cli_overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> PluginKitSettings:
    """Load :class:`PluginKitSettings` with file < environment < CLI precedence.

    Args:
        path: Optional YAML/JSON settings file.
        env_prefix: Prefix for environment overrides using ``__`` as separator.
        cli_overrides: Nested mapping of overrides from command line options;
            ``None`` values are ignored so unset options keep lower layers.
        environ: Environment mapping, defaults to :data:`os.environ`.

    Returns:
        Validated settings instance.

    Raises:
        ConfigError: If the file cannot be read or the merged data is invalid.
    """

    data: Dict[str, Any] = {}
    if path is not None:
        data = _read_file(Path(path))
        _LOGGER.info("Loaded settings from %s", path)

    data = _merge_env_overrides(data, env_prefix, os.environ if environ is None else environ)
    data = _merge_cli_overrides(data, cli_overrides)

    try:
        settings = PluginKitSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings: {exc}") from exc
    _LOGGER.debug("Settings validated", extra={"config_hash": settings.config_hash()[:8]})
    return settings
