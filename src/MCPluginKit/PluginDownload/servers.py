"""Server jar download adapters.

Each server type maps to a function producing the download URL (and digest
where the upstream API publishes one) for a game version and build.  The jar
itself goes through :func:`~MCPluginKit.PluginDownload.fetch.fetch_artifact`
like any plugin, saved as ``server.jar``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, Dict, Optional

import httpx

from .errors import CatalogError, UserConfigError
from .fetch import FetchResult, fetch_artifact
from .models import LATEST
from .net import open_stream, request_json
from .progress import ProgressReporter
from .settings import HttpSettings

__all__ = ["ServerJar", "SERVER_ADAPTERS", "resolve_server_jar", "download_server"]

LOGGER = logging.getLogger(__name__)

PAPERMC_API = "https://api.papermc.io/v2/projects"
PURPUR_API = "https://api.purpurmc.org/v2/purpur"
GETBUKKIT_URL = "https://download.getbukkit.org"
SERVER_FILENAME = "server.jar"


@dataclass(slots=True, frozen=True)
class ServerJar:
    """Download location of a server jar."""

    url: str
    build: Optional[str] = None
    sha256: Optional[str] = None


Adapter = Callable[[str, str, HttpSettings, Optional[httpx.Client]], ServerJar]


def _is_latest(build: Optional[str]) -> bool:
    return not build or build.strip().lower() == LATEST


def _papermc(
    project: str,
    version: str,
    build: str,
    settings: HttpSettings,
    client: Optional[httpx.Client],
) -> ServerJar:
    builds_url = f"{PAPERMC_API}/{project}/versions/{version}/builds"
    payload = request_json(builds_url, settings=settings, client=client)
    builds = payload.get("builds") if isinstance(payload, dict) else None
    if not builds:
        raise CatalogError(404, f"no builds found for {project} {version}", url=builds_url)
    if _is_latest(build):
        chosen = builds[-1]
    else:
        matches = [item for item in builds if str(item.get("build")) == build.strip()]
        if not matches:
            raise CatalogError(404, f"build {build} not found for {project} {version}", url=builds_url)
        chosen = matches[0]
    number = str(chosen.get("build"))
    application = (chosen.get("downloads") or {}).get("application") or {}
    filename = application.get("name") or f"{project}-{version}-{number}.jar"
    return ServerJar(
        url=f"{builds_url}/{number}/downloads/{filename}",
        build=number,
        sha256=application.get("sha256"),
    )


def _purpur(
    version: str, build: str, settings: HttpSettings, client: Optional[httpx.Client]
) -> ServerJar:
    label = LATEST if _is_latest(build) else build.strip()
    return ServerJar(url=f"{PURPUR_API}/{version}/{label}/download", build=label)


def _spigot(
    version: str, build: str, settings: HttpSettings, client: Optional[httpx.Client]
) -> ServerJar:
    return ServerJar(url=f"{GETBUKKIT_URL}/spigot/spigot-{version}.jar")


def _craftbukkit(
    version: str, build: str, settings: HttpSettings, client: Optional[httpx.Client]
) -> ServerJar:
    return ServerJar(url=f"{GETBUKKIT_URL}/craftbukkit/craftbukkit-{version}.jar")


SERVER_ADAPTERS: Dict[str, Adapter] = {
    "paper": partial(_papermc, "paper"),
    "folia": partial(_papermc, "folia"),
    "velocity": partial(_papermc, "velocity"),
    "waterfall": partial(_papermc, "waterfall"),
    "purpur": _purpur,
    "spigot": _spigot,
    "bukkit": _craftbukkit,
}


def resolve_server_jar(
    server_type: str,
    minecraft_version: str,
    build: str = LATEST,
    *,
    settings: Optional[HttpSettings] = None,
    client: Optional[httpx.Client] = None,
) -> ServerJar:
    """Return the download location for a server jar.

    Raises:
        UserConfigError: Unsupported server type or missing game version.
        CatalogError: The upstream build API failed or lacks the build.
    """

    adapter = SERVER_ADAPTERS.get((server_type or "").strip().lower())
    if adapter is None:
        raise UserConfigError(f"unsupported server type '{server_type}'")
    if not minecraft_version:
        raise UserConfigError("server.minecraft_version must be set to download a server jar")
    return adapter(minecraft_version, build, settings or HttpSettings(), client)


def download_server(
    server_type: str,
    minecraft_version: str,
    build: str,
    output_dir: Path,
    *,
    settings: Optional[HttpSettings] = None,
    client: Optional[httpx.Client] = None,
    progress: Optional[ProgressReporter] = None,
    force: bool = False,
) -> FetchResult:
    """Download the server jar into ``output_dir/server.jar``."""

    active = settings or HttpSettings()
    jar = resolve_server_jar(
        server_type, minecraft_version, build, settings=active, client=client
    )
    LOGGER.info(
        "downloading server jar",
        extra={"stage": "server", "server_type": server_type, "url": jar.url, "build": jar.build},
    )
    return fetch_artifact(
        partial(open_stream, settings=active, client=client),
        jar.url,
        Path(output_dir),
        SERVER_FILENAME,
        expected_digest=jar.sha256,
        algorithm="sha256",
        progress=progress,
        force=force,
    )
