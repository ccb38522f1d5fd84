"""Catalog service adapters and their registry.

Adding a catalog means writing a :class:`~.base.BaseCatalogClient` subclass
and registering it in :data:`CATALOGS`; the install pipeline only talks to the
:class:`~.base.CatalogClient` protocol.
"""

from __future__ import annotations

from typing import Dict, Optional, Type

import httpx

from ..models import SourceKind
from ..settings import HttpSettings
from .base import BaseCatalogClient, CatalogClient
from .hangar import HangarClient, split_identifier
from .modrinth import ModrinthClient

__all__ = [
    "CATALOGS",
    "BaseCatalogClient",
    "CatalogClient",
    "HangarClient",
    "ModrinthClient",
    "get_catalog_client",
    "split_identifier",
]

CATALOGS: Dict[SourceKind, Type[BaseCatalogClient]] = {
    SourceKind.MODRINTH: ModrinthClient,
    SourceKind.HANGAR: HangarClient,
}


def get_catalog_client(
    kind: SourceKind,
    settings: Optional[HttpSettings] = None,
    *,
    client: Optional[httpx.Client] = None,
    chunk_size: int = 1 << 16,
) -> BaseCatalogClient:
    """Instantiate the registered client for ``kind``."""

    try:
        factory = CATALOGS[kind]
    except KeyError as exc:
        raise ValueError(f"no catalog client registered for '{kind}'") from exc
    return factory(settings, client=client, chunk_size=chunk_size)
