# === NAVMAP v1 ===
# {
#   "module": "MCPluginKit.PluginDownload.compatibility",
#   "purpose": "Platform lineage tables and graded compatibility verdicts per catalog",
#   "sections": [
#     {
#       "id": "platformrule",
#       "name": "PlatformRule",
#       "anchor": "class-platformrule",
#       "kind": "class"
#     },
#     {
#       "id": "compatibility-tables",
#       "name": "COMPATIBILITY_TABLES",
#       "anchor": "data-compatibility-tables",
#       "kind": "data"
#     },
#     {
#       "id": "evaluate",
#       "name": "evaluate",
#       "anchor": "function-evaluate",
#       "kind": "function"
#     },
#     {
#       "id": "resolve-passes",
#       "name": "resolve_passes",
#       "anchor": "function-resolve-passes",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Compatibility rules deciding which catalog releases fit a server platform.

Each catalog names platforms differently: Modrinth tags releases with loader
categories (``paper``, ``spigot``, ``bungeecord`` ...) while Hangar publishes
one download per upper-case platform (``PAPER``, ``VELOCITY``, ``WATERFALL``).
:data:`COMPATIBILITY_TABLES` maps every supported server type to the key that
counts as an exact match and the ordered keys accepted as fallbacks.  The
table is the only place platform lineage is encoded; adding a server type is a
one-line edit.

A server type missing from a table (or no server type at all) imposes no
constraint.  A server type present with ``exact=None`` and no fallbacks is
known to be unsupported by that catalog.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .models import (
    EXACT,
    INCOMPATIBLE,
    INEXACT,
    CatalogVersionEntry,
    CompatibilityVerdict,
    SourceKind,
)

__all__ = [
    "PlatformRule",
    "CandidatePass",
    "COMPATIBILITY_TABLES",
    "SERVER_TYPES",
    "rule_for",
    "evaluate",
    "search_keys",
    "resolve_passes",
]


@dataclass(slots=True, frozen=True)
class PlatformRule:
    """Exact and fallback platform keys for one server type on one catalog."""

    exact: Optional[str]
    fallbacks: Tuple[str, ...] = ()

    def keys(self) -> Tuple[str, ...]:
        """Return the exact key followed by fallbacks, in preference order."""

        head = (self.exact,) if self.exact else ()
        return head + self.fallbacks


COMPATIBILITY_TABLES: Dict[SourceKind, Dict[str, PlatformRule]] = {
    SourceKind.MODRINTH: {
        "paper": PlatformRule("paper", ("spigot", "bukkit")),
        "purpur": PlatformRule("purpur", ("paper", "spigot", "bukkit")),
        "folia": PlatformRule("folia", ("paper", "spigot", "bukkit")),
        "spigot": PlatformRule("spigot", ("bukkit",)),
        "bukkit": PlatformRule("bukkit"),
        "velocity": PlatformRule("velocity"),
        "waterfall": PlatformRule("bungeecord", ("waterfall",)),
        "bungeecord": PlatformRule("bungeecord", ("waterfall",)),
        "sponge": PlatformRule("sponge"),
    },
    SourceKind.HANGAR: {
        "paper": PlatformRule("PAPER"),
        "purpur": PlatformRule(None, ("PAPER",)),
        "folia": PlatformRule(None, ("PAPER",)),
        "spigot": PlatformRule(None, ("PAPER",)),
        "bukkit": PlatformRule(None, ("PAPER",)),
        "velocity": PlatformRule("VELOCITY"),
        "waterfall": PlatformRule("WATERFALL"),
        "bungeecord": PlatformRule(None, ("WATERFALL",)),
        "sponge": PlatformRule(None),
    },
}

# Server types understood by the CLI and server downloader.
SERVER_TYPES: Tuple[str, ...] = (
    "paper",
    "purpur",
    "folia",
    "spigot",
    "bukkit",
    "velocity",
    "waterfall",
    "bungeecord",
    "sponge",
)

# Every server-side category, used when no server type narrows a Modrinth search.
_MODRINTH_SERVER_CATEGORIES: Tuple[str, ...] = (
    "bukkit",
    "folia",
    "paper",
    "purpur",
    "spigot",
    "sponge",
    "velocity",
    "bungeecord",
)


@dataclass(slots=True, frozen=True)
class CandidatePass:
    """Entries matching one platform key, tagged with the key and its grade."""

    platform: Optional[str]
    exact: bool
    entries: Tuple[CatalogVersionEntry, ...]


def _normalize_platform(platform: Optional[str]) -> str:
    return (platform or "").strip().lower()


def rule_for(source: SourceKind, platform: Optional[str]) -> Optional[PlatformRule]:
    """Return the rule for ``platform`` or ``None`` when it imposes no constraint."""

    normalized = _normalize_platform(platform)
    if not normalized:
        return None
    return COMPATIBILITY_TABLES.get(source, {}).get(normalized)


def evaluate(
    source: SourceKind, platform: Optional[str], keys: Iterable[str]
) -> CompatibilityVerdict:
    """Grade a candidate declaring ``keys`` against ``platform``.

    Examples:
        >>> evaluate(SourceKind.MODRINTH, "paper", {"paper"})
        CompatibilityVerdict(usable=True, exact=True)
        >>> evaluate(SourceKind.MODRINTH, "paper", {"bukkit"})
        CompatibilityVerdict(usable=True, exact=False)
        >>> evaluate(SourceKind.MODRINTH, "paper", {"velocity"})
        CompatibilityVerdict(usable=False, exact=False)
    """

    rule = rule_for(source, platform)
    if rule is None:
        return EXACT
    present = {key.lower() for key in keys}
    if rule.exact and rule.exact.lower() in present:
        return EXACT
    if any(key.lower() in present for key in rule.fallbacks):
        return INEXACT
    return INCOMPATIBLE


def search_keys(source: SourceKind, platform: Optional[str], strict: bool) -> List[str]:
    """Return the platform keys a catalog search should filter on.

    Strict searches use only the exact key; relaxed searches add fallbacks.
    An unconstrained platform yields every server-side key the catalog knows.
    """

    rule = rule_for(source, platform)
    if rule is None:
        if source is SourceKind.MODRINTH:
            return list(_MODRINTH_SERVER_CATEGORIES)
        return []
    if strict:
        return [rule.exact] if rule.exact else []
    return list(rule.keys())


def resolve_passes(
    source: SourceKind,
    platform: Optional[str],
    entries: Sequence[CatalogVersionEntry],
) -> Iterator[CandidatePass]:
    """Yield the strict pass, then one pass per fallback key.

    Catalog order is preserved within each pass.  When ``platform`` imposes no
    constraint a single exact pass holding every entry is produced.
    """

    rule = rule_for(source, platform)
    if rule is None:
        yield CandidatePass(platform=None, exact=True, entries=tuple(entries))
        return

    if rule.exact:
        exact_key = rule.exact.lower()
        yield CandidatePass(
            platform=rule.exact,
            exact=True,
            entries=tuple(entry for entry in entries if exact_key in entry.platform_keys()),
        )
    for fallback in rule.fallbacks:
        key = fallback.lower()
        yield CandidatePass(
            platform=fallback,
            exact=False,
            entries=tuple(entry for entry in entries if key in entry.platform_keys()),
        )
