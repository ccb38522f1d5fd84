"""Compatibility table behaviour for Modrinth and Hangar platform keys."""

from __future__ import annotations

import pytest

from MCPluginKit.PluginDownload.compatibility import (
    COMPATIBILITY_TABLES,
    SERVER_TYPES,
    evaluate,
    resolve_passes,
    search_keys,
)
from MCPluginKit.PluginDownload.models import (
    EXACT,
    INCOMPATIBLE,
    INEXACT,
    CatalogVersionEntry,
    SourceKind,
)


@pytest.mark.parametrize(
    ("source", "platform", "keys", "expected"),
    [
        (SourceKind.MODRINTH, "paper", {"paper"}, EXACT),
        (SourceKind.MODRINTH, "paper", {"spigot"}, INEXACT),
        (SourceKind.MODRINTH, "paper", {"bukkit", "velocity"}, INEXACT),
        (SourceKind.MODRINTH, "paper", {"velocity"}, INCOMPATIBLE),
        (SourceKind.MODRINTH, "folia", {"paper"}, INEXACT),
        (SourceKind.MODRINTH, "waterfall", {"bungeecord"}, EXACT),
        (SourceKind.MODRINTH, "bukkit", {"paper"}, INCOMPATIBLE),
        (SourceKind.HANGAR, "paper", {"PAPER"}, EXACT),
        (SourceKind.HANGAR, "purpur", {"PAPER"}, INEXACT),
        (SourceKind.HANGAR, "velocity", {"PAPER"}, INCOMPATIBLE),
        (SourceKind.HANGAR, "sponge", {"PAPER", "VELOCITY"}, INCOMPATIBLE),
    ],
)
def test_evaluate_grades_candidates(source, platform, keys, expected):
    assert evaluate(source, platform, keys) == expected


@pytest.mark.parametrize("platform", [None, "", "minestom"])
def test_unconstrained_platform_accepts_everything(platform):
    assert evaluate(SourceKind.MODRINTH, platform, set()) == EXACT
    assert evaluate(SourceKind.HANGAR, platform, {"WHATEVER"}) == EXACT


def test_keys_compare_case_insensitively():
    assert evaluate(SourceKind.HANGAR, "Paper", {"paper"}) == EXACT
    assert evaluate(SourceKind.MODRINTH, "PAPER", {"Spigot"}) == INEXACT


def test_every_declared_key_is_usable_and_only_exact_key_is_exact():
    """Adding a fallback never turns a usable candidate incompatible."""

    for source, table in COMPATIBILITY_TABLES.items():
        for platform, rule in table.items():
            if rule.exact:
                assert evaluate(source, platform, {rule.exact}) == EXACT
            for fallback in rule.fallbacks:
                verdict = evaluate(source, platform, {fallback})
                assert verdict.usable
                assert verdict == (EXACT if fallback == rule.exact else INEXACT)
                assert evaluate(source, platform, {fallback, "unrelated"}).usable
            assert evaluate(source, platform, {"unrelated"}) == INCOMPATIBLE


def _entry(label, *platforms):
    return CatalogVersionEntry(label=label, supported_platforms={p: ("1.20.4",) for p in platforms})


def test_resolve_passes_yields_strict_then_fallbacks_in_catalog_order():
    entries = [_entry("3", "bukkit"), _entry("2", "paper"), _entry("1", "spigot", "paper")]

    passes = list(resolve_passes(SourceKind.MODRINTH, "paper", entries))

    assert [(p.platform, p.exact) for p in passes] == [
        ("paper", True),
        ("spigot", False),
        ("bukkit", False),
    ]
    assert [e.label for e in passes[0].entries] == ["2", "1"]
    assert [e.label for e in passes[1].entries] == ["1"]
    assert [e.label for e in passes[2].entries] == ["3"]


def test_resolve_passes_for_unsupported_platform_is_empty():
    assert list(resolve_passes(SourceKind.HANGAR, "sponge", [_entry("1", "PAPER")])) == []


def test_resolve_passes_without_platform_returns_everything():
    entries = [_entry("2", "velocity"), _entry("1", "paper")]
    (single,) = resolve_passes(SourceKind.MODRINTH, None, entries)
    assert single.exact and [e.label for e in single.entries] == ["2", "1"]


def test_search_keys_follow_the_table():
    assert search_keys(SourceKind.MODRINTH, "purpur", strict=True) == ["purpur"]
    assert search_keys(SourceKind.MODRINTH, "purpur", strict=False) == [
        "purpur",
        "paper",
        "spigot",
        "bukkit",
    ]
    assert search_keys(SourceKind.HANGAR, "folia", strict=False) == ["PAPER"]
    assert search_keys(SourceKind.HANGAR, "folia", strict=True) == []
    assert "velocity" in search_keys(SourceKind.MODRINTH, None, strict=True)


def test_every_server_type_has_a_rule_in_both_tables():
    for table in COMPATIBILITY_TABLES.values():
        assert set(table) == set(SERVER_TYPES)
    assert evaluate(SourceKind.HANGAR, "bungeecord", {"WATERFALL"}).usable
