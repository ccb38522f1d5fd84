"""Version selection over compatibility passes."""

from __future__ import annotations

import logging

import pytest

from MCPluginKit.PluginDownload.compatibility import CandidatePass, resolve_passes
from MCPluginKit.PluginDownload.errors import NoCompatibleVersion, VersionNotFound
from MCPluginKit.PluginDownload.models import CatalogVersionEntry, SourceKind
from MCPluginKit.PluginDownload.selection import select_version


def _entry(label, *platforms):
    return CatalogVersionEntry(label=label, supported_platforms={p: () for p in platforms})


def test_latest_takes_catalog_position_zero_without_sorting():
    entries = (_entry("V3"), _entry("V1"), _entry("V2"))
    selection = select_version([CandidatePass("paper", True, entries)], "latest")
    assert selection.entry.label == "V3"

    shuffled = (_entry("1.0.0"), _entry("9.9.9"), _entry("2.0.0"))
    selection = select_version([CandidatePass("paper", True, shuffled)], "")
    assert selection.entry.label == "1.0.0"


def test_latest_falls_back_to_first_non_empty_pass(caplog):
    entries = [_entry("2.0", "bukkit"), _entry("1.0", "spigot")]
    caplog.set_level(logging.WARNING)

    selection = select_version(
        resolve_passes(SourceKind.MODRINTH, "paper", entries),
        "latest",
        identifier="essentials",
        target_platform="paper",
    )

    assert selection.entry.label == "1.0"
    assert selection.platform == "spigot"
    assert selection.exact is False
    assert any(r.message == "using version published for a fallback platform" for r in caplog.records)


def test_pinned_label_prefers_exact_pass_then_fallbacks():
    entries = [_entry("5.0", "paper"), _entry("4.0", "bukkit")]

    exact = select_version(resolve_passes(SourceKind.MODRINTH, "paper", entries), "5.0")
    fallback = select_version(resolve_passes(SourceKind.MODRINTH, "paper", entries), "4.0")

    assert (exact.entry.label, exact.exact) == ("5.0", True)
    assert (fallback.entry.label, fallback.platform, fallback.exact) == ("4.0", "bukkit", False)


def test_missing_label_raises_version_not_found():
    entries = [_entry("5.0", "paper")]
    with pytest.raises(VersionNotFound) as excinfo:
        select_version(resolve_passes(SourceKind.MODRINTH, "paper", entries), "1.2.3", identifier="lp")
    assert excinfo.value.label == "1.2.3"


def test_all_passes_empty_raises_no_compatible_version():
    entries = [_entry("5.0", "velocity")]
    with pytest.raises(NoCompatibleVersion):
        select_version(resolve_passes(SourceKind.MODRINTH, "paper", entries), "latest")
    with pytest.raises(NoCompatibleVersion):
        select_version([], "5.0")


def test_disabling_fallback_rejects_inexact_candidates():
    entries = [_entry("4.0", "bukkit")]
    with pytest.raises(NoCompatibleVersion):
        select_version(
            resolve_passes(SourceKind.MODRINTH, "paper", entries),
            "latest",
            allow_fallback=False,
        )
