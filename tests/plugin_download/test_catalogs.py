"""Modrinth and Hangar clients against mocked HTTP transports."""

from __future__ import annotations

import json

import httpx
import pytest

from MCPluginKit.PluginDownload.catalogs import (
    HangarClient,
    ModrinthClient,
    get_catalog_client,
    split_identifier,
)
from MCPluginKit.PluginDownload.errors import CatalogError, DownloadFailure, UserConfigError
from MCPluginKit.PluginDownload.models import SourceKind


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


MODRINTH_VERSIONS = [
    {
        "version_number": "5.4.102",
        "loaders": ["Bukkit", "Paper"],
        "game_versions": ["1.20.4"],
        "files": [
            {
                "url": "https://cdn.modrinth.com/data/lp/LuckPerms-Bukkit-5.4.102.jar",
                "filename": "LuckPerms-Bukkit-5.4.102.jar",
                "hashes": {"sha512": "AB" * 64, "sha1": "cd" * 20},
                "size": 10,
                "primary": True,
            },
            {"url": None, "filename": "broken.jar"},
        ],
    },
    {"version_number": "5.4.101", "loaders": ["velocity"], "game_versions": ["1.20.4"], "files": []},
]


def test_modrinth_versions_request_and_parsing(http_settings):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=MODRINTH_VERSIONS)

    client = ModrinthClient(http_settings, client=_client(handler))

    entries = client.get_versions("luckperms", "1.20.4")

    assert seen[0].url.path == "/v2/project/luckperms/version"
    assert json.loads(seen[0].url.params["game_versions"]) == ["1.20.4"]
    assert [entry.label for entry in entries] == ["5.4.102", "5.4.101"]
    first = entries[0]
    assert first.platform_keys() == frozenset({"bukkit", "paper"})
    assert len(first.files) == 1
    assert first.primary_file("paper").digest("sha512") == "ab" * 64
    assert entries[1].primary_file() is None


def test_modrinth_search_uses_relaxed_facets(http_settings):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "hits": [
                    {
                        "project_id": "Vebnzrzj",
                        "slug": "luckperms",
                        "title": "LuckPerms",
                        "categories": ["utility", "paper"],
                    }
                ]
            },
        )

    client = ModrinthClient(http_settings, client=_client(handler))

    projects = client.search("luckperms", "spigot")

    assert seen[0].url.params["facets"] == '[["categories:spigot", "categories:bukkit"]]'
    assert seen[0].url.params["limit"] == "2"
    assert projects[0].stable_id == "Vebnzrzj"
    assert projects[0].display_name == "LuckPerms"
    assert "paper" in projects[0].categories


def test_modrinth_strict_facets():
    assert ModrinthClient.build_facets("purpur", strict=True) == '[["categories:purpur"]]'


def test_modrinth_not_found_is_an_error_not_an_empty_list(http_settings):
    client = ModrinthClient(
        http_settings, client=_client(lambda request: httpx.Response(404, text="not found"))
    )
    with pytest.raises(CatalogError) as excinfo:
        client.get_versions("missing")
    assert excinfo.value.status_code == 404


def test_transient_status_is_retried(http_settings):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503, text="busy")
        return httpx.Response(200, json=[])

    client = ModrinthClient(http_settings, client=_client(handler))

    assert client.get_versions("luckperms") == []
    assert len(calls) == 2


def test_exhausted_retries_raise_catalog_error(http_settings):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, text="busy")

    client = ModrinthClient(http_settings, client=_client(handler))
    with pytest.raises(CatalogError) as excinfo:
        client.get_project("luckperms")
    assert excinfo.value.status_code == 503
    assert len(calls) == http_settings.max_attempts


def test_transport_errors_become_download_failures(http_settings):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = ModrinthClient(http_settings, client=_client(handler))
    with pytest.raises(DownloadFailure):
        client.get_versions("luckperms")


def test_invalid_json_is_a_catalog_error(http_settings):
    client = ModrinthClient(
        http_settings, client=_client(lambda request: httpx.Response(200, text="<html>"))
    )
    with pytest.raises(CatalogError):
        client.get_versions("luckperms")


def _hangar_version(name, platforms, *, file_name=None, external=None, digest="EF" * 32):
    downloads = {}
    for platform in platforms:
        info = {"sha256Hash": digest, "sizeBytes": 4}
        if file_name:
            info["name"] = file_name
        downloads[platform] = {
            "fileInfo": info,
            "downloadUrl": None if external else f"https://hangarcdn.example/{name}/{platform}",
            "externalUrl": external,
        }
    return {
        "name": name,
        "platformDependencies": {platform: ["1.20.4"] for platform in platforms},
        "downloads": downloads,
    }


def test_hangar_walks_pages_and_filters_game_version(http_settings):
    pages = {
        0: [
            _hangar_version("2.0", ["PAPER", "VELOCITY"], file_name="Chunky-2.0.jar"),
            {"name": "1.9", "platformDependencies": {"PAPER": ["1.19.4"]}, "downloads": {}},
        ],
        2: [_hangar_version("1.8", ["PAPER"], external="https://github.example/Chunky-1.8.jar")],
    }
    seen = []

    def handler(request):
        seen.append(request)
        offset = int(request.url.params["offset"])
        return httpx.Response(
            200, json={"pagination": {"count": 3, "offset": offset}, "result": pages[offset]}
        )

    client = HangarClient(http_settings, client=_client(handler))

    entries = client.get_versions("pop4959/Chunky", "1.20.4")

    assert [request.url.params["offset"] for request in seen] == ["0", "2"]
    assert seen[0].url.path == "/api/v1/projects/pop4959/Chunky/versions"
    assert [entry.label for entry in entries] == ["2.0", "1.8"]
    paper = entries[0].primary_file("PAPER")
    assert (paper.platform, paper.filename, paper.digest("sha256")) == (
        "PAPER",
        "Chunky-2.0.jar",
        "ef" * 32,
    )
    assert entries[0].primary_file("VELOCITY").url.endswith("/VELOCITY")
    external = entries[1].primary_file("PAPER")
    assert external.url == "https://github.example/Chunky-1.8.jar"
    assert external.filename == "Chunky-1.8.jar"


def test_hangar_filename_falls_back_to_plugin_name(http_settings):
    payload = {"pagination": {"count": 1}, "result": [_hangar_version("3.1", ["PAPER"])]}
    client = HangarClient(
        http_settings, client=_client(lambda request: httpx.Response(200, json=payload))
    )
    (entry,) = client.get_versions("owner/Thing")
    assert entry.primary_file("PAPER").filename == "plugin-3.1.jar"


def test_hangar_search_passes_platform(http_settings):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "result": [
                    {
                        "name": "Chunky",
                        "namespace": {"owner": "pop4959", "slug": "Chunky"},
                        "supportedPlatforms": {"PAPER": ["1.20.4"], "VELOCITY": []},
                    }
                ]
            },
        )

    client = HangarClient(http_settings, client=_client(handler))

    (project,) = client.search("chunky", "purpur")

    assert seen[0].url.params["platform"] == "PAPER"
    assert project.stable_id == "pop4959/Chunky"
    assert project.categories == frozenset({"paper"})


@pytest.mark.parametrize("identifier", ["chunky", "a/b/c", "", "/slug"])
def test_hangar_rejects_bad_identifiers(identifier):
    with pytest.raises(UserConfigError):
        split_identifier(identifier)


def test_open_download_streams_body(http_settings):
    def handler(request):
        if request.url.path.endswith("missing.jar"):
            return httpx.Response(404, text="gone")
        return httpx.Response(200, content=b"0123456789", headers={"Content-Length": "10"})

    client = get_catalog_client(
        SourceKind.MODRINTH, http_settings, client=_client(handler), chunk_size=4
    )

    with client.open_download("https://cdn.example/a.jar") as stream:
        assert stream.content_length == 10
        assert b"".join(stream.iter_bytes()) == b"0123456789"

    with pytest.raises(CatalogError) as excinfo:
        with client.open_download("https://cdn.example/missing.jar"):
            pass
    assert excinfo.value.status_code == 404
