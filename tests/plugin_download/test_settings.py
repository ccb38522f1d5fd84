"""Settings loading and precedence."""

from __future__ import annotations

from pathlib import Path

import pytest

from MCPluginKit.PluginDownload.errors import ConfigError
from MCPluginKit.PluginDownload.settings import PluginKitSettings, load_settings


def test_defaults():
    settings = load_settings(environ={})
    assert settings.download.concurrency == 5
    assert settings.download.plugins_dir == Path("plugins")
    assert settings.paths.manifest == Path("package.yml")
    assert settings.http.modrinth_base_url.startswith("https://api.modrinth.com")


def test_file_env_cli_precedence(tmp_path):
    config = tmp_path / "mcpk.yaml"
    config.write_text(
        "download:\n  concurrency: 2\n  chunk_size_bytes: 1024\nhttp:\n  max_attempts: 7\n",
        encoding="utf-8",
    )
    environ = {
        "MCPK_DOWNLOAD__CONCURRENCY": "3",
        "MCPK_HTTP__RETRY_STATUSES": "[503]",
        "MCPK_LOG_DIR": "/ignored/without/double/underscore",
        "OTHER__VALUE": "1",
    }

    settings = load_settings(
        config,
        environ=environ,
        cli_overrides={"download": {"concurrency": 9, "force": None}},
    )

    assert settings.download.concurrency == 9
    assert settings.download.chunk_size_bytes == 1024
    assert settings.download.force is False
    assert settings.http.max_attempts == 7
    assert settings.http.retry_statuses == [503]
    assert load_settings(config, environ=environ).download.concurrency == 3


def test_env_booleans_are_coerced():
    settings = load_settings(environ={"MCPK_DOWNLOAD__ALLOW_PLATFORM_FALLBACK": "False"})
    assert settings.download.allow_platform_fallback is False


def test_json_config_file(tmp_path):
    config = tmp_path / "mcpk.json"
    config.write_text('{"logging": {"level": "debug"}}', encoding="utf-8")
    assert load_settings(config, environ={}).logging.level == "DEBUG"


@pytest.mark.parametrize(
    ("filename", "content"),
    [
        ("bad.yaml", "download: [\n"),
        ("bad.toml", "x = 1\n"),
        ("list.yaml", "- 1\n"),
        ("unknown.yaml", "download:\n  turbo: true\n"),
        ("range.yaml", "download:\n  concurrency: 0\n"),
    ],
)
def test_invalid_files_raise_config_error(tmp_path, filename, content):
    config = tmp_path / filename
    config.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(config, environ={})


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_settings(tmp_path / "absent.yaml", environ={})


def test_config_hash_is_stable_and_sensitive():
    first = PluginKitSettings()
    assert first.config_hash() == PluginKitSettings().config_hash()
    changed = load_settings(environ={"MCPK_DOWNLOAD__CONCURRENCY": "6"})
    assert changed.config_hash() != first.config_hash()
