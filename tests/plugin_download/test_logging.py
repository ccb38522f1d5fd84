from __future__ import annotations

import gzip
import json
import logging
import os
import sys
import time
from datetime import datetime, timedelta, timezone

import pytest

from MCPluginKit.PluginDownload.logging_utils import (
    LOGGER_NAME,
    ConsoleFormatter,
    JSONFormatter,
    mask_sensitive_data,
    prune_logs,
    setup_logging,
)


def test_setup_logging_writes_json_lines(tmp_path):
    logger = setup_logging(level="DEBUG", log_dir=tmp_path, console=False)
    try:
        logging.getLogger(f"{LOGGER_NAME}.fetch").info(
            "artifact downloaded", extra={"stage": "fetch", "token": "abc", "bytes": 4}
        )
        for handler in logger.handlers:
            handler.flush()

        (log_file,) = tmp_path.glob("mcpluginkit-*.jsonl")
        record = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    assert record["message"] == "artifact downloaded"
    assert record["stage"] == "fetch"
    assert record["bytes"] == 4
    assert record["token"] == "***masked***"
    assert record["level"] == "INFO"


def test_repeated_setup_does_not_duplicate_handlers(tmp_path):
    setup_logging(log_dir=tmp_path, console=True)
    logger = setup_logging(log_dir=tmp_path, console=True)
    try:
        assert len(logger.handlers) == 2
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()


def _log_file(path, mtime, content="{}\n"):
    path.write_text(content, encoding="utf-8")
    os.utime(path, (mtime, mtime))
    return path


def _aged(path, days):
    return _log_file(path, time.time() - days * 86400)


def test_prune_logs_compresses_closed_logs_and_drops_expired(tmp_path):
    now = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)
    day = 86400
    active = _log_file(tmp_path / "mcpluginkit-20240510.jsonl", now.timestamp())
    _log_file(tmp_path / "mcpluginkit-20240509.jsonl", now.timestamp() - day, '{"message": "old"}\n')
    expired = _log_file(tmp_path / "mcpluginkit-20200101.jsonl", now.timestamp() - 90 * day)
    unrelated = _log_file(tmp_path / "other.jsonl", now.timestamp() - 90 * day)

    report = prune_logs(tmp_path, 30, now=now)

    archive = tmp_path / "mcpluginkit-20240509.jsonl.gz"
    assert report.compressed == [archive]
    assert report.deleted == [expired]
    assert gzip.decompress(archive.read_bytes()) == b'{"message": "old"}\n'
    assert archive.stat().st_mtime == pytest.approx(now.timestamp() - day, abs=1)
    assert active.exists() and unrelated.exists()

    later = prune_logs(tmp_path, 30, now=now + timedelta(days=40))
    assert later.deleted == [archive, active]


def test_setup_logging_applies_retention(tmp_path):
    stale = _aged(tmp_path / "mcpluginkit-20200101.jsonl", 90)

    logger = setup_logging(log_dir=tmp_path, retention_days=30, console=False)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    assert not stale.exists()
    assert not (tmp_path / "mcpluginkit-20200101.jsonl.gz").exists()


def test_console_formatter_appends_plugin_context():
    record = logging.makeLogRecord(
        {
            "levelname": "WARNING",
            "msg": "using version published for a fallback platform",
            "identifier": "luckperms",
            "platform": "bukkit",
            "stage": "select",
        }
    )
    assert ConsoleFormatter().format(record) == (
        "WARNING: using version published for a fallback platform "
        "(identifier=luckperms, platform=bukkit)"
    )


def test_formatter_includes_exception():
    try:
        raise ValueError("bad digest")
    except ValueError:
        record = logging.getLogger("x").makeRecord(
            "x", logging.ERROR, __file__, 1, "failed", None, exc_info=sys.exc_info()
        )
    payload = json.loads(JSONFormatter().format(record))
    assert "ValueError: bad digest" in payload["exc_info"]


def test_mask_sensitive_data_is_case_insensitive():
    assert mask_sensitive_data({"Authorization": "Bearer x", "url": "u"}) == {
        "Authorization": "***masked***",
        "url": "u",
    }
