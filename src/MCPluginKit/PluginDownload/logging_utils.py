"""Structured logging helpers shared across plugin download components."""

from __future__ import annotations

import gzip
import json
import logging
import os
import shutil
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .settings import LOG_DIR

__all__ = [
    "LOGGER_NAME",
    "ConsoleFormatter",
    "CorrelatedLogger",
    "JSONFormatter",
    "LogPruneReport",
    "generate_correlation_id",
    "mask_sensitive_data",
    "prune_logs",
    "setup_logging",
]

LOGGER_NAME = "MCPluginKit.PluginDownload"

_SENSITIVE_KEYS = {"authorization", "api_key", "apikey", "token", "secret", "password"}
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with credential-like fields masked.

    Examples:
        >>> mask_sensitive_data({"token": "secret", "status": "ok"})
        {'token': '***masked***', 'status': 'ok'}
    """

    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if key.lower() in _SENSITIVE_KEYS:
            masked[key] = "***masked***"
        else:
            masked[key] = value
    return masked


def generate_correlation_id() -> str:
    """Return a twelve character identifier linking the log lines of one run."""

    return uuid.uuid4().hex[:12]


class CorrelatedLogger(logging.LoggerAdapter):
    """Adapter adding its context fields to each call's ``extra`` mapping."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries for plugin downloads."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a JSON string including structured extras."""

        now = datetime.now(timezone.utc)
        payload: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload), default=str)


_LOG_PREFIX = "mcpluginkit-"
_CONSOLE_FIELDS = ("identifier", "version", "platform", "error")


class ConsoleFormatter(logging.Formatter):
    """One-line console format that appends the plugin context of a record."""

    def __init__(self) -> None:
        super().__init__("%(levelname)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = [
            f"{name}={getattr(record, name)}"
            for name in _CONSOLE_FIELDS
            if getattr(record, name, None) not in (None, "")
        ]
        return f"{line} ({', '.join(context)})" if context else line


@dataclass
class LogPruneReport:
    """Files touched by :func:`prune_logs`."""

    compressed: List[Path] = field(default_factory=list)
    deleted: List[Path] = field(default_factory=list)


def _active_log_name(today: datetime) -> str:
    return f"{_LOG_PREFIX}{today.strftime('%Y%m%d')}.jsonl"


def _gzip_keeping_mtime(path: Path) -> Path:
    archive = path.with_name(path.name + ".gz")
    stat = path.stat()
    with path.open("rb") as source, gzip.open(archive, "wb") as target:
        shutil.copyfileobj(source, target)
    os.utime(archive, (stat.st_atime, stat.st_mtime))
    path.unlink()
    return archive


def prune_logs(
    log_dir: Path, retention_days: int, *, now: Optional[datetime] = None
) -> LogPruneReport:
    """Apply the retention policy to ``mcpluginkit-*`` logs in ``log_dir``.

    Logs older than ``retention_days`` are deleted, archived or not. Closed
    logs inside the window (earlier days and rotated backups) are gzipped with
    their modification time kept, so age still counts from the last write.
    Today's active file is never touched.
    """

    report = LogPruneReport()
    now = now or datetime.now(timezone.utc)
    cutoff = (now - timedelta(days=max(retention_days, 0))).timestamp()
    active = _active_log_name(now)
    for path in sorted(log_dir.glob(f"{_LOG_PREFIX}*.jsonl*")):
        if path.name == active or not path.is_file():
            continue
        if path.stat().st_mtime < cutoff:
            path.unlink(missing_ok=True)
            report.deleted.append(path)
        elif not path.name.endswith(".gz"):
            report.compressed.append(_gzip_keeping_mtime(path))
    return report


def setup_logging(
    *,
    level: str = "INFO",
    retention_days: int = 30,
    max_log_size_mb: int = 20,
    log_dir: Optional[Path] = None,
    console: bool = True,
    propagate: bool = False,
) -> logging.Logger:
    """Configure plugin downloader logging with rotation and JSON sidecars.

    The log directory is taken from ``log_dir``, then ``MCPK_LOG_DIR``, then
    the per-user log directory. Handlers installed by earlier calls are
    replaced so repeated CLI invocations in one process do not duplicate output.
    """

    if log_dir is not None:
        resolved_dir = log_dir
    else:
        env_value = os.environ.get("MCPK_LOG_DIR", "").strip()
        resolved_dir = Path(env_value) if env_value else LOG_DIR
    resolved_dir.mkdir(parents=True, exist_ok=True)
    pruned = prune_logs(resolved_dir, retention_days)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_mcpk_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.StreamHandler):
                stream = getattr(handler, "stream", None)
                if stream in (sys.stdout, sys.stderr):
                    continue
            handler.close()

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(ConsoleFormatter())
        stream_handler.setLevel(logging.WARNING)
        stream_handler._mcpk_managed = True  # type: ignore[attr-defined]
        logger.addHandler(stream_handler)

    file_handler = RotatingFileHandler(
        resolved_dir / _active_log_name(datetime.now(timezone.utc)),
        maxBytes=int(max_log_size_mb * 1024 * 1024),
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(JSONFormatter())
    file_handler._mcpk_managed = True  # type: ignore[attr-defined]
    logger.addHandler(file_handler)

    logger.propagate = propagate
    if pruned.compressed or pruned.deleted:
        logger.debug(
            "log retention applied",
            extra={
                "stage": "logging",
                "compressed": len(pruned.compressed),
                "deleted": len(pruned.deleted),
            },
        )
    return logger
