"""Logging configuration and redaction helpers."""

from __future__ import annotations

import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path
from urllib.parse import urlsplit

from devproxy_manager.core.storage import get_logs_dir

LOG_FILE_NAME = "app.log"
MAX_LOG_BYTES = 2 * 1024 * 1024
BACKUP_COUNT = 5


def _has_file_handler(root: logging.Logger, log_path: Path) -> bool:
    return any(
        isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename) == log_path
        for handler in root.handlers
    )


def setup_logging(
    logs_dir: Path | None = None,
    *,
    level: int = logging.INFO,
    console: bool = True,
) -> Path:
    """Attach the rotating app log (and optionally stderr) to the root logger once."""
    logs_dir = logs_dir or get_logs_dir()
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = (logs_dir / LOG_FILE_NAME).absolute()

    root = logging.getLogger()
    if _has_file_handler(root, log_path):
        return log_path

    root.setLevel(level)

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_handler = RotatingFileHandler(
        log_path, maxBytes=MAX_LOG_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    root.addHandler(file_handler)
    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    return log_path


_URL_PATTERN = re.compile(r"\b[\w+.-]+://[^\s\"'<>]+")


def _redact_url(match: re.Match[str]) -> str:
    raw = match.group(0)
    try:
        parsed = urlsplit(raw)
        port = parsed.port
    except ValueError:
        return "<redacted>"
    if not parsed.scheme or not parsed.hostname:
        return "<redacted>"
    if "@" not in parsed.netloc:
        return raw
    host = parsed.hostname
    port_text = f":{port}" if port else ""
    return f"{parsed.scheme}://<redacted>@{host}{port_text}{parsed.path}"


def redact(text: str) -> str:
    """Hide credentials embedded in proxy URLs."""
    if not text:
        return text
    return _URL_PATTERN.sub(_redact_url, text)
