"""Storage paths, JSON helpers and atomic file writes."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
import tempfile
from typing import Any

from platformdirs import user_config_path, user_data_path, user_state_path

APP_NAME = "devproxy-manager"

logger = logging.getLogger(__name__)


def get_config_dir() -> Path:
    return Path(user_config_path(APP_NAME))


def get_data_dir() -> Path:
    return Path(user_data_path(APP_NAME))


def get_state_dir() -> Path:
    return Path(user_state_path(APP_NAME))


def get_logs_dir() -> Path:
    return get_state_dir() / "logs"


def get_backups_dir() -> Path:
    return get_data_dir() / "backups"


def atomic_write_bytes(path: Path, data: bytes, *, mode: int | None = None) -> None:
    """Write ``data`` to ``path`` through a temp file in the same directory.

    The temp file is fsynced and renamed over the target, so readers only
    ever see the old or the new content. Without an explicit ``mode`` the
    permission bits of an existing target are carried over. A symlinked
    target is written through, so the link itself stays in place.
    """
    path = Path(os.path.realpath(path))
    path.parent.mkdir(parents=True, exist_ok=True)
    if mode is None and path.exists():
        mode = path.stat().st_mode & 0o777

    fd, tmp_path_str = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )
    tmp_path = Path(tmp_path_str)
    try:
        if mode is not None and os.name == "posix":
            os.fchmod(fd, mode)
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
        if mode is not None and os.name == "posix":
            os.chmod(path, mode)
    except Exception:
        try:
            if tmp_path.exists():
                tmp_path.unlink()
        except OSError:
            logger.exception("Failed to remove temporary file: %s", tmp_path)
        raise


def atomic_write_json(path: Path, data: Any, *, mode: int | None = None) -> None:
    payload = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    atomic_write_bytes(path, payload.encode("utf-8"), mode=mode)
