"""One-time backups of tool config files.

Each software gets at most one backup record, taken right before its config
file is patched for the first time:

- ``<key>.original.backup`` holds the file bytes verbatim, or
- ``<key>.original.absent`` marks that there was no file to copy.

Records are never overwritten or deleted, so a reset always returns to the
state before the first patch.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
import re
from typing import Final, Literal

from devproxy_manager.core.errors import ConfigIOError
from devproxy_manager.core.storage import atomic_write_bytes, get_backups_dir

logger = logging.getLogger(__name__)

BACKUP_SUFFIX: Final[str] = ".original.backup"
ABSENT_SUFFIX: Final[str] = ".original.absent"

BackupOutcome = Literal["created", "exists", "absent"]
RestoreOutcome = Literal["restored", "deleted", "missing"]

_SAFE_NAME_RE: Final = re.compile(r"^[A-Za-z0-9._-]+$")
_UNSAFE_CHARS_RE: Final = re.compile(r"[^A-Za-z0-9._-]+")


def backup_key(software_name: str) -> str:
    """Derive a file-name-safe, collision-free key from a software name."""
    name = software_name.strip()
    if _SAFE_NAME_RE.match(name) and name not in {".", ".."}:
        return name
    slug = _UNSAFE_CHARS_RE.sub("_", name).strip("._") or "software"
    digest = hashlib.sha1(name.encode("utf-8")).hexdigest()[:8]
    return f"{slug}-{digest}"


def _io_error(action: str, path: Path, exc: OSError) -> ConfigIOError:
    return ConfigIOError(
        f"Failed to {action} {path}: {exc}",
        user_message=f"Failed to {action} {path.name} ({exc.strerror or exc}).",
    )


class BackupStore:
    def __init__(self, directory: Path | None = None) -> None:
        self.directory = directory or get_backups_dir()

    def backup_path(self, software_name: str) -> Path:
        return self.directory / f"{backup_key(software_name)}{BACKUP_SUFFIX}"

    def absent_marker_path(self, software_name: str) -> Path:
        return self.directory / f"{backup_key(software_name)}{ABSENT_SUFFIX}"

    def has_record(self, software_name: str) -> bool:
        return self.backup_path(software_name).exists() or self.absent_marker_path(software_name).exists()

    def ensure_backup(self, software_name: str, target: Path) -> BackupOutcome:
        if self.has_record(software_name):
            return "exists"

        try:
            data = target.read_bytes()
        except FileNotFoundError:
            data = None
        except OSError as exc:
            raise _io_error("read", target, exc) from exc

        try:
            if data is None:
                marker = self.absent_marker_path(software_name)
                atomic_write_bytes(marker, f"{target}\n".encode("utf-8"))
                logger.info("Recorded absent original for %s: %s", software_name, target)
                return "absent"
            backup = self.backup_path(software_name)
            atomic_write_bytes(backup, data, mode=0o600)
            logger.info("Backed up %s (%d bytes) to %s", target, len(data), backup)
            return "created"
        except OSError as exc:
            raise _io_error("write backup for", target, exc) from exc

    def restore(self, software_name: str, target: Path) -> RestoreOutcome:
        backup = self.backup_path(software_name)
        if backup.exists():
            try:
                data = backup.read_bytes()
            except OSError as exc:
                raise _io_error("read", backup, exc) from exc
            try:
                atomic_write_bytes(target, data)
            except OSError as exc:
                raise _io_error("restore", target, exc) from exc
            logger.info("Restored %s from %s", target, backup)
            return "restored"

        if self.absent_marker_path(software_name).exists():
            try:
                target.unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                raise _io_error("delete", target, exc) from exc
            logger.info("Removed %s; it did not exist before the first patch", target)
            return "deleted"

        return "missing"
