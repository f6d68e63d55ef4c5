"""Apply, remove and reset proxy directives across tool config files.

Every batch returns exactly one result per requested software, in order.
A failure for one software never stops the rest of the batch.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Callable, Final, Iterable, Mapping

from devproxy_manager.core.backups import BackupStore
from devproxy_manager.core.codecs import get_codec
from devproxy_manager.core.errors import AppError, NotFoundError, PathResolutionError
from devproxy_manager.core.logging_setup import redact
from devproxy_manager.core.models import ProxyEndpoint, SoftwareEntry
from devproxy_manager.core.software_registry import SoftwareRegistry
from devproxy_manager.core.storage import atomic_write_bytes

logger = logging.getLogger(__name__)

OK_MARK: Final[str] = "✓"
FAIL_MARK: Final[str] = "✗"


@dataclass(frozen=True, slots=True)
class PatchResult:
    software: str
    ok: bool
    message: str

    @property
    def line(self) -> str:
        mark = OK_MARK if self.ok else FAIL_MARK
        return f"{mark} {self.software}: {self.message}"


def _failure_message(exc: Exception) -> str:
    if isinstance(exc, PathResolutionError):
        return f"path not found ({exc.user_message})"
    if isinstance(exc, AppError):
        return exc.user_message
    if isinstance(exc, OSError):
        return f"I/O error: {exc.strerror or exc}"
    return f"unexpected error: {exc}"


class ConfigPatchEngine:
    def __init__(self, registry: SoftwareRegistry, backups: BackupStore) -> None:
        self.registry = registry
        self.backups = backups

    def apply(
        self,
        names: Iterable[str],
        endpoint_by_software: Mapping[str, ProxyEndpoint | None],
    ) -> list[PatchResult]:
        return self._batch(
            "apply",
            names,
            lambda entry: self._apply_one(entry, endpoint_by_software.get(entry.name)),
        )

    def remove(self, names: Iterable[str]) -> list[PatchResult]:
        return self._batch("remove", names, self._remove_one)

    def reset(self, names: Iterable[str]) -> list[PatchResult]:
        return self._batch("reset", names, self._reset_one)

    def _batch(
        self,
        action: str,
        names: Iterable[str],
        handler: Callable[[SoftwareEntry], str],
    ) -> list[PatchResult]:
        results: list[PatchResult] = []
        for name in names:
            try:
                entry = self.registry.get(name)
                message = handler(entry)
                result = PatchResult(software=name, ok=True, message=message)
            except Exception as exc:
                logger.exception("%s failed for %s", action, name)
                result = PatchResult(software=name, ok=False, message=_failure_message(exc))
            else:
                logger.info("%s %s: %s", action, name, redact(message))
            results.append(result)
        return results

    def _path(self, entry: SoftwareEntry) -> Path:
        return self.registry.resolve_path(entry)

    def _apply_one(self, entry: SoftwareEntry, endpoint: ProxyEndpoint | None) -> str:
        path = self._path(entry)
        if endpoint is None:
            raise NotFoundError(
                f"No endpoint for {entry.name}",
                user_message="no proxy profile assigned",
            )

        notes: list[str] = []
        if self.backups.ensure_backup(entry.name, path) == "absent":
            notes.append("no original to back up")

        codec = get_codec(entry.format, entry.dialect)
        doc = codec.set_proxy(codec.read(path), endpoint)
        atomic_write_bytes(path, codec.serialize(doc))

        message = f"proxy set to {endpoint.url}"
        if notes:
            message = f"{message} ({'; '.join(notes)})"
        return message

    def _remove_one(self, entry: SoftwareEntry) -> str:
        path = self._path(entry)
        codec = get_codec(entry.format, entry.dialect)
        doc = codec.read(path)
        if not doc.exists:
            return "nothing to remove (config file does not exist)"
        cleared = codec.clear_proxy(doc)
        if cleared is doc or codec.is_unchanged(cleared):
            return "nothing to remove"
        atomic_write_bytes(path, codec.serialize(cleared))
        return "proxy removed"

    def _reset_one(self, entry: SoftwareEntry) -> str:
        path = self._path(entry)
        outcome = self.backups.restore(entry.name, path)
        if outcome == "restored":
            return "restored original config"
        if outcome == "deleted":
            return "removed config file (it did not exist originally)"
        return "nothing to reset (no backup)"
