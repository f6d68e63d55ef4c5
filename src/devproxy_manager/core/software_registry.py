"""Catalogue of proxy-capable software and their config locations."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Final, Iterable, Mapping

from devproxy_manager.core.backups import BackupStore
from devproxy_manager.core.codecs import get_codec
from devproxy_manager.core.errors import AppError, NotFoundError, PathResolutionError
from devproxy_manager.core.models import ConfigFormat, SoftwareEntry, normalize_format
from devproxy_manager.core.paths import expand_path_template

logger = logging.getLogger(__name__)

BUILTIN_SOFTWARE: Final[tuple[SoftwareEntry, ...]] = (
    SoftwareEntry("Git", "ini", "~/.gitconfig", dialect="git"),
    SoftwareEntry("npm", "ini", "~/.npmrc", dialect="npm"),
    SoftwareEntry("Cursor", "json", "%APPDATA%/Cursor/User/settings.json", dialect="vscode"),
    SoftwareEntry("VSCode", "json", "%APPDATA%/Code/User/settings.json", dialect="vscode"),
    SoftwareEntry(
        "IDEA",
        "xml",
        "%APPDATA%/JetBrains/IntelliJIdea*/options/proxy.settings.xml",
        dialect="idea",
    ),
    SoftwareEntry("Terminal", "env", "~/.proxy.env", dialect="shell"),
)

BUILTIN_NAMES: Final[frozenset[str]] = frozenset(entry.name for entry in BUILTIN_SOFTWARE)


@dataclass(frozen=True, slots=True)
class SoftwareStatus:
    name: str
    format: ConfigFormat
    installed: bool
    path: str | None
    is_custom: bool
    proxy: str | None = None
    has_backup: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "format": self.format,
            "installed": self.installed,
            "path": self.path,
            "is_custom": self.is_custom,
            "proxy": self.proxy,
            "has_backup": self.has_backup,
        }


class SoftwareRegistry:
    def __init__(
        self,
        custom: Iterable[tuple[str, str, str]] = (),
        *,
        env: Mapping[str, str] | None = None,
        system: str | None = None,
    ) -> None:
        self._env = env
        self._system = system
        self._entries: dict[str, SoftwareEntry] = {entry.name: entry for entry in BUILTIN_SOFTWARE}
        taken = {name.casefold() for name in self._entries}
        for name, fmt, path in custom:
            if name.casefold() in taken:
                logger.warning("Ignoring custom software %r: name is already registered", name)
                continue
            try:
                entry = SoftwareEntry(name, normalize_format(fmt), path, is_custom=True)
            except AppError:
                logger.warning("Ignoring custom software %r: unsupported format %r", name, fmt)
                continue
            self._entries[name] = entry
            taken.add(name.casefold())

    def entries(self) -> list[SoftwareEntry]:
        return list(self._entries.values())

    def names(self) -> list[str]:
        return list(self._entries)

    def get(self, name: str) -> SoftwareEntry:
        entry = self._entries.get(name)
        if entry is None:
            raise NotFoundError(f"Unknown software: {name}", user_message="Unknown software.")
        return entry

    def resolve_path(self, entry: SoftwareEntry) -> Path:
        return expand_path_template(entry.path_template, env=self._env, system=self._system)

    def status(self, entry: SoftwareEntry, backups: BackupStore | None = None) -> SoftwareStatus:
        """Describe one entry from what is on disk right now."""
        try:
            path = self.resolve_path(entry)
        except PathResolutionError as exc:
            logger.info("Config path for %s unresolved: %s", entry.name, exc)
            return SoftwareStatus(
                name=entry.name,
                format=entry.format,
                installed=False,
                path=None,
                is_custom=entry.is_custom,
                has_backup=backups.has_record(entry.name) if backups else False,
            )

        installed = path.exists()
        proxy: str | None = None
        if installed:
            try:
                codec = get_codec(entry.format, entry.dialect)
                proxy = codec.current_proxy(codec.read(path))
            except AppError as exc:
                logger.warning("Cannot read proxy state of %s from %s: %s", entry.name, path, exc)

        return SoftwareStatus(
            name=entry.name,
            format=entry.format,
            installed=installed,
            path=str(path),
            is_custom=entry.is_custom,
            proxy=proxy,
            has_backup=backups.has_record(entry.name) if backups else False,
        )

    def list_status(self, backups: BackupStore | None = None) -> list[SoftwareStatus]:
        return [self.status(entry, backups) for entry in self._entries.values()]
