"""User config document: proxy profiles, software mappings and custom software."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import json
import logging
import os
from pathlib import Path
from typing import Any, Collection

from devproxy_manager.core.errors import ConfigIOError, NotFoundError, ValidationError
from devproxy_manager.core.models import (
    ConfigFormat,
    ProxyEndpoint,
    normalize_format,
    validate_port,
)
from devproxy_manager.core.storage import atomic_write_json, get_config_dir

logger = logging.getLogger(__name__)

USER_CONFIG_FILE = "user_config.json"
_KNOWN_KEYS = {"profiles", "mappings", "custom_software"}


@dataclass(frozen=True, slots=True)
class ProxyProfile:
    name: str
    host: str
    port: int

    @classmethod
    def create(cls, *, name: str, host: str, port: object) -> "ProxyProfile":
        cleaned_name = (name or "").strip()
        cleaned_host = (host or "").strip()
        if not cleaned_name:
            raise ValidationError("Empty profile name", user_message="Profile name is required.")
        if not cleaned_host:
            raise ValidationError("Empty profile host", user_message="Proxy host is required.")
        return cls(name=cleaned_name, host=cleaned_host, port=validate_port(port))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProxyProfile" | None:
        try:
            return cls.create(
                name=str(data.get("name", "")),
                host=str(data.get("host", "")),
                port=data.get("port"),
            )
        except ValidationError:
            return None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "host": self.host, "port": self.port}

    @property
    def endpoint(self) -> ProxyEndpoint:
        return ProxyEndpoint(host=self.host, port=self.port)


@dataclass(frozen=True, slots=True)
class SoftwareProxyMapping:
    software_name: str
    profile_name: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SoftwareProxyMapping" | None:
        software = str(data.get("software_name", "")).strip()
        profile = str(data.get("profile_name", "")).strip()
        if not software or not profile:
            return None
        return cls(software_name=software, profile_name=profile)

    def to_dict(self) -> dict[str, Any]:
        return {"software_name": self.software_name, "profile_name": self.profile_name}


@dataclass(frozen=True, slots=True)
class CustomSoftware:
    name: str
    format: ConfigFormat
    path: str

    @classmethod
    def create(cls, *, name: str, format: str, path: str) -> "CustomSoftware":
        cleaned_name = (name or "").strip()
        cleaned_path = (path or "").strip()
        if not cleaned_name:
            raise ValidationError("Empty software name", user_message="Software name is required.")
        if not cleaned_path:
            raise ValidationError("Empty config path", user_message="Config file path is required.")
        return cls(name=cleaned_name, format=normalize_format(format), path=cleaned_path)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CustomSoftware" | None:
        try:
            return cls.create(
                name=str(data.get("name", "")),
                format=str(data.get("config_type", data.get("format", ""))),
                path=str(data.get("config_path", data.get("path", ""))),
            )
        except ValidationError:
            return None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "config_type": self.format, "config_path": self.path}


def _default_profiles() -> tuple[ProxyProfile, ...]:
    return (
        ProxyProfile("Clash", "127.0.0.1", 7890),
        ProxyProfile("V2Ray", "127.0.0.1", 10808),
        ProxyProfile("Veee", "127.0.0.1", 15236),
    )


@dataclass(frozen=True, slots=True)
class UserConfig:
    profiles: tuple[ProxyProfile, ...] = field(default_factory=_default_profiles)
    mappings: tuple[SoftwareProxyMapping, ...] = ()
    custom_software: tuple[CustomSoftware, ...] = ()
    extra: dict[str, Any] = field(default_factory=dict, hash=False)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "UserConfig":
        """Parse a stored document, skipping invalid records and dangling mappings."""
        profiles: list[ProxyProfile] = []
        seen_profiles: set[str] = set()
        for item in payload.get("profiles") or []:
            if not isinstance(item, dict):
                continue
            profile = ProxyProfile.from_dict(item)
            if profile is None or profile.name in seen_profiles:
                logger.warning("Skipping invalid profile record: %r", item)
                continue
            seen_profiles.add(profile.name)
            profiles.append(profile)
        if "profiles" not in payload:
            profiles = list(_default_profiles())
            seen_profiles = {profile.name for profile in profiles}

        mappings: dict[str, SoftwareProxyMapping] = {}
        for item in payload.get("mappings") or []:
            if not isinstance(item, dict):
                continue
            mapping = SoftwareProxyMapping.from_dict(item)
            if mapping is None:
                continue
            if mapping.profile_name not in seen_profiles:
                logger.info(
                    "Dropping mapping %s -> %s: profile does not exist",
                    mapping.software_name,
                    mapping.profile_name,
                )
                continue
            mappings[mapping.software_name] = mapping

        custom: list[CustomSoftware] = []
        seen_custom: set[str] = set()
        for item in payload.get("custom_software") or []:
            if not isinstance(item, dict):
                continue
            software = CustomSoftware.from_dict(item)
            if software is None or software.name.casefold() in seen_custom:
                logger.warning("Skipping invalid custom software record: %r", item)
                continue
            seen_custom.add(software.name.casefold())
            custom.append(software)

        extra = {key: value for key, value in payload.items() if key not in _KNOWN_KEYS}
        return cls(
            profiles=tuple(profiles),
            mappings=tuple(mappings.values()),
            custom_software=tuple(custom),
            extra=extra,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        payload["profiles"] = [profile.to_dict() for profile in self.profiles]
        payload["mappings"] = [mapping.to_dict() for mapping in self.mappings]
        payload["custom_software"] = [software.to_dict() for software in self.custom_software]
        return payload

    def get_profile(self, name: str) -> ProxyProfile | None:
        for profile in self.profiles:
            if profile.name == name:
                return profile
        return None

    def get_mapping(self, software_name: str) -> SoftwareProxyMapping | None:
        for mapping in self.mappings:
            if mapping.software_name == software_name:
                return mapping
        return None


def _profile_not_found(name: str) -> NotFoundError:
    return NotFoundError(f"Profile not found: {name}", user_message=f"Profile '{name}' does not exist.")


class ProfileStore:
    def __init__(self, path: Path | None = None) -> None:
        self.path = path or (get_config_dir() / USER_CONFIG_FILE)
        self.config = UserConfig()
        self.last_load_error: str | None = None
        self._loaded = False

    def load(self) -> UserConfig:
        self.last_load_error = None
        self._loaded = True
        if not self.path.exists():
            self.config = UserConfig()
            return self.config

        try:
            with self.path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            backup_path = self.path.with_suffix(".json.bak")
            try:
                if backup_path.exists():
                    backup_path.unlink()
                os.replace(self.path, backup_path)
                backup_note = f" Backed up as {backup_path.name}."
            except OSError:
                logger.exception("Failed to back up corrupted user config %s", self.path)
                backup_note = " Failed to create backup file."
            self.config = UserConfig()
            self.last_load_error = (
                f"Saved user config is corrupted ({exc}). Started with default profiles.{backup_note}"
            )
            logger.warning(self.last_load_error)
            return self.config
        except OSError as exc:
            raise ConfigIOError(
                f"Failed to read {self.path}: {exc}",
                user_message=f"Cannot read user config ({exc.strerror or exc}).",
            ) from exc

        if not isinstance(payload, dict):
            self.config = UserConfig()
            self.last_load_error = "Saved user config format is invalid. Started with default profiles."
            logger.warning(self.last_load_error)
            return self.config

        self.config = UserConfig.from_dict(payload)
        return self.config

    def snapshot(self) -> UserConfig:
        if not self._loaded:
            self.load()
        return self.config

    def save_config(self, config: UserConfig) -> UserConfig:
        # Round-trip through the parser so dangling mappings never reach disk.
        cleaned = UserConfig.from_dict(config.to_dict())
        try:
            atomic_write_json(self.path, cleaned.to_dict(), mode=0o600)
        except OSError as exc:
            raise ConfigIOError(
                f"Failed to write {self.path}: {exc}",
                user_message=f"Cannot save user config ({exc.strerror or exc}).",
            ) from exc
        self.config = cleaned
        self._loaded = True
        return cleaned

    def add_profile(self, profile: ProxyProfile) -> UserConfig:
        config = self.snapshot()
        profile = ProxyProfile.create(name=profile.name, host=profile.host, port=profile.port)
        if config.get_profile(profile.name) is not None:
            raise ValidationError(
                f"Duplicate profile: {profile.name}",
                user_message=f"Profile '{profile.name}' already exists.",
            )
        return self.save_config(replace(config, profiles=config.profiles + (profile,)))

    def update_profile(self, old_name: str, profile: ProxyProfile) -> UserConfig:
        config = self.snapshot()
        profile = ProxyProfile.create(name=profile.name, host=profile.host, port=profile.port)
        if config.get_profile(old_name) is None:
            raise _profile_not_found(old_name)
        if profile.name != old_name and config.get_profile(profile.name) is not None:
            raise ValidationError(
                f"Duplicate profile: {profile.name}",
                user_message=f"Profile '{profile.name}' already exists.",
            )
        profiles = tuple(profile if p.name == old_name else p for p in config.profiles)
        mappings = tuple(
            replace(m, profile_name=profile.name) if m.profile_name == old_name else m
            for m in config.mappings
        )
        return self.save_config(replace(config, profiles=profiles, mappings=mappings))

    def delete_profile(self, name: str) -> UserConfig:
        config = self.snapshot()
        if config.get_profile(name) is None:
            raise _profile_not_found(name)
        profiles = tuple(p for p in config.profiles if p.name != name)
        mappings = tuple(m for m in config.mappings if m.profile_name != name)
        return self.save_config(replace(config, profiles=profiles, mappings=mappings))

    def update_mapping(self, software_name: str, profile_name: str) -> UserConfig:
        config = self.snapshot()
        software = (software_name or "").strip()
        if not software:
            raise ValidationError("Empty software name", user_message="Software name is required.")
        if config.get_profile(profile_name) is None:
            raise _profile_not_found(profile_name)
        mapping = SoftwareProxyMapping(software_name=software, profile_name=profile_name)
        if config.get_mapping(software) is None:
            mappings = config.mappings + (mapping,)
        else:
            mappings = tuple(mapping if m.software_name == software else m for m in config.mappings)
        return self.save_config(replace(config, mappings=mappings))

    def clear_mapping(self, software_name: str) -> UserConfig:
        config = self.snapshot()
        mappings = tuple(m for m in config.mappings if m.software_name != software_name)
        if len(mappings) == len(config.mappings):
            return config
        return self.save_config(replace(config, mappings=mappings))

    def add_custom_software(
        self,
        software: CustomSoftware,
        reserved_names: Collection[str] = (),
    ) -> UserConfig:
        config = self.snapshot()
        software = CustomSoftware.create(name=software.name, format=software.format, path=software.path)
        # Backup files are keyed by name; case-folding filesystems merge "git" and "Git".
        taken = {name.casefold() for name in reserved_names}
        taken.update(s.name.casefold() for s in config.custom_software)
        if software.name.casefold() in taken:
            raise ValidationError(
                f"Duplicate software: {software.name}",
                user_message=f"Software '{software.name}' already exists.",
            )
        return self.save_config(replace(config, custom_software=config.custom_software + (software,)))

    def delete_custom_software(self, name: str) -> UserConfig:
        config = self.snapshot()
        remaining = tuple(s for s in config.custom_software if s.name != name)
        if len(remaining) == len(config.custom_software):
            raise NotFoundError(
                f"Custom software not found: {name}",
                user_message=f"Software '{name}' does not exist.",
            )
        mappings = tuple(m for m in config.mappings if m.software_name != name)
        return self.save_config(replace(config, custom_software=remaining, mappings=mappings))

    def resolve_endpoint(self, software_name: str) -> ProxyEndpoint:
        """Endpoint for a software: its mapped profile, else the first profile."""
        config = self.snapshot()
        mapping = config.get_mapping(software_name)
        if mapping is not None:
            profile = config.get_profile(mapping.profile_name)
            if profile is not None:
                return profile.endpoint
        if config.profiles:
            return config.profiles[0].endpoint
        raise NotFoundError(
            f"No proxy profile available for {software_name}",
            user_message="no proxy profile available",
        )
