"""Facade over the core used by a frontend.

Document operations raise ``AppError`` subclasses. Batch operations never
raise for a single software; they return one result line per requested name.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from devproxy_manager.core.backups import BackupStore
from devproxy_manager.core.diagnostics import collect_diagnostics
from devproxy_manager.core.errors import AppError, ValidationError
from devproxy_manager.core.models import ProxyEndpoint, validate_port
from devproxy_manager.core.patch_engine import ConfigPatchEngine, PatchResult
from devproxy_manager.core.port_detector import DetectionResult, VpnConfig
from devproxy_manager.core import port_detector
from devproxy_manager.core.profile_store import (
    CustomSoftware,
    ProfileStore,
    ProxyProfile,
    SoftwareProxyMapping,
    UserConfig,
)
from devproxy_manager.core.software_registry import BUILTIN_NAMES, SoftwareRegistry, SoftwareStatus

logger = logging.getLogger(__name__)

MappingLike = SoftwareProxyMapping | Mapping[str, Any]


def _as_mapping(item: MappingLike) -> tuple[str, str]:
    if isinstance(item, SoftwareProxyMapping):
        return item.software_name, item.profile_name
    return str(item.get("software_name", "")).strip(), str(item.get("profile_name") or "").strip()


class ProxyManagerService:
    def __init__(
        self,
        store: ProfileStore | None = None,
        backups: BackupStore | None = None,
        *,
        env: Mapping[str, str] | None = None,
        system: str | None = None,
    ) -> None:
        self.store = store or ProfileStore()
        self.backups = backups or BackupStore()
        self._env = env
        self._system = system

    def registry(self) -> SoftwareRegistry:
        custom = self.store.snapshot().custom_software
        return SoftwareRegistry(
            ((item.name, item.format, item.path) for item in custom),
            env=self._env,
            system=self._system,
        )

    def engine(self) -> ConfigPatchEngine:
        return ConfigPatchEngine(self.registry(), self.backups)

    # Discovery

    def list_known_software(self) -> list[SoftwareStatus]:
        return self.registry().list_status(self.backups)

    def list_known_vpns(self) -> list[VpnConfig]:
        return port_detector.list_known_vpns()

    def detect_port(self, vpn_name: str) -> DetectionResult:
        return port_detector.detect_port(vpn_name)

    def diagnostics(self) -> str:
        return collect_diagnostics(self.store, self.backups, self.registry())

    # User config

    def get_user_config(self) -> UserConfig:
        return self.store.snapshot()

    def save_user_config(self, config: UserConfig) -> UserConfig:
        return self.store.save_config(config)

    def add_profile(self, name: str, host: str, port: object) -> UserConfig:
        return self.store.add_profile(ProxyProfile.create(name=name, host=host, port=port))

    def update_profile(self, old_name: str, name: str, host: str, port: object) -> UserConfig:
        return self.store.update_profile(old_name, ProxyProfile.create(name=name, host=host, port=port))

    def delete_profile(self, name: str) -> UserConfig:
        return self.store.delete_profile(name)

    def update_mapping(self, software_name: str, profile_name: str | None) -> UserConfig:
        if not profile_name:
            return self.store.clear_mapping(software_name)
        return self.store.update_mapping(software_name, profile_name)

    def add_custom_software(self, name: str, format: str, path: str) -> UserConfig:
        software = CustomSoftware.create(name=name, format=format, path=path)
        return self.store.add_custom_software(software, reserved_names=BUILTIN_NAMES)

    def delete_custom_software(self, name: str) -> UserConfig:
        return self.store.delete_custom_software(name)

    # Batches

    def enable_results(self, mappings: Iterable[MappingLike]) -> list[PatchResult]:
        config = self.store.snapshot()
        names: list[str] = []
        endpoints: dict[str, ProxyEndpoint | None] = {}
        for item in mappings:
            software, profile_name = _as_mapping(item)
            names.append(software)
            profile = config.get_profile(profile_name) if profile_name else None
            if profile is not None:
                endpoints[software] = profile.endpoint
                continue
            if profile_name:
                logger.info("Profile %s for %s does not exist; using fallback", profile_name, software)
            try:
                endpoints[software] = self.store.resolve_endpoint(software)
            except AppError:
                endpoints[software] = None
        return self.engine().apply(names, endpoints)

    def enable(self, mappings: Iterable[MappingLike]) -> list[str]:
        return [result.line for result in self.enable_results(mappings)]

    def enable_endpoint(self, names: Iterable[str], host: str, port: object) -> list[str]:
        """Point every named software at one ``host:port``, ignoring profiles."""
        cleaned_host = (host or "").strip()
        if not cleaned_host:
            raise ValidationError("Empty proxy host", user_message="Proxy host is required.")
        endpoint = ProxyEndpoint(host=cleaned_host, port=validate_port(port))
        names = list(names)
        endpoints: dict[str, ProxyEndpoint | None] = {name: endpoint for name in names}
        return [result.line for result in self.engine().apply(names, endpoints)]

    def disable(self, names: Iterable[str]) -> list[str]:
        return [result.line for result in self.engine().remove(names)]

    def reset(self, names: Iterable[str]) -> list[str]:
        return [result.line for result in self.engine().reset(names)]
