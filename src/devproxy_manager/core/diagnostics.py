"""Diagnostics collection."""

from __future__ import annotations

import platform
import sys

from devproxy_manager.core.backups import BackupStore
from devproxy_manager.core.logging_setup import redact
from devproxy_manager.core.port_detector import list_known_vpns
from devproxy_manager.core.profile_store import ProfileStore
from devproxy_manager.core.software_registry import SoftwareRegistry
from devproxy_manager.core.storage import get_backups_dir, get_config_dir, get_logs_dir


def _yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


def collect_diagnostics(
    store: ProfileStore | None = None,
    backups: BackupStore | None = None,
    registry: SoftwareRegistry | None = None,
) -> str:
    store = store or ProfileStore()
    backups = backups or BackupStore()
    config = store.snapshot()
    if registry is None:
        registry = SoftwareRegistry((item.name, item.format, item.path) for item in config.custom_software)

    lines: list[str] = []
    lines.append("devproxy-manager diagnostics")
    lines.append("")

    lines.append("System")
    lines.append(f"- OS: {platform.system()} {platform.release()}")
    lines.append(f"- Arch: {platform.machine()}")
    lines.append(f"- Python: {sys.version.split()[0]}")
    lines.append("")

    lines.append("Paths")
    lines.append(f"- Config: {get_config_dir()}")
    lines.append(f"- User config: {store.path} ({'present' if store.path.exists() else 'absent'})")
    lines.append(f"- Backups: {get_backups_dir()}")
    lines.append(f"- Logs: {get_logs_dir()}")
    lines.append("")

    lines.append("Software")
    for status in registry.list_status(backups):
        kind = "custom" if status.is_custom else "built-in"
        lines.append(f"- {status.name} [{status.format}, {kind}]")
        lines.append(f"  path: {status.path or 'unresolved'}")
        lines.append(f"  installed: {_yes_no(status.installed)}")
        lines.append(f"  proxy: {redact(status.proxy) if status.proxy else 'none'}")
        lines.append(f"  backup: {_yes_no(status.has_backup)}")
    lines.append("")

    lines.append("Profiles")
    if not config.profiles:
        lines.append("- none")
    for profile in config.profiles:
        mapped = sorted(m.software_name for m in config.mappings if m.profile_name == profile.name)
        used_by = ", ".join(mapped) if mapped else "-"
        lines.append(f"- {profile.name}: {profile.host}:{profile.port} (used by {used_by})")
    lines.append("")

    lines.append("Known VPN clients")
    for vpn in list_known_vpns():
        lines.append(
            f"- {vpn.name}: http {vpn.default_http_port}, socks {vpn.default_socks_port}"
            f" ({', '.join(vpn.process_names)})"
        )
    lines.append("")

    if store.last_load_error:
        lines.append("Warnings")
        lines.append(f"- {store.last_load_error}")
        lines.append("")

    return "\n".join(lines)
