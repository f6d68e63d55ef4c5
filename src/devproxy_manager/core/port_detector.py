"""Detect local proxy ports opened by running VPN clients.

Processes are matched by name signature, then their listening TCP sockets on
loopback or wildcard addresses are collected and classified as HTTP or SOCKS
using the client's default ports as a hint.
"""

from __future__ import annotations

from dataclasses import dataclass
import ipaddress
import logging
import os
from typing import Final, Iterable, Literal

import psutil

logger = logging.getLogger(__name__)

PortType = Literal["http", "socks", "unknown"]

# Low ports are system services, never a client's local proxy inbound.
MIN_PROXY_PORT: Final[int] = 1000

COMMON_HTTP_PORTS: Final[frozenset[int]] = frozenset({7890, 8080, 8118, 3128, 10808, 15236, 6152})
COMMON_SOCKS_PORTS: Final[frozenset[int]] = frozenset({7891, 1080, 10809, 15235, 6153})


@dataclass(frozen=True, slots=True)
class VpnConfig:
    name: str
    process_names: tuple[str, ...]
    default_http_port: int
    default_socks_port: int

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "process_names": list(self.process_names),
            "default_http_port": self.default_http_port,
            "default_socks_port": self.default_socks_port,
        }


@dataclass(frozen=True, slots=True)
class DetectedPort:
    port: int
    port_type: PortType
    process_name: str
    pid: int

    def to_dict(self) -> dict[str, object]:
        return {
            "port": self.port,
            "port_type": self.port_type,
            "process_name": self.process_name,
            "pid": self.pid,
        }


@dataclass(frozen=True, slots=True)
class DetectionResult:
    success: bool
    message: str
    ports: tuple[DetectedPort, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "success": self.success,
            "message": self.message,
            "ports": [port.to_dict() for port in self.ports],
        }


KNOWN_VPNS: Final[tuple[VpnConfig, ...]] = (
    VpnConfig(
        "Clash",
        ("clash", "clash-windows", "Clash for Windows", "cfw", "clash-verge", "ClashX"),
        7890,
        7891,
    ),
    VpnConfig("V2Ray", ("v2ray", "v2rayN", "v2ray-core"), 10808, 10809),
    VpnConfig("Veee", ("veee", "Veee"), 15236, 15235),
    VpnConfig("Shadowsocks", ("ss-local", "shadowsocks", "Shadowsocks", "sslocal"), 1080, 1080),
    VpnConfig("Surge", ("Surge", "surge-cli"), 6152, 6153),
)


def list_known_vpns() -> list[VpnConfig]:
    return list(KNOWN_VPNS)


def find_vpn(name: str) -> VpnConfig | None:
    wanted = (name or "").strip().lower()
    for config in KNOWN_VPNS:
        if config.name.lower() == wanted:
            return config
    return None


def classify_port(port: int, config: VpnConfig | None) -> PortType:
    if config is not None:
        if port == config.default_http_port:
            return "http"
        if port == config.default_socks_port:
            return "socks"
    if port in COMMON_HTTP_PORTS:
        return "http"
    if port in COMMON_SOCKS_PORTS:
        return "socks"
    return "unknown"


def _is_local_bind(address: str) -> bool:
    host = address.split("%", 1)[0]
    if host in {"", "0.0.0.0", "::"}:
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def _matches(info: dict, signatures: Iterable[str]) -> str | None:
    name = (info.get("name") or "").lower()
    exe = os.path.basename(info.get("exe") or "").lower()
    for signature in signatures:
        needle = signature.lower()
        if needle and (needle in name or needle in exe):
            return info.get("name") or exe or signature
    return None


def _listening_ports(proc: psutil.Process) -> list[int]:
    ports: list[int] = []
    for conn in proc.net_connections(kind="tcp"):
        if conn.status != psutil.CONN_LISTEN or not conn.laddr:
            continue
        address, port = conn.laddr[0], conn.laddr[1]
        if port > MIN_PROXY_PORT and _is_local_bind(address):
            ports.append(port)
    return ports


def _scan(signatures: tuple[str, ...], config: VpnConfig | None) -> tuple[int, list[DetectedPort]]:
    matched = 0
    found: dict[tuple[int, int], DetectedPort] = {}
    for proc in psutil.process_iter(["pid", "name", "exe"]):
        try:
            process_name = _matches(proc.info, signatures)
            if process_name is None:
                continue
            matched += 1
            pid = int(proc.info.get("pid") or proc.pid)
            for port in _listening_ports(proc):
                found.setdefault(
                    (port, pid),
                    DetectedPort(
                        port=port,
                        port_type=classify_port(port, config),
                        process_name=process_name,
                        pid=pid,
                    ),
                )
        except (psutil.AccessDenied, psutil.NoSuchProcess, psutil.ZombieProcess) as exc:
            logger.debug("Skipping process during port scan: %s", exc)
            continue
    ports = sorted(found.values(), key=lambda item: (item.port, item.pid))
    return matched, ports


def detect_port(vpn_name: str) -> DetectionResult:
    name = (vpn_name or "").strip()
    if not name:
        return DetectionResult(success=False, message="No VPN name given.")

    config = find_vpn(name)
    signatures = config.process_names if config is not None else (name,)
    label = config.name if config is not None else name

    try:
        matched, ports = _scan(signatures, config)
    except (OSError, psutil.Error) as exc:
        logger.warning("Process enumeration unavailable: %s", exc)
        return DetectionResult(success=False, message=f"Process enumeration unavailable: {exc}")

    if matched == 0:
        if config is not None:
            message = (
                f"{label} is not running. Its default ports are "
                f"HTTP {config.default_http_port} and SOCKS {config.default_socks_port}."
            )
        else:
            message = f"No running process named {label} was found."
        logger.info("Port detection for %s: process not running", label)
        return DetectionResult(success=False, message=message)

    if not ports:
        logger.info("Port detection for %s: no listening ports", label)
        return DetectionResult(
            success=False,
            message=f"{label} is running but no local listening ports were found.",
        )

    logger.info("Port detection for %s: %s", label, ", ".join(str(p.port) for p in ports))
    return DetectionResult(
        success=True,
        message=f"{label} is running ({len(ports)} port(s) found).",
        ports=tuple(ports),
    )
