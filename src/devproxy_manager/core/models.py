"""Shared value types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Literal, cast
from urllib.parse import urlsplit

from devproxy_manager.core.errors import ValidationError

ConfigFormat = Literal["json", "ini", "xml", "env"]

CONFIG_FORMATS: Final[tuple[ConfigFormat, ...]] = ("json", "ini", "xml", "env")

DEFAULT_NO_PROXY: Final[str] = "localhost,127.0.0.1,::1"


def normalize_format(value: str) -> ConfigFormat:
    fmt = (value or "").strip().lower()
    if fmt not in CONFIG_FORMATS:
        raise ValidationError(
            f"Unsupported config format: {value!r}",
            user_message=f"Unsupported config format '{value}'. Use one of: {', '.join(CONFIG_FORMATS)}.",
        )
    return cast(ConfigFormat, fmt)


def validate_port(port: object) -> int:
    try:
        value = int(port)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid port: {port!r}", user_message="Port must be a number.") from None
    if isinstance(port, bool) or not 0 < value <= 65535:
        raise ValidationError(f"Invalid port: {port!r}", user_message="Port must be between 1 and 65535.")
    return value


@dataclass(frozen=True, slots=True)
class ProxyEndpoint:
    host: str
    port: int

    @property
    def url(self) -> str:
        host = self.host
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"
        return f"http://{host}:{self.port}"


def parse_proxy_url(text: str) -> ProxyEndpoint:
    """Parse ``http://host:port``, ``https://host:port`` or bare ``host:port``."""
    raw = (text or "").strip()
    if not raw:
        raise ValidationError("Empty proxy address", user_message="Proxy address is empty.")
    if "://" not in raw:
        raw = f"http://{raw}"
    try:
        parsed = urlsplit(raw)
        port = parsed.port
    except ValueError as exc:
        raise ValidationError(
            f"Invalid proxy address: {text!r}: {exc}",
            user_message="Invalid proxy address format.",
        ) from exc
    if not parsed.hostname or port is None:
        raise ValidationError(
            f"Invalid proxy address: {text!r}",
            user_message="Invalid proxy address format.",
        )
    return ProxyEndpoint(host=parsed.hostname, port=validate_port(port))


@dataclass(frozen=True, slots=True)
class SoftwareEntry:
    name: str
    format: ConfigFormat
    path_template: str
    is_custom: bool = False
    dialect: str | None = None
