"""Shared codec plumbing: reading files and text documents."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Final

from devproxy_manager.core.errors import ConfigIOError, ConfigParseError
from devproxy_manager.core.models import ConfigFormat, ProxyEndpoint

UTF8_BOM: Final[bytes] = b"\xef\xbb\xbf"


def read_raw(path: Path) -> bytes | None:
    """Return the file bytes, or None when the file does not exist."""
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None
    except IsADirectoryError as exc:
        raise ConfigIOError(
            f"Config path is a directory: {path}",
            user_message=f"Config path is a directory: {path}",
        ) from exc
    except OSError as exc:
        raise ConfigIOError(
            f"Failed to read {path}: {exc}",
            user_message=f"Cannot read config file ({exc.strerror or exc}).",
        ) from exc


def decode_text(path: Path, raw: bytes) -> tuple[str, bool]:
    bom = raw.startswith(UTF8_BOM)
    if bom:
        raw = raw[len(UTF8_BOM):]
    try:
        return raw.decode("utf-8"), bom
    except UnicodeDecodeError as exc:
        raise ConfigParseError(
            f"{path} is not valid UTF-8: {exc}",
            user_message="Config file is not valid UTF-8 text.",
        ) from exc


def detect_eol(text: str) -> str:
    return "\r\n" if "\r\n" in text else "\n"


@dataclass(frozen=True, slots=True)
class TextDocument:
    path: Path
    raw: bytes | None
    text: str
    bom: bool = False

    @property
    def exists(self) -> bool:
        return self.raw is not None


class ConfigCodec:
    """Read, patch and serialize one config format.

    Documents are immutable; ``set_proxy`` and ``clear_proxy`` return new
    documents. ``raw`` on a document always holds the bytes originally read so
    callers can tell whether a patch changed anything.
    """

    format: ConfigFormat

    def read(self, path: Path) -> Any:
        raise NotImplementedError

    def set_proxy(self, doc: Any, endpoint: ProxyEndpoint) -> Any:
        raise NotImplementedError

    def clear_proxy(self, doc: Any) -> Any:
        raise NotImplementedError

    def serialize(self, doc: Any) -> bytes:
        raise NotImplementedError

    def current_proxy(self, doc: Any) -> str | None:
        raise NotImplementedError

    def is_unchanged(self, doc: Any) -> bool:
        if doc.raw is None:
            return False
        return self.serialize(doc) == doc.raw


class TextCodec(ConfigCodec):
    """Codec whose documents are plain text edited line by line or by splicing."""

    def read(self, path: Path) -> TextDocument:
        raw = read_raw(path)
        if raw is None:
            return TextDocument(path=path, raw=None, text="")
        text, bom = decode_text(path, raw)
        self.validate(text, path)
        return TextDocument(path=path, raw=raw, text=text, bom=bom)

    def set_proxy(self, doc: TextDocument, endpoint: ProxyEndpoint) -> TextDocument:
        return replace(doc, text=self.set_text(doc.text, endpoint))

    def clear_proxy(self, doc: TextDocument) -> TextDocument:
        if not doc.exists:
            return doc
        return replace(doc, text=self.clear_text(doc.text))

    def serialize(self, doc: TextDocument) -> bytes:
        data = doc.text.encode("utf-8")
        return UTF8_BOM + data if doc.bom else data

    def current_proxy(self, doc: TextDocument) -> str | None:
        return self.proxy_in_text(doc.text)

    def validate(self, text: str, path: Path | None = None) -> None:
        raise NotImplementedError

    def set_text(self, text: str, endpoint: ProxyEndpoint) -> str:
        raise NotImplementedError

    def clear_text(self, text: str) -> str:
        raise NotImplementedError

    def proxy_in_text(self, text: str) -> str | None:
        raise NotImplementedError


def parse_error(path: Path | None, line_no: int, detail: str) -> ConfigParseError:
    where = f"{path}:{line_no}" if path is not None else f"line {line_no}"
    return ConfigParseError(
        f"{where}: {detail}",
        user_message=f"Config file is malformed at line {line_no}: {detail}",
    )
