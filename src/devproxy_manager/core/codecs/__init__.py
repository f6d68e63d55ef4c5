"""Config file codecs, one per supported format.

The format set is closed: ``get_codec`` maps a (format, dialect) pair to a
codec instance and rejects anything else.
"""

from __future__ import annotations

from typing import Final

from devproxy_manager.core.codecs.base import ConfigCodec, TextDocument
from devproxy_manager.core.codecs.dotenv import EnvCodec
from devproxy_manager.core.codecs.ini import GIT_DIRECTIVES, NPM_DIRECTIVES, IniCodec
from devproxy_manager.core.codecs.jsonc import JsonCodec
from devproxy_manager.core.codecs.xml_tree import XmlCodec, XmlDocument
from devproxy_manager.core.errors import ValidationError
from devproxy_manager.core.models import ConfigFormat

_CODECS: Final[dict[tuple[ConfigFormat, str | None], ConfigCodec]] = {
    ("ini", None): IniCodec(GIT_DIRECTIVES),
    ("ini", "git"): IniCodec(GIT_DIRECTIVES),
    ("ini", "npm"): IniCodec(NPM_DIRECTIVES, indent="", separator="="),
    ("json", None): JsonCodec(),
    ("json", "vscode"): JsonCodec(),
    ("xml", None): XmlCodec(),
    ("xml", "idea"): XmlCodec(),
    ("env", None): EnvCodec(),
    ("env", "shell"): EnvCodec(),
}


def get_codec(fmt: ConfigFormat, dialect: str | None = None) -> ConfigCodec:
    codec = _CODECS.get((fmt, dialect))
    if codec is None:
        raise ValidationError(
            f"No codec for format={fmt!r} dialect={dialect!r}",
            user_message=f"Unsupported config format '{fmt}'.",
        )
    return codec


__all__ = [
    "ConfigCodec",
    "EnvCodec",
    "IniCodec",
    "JsonCodec",
    "TextDocument",
    "XmlCodec",
    "XmlDocument",
    "get_codec",
]
