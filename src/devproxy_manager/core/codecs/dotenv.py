"""``NAME=value`` line codec for shell proxy environment files."""

from __future__ import annotations

from pathlib import Path
import re
from typing import Final

from devproxy_manager.core.codecs.base import TextCodec, detect_eol, parse_error
from devproxy_manager.core.models import DEFAULT_NO_PROXY, ProxyEndpoint

_ASSIGN_RE: Final = re.compile(
    r"^(?P<indent>[ \t]*)(?P<export>export[ \t]+)?(?P<name>[A-Za-z_][A-Za-z0-9_]*)[ \t]*=(?P<value>.*?)(?P<eol>\r?\n)?$",
    re.DOTALL,
)

PROXY_VARIABLES: Final[tuple[str, ...]] = ("HTTP_PROXY", "HTTPS_PROXY", "NO_PROXY")


def _unquote(value: str) -> tuple[str, str]:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1], value[0]
    return value, ""


class EnvCodec(TextCodec):
    format = "env"

    def __init__(self, no_proxy: str = DEFAULT_NO_PROXY) -> None:
        self.no_proxy = no_proxy

    def _lines(self, text: str, path: Path | None = None) -> list[tuple[str, re.Match[str] | None]]:
        out: list[tuple[str, re.Match[str] | None]] = []
        for line_no, line in enumerate(text.splitlines(keepends=True), start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                out.append((line, None))
                continue
            match = _ASSIGN_RE.match(line)
            if match is None:
                raise parse_error(path, line_no, f"expected NAME=value, got {stripped!r}")
            out.append((line, match))
        return out

    def validate(self, text: str, path: Path | None = None) -> None:
        self._lines(text, path)

    def set_text(self, text: str, endpoint: ProxyEndpoint) -> str:
        eol = detect_eol(text)
        lines = self._lines(text)
        values = {
            "HTTP_PROXY": endpoint.url,
            "HTTPS_PROXY": endpoint.url,
            "NO_PROXY": self.no_proxy,
        }
        uses_export = any(match is not None and match.group("export") for _line, match in lines)
        rendered = [line for line, _match in lines]
        missing = dict(values)
        for idx, (_line, match) in enumerate(lines):
            if match is None:
                continue
            upper = match.group("name").upper()
            if upper not in values:
                continue
            # Lower-case twins (http_proxy) are honoured by curl and friends,
            # so they are updated in place rather than left stale.
            _old, quote = _unquote(match.group("value"))
            rendered[idx] = (
                f"{match.group('indent')}{match.group('export') or ''}{match.group('name')}="
                f"{quote}{values[upper]}{quote}{match.group('eol') or ''}"
            )
            missing.pop(upper, None)

        if missing:
            if rendered and not rendered[-1].endswith("\n"):
                rendered[-1] += eol
            prefix = "export " if uses_export else ""
            for name, value in missing.items():
                rendered.append(f"{prefix}{name}={value}{eol}")
        return "".join(rendered)

    def clear_text(self, text: str) -> str:
        kept: list[str] = []
        for line, match in self._lines(text):
            if match is not None and match.group("name").upper() in PROXY_VARIABLES:
                continue
            kept.append(line)
        return "".join(kept)

    def proxy_in_text(self, text: str) -> str | None:
        for _line, match in self._lines(text):
            if match is not None and match.group("name").upper() == "HTTP_PROXY":
                value, _quote = _unquote(match.group("value"))
                if value:
                    return value
        return None
