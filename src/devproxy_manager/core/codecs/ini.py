"""INI-style codec for git-config and npmrc files.

The file is edited line by line: only the proxy keys (and section headers the
codec itself emptied) are touched, every other line keeps its exact bytes.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import re
from typing import Final, Literal, Optional

from devproxy_manager.core.codecs.base import TextCodec, detect_eol, parse_error
from devproxy_manager.core.models import ProxyEndpoint

LineKind = Literal["blank", "comment", "section", "key", "continuation"]

# (section, key); a None section means keys before the first header.
Directive = tuple[Optional[str], str]

GIT_DIRECTIVES: Final[tuple[Directive, ...]] = (("http", "proxy"), ("https", "proxy"))
NPM_DIRECTIVES: Final[tuple[Directive, ...]] = ((None, "proxy"), (None, "https-proxy"))

_SECTION_RE: Final = re.compile(
    r'^\s*\[\s*(?P<name>[^\]"]*?[^\]"\s])(?:\s+"(?P<sub>(?:[^"\\]|\\.)*)")?\s*\]\s*(?:[#;].*)?$'
)
_KEY_RE: Final = re.compile(r"^(?P<indent>\s*)(?P<key>[^\s=#;\[][^=]*?)(?P<sep>\s*=\s*)(?P<value>.*)$")
# Plain INI files may use "key: value"; tried after the "=" form.
_COLON_KEY_RE: Final = re.compile(r"^(?P<indent>\s*)(?P<key>[^\s:=#;\[][^:=]*?)(?P<sep>\s*:\s*)(?P<value>.*)$")
_BARE_KEY_RE: Final = re.compile(r"^\s*[A-Za-z][\w.-]*\s*(?:[#;].*)?$")


@dataclass(frozen=True, slots=True)
class _Line:
    text: str
    kind: LineKind
    section: str | None
    key: str | None = None
    owner: int | None = None


def _split_eol(line: str) -> tuple[str, str]:
    if line.endswith("\r\n"):
        return line[:-2], "\r\n"
    if line.endswith("\n"):
        return line[:-1], "\n"
    return line, ""


def _section_id(match: re.Match[str]) -> str:
    name = match.group("name").lower()
    sub = match.group("sub")
    return name if sub is None else f'{name} "{sub}"'


def _continues(body: str) -> bool:
    return body.rstrip().endswith("\\")


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def _key_match(body: str) -> re.Match[str] | None:
    return _KEY_RE.match(body) or _COLON_KEY_RE.match(body)


class IniCodec(TextCodec):
    format = "ini"

    def __init__(
        self,
        directives: tuple[Directive, ...] = GIT_DIRECTIVES,
        *,
        indent: str = "\t",
        separator: str = " = ",
    ) -> None:
        self.directives = directives
        self.indent = indent
        self.separator = separator

    def _parse(self, text: str, path: Path | None = None) -> list[_Line]:
        lines: list[_Line] = []
        section: str | None = None
        owner: int | None = None
        for line_no, raw_line in enumerate(text.splitlines(keepends=True), start=1):
            body, _eol = _split_eol(raw_line)
            if owner is not None:
                lines.append(_Line(raw_line, "continuation", section, lines[owner].key, owner))
                if not _continues(body):
                    owner = None
                continue

            stripped = body.strip()
            if not stripped:
                lines.append(_Line(raw_line, "blank", section))
                continue
            if stripped.startswith(("#", ";")):
                lines.append(_Line(raw_line, "comment", section))
                continue
            if stripped.startswith("["):
                match = _SECTION_RE.match(body)
                if match is None:
                    raise parse_error(path, line_no, f"invalid section header {stripped!r}")
                section = _section_id(match)
                lines.append(_Line(raw_line, "section", section))
                continue

            key_match = _key_match(body)
            if key_match is not None:
                lines.append(_Line(raw_line, "key", section, key_match.group("key").strip().lower()))
                if _continues(key_match.group("value")):
                    owner = len(lines) - 1
                continue
            if _BARE_KEY_RE.match(body):
                lines.append(_Line(raw_line, "key", section, stripped.split()[0].lower()))
                continue
            raise parse_error(path, line_no, f"expected 'key = value', got {stripped!r}")
        return lines

    def validate(self, text: str, path: Path | None = None) -> None:
        self._parse(text, path)

    def _matches(self, line: _Line, section: str | None, key: str) -> bool:
        return line.kind == "key" and line.section == section and line.key == key.lower()

    def _drop_keys(self, lines: list[_Line], doomed: set[int]) -> list[_Line]:
        return [
            line
            for idx, line in enumerate(lines)
            if idx not in doomed and not (line.kind == "continuation" and line.owner in doomed)
        ]

    def _key_line(self, section: str | None, key: str, value: str, eol: str) -> _Line:
        indent = self.indent if section is not None else ""
        return _Line(f"{indent}{key}{self.separator}{value}{eol}", "key", section, key.lower())

    def _set_key(self, lines: list[_Line], section: str | None, key: str, value: str, eol: str) -> list[_Line]:
        hits = [idx for idx, line in enumerate(lines) if self._matches(line, section, key)]
        if hits:
            first = hits[0]
            body, line_eol = _split_eol(lines[first].text)
            match = _key_match(body)
            if match is not None:
                text = f"{match.group('indent')}{match.group('key')}{match.group('sep')}{value}{line_eol or eol}"
            else:
                text = self._key_line(section, key, value, line_eol or eol).text
            # The first hit keeps its position; the rest (and any continuation
            # of the first hit) go away.
            doomed = set(hits[1:])
            kept = self._drop_keys(lines, doomed)
            out: list[_Line] = []
            for line in kept:
                if line is lines[first]:
                    out.append(_Line(text, "key", section, key.lower()))
                elif line.kind == "continuation" and line.owner == first:
                    continue
                else:
                    out.append(line)
            return self._renumber(out)

        new_line = self._key_line(section, key, value, eol)
        if section is None:
            root_end = next((i for i, line in enumerate(lines) if line.kind == "section"), len(lines))
            content = [i for i in range(root_end) if lines[i].kind in {"key", "continuation"}]
            at = content[-1] + 1 if content else root_end
            return self._insert(lines, at, [new_line], eol)

        headers = [i for i, line in enumerate(lines) if line.kind == "section" and line.section == section]
        if headers:
            start = headers[0]
            end = next(
                (i for i in range(start + 1, len(lines)) if lines[i].kind == "section"),
                len(lines),
            )
            body_lines = [i for i in range(start + 1, end) if lines[i].kind != "blank"]
            at = (body_lines[-1] if body_lines else start) + 1
            return self._insert(lines, at, [new_line], eol)

        header = _Line(f"[{section}]{eol}", "section", section)
        return self._insert(lines, len(lines), [header, new_line], eol)

    def _insert(self, lines: list[_Line], at: int, new: list[_Line], eol: str) -> list[_Line]:
        out = list(lines)
        if at > 0:
            prev = out[at - 1]
            if not _split_eol(prev.text)[1]:
                out[at - 1] = _Line(prev.text + eol, prev.kind, prev.section, prev.key, prev.owner)
        out[at:at] = new
        return self._renumber(out)

    def _renumber(self, lines: list[_Line]) -> list[_Line]:
        # Continuation owners are positional; rebuild them after edits.
        out: list[_Line] = []
        last_key: int | None = None
        for line in lines:
            if line.kind == "continuation":
                out.append(_Line(line.text, line.kind, line.section, line.key, last_key))
                continue
            out.append(line)
            last_key = len(out) - 1 if line.kind == "key" else None
        return out

    def set_text(self, text: str, endpoint: ProxyEndpoint) -> str:
        eol = detect_eol(text)
        lines = self._parse(text)
        for section, key in self.directives:
            lines = self._set_key(lines, section, key, endpoint.url, eol)
        return "".join(line.text for line in lines)

    def clear_text(self, text: str) -> str:
        lines = self._parse(text)
        touched: set[str] = set()
        doomed: set[int] = set()
        for section, key in self.directives:
            for idx, line in enumerate(lines):
                if self._matches(line, section, key):
                    doomed.add(idx)
                    if section is not None:
                        touched.add(section)
        if not doomed:
            return text
        lines = self._renumber(self._drop_keys(lines, doomed))

        for section in touched:
            members = [i for i, line in enumerate(lines) if line.section == section]
            if any(lines[i].kind in {"key", "continuation", "comment"} for i in members):
                continue
            drop = set(members)
            lines = [line for i, line in enumerate(lines) if i not in drop]
        return "".join(line.text for line in lines)

    def proxy_in_text(self, text: str) -> str | None:
        lines = self._parse(text)
        for section, key in self.directives:
            for line in lines:
                if not self._matches(line, section, key):
                    continue
                match = _key_match(_split_eol(line.text)[0])
                if match is None:
                    continue
                value = _unquote(match.group("value"))
                if value:
                    return value
        return None
