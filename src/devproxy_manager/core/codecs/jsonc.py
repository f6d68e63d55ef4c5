"""JSON (with comments) codec for VS Code style settings files.

Editors keep comments, trailing commas and hand-made formatting in
``settings.json``; a load/dump round trip would destroy them. The codec
therefore scans the document once to learn where each member of each object
starts and ends, and splices the proxy member in or out of the original text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from pathlib import Path
import re
from typing import Final

from devproxy_manager.core.codecs.base import TextCodec, detect_eol
from devproxy_manager.core.errors import ConfigParseError
from devproxy_manager.core.models import ProxyEndpoint

VSCODE_KEY_PATH: Final[tuple[str, ...]] = ("http.proxy",)
DEFAULT_INDENT: Final[str] = "    "

_STRING_RE: Final = re.compile(r'"(?:[^"\\\x00-\x1f]|\\(?:["\\/bfnrt]|u[0-9a-fA-F]{4}))*"')
_NUMBER_RE: Final = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?")
_LITERALS: Final[tuple[str, ...]] = ("true", "false", "null")


@dataclass(slots=True)
class _Object:
    start: int
    end: int
    members: list["_Member"] = field(default_factory=list)

    def index_of(self, key: str) -> int | None:
        # Last duplicate wins, as in every mainstream JSON reader.
        for idx in range(len(self.members) - 1, -1, -1):
            if self.members[idx].key == key:
                return idx
        return None


@dataclass(slots=True)
class _Member:
    key: str
    start: int
    value_start: int
    value_end: int
    value: _Object | None


class _Scanner:
    def __init__(self, text: str, path: Path | None = None) -> None:
        self.text = text
        self.path = path

    def error(self, pos: int, detail: str) -> ConfigParseError:
        line = self.text.count("\n", 0, pos) + 1
        column = pos - (self.text.rfind("\n", 0, pos) + 1) + 1
        where = f"{self.path}:{line}:{column}" if self.path is not None else f"line {line}, column {column}"
        return ConfigParseError(
            f"{where}: {detail}",
            user_message=f"Settings JSON is malformed at line {line}, column {column}: {detail}",
        )

    def skip(self, pos: int) -> int:
        text = self.text
        n = len(text)
        while pos < n:
            ch = text[pos]
            if ch in " \t\r\n":
                pos += 1
            elif text.startswith("//", pos):
                newline = text.find("\n", pos)
                pos = n if newline < 0 else newline + 1
            elif text.startswith("/*", pos):
                end = text.find("*/", pos + 2)
                if end < 0:
                    raise self.error(pos, "unterminated comment")
                pos = end + 2
            else:
                break
        return pos

    def document(self) -> _Object | None:
        pos = self.skip(0)
        if pos >= len(self.text):
            return None
        end, node = self.value(pos)
        if self.skip(end) != len(self.text):
            raise self.error(self.skip(end), "unexpected content after the top-level value")
        if node is None:
            raise self.error(pos, "top-level value must be an object")
        return node

    def value(self, pos: int) -> tuple[int, _Object | None]:
        text = self.text
        if pos >= len(text):
            raise self.error(pos, "unexpected end of document")
        ch = text[pos]
        if ch == "{":
            return self.object(pos)
        if ch == "[":
            return self.array(pos), None
        if ch == '"':
            return self.string(pos), None
        match = _NUMBER_RE.match(text, pos)
        if match is not None:
            return match.end(), None
        for literal in _LITERALS:
            if text.startswith(literal, pos):
                return pos + len(literal), None
        raise self.error(pos, f"unexpected character {ch!r}")

    def string(self, pos: int) -> int:
        match = _STRING_RE.match(self.text, pos)
        if match is None:
            raise self.error(pos, "invalid string")
        return match.end()

    def object(self, pos: int) -> tuple[int, _Object]:
        obj = _Object(start=pos, end=pos)
        pos = self.skip(pos + 1)
        while True:
            if self.text.startswith("}", pos):
                obj.end = pos + 1
                return obj.end, obj
            if not self.text.startswith('"', pos):
                raise self.error(pos, "expected a property name")
            key_end = self.string(pos)
            key = json.loads(self.text[pos:key_end])
            colon = self.skip(key_end)
            if not self.text.startswith(":", colon):
                raise self.error(colon, "expected ':'")
            value_start = self.skip(colon + 1)
            value_end, node = self.value(value_start)
            obj.members.append(_Member(key, pos, value_start, value_end, node))
            pos = self.skip(value_end)
            if self.text.startswith(",", pos):
                pos = self.skip(pos + 1)
                continue
            if not self.text.startswith("}", pos):
                raise self.error(pos, "expected ',' or '}'")

    def array(self, pos: int) -> int:
        pos = self.skip(pos + 1)
        while True:
            if self.text.startswith("]", pos):
                return pos + 1
            end, _node = self.value(pos)
            pos = self.skip(end)
            if self.text.startswith(",", pos):
                pos = self.skip(pos + 1)
                continue
            if not self.text.startswith("]", pos):
                raise self.error(pos, "expected ',' or ']'")


def _line_start(text: str, pos: int) -> int:
    return text.rfind("\n", 0, pos) + 1


def _own_line_indent(text: str, pos: int) -> str | None:
    """Whitespace before ``pos`` when nothing else precedes it on its line."""
    prefix = text[_line_start(text, pos):pos]
    return prefix if not prefix.strip() else None


def _line_indent(text: str, pos: int) -> str:
    start = _line_start(text, pos)
    end = start
    while end < len(text) and text[end] in " \t":
        end += 1
    return text[start:end]


def _skip_inline_ws(text: str, pos: int) -> int:
    while pos < len(text) and text[pos] in " \t":
        pos += 1
    return pos


def _trailing_comma(text: str, member: _Member) -> int | None:
    pos = _skip_inline_ws(text, member.value_end)
    return pos if text.startswith(",", pos) else None


def _separator_comma(text: str, member: _Member) -> int | None:
    """The comma after ``member``, looking past any comments in between."""
    pos = _Scanner(text).skip(member.value_end)
    return pos if text.startswith(",", pos) else None


def _render_member(keys: tuple[str, ...], value: str, indent: str, unit: str, eol: str) -> str:
    if len(keys) == 1:
        return f"{json.dumps(keys[0])}: {value}"
    inner = _render_member(keys[1:], value, indent + unit, unit, eol)
    return f"{json.dumps(keys[0])}: {{{eol}{indent}{unit}{inner}{eol}{indent}}}"


class JsonCodec(TextCodec):
    format = "json"

    def __init__(self, key_path: tuple[str, ...] = VSCODE_KEY_PATH) -> None:
        if not key_path:
            raise ValueError("key_path must not be empty")
        self.key_path = key_path

    def _scan(self, text: str, path: Path | None = None) -> _Object | None:
        return _Scanner(text, path).document()

    def validate(self, text: str, path: Path | None = None) -> None:
        self._scan(text, path)

    def _indent_unit(self, text: str, root: _Object) -> str:
        if root.members:
            indent = _own_line_indent(text, root.members[0].start)
            if indent:
                return indent
        return DEFAULT_INDENT

    def set_text(self, text: str, endpoint: ProxyEndpoint) -> str:
        value = json.dumps(endpoint.url)
        eol = detect_eol(text)
        root = self._scan(text)
        if root is None:
            member = _render_member(self.key_path, value, DEFAULT_INDENT, DEFAULT_INDENT, eol)
            return f"{{{eol}{DEFAULT_INDENT}{member}{eol}}}{eol}"

        unit = self._indent_unit(text, root)
        obj = root
        for depth, key in enumerate(self.key_path):
            idx = obj.index_of(key)
            rest = self.key_path[depth:]
            if idx is None:
                return self._insert_member(text, obj, rest, value, unit, eol)
            member = obj.members[idx]
            if len(rest) == 1:
                return self._drop_shadowed(text[: member.value_start] + value + text[member.value_end:])
            if member.value is None:
                # A scalar sits where an object is needed: replace it.
                indent = _line_indent(text, member.start)
                inner = _render_member(rest[1:], value, indent + unit, unit, eol)
                nested = f"{{{eol}{indent}{unit}{inner}{eol}{indent}}}"
                return text[: member.value_start] + nested + text[member.value_end:]
            obj = member.value
        return text

    def _insert_member(
        self,
        text: str,
        obj: _Object,
        keys: tuple[str, ...],
        value: str,
        unit: str,
        eol: str,
    ) -> str:
        if not obj.members:
            indent = _line_indent(text, obj.start)
            member = _render_member(keys, value, indent + unit, unit, eol)
            close = obj.end - 1
            back = close
            while back > obj.start + 1 and text[back - 1] in " \t\r\n":
                back -= 1
            return f"{text[:back]}{eol}{indent}{unit}{member}{eol}{indent}{text[close:]}"

        last = obj.members[-1]
        comma = _trailing_comma(text, last)
        indent = _own_line_indent(text, last.start)
        if indent is None:
            member = _render_member(keys, value, "", unit, " ")
            if comma is not None:
                return f"{text[: comma + 1]} {member},{text[comma + 1:]}"
            return f"{text[: last.value_end]}, {member}{text[last.value_end:]}"

        member = _render_member(keys, value, indent, unit, eol)
        anchor = comma + 1 if comma is not None else last.value_end
        at = _skip_inline_ws(text, anchor)
        if text.startswith("//", at):
            newline = text.find("\n", at)
            at = len(text) if newline < 0 else newline
            if newline > 0 and text[newline - 1] == "\r":
                at = newline - 1
        elif not text.startswith(("\r\n", "\n"), at):
            at = anchor
        inserted = f"{eol}{indent}{member}"
        if comma is not None:
            # Keep the trailing-comma style of the object.
            return text[:at] + inserted + "," + text[at:]
        return text[: last.value_end] + "," + text[last.value_end:at] + inserted + text[at:]

    def _proxy_parent(self, root: _Object | None) -> _Object | None:
        obj = root
        for key in self.key_path[:-1]:
            if obj is None:
                return None
            idx = obj.index_of(key)
            if idx is None:
                return None
            obj = obj.members[idx].value
        return obj

    def _drop_shadowed(self, text: str) -> str:
        """Delete earlier duplicates of the proxy key; the last one is in effect."""
        key = self.key_path[-1]
        while True:
            obj = self._proxy_parent(self._scan(text))
            if obj is None:
                return text
            hits = [idx for idx, member in enumerate(obj.members) if member.key == key]
            if len(hits) < 2:
                return text
            text = self._delete_member(text, obj, hits[0])

    def clear_text(self, text: str) -> str:
        # Each pass drops the last duplicate; repeat until none is left.
        while True:
            cleared = self._clear_once(text)
            if cleared == text:
                return text
            text = cleared

    def _clear_once(self, text: str) -> str:
        root = self._scan(text)
        if root is None:
            return text
        chain = [root]
        for key in self.key_path[:-1]:
            idx = chain[-1].index_of(key)
            if idx is None or chain[-1].members[idx].value is None:
                return text
            chain.append(chain[-1].members[idx].value)  # type: ignore[arg-type]
        if chain[-1].index_of(self.key_path[-1]) is None:
            return text

        # Parents left holding nothing but the proxy member go with it.
        level = len(self.key_path) - 1
        while level > 0 and len(chain[level].members) == 1:
            level -= 1
        obj = chain[level]
        idx = obj.index_of(self.key_path[level])
        if idx is None:
            return text
        return self._delete_member(text, obj, idx)

    def _delete_member(self, text: str, obj: _Object, idx: int) -> str:
        member = obj.members[idx]
        comma = _separator_comma(text, member)
        member_end = comma + 1 if comma is not None else member.value_end

        if len(obj.members) == 1:
            inner_before = text[obj.start + 1 : member.start]
            inner_after = text[member_end : obj.end - 1]
            if not inner_before.strip() and not inner_after.strip():
                return text[: obj.start] + "{}" + text[obj.end:]
            return text[: member.start] + text[_skip_inline_ws(text, member_end):]

        if idx < len(obj.members) - 1:
            start = member.start
            end = _skip_inline_ws(text, member_end)
            if _own_line_indent(text, member.start) is not None and text.startswith(("\r\n", "\n"), end):
                start = _line_start(text, member.start)
                end += 2 if text.startswith("\r\n", end) else 1
            return text[:start] + text[end:]

        prev = obj.members[idx - 1]
        prev_comma = _separator_comma(text, prev)
        if prev_comma is None:
            raise _Scanner(text).error(prev.value_end, "expected ','")
        if _own_line_indent(text, member.start) is not None:
            start = _line_start(text, member.start)
            if start > 0 and text[start - 1] == "\n":
                start -= 2 if start > 1 and text[start - 2] == "\r" else 1
            start = max(start, prev_comma + 1)
        else:
            start = prev_comma + 1 if comma is not None else prev_comma
        if comma is not None:
            return text[:start] + text[member_end:]
        return text[:prev_comma] + text[prev_comma + 1 : start] + text[member_end:]

    def proxy_in_text(self, text: str) -> str | None:
        root = self._scan(text)
        obj = root
        for depth, key in enumerate(self.key_path):
            if obj is None:
                return None
            idx = obj.index_of(key)
            if idx is None:
                return None
            member = obj.members[idx]
            if depth == len(self.key_path) - 1:
                raw = text[member.value_start : member.value_end]
                value = json.loads(raw) if raw.startswith('"') else None
                return value or None
            obj = member.value
        return None
