"""Per-OS expansion of config path templates.

Templates may mix Windows (``%APPDATA%``) and POSIX (``$HOME``, ``${HOME}``,
``~``) placeholders. Variables missing from the environment are looked up in
a per-OS alias table so one template such as
``%APPDATA%/Code/User/settings.json`` resolves on every platform.
"""

from __future__ import annotations

import os
from pathlib import Path
import platform
import re
from typing import Final, Mapping

from devproxy_manager.core.errors import PathResolutionError

_PLACEHOLDER_RE: Final = re.compile(
    r"%(?P<win>[A-Za-z_][A-Za-z0-9_()]*)%"
    r"|\$\{(?P<braced>[A-Za-z_][A-Za-z0-9_]*)\}"
    r"|\$(?P<plain>[A-Za-z_][A-Za-z0-9_]*)"
)

_MAX_ALIAS_DEPTH: Final[int] = 4

_POSIX_CONFIG_ALIASES: Final[tuple[str, ...]] = ("$XDG_CONFIG_HOME", "$HOME/.config")
_DARWIN_SUPPORT_ALIASES: Final[tuple[str, ...]] = ("$HOME/Library/Application Support",)

ALIASES: Final[dict[str, dict[str, tuple[str, ...]]]] = {
    "linux": {
        "USERPROFILE": ("$HOME",),
        "APPDATA": _POSIX_CONFIG_ALIASES,
        "LOCALAPPDATA": _POSIX_CONFIG_ALIASES,
    },
    "darwin": {
        "USERPROFILE": ("$HOME",),
        "APPDATA": _DARWIN_SUPPORT_ALIASES,
        "LOCALAPPDATA": _DARWIN_SUPPORT_ALIASES,
    },
    "windows": {
        "HOME": ("%USERPROFILE%",),
        "XDG_CONFIG_HOME": ("%APPDATA%",),
    },
}


def current_system() -> str:
    name = platform.system().lower()
    if name.startswith("win"):
        return "windows"
    if name == "darwin":
        return "darwin"
    return "linux"


def _env_get(env: Mapping[str, str], name: str, system: str) -> str | None:
    value = env.get(name)
    if value is None and system == "windows":
        upper = name.upper()
        for key, candidate in env.items():
            if key.upper() == upper:
                value = candidate
                break
    if value is None or not value.strip():
        return None
    return value


def _lookup(name: str, env: Mapping[str, str], system: str, depth: int) -> str:
    value = _env_get(env, name, system)
    if value is not None:
        return value
    if depth < _MAX_ALIAS_DEPTH:
        for alias in ALIASES.get(system, {}).get(name, ()):
            try:
                return _expand(alias, env, system, depth + 1)
            except PathResolutionError:
                continue
    raise PathResolutionError(
        f"Unresolvable placeholder: {name}",
        user_message=f"Environment variable {name} is not set.",
    )


def _expand(template: str, env: Mapping[str, str], system: str, depth: int) -> str:
    text = template
    if text == "~" or text.startswith(("~/", "~\\")):
        text = _lookup("HOME", env, system, depth) + text[1:]

    def _replace(match: re.Match[str]) -> str:
        name = match.group("win") or match.group("braced") or match.group("plain")
        return _lookup(name, env, system, depth)

    return _PLACEHOLDER_RE.sub(_replace, text)


def _is_glob(part: str) -> bool:
    return any(ch in part for ch in "*?[")


def _resolve_globs(path: Path) -> Path:
    parts = path.parts
    if not any(_is_glob(part) for part in parts):
        return path

    current = Path(parts[0])
    for index, part in enumerate(parts[1:], start=1):
        if not _is_glob(part):
            current = current / part
            continue
        is_last = index == len(parts) - 1
        matches = [m for m in current.glob(part) if is_last or m.is_dir()]
        if not matches:
            raise PathResolutionError(
                f"No match for {part!r} under {current}",
                user_message=f"Config directory not found: {current / part}",
            )
        # Newest versioned directory (e.g. IntelliJIdea2024.1) sorts last.
        current = max(matches, key=lambda m: m.name)
    return current


def expand_path_template(
    template: str,
    *,
    env: Mapping[str, str] | None = None,
    system: str | None = None,
) -> Path:
    raw = (template or "").strip()
    if not raw:
        raise PathResolutionError("Empty path template", user_message="Config path is empty.")
    env = os.environ if env is None else env
    system = system or current_system()
    expanded = _expand(raw, env, system, 0)
    return _resolve_globs(Path(expanded))
