from __future__ import annotations

from pathlib import Path

import pytest

from devproxy_manager.core.codecs import get_codec
from devproxy_manager.core.errors import ConfigParseError, ValidationError
from devproxy_manager.core.models import ProxyEndpoint

ENDPOINT = ProxyEndpoint(host="127.0.0.1", port=7890)
URL = "http://127.0.0.1:7890"


def _set(fmt_dialect: tuple[str, str | None], path: Path) -> str:
    codec = get_codec(*fmt_dialect)
    return codec.serialize(codec.set_proxy(codec.read(path), ENDPOINT)).decode("utf-8")


def _clear(fmt_dialect: tuple[str, str | None], path: Path) -> str:
    codec = get_codec(*fmt_dialect)
    return codec.serialize(codec.clear_proxy(codec.read(path))).decode("utf-8")


def test_git_proxy_sections_are_added_after_user_section(tmp_path: Path) -> None:
    path = tmp_path / ".gitconfig"
    path.write_text("[user]\nname=bob\n", encoding="utf-8")

    patched = _set(("ini", "git"), path)
    assert patched == (
        "[user]\nname=bob\n"
        f"[http]\n\tproxy = {URL}\n"
        f"[https]\n\tproxy = {URL}\n"
    )

    path.write_text(patched, encoding="utf-8")
    assert _clear(("ini", "git"), path) == "[user]\nname=bob\n"


def test_existing_proxy_key_is_updated_in_place(tmp_path: Path) -> None:
    path = tmp_path / ".gitconfig"
    path.write_text("[http]\n    proxy=http://old:1\n    sslVerify = false\n", encoding="utf-8")

    patched = _set(("ini", "git"), path)
    assert patched.startswith(f"[http]\n    proxy={URL}\n    sslVerify = false\n")
    assert patched.count("proxy") == 2


def test_proxy_is_inserted_into_existing_section_and_removed_cleanly(tmp_path: Path) -> None:
    original = "[http]\n\tsslVerify = false\n\n[user]\n\tname = bob\n"
    path = tmp_path / ".gitconfig"
    path.write_text(original, encoding="utf-8")

    patched = _set(("ini", "git"), path)
    assert patched.startswith(f"[http]\n\tsslVerify = false\n\tproxy = {URL}\n\n[user]\n")

    path.write_text(patched, encoding="utf-8")
    assert _clear(("ini", "git"), path) == original


def test_duplicate_proxy_keys_collapse_to_one(tmp_path: Path) -> None:
    path = tmp_path / ".gitconfig"
    path.write_text("[http]\n\tproxy = a:1\n\tproxy = b:2\n", encoding="utf-8")

    patched = _set(("ini", "git"), path)
    assert patched.startswith(f"[http]\n\tproxy = {URL}\n[https]")


def test_subsection_is_not_confused_with_plain_section(tmp_path: Path) -> None:
    original = '[http "https://example.com"]\n\tproxy = http://corp:3128\n'
    path = tmp_path / ".gitconfig"
    path.write_text(original, encoding="utf-8")

    patched = _set(("ini", "git"), path)
    assert patched.startswith(original)

    path.write_text(patched, encoding="utf-8")
    assert _clear(("ini", "git"), path) == original


def test_crlf_line_endings_are_kept(tmp_path: Path) -> None:
    path = tmp_path / ".gitconfig"
    path.write_bytes(b"[user]\r\n\tname = bob\r\n")

    patched = _set(("ini", "git"), path)
    assert patched == f"[user]\r\n\tname = bob\r\n[http]\r\n\tproxy = {URL}\r\n[https]\r\n\tproxy = {URL}\r\n"


def test_npmrc_keys_live_at_root(tmp_path: Path) -> None:
    original = "registry=https://registry.npmjs.org/\n"
    path = tmp_path / ".npmrc"
    path.write_text(original, encoding="utf-8")

    patched = _set(("ini", "npm"), path)
    assert patched == f"{original}proxy={URL}\nhttps-proxy={URL}\n"

    path.write_text(patched, encoding="utf-8")
    assert _clear(("ini", "npm"), path) == original


def test_missing_file_gets_minimal_document(tmp_path: Path) -> None:
    path = tmp_path / "absent.gitconfig"
    codec = get_codec("ini", "git")

    doc = codec.read(path)
    assert not doc.exists
    assert codec.clear_proxy(doc) is doc
    assert _set(("ini", "git"), path) == f"[http]\n\tproxy = {URL}\n[https]\n\tproxy = {URL}\n"


def test_current_proxy_reads_value(tmp_path: Path) -> None:
    path = tmp_path / ".gitconfig"
    path.write_text('[core]\n\teditor = vim\n[http]\n\tproxy = "http://10.0.0.1:8080"\n', encoding="utf-8")
    codec = get_codec("ini", "git")
    assert codec.current_proxy(codec.read(path)) == "http://10.0.0.1:8080"

    path.write_text("[core]\n\teditor = vim\n", encoding="utf-8")
    assert codec.current_proxy(codec.read(path)) is None


def test_malformed_section_header_is_a_parse_error(tmp_path: Path) -> None:
    path = tmp_path / ".gitconfig"
    path.write_text("[http\n\tproxy = x\n", encoding="utf-8")
    with pytest.raises(ConfigParseError):
        get_codec("ini", "git").read(path)


def test_unknown_dialect_is_rejected() -> None:
    with pytest.raises(ValidationError):
        get_codec("ini", "toml")


def test_plain_ini_sections_with_spaces_and_colon_keys(tmp_path: Path) -> None:
    original = "[Proxy Settings]\nfoo = 1\nmode: fast\n"
    path = tmp_path / "tool.ini"
    path.write_text(original, encoding="utf-8")

    patched = _set(("ini", None), path)
    assert patched == f"{original}[http]\n\tproxy = {URL}\n[https]\n\tproxy = {URL}\n"

    path.write_text(patched, encoding="utf-8")
    assert _clear(("ini", None), path) == original


def test_colon_separated_proxy_key_is_read_and_updated(tmp_path: Path) -> None:
    path = tmp_path / "tool.ini"
    path.write_text("[http]\nproxy: http://10.0.0.1:8080\n", encoding="utf-8")
    codec = get_codec("ini", None)
    assert codec.current_proxy(codec.read(path)) == "http://10.0.0.1:8080"

    assert _set(("ini", None), path).startswith(f"[http]\nproxy: {URL}\n")
