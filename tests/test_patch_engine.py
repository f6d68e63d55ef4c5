from __future__ import annotations

import os
from pathlib import Path

import pytest

import devproxy_manager.core.patch_engine as pe
from devproxy_manager.core.backups import BackupStore
from devproxy_manager.core.models import ProxyEndpoint
from devproxy_manager.core.patch_engine import ConfigPatchEngine, PatchResult
from devproxy_manager.core.software_registry import SoftwareRegistry

ENDPOINT = ProxyEndpoint(host="127.0.0.1", port=7890)


def _engine(tmp_path: Path, custom=()) -> ConfigPatchEngine:  # noqa: ANN001
    registry = SoftwareRegistry(custom, env={"HOME": str(tmp_path)}, system="linux")
    return ConfigPatchEngine(registry, BackupStore(tmp_path / "backups"))


def test_result_line_markers() -> None:
    assert PatchResult("Git", True, "done").line == "✓ Git: done"
    assert PatchResult("Git", False, "boom").line == "✗ Git: boom"


def test_apply_remove_on_gitconfig_scenario(tmp_path: Path) -> None:
    gitconfig = tmp_path / ".gitconfig"
    gitconfig.write_text("[user]\nname=bob\n", encoding="utf-8")
    engine = _engine(tmp_path)

    [applied] = engine.apply(["Git"], {"Git": ENDPOINT})
    assert applied.ok, applied.message
    text = gitconfig.read_text(encoding="utf-8")
    assert text.startswith("[user]\nname=bob\n")
    assert "[http]\n\tproxy = http://127.0.0.1:7890\n" in text

    [removed] = engine.remove(["Git"])
    assert removed.ok
    assert gitconfig.read_text(encoding="utf-8") == "[user]\nname=bob\n"

    [again] = engine.remove(["Git"])
    assert again.ok
    assert again.message == "nothing to remove"


def test_backup_is_created_once_across_cycles(tmp_path: Path) -> None:
    npmrc = tmp_path / ".npmrc"
    original = b"registry=https://registry.npmjs.org/\n"
    npmrc.write_bytes(original)
    engine = _engine(tmp_path)

    for port in (7890, 8080, 3128):
        assert engine.apply(["npm"], {"npm": ProxyEndpoint("127.0.0.1", port)})[0].ok
        assert engine.remove(["npm"])[0].ok
    engine.apply(["npm"], {"npm": ENDPOINT})

    backups = sorted((tmp_path / "backups").iterdir())
    assert [p.name for p in backups] == ["npm.original.backup"]
    assert backups[0].read_bytes() == original

    [reset] = engine.reset(["npm"])
    assert reset.ok
    assert npmrc.read_bytes() == original
    assert engine.reset(["npm"])[0].ok
    assert npmrc.read_bytes() == original


def test_apply_creates_missing_file_and_reset_deletes_it(tmp_path: Path) -> None:
    engine = _engine(tmp_path)
    settings = tmp_path / ".config" / "Code" / "User" / "settings.json"

    [applied] = engine.apply(["VSCode"], {"VSCode": ENDPOINT})
    assert applied.ok
    assert "no original to back up" in applied.message
    assert settings.exists()

    [reset] = engine.reset(["VSCode"])
    assert reset.ok
    assert not settings.exists()


def test_remove_on_missing_file_succeeds(tmp_path: Path) -> None:
    [result] = _engine(tmp_path).remove(["Terminal"])
    assert result.ok
    assert "nothing to remove" in result.message
    assert not (tmp_path / ".proxy.env").exists()


def test_reset_without_backup_is_not_an_error(tmp_path: Path) -> None:
    [result] = _engine(tmp_path).reset(["Git"])
    assert result.ok
    assert "nothing to reset" in result.message


def test_failures_are_isolated_per_item(tmp_path: Path) -> None:
    (tmp_path / ".gitconfig").write_text("[broken\n", encoding="utf-8")
    engine = _engine(tmp_path)

    results = engine.apply(
        ["Git", "Unknown", "IDEA", "npm", "Terminal"],
        {"Git": ENDPOINT, "IDEA": ENDPOINT, "npm": ENDPOINT},
    )
    assert [r.software for r in results] == ["Git", "Unknown", "IDEA", "npm", "Terminal"]
    assert [r.ok for r in results] == [False, False, False, True, False]
    assert results[0].line.startswith("✗ Git: ")
    assert results[2].message.startswith("path not found")
    assert results[4].message == "no proxy profile assigned"
    assert (tmp_path / ".gitconfig").read_text(encoding="utf-8") == "[broken\n"
    assert (tmp_path / ".npmrc").exists()


def test_write_errors_become_failure_results(tmp_path: Path, monkeypatch) -> None:
    engine = _engine(tmp_path)

    def fail_write(path, data, *, mode=None):  # noqa: ANN001
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(pe, "atomic_write_bytes", fail_write)
    results = engine.apply(["Git", "npm"], {"Git": ENDPOINT, "npm": ENDPOINT})
    assert [r.ok for r in results] == [False, False]
    assert results[0].message == "I/O error: Permission denied"


def test_custom_software_uses_default_layout_for_its_format(tmp_path: Path) -> None:
    target = tmp_path / "tool" / "config.json"
    target.parent.mkdir()
    target.write_text('{\n  "theme": "dark"\n}\n', encoding="utf-8")
    engine = _engine(tmp_path, [("MyTool", "json", str(target))])

    assert engine.apply(["MyTool"], {"MyTool": ENDPOINT})[0].ok
    assert '"http.proxy": "http://127.0.0.1:7890"' in target.read_text(encoding="utf-8")


@pytest.mark.parametrize("name", ["Git", "npm", "VSCode", "Terminal"])
def test_apply_is_idempotent(tmp_path: Path, name: str) -> None:
    engine = _engine(tmp_path)
    engine.apply([name], {name: ENDPOINT})
    path = engine.registry.resolve_path(engine.registry.get(name))
    first = path.read_bytes()

    engine.apply([name], {name: ENDPOINT})
    assert path.read_bytes() == first


@pytest.mark.skipif(os.name == "nt", reason="symlinks need extra privileges on Windows")
def test_symlinked_config_is_written_through_and_kept(tmp_path: Path) -> None:
    dotfiles = tmp_path / "dotfiles"
    dotfiles.mkdir()
    target = dotfiles / "gitconfig"
    target.write_text("[user]\nname=bob\n", encoding="utf-8")
    link = tmp_path / ".gitconfig"
    link.symlink_to(target)
    engine = _engine(tmp_path)

    assert engine.apply(["Git"], {"Git": ENDPOINT})[0].ok
    assert link.is_symlink()
    assert "proxy = http://127.0.0.1:7890" in target.read_text(encoding="utf-8")

    [reset] = engine.reset(["Git"])
    assert reset.message == "restored original config"
    assert link.is_symlink()
    assert target.read_text(encoding="utf-8") == "[user]\nname=bob\n"


def test_custom_ini_file_with_plain_sections(tmp_path: Path) -> None:
    target = tmp_path / "tool.ini"
    target.write_text("[Proxy Settings]\nfoo = 1\n", encoding="utf-8")
    engine = _engine(tmp_path, [("Tool", "ini", str(target))])

    [applied] = engine.apply(["Tool"], {"Tool": ENDPOINT})
    assert applied.ok, applied.message
    assert target.read_text(encoding="utf-8").startswith("[Proxy Settings]\nfoo = 1\n[http]\n")

    assert engine.remove(["Tool"])[0].message == "proxy removed"
    assert target.read_text(encoding="utf-8") == "[Proxy Settings]\nfoo = 1\n"
