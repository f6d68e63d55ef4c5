from __future__ import annotations

from pathlib import Path

import pytest

from devproxy_manager.core.backups import BackupStore
from devproxy_manager.core.errors import ValidationError
from devproxy_manager.core.profile_store import ProfileStore
from devproxy_manager.core.service import ProxyManagerService


def _service(tmp_path: Path) -> ProxyManagerService:
    return ProxyManagerService(
        ProfileStore(path=tmp_path / "cfg" / "user_config.json"),
        BackupStore(tmp_path / "backups"),
        env={"HOME": str(tmp_path)},
        system="linux",
    )


def test_list_known_software_reflects_disk_state(tmp_path: Path) -> None:
    service = _service(tmp_path)
    (tmp_path / ".gitconfig").write_text("[http]\n\tproxy = http://10.0.0.1:8080\n", encoding="utf-8")

    by_name = {status.name: status for status in service.list_known_software()}
    assert list(by_name) == ["Git", "npm", "Cursor", "VSCode", "IDEA", "Terminal"]
    assert by_name["Git"].installed is True
    assert by_name["Git"].proxy == "http://10.0.0.1:8080"
    assert by_name["Git"].path == str(tmp_path / ".gitconfig")
    assert by_name["npm"].installed is False
    assert by_name["IDEA"].path is None
    assert not any(status.has_backup for status in by_name.values())


def test_enable_uses_mapped_profile_and_reports_lines(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.update_mapping("Git", "V2Ray")

    lines = service.enable([{"software_name": "Git", "profile_name": "V2Ray"}])
    assert lines == ["✓ Git: proxy set to http://127.0.0.1:10808 (no original to back up)"]

    status = {s.name: s for s in service.list_known_software()}["Git"]
    assert status.proxy == "http://127.0.0.1:10808"
    assert status.has_backup is True


def test_enable_with_deleted_profile_falls_back_then_fails(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.update_mapping("npm", "Veee")
    service.delete_profile("Veee")

    lines = service.enable([{"software_name": "npm", "profile_name": "Veee"}])
    assert lines == ["✓ npm: proxy set to http://127.0.0.1:7890 (no original to back up)"]

    service.delete_profile("Clash")
    service.delete_profile("V2Ray")
    lines = service.enable([{"software_name": "npm", "profile_name": ""}])
    assert lines == ["✗ npm: no proxy profile assigned"]


def test_disable_and_reset_batches(tmp_path: Path) -> None:
    service = _service(tmp_path)
    gitconfig = tmp_path / ".gitconfig"
    gitconfig.write_text("[user]\n\tname = bob\n", encoding="utf-8")

    service.enable_endpoint(["Git", "Terminal"], "127.0.0.1", 8118)
    assert "proxy = http://127.0.0.1:8118" in gitconfig.read_text(encoding="utf-8")

    assert service.disable(["Git", "Terminal"]) == ["✓ Git: proxy removed", "✓ Terminal: proxy removed"]
    lines = service.reset(["Git", "Terminal", "npm"])
    assert lines[0] == "✓ Git: restored original config"
    assert lines[1].startswith("✓ Terminal: removed config file")
    assert lines[2].startswith("✓ npm: nothing to reset")
    assert gitconfig.read_text(encoding="utf-8") == "[user]\n\tname = bob\n"
    assert not (tmp_path / ".proxy.env").exists()


def test_enable_endpoint_validates_arguments(tmp_path: Path) -> None:
    service = _service(tmp_path)
    with pytest.raises(ValidationError):
        service.enable_endpoint(["Git"], "", 8080)
    with pytest.raises(ValidationError):
        service.enable_endpoint(["Git"], "127.0.0.1", 0)


def test_custom_software_round_trip(tmp_path: Path) -> None:
    service = _service(tmp_path)
    target = tmp_path / "tool.env"

    with pytest.raises(ValidationError):
        service.add_custom_software("Git", "ini", "~/.other")

    config = service.add_custom_software("Tool", "env", str(target))
    assert config.custom_software[0].name == "Tool"

    names = [s.name for s in service.list_known_software()]
    assert names[-1] == "Tool"
    assert service.enable_endpoint(["Tool"], "127.0.0.1", 7890)[0].startswith("✓ Tool:")
    assert "HTTP_PROXY=http://127.0.0.1:7890" in target.read_text(encoding="utf-8")

    service.delete_custom_software("Tool")
    assert service.disable(["Tool"]) == ["✗ Tool: Unknown software."]


def test_profile_operations_return_snapshots(tmp_path: Path) -> None:
    service = _service(tmp_path)
    config = service.add_profile("Work", "10.0.0.1", "3128")
    assert config.get_profile("Work").port == 3128

    config = service.update_profile("Work", "Office", "10.0.0.2", 3128)
    assert config.get_profile("Office").host == "10.0.0.2"

    service.update_mapping("Git", "Office")
    assert service.update_mapping("Git", None).get_mapping("Git") is None
    assert service.get_user_config() is service.store.config


def test_list_known_vpns(tmp_path: Path) -> None:
    assert [vpn.name for vpn in _service(tmp_path).list_known_vpns()][:3] == ["Clash", "V2Ray", "Veee"]


def test_diagnostics_report_covers_registry_and_profiles(tmp_path: Path) -> None:
    service = _service(tmp_path)
    (tmp_path / ".gitconfig").write_text("[http]\n\tproxy = http://10.0.0.1:8080\n", encoding="utf-8")
    service.add_custom_software("MyTool", "env", str(tmp_path / "tool.env"))

    report = service.diagnostics()
    assert report.startswith("devproxy-manager diagnostics")
    assert "- Git [ini, built-in]" in report
    assert "  proxy: http://10.0.0.1:8080" in report
    assert "- MyTool [env, custom]" in report
    assert "- Clash: 127.0.0.1:7890" in report
