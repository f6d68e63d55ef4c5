from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

import devproxy_manager.core.logging_setup as logging_setup
from devproxy_manager.core.errors import ValidationError
from devproxy_manager.core.logging_setup import redact
from devproxy_manager.core.models import ProxyEndpoint, normalize_format, parse_proxy_url, validate_port


def test_parse_proxy_url_variants() -> None:
    assert parse_proxy_url("http://127.0.0.1:7890") == ProxyEndpoint("127.0.0.1", 7890)
    assert parse_proxy_url("https://proxy.example:443") == ProxyEndpoint("proxy.example", 443)
    assert parse_proxy_url(" 10.0.0.1:3128 ") == ProxyEndpoint("10.0.0.1", 3128)


@pytest.mark.parametrize("text", ["", "127.0.0.1", "http://:8080", "host:0", "host:99999", "host:abc"])
def test_parse_proxy_url_rejects(text: str) -> None:
    with pytest.raises(ValidationError):
        parse_proxy_url(text)


def test_endpoint_url_brackets_ipv6() -> None:
    assert ProxyEndpoint("::1", 7890).url == "http://[::1]:7890"
    assert ProxyEndpoint("localhost", 8080).url == "http://localhost:8080"


def test_validate_port_and_format() -> None:
    assert validate_port("65535") == 65535
    with pytest.raises(ValidationError):
        validate_port(True)
    with pytest.raises(ValidationError):
        validate_port(None)
    assert normalize_format(" INI ") == "ini"
    with pytest.raises(ValidationError):
        normalize_format("toml")


def test_redact_hides_credentials_only() -> None:
    assert redact("using http://bob:pw@10.0.0.1:8080 now") == "using http://<redacted>@10.0.0.1:8080 now"
    assert redact("proxy set to http://127.0.0.1:7890") == "proxy set to http://127.0.0.1:7890"
    assert redact("") == ""


def test_setup_logging_attaches_file_handler_once(tmp_path: Path) -> None:
    root = logging.getLogger()
    level = root.level
    before = list(root.handlers)
    try:
        log_path = logging_setup.setup_logging(tmp_path / "logs", console=False)
        assert log_path == tmp_path / "logs" / "app.log"
        added = [h for h in root.handlers if h not in before]
        assert len(added) == 1
        assert isinstance(added[0], RotatingFileHandler)

        logging_setup.setup_logging(tmp_path / "logs", console=False)
        assert len([h for h in root.handlers if h not in before]) == 1

        logging.getLogger("devproxy_manager.test").warning("hello log")
        added[0].flush()
        assert "hello log" in log_path.read_text(encoding="utf-8")
    finally:
        for handler in [h for h in root.handlers if h not in before]:
            root.removeHandler(handler)
            handler.close()
        root.setLevel(level)
