"""XML codec for IntelliJ-platform ``proxy.settings.xml`` files."""

from __future__ import annotations

import copy
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Final
import xml.etree.ElementTree as ET

from devproxy_manager.core.codecs.base import ConfigCodec, UTF8_BOM, read_raw
from devproxy_manager.core.errors import ConfigParseError
from devproxy_manager.core.models import ProxyEndpoint

ROOT_TAG: Final[str] = "application"
COMPONENT_NAME: Final[str] = "HttpConfigurable"
XML_DECLARATION: Final[str] = '<?xml version="1.0" encoding="UTF-8"?>'

OPTION_USE_PROXY: Final[str] = "USE_HTTP_PROXY"
OPTION_HOST: Final[str] = "PROXY_HOST"
OPTION_PORT: Final[str] = "PROXY_PORT"
PROXY_OPTIONS: Final[tuple[str, ...]] = (OPTION_USE_PROXY, OPTION_HOST, OPTION_PORT)


@dataclass(frozen=True, slots=True)
class XmlDocument:
    path: Path
    raw: bytes | None
    root: ET.Element | None
    declaration: bool = False

    @property
    def exists(self) -> bool:
        return self.raw is not None


def _parse(path: Path, raw: bytes) -> ET.Element:
    parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True))
    try:
        parser.feed(raw)
        root = parser.close()
    except ET.ParseError as exc:
        line, column = exc.position
        raise ConfigParseError(
            f"{path}:{line}:{column}: {exc}",
            user_message=f"XML config is malformed at line {line}, column {column}.",
        ) from exc
    if root.tag != ROOT_TAG:
        raise ConfigParseError(
            f"{path}: unexpected root element <{root.tag}>",
            user_message=f"Unexpected XML root element <{root.tag}>; expected <{ROOT_TAG}>.",
        )
    return root


def _component(root: ET.Element) -> ET.Element | None:
    return root.find(f"component[@name='{COMPONENT_NAME}']")


def _option(component: ET.Element, name: str) -> ET.Element | None:
    return component.find(f"option[@name='{name}']")


class XmlCodec(ConfigCodec):
    format = "xml"

    def read(self, path: Path) -> XmlDocument:
        raw = read_raw(path)
        if raw is None:
            return XmlDocument(path=path, raw=None, root=None)
        body = raw[len(UTF8_BOM):] if raw.startswith(UTF8_BOM) else raw
        if not body.strip():
            return XmlDocument(path=path, raw=raw, root=None)
        root = _parse(path, body)
        return XmlDocument(path=path, raw=raw, root=root, declaration=body.lstrip().startswith(b"<?xml"))

    def set_proxy(self, doc: XmlDocument, endpoint: ProxyEndpoint) -> XmlDocument:
        root = copy.deepcopy(doc.root) if doc.root is not None else ET.Element(ROOT_TAG)
        component = _component(root)
        if component is None:
            component = ET.SubElement(root, "component", {"name": COMPONENT_NAME})
        values = {
            OPTION_USE_PROXY: "true",
            OPTION_HOST: endpoint.host,
            OPTION_PORT: str(endpoint.port),
        }
        for name, value in values.items():
            option = _option(component, name)
            if option is None:
                ET.SubElement(component, "option", {"name": name, "value": value})
            else:
                option.set("value", value)
        declaration = doc.declaration if doc.root is not None else True
        return replace(doc, root=root, declaration=declaration)

    def clear_proxy(self, doc: XmlDocument) -> XmlDocument:
        if doc.root is None:
            return doc
        root = copy.deepcopy(doc.root)
        component = _component(root)
        if component is None:
            return doc
        removed = 0
        for name in PROXY_OPTIONS:
            option = _option(component, name)
            while option is not None:
                component.remove(option)
                removed += 1
                option = _option(component, name)
        if not removed:
            return doc
        if len(component) == 0 and set(component.attrib) <= {"name"}:
            root.remove(component)
        return replace(doc, root=root)

    def serialize(self, doc: XmlDocument) -> bytes:
        if doc.root is None:
            return doc.raw or b""
        root = copy.deepcopy(doc.root)
        ET.indent(root, space="  ")
        body = ET.tostring(root, encoding="unicode")
        text = f"{XML_DECLARATION}\n{body}\n" if doc.declaration else f"{body}\n"
        return text.encode("utf-8")

    def current_proxy(self, doc: XmlDocument) -> str | None:
        if doc.root is None:
            return None
        component = _component(doc.root)
        if component is None:
            return None
        use_proxy = _option(component, OPTION_USE_PROXY)
        host = _option(component, OPTION_HOST)
        port = _option(component, OPTION_PORT)
        if use_proxy is None or host is None or port is None:
            return None
        if (use_proxy.get("value") or "").lower() != "true":
            return None
        host_value = (host.get("value") or "").strip()
        try:
            port_value = int(port.get("value") or "")
        except ValueError:
            return None
        if not host_value:
            return None
        return ProxyEndpoint(host=host_value, port=port_value).url
