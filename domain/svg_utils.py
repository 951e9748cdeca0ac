from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Iterator, Optional

from domain.templates import SKIN_NS, SVG_NS

XLINK_NS = "http://www.w3.org/1999/xlink"

ET.register_namespace("", SVG_NS)
ET.register_namespace("s", SKIN_NS)
ET.register_namespace("xlink", XLINK_NS)


def skin_attr(name: str) -> str:
    return f"{{{SKIN_NS}}}{name}"


def svg_tag(name: str) -> str:
    return f"{{{SVG_NS}}}{name}"


def local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if tag.startswith("{") else tag


def namespace_of(tag: str) -> Optional[str]:
    return tag[1:].split("}", 1)[0] if tag.startswith("{") else None


def iter_with_attr(element: ET.Element, attribute: str) -> Iterator[ET.Element]:
    for node in element.iter():
        if node.get(attribute) is not None:
            yield node


def format_number(value: float) -> str:
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text
