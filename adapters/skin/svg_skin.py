from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Optional, Tuple

from domain.errors import SchemaError
from domain.svg_utils import iter_with_attr, local_name, namespace_of, skin_attr
from domain.templates import (
    CellTemplate,
    PortTemplate,
    SkinProperties,
    TemplateCatalog,
    direction_from_side,
    side_from_position,
)

logger = logging.getLogger(__name__)

DEFAULT_SKIN_PATH = Path(__file__).with_name("default.svg")


class SvgSkinLoader:
    def load_path(self, path: Path) -> TemplateCatalog:
        return self.load(path.read_text(encoding="utf-8"))

    def load_default(self) -> TemplateCatalog:
        return self.load_path(DEFAULT_SKIN_PATH)

    def load(self, text: str) -> TemplateCatalog:
        try:
            root = ET.fromstring(text)
        except ET.ParseError as exc:
            msg = f"Skin is not valid XML: {exc}"
            raise SchemaError(msg) from exc
        if local_name(root.tag) != "svg":
            msg = f"Skin root must be <svg>, got <{local_name(root.tag)}>"
            raise SchemaError(msg)

        properties, layout_options = self._read_properties(root)
        templates = [self._read_template(node) for node in iter_with_attr(root, skin_attr("type"))]
        styles = "\n".join(
            (node.text or "").strip() for node in root.iter() if local_name(node.tag) == "style"
        )
        svg_attributes = tuple(
            (key, value)
            for key, value in root.attrib.items()
            if namespace_of(key) is None and key not in ("width", "height")
        )
        logger.debug("Loaded skin with %d templates", len(templates))
        return TemplateCatalog(
            templates=tuple(templates),
            properties=properties,
            layout_options=layout_options,
            svg_attributes=svg_attributes,
            styles=styles,
        )

    def _read_properties(
        self, root: ET.Element
    ) -> Tuple[SkinProperties, Tuple[Tuple[str, str], ...]]:
        node = next(
            (child for child in root.iter() if child.tag == skin_attr("properties")), None
        )
        if node is None:
            return SkinProperties(), ()
        properties = SkinProperties(
            constants=_flag(node.get("constants"), True),
            splits_and_joins=_flag(node.get("splitsAndJoins"), True),
            generics_laterals=_flag(node.get("genericsLaterals"), False),
        )
        engine = node.find(skin_attr("layoutEngine"))
        options = tuple(engine.attrib.items()) if engine is not None else ()
        return properties, options

    def _read_template(self, node: ET.Element) -> CellTemplate:
        type_name = node.get(skin_attr("type"), "")
        width = _number(node.get(skin_attr("width")), type_name, "s:width")
        height = _number(node.get(skin_attr("height")), type_name, "s:height")
        aliases = tuple(
            alias.get("val", "")
            for alias in node.iter(skin_attr("alias"))
            if alias.get("val")
        )

        ports: List[PortTemplate] = []
        for port_node in iter_with_attr(node, skin_attr("pid")):
            x = _number(port_node.get(skin_attr("x")), type_name, "s:x")
            y = _number(port_node.get(skin_attr("y")), type_name, "s:y")
            side = side_from_position(port_node.get(skin_attr("position")), x, width)
            ports.append(
                PortTemplate(
                    pid=port_node.get(skin_attr("pid"), ""),
                    x=x,
                    y=y,
                    side=side,
                    direction=direction_from_side(port_node.get(skin_attr("dir")), side),
                )
            )

        return CellTemplate(
            type_name=type_name,
            width=width,
            height=height,
            ports=tuple(ports),
            fragment=ET.tostring(node, encoding="unicode"),
            aliases=aliases,
        )


def load_skin(text: str) -> TemplateCatalog:
    return SvgSkinLoader().load(text)


def load_default_skin() -> TemplateCatalog:
    return SvgSkinLoader().load_default()


def _flag(raw: Optional[str], default: bool) -> bool:
    if raw is None:
        return default
    return raw.strip().lower() not in ("false", "0", "no", "off")


def _number(raw: Optional[str], type_name: str, attribute: str) -> float:
    if raw is None:
        msg = f"Template {type_name!r} is missing {attribute}"
        raise SchemaError(msg)
    try:
        return float(raw)
    except ValueError as exc:
        msg = f"Template {type_name!r}: {attribute}={raw!r} is not a number"
        raise SchemaError(msg) from exc
