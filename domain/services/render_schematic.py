from __future__ import annotations

import copy
import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Sequence

from domain.errors import IncompleteRenderError
from domain.layout_result import LaidOutEdge, LaidOutGraph, LaidOutNode
from domain.models import Cell, DrawableGraph, LayoutGraph, Port, SchematicDiagram, Wire
from domain.svg_utils import format_number, iter_with_attr, skin_attr, svg_tag
from domain.templates import SIDE_EAST, SIDE_WEST, TemplateCatalog

logger = logging.getLogger(__name__)

CELL_ID_PLACEHOLDER = "$cell_id"
HEX_THRESHOLD = 3
JUNCTION_RADIUS = 2


class SchematicRenderer:
    """Paints a laid-out graph with the catalog's cell templates.

    Reads the drawable graph for cell semantics and the laid-out graph for
    geometry; neither is modified. Every cell and every wire ends up as exactly
    one group in the output or the render fails with ``IncompleteRenderError``.
    """

    def __init__(self, catalog: TemplateCatalog) -> None:
        self.catalog = catalog

    def render(
        self,
        laid_out: LaidOutGraph,
        drawable: DrawableGraph,
        layout_graph: LayoutGraph,
    ) -> SchematicDiagram:
        nodes = laid_out.nodes_by_id()
        edges = laid_out.edges_by_id()
        width, height = _extent(laid_out)

        attrib = {key: value for key, value in self.catalog.svg_attributes}
        attrib["width"] = format_number(width)
        attrib["height"] = format_number(height)
        root = ET.Element(svg_tag("svg"), attrib)
        style = ET.SubElement(root, svg_tag("style"))
        style.text = self.catalog.styles

        element_ids: List[str] = []
        for cell in drawable.cells:
            node = nodes.get(cell.key)
            if node is None or not node.is_positioned:
                raise IncompleteRenderError(cell.key)
            root.append(self._stamp(cell, node))
            element_ids.append(cell.key)

        edges_by_wire: Dict[str, List[str]] = {}
        for edge_id, wire in layout_graph.edge_wires:
            edges_by_wire.setdefault(wire, []).append(edge_id)

        wire_ids: List[str] = []
        for wire in drawable.wires:
            laid_edges = []
            for edge_id in edges_by_wire.get(wire.id, []):
                edge = edges.get(edge_id)
                if edge is None or not edge.sections:
                    raise IncompleteRenderError(edge_id, f"of wire {wire.id!r} has no route")
                laid_edges.append(edge)
            root.append(self._draw_wire(wire, laid_edges))
            wire_ids.append(wire.id)

        _check_unique(element_ids)
        _check_unique(wire_ids)
        logger.debug(
            "Rendered %d elements and %d wires into %sx%s",
            len(element_ids),
            len(wire_ids),
            format_number(width),
            format_number(height),
        )
        return SchematicDiagram(
            svg=ET.tostring(root, encoding="unicode"),
            element_ids=tuple(element_ids),
            wire_ids=tuple(wire_ids),
            width=width,
            height=height,
        )

    def _stamp(self, cell: Cell, node: LaidOutNode) -> ET.Element:
        group = ET.fromstring(cell.template.fragment)
        for alias in list(group.iter(skin_attr("alias"))):
            _parent_of(group, alias).remove(alias)

        x = node.x or 0.0
        y = node.y or 0.0
        group.set("id", f"cell_{cell.key}")
        if self._is_mirrored(cell, node):
            group.set(
                "transform",
                f"translate({format_number(x + node.width)},{format_number(y)}) scale(-1,1)",
            )
        else:
            group.set("transform", f"translate({format_number(x)},{format_number(y)})")

        for text in iter_with_attr(group, skin_attr("attribute")):
            text.text = self._attribute_text(cell, text.get(skin_attr("attribute"), ""))

        if cell.template.is_variable_size:
            self._regenerate_ports(group, cell)
            for body in iter_with_attr(group, skin_attr("generic")):
                if body.get(skin_attr("generic")) == "body":
                    body.set("height", format_number(node.height))

        cell_class = f"cell_{cell.key}"
        for element in group.iter():
            classes = element.get("class")
            if classes and CELL_ID_PLACEHOLDER in classes:
                element.set("class", classes.replace(CELL_ID_PLACEHOLDER, cell_class))
        return group

    def _is_mirrored(self, cell: Cell, node: LaidOutNode) -> bool:
        """True when the engine put west anchors east and vice versa."""
        if cell.template.is_variable_size or node.width <= 0:
            return False
        for anchor in cell.template.ports:
            if anchor.side not in (SIDE_WEST, SIDE_EAST):
                continue
            port = node.port(f"{cell.key}.{anchor.pid}")
            if port is None or port.x is None:
                continue
            placed_east = port.x > node.width / 2
            if placed_east != (anchor.side == SIDE_EAST):
                return True
        return False

    def _attribute_text(self, cell: Cell, name: str) -> str:
        if name == "ref":
            if cell.is_constant:
                return _constant_label(str(cell.attributes.get("value", cell.key)))
            return cell.key
        if name in cell.parameters:
            return _parameter_text(cell.parameters[name])
        if name in cell.attributes:
            return str(cell.attributes[name])
        return ""

    def _regenerate_ports(self, group: ET.Element, cell: Cell) -> None:
        template = cell.template
        # inout ports take the input anchors after the inputs
        for prefix, ports in (("in", [*cell.inputs, *cell.laterals]), ("out", cell.outputs)):
            originals = [
                node
                for node in iter_with_attr(group, skin_attr("pid"))
                if node.get(skin_attr("pid"), "").startswith(prefix)
            ]
            if not originals:
                continue
            prototype = originals[0]
            parent = _parent_of(group, prototype)
            position = list(parent).index(prototype)
            for node in originals:
                _parent_of(group, node).remove(node)
            for index, port in enumerate(ports):
                anchor = template.anchor(prefix, index)
                if anchor is None:
                    continue
                parent.insert(position + index, _port_group(prototype, port, anchor[0], anchor[1]))

    def _draw_wire(self, wire: Wire, edges: Sequence[LaidOutEdge]) -> ET.Element:
        net_class = f"{wire.id} width_{wire.width}"
        group = ET.Element(svg_tag("g"), {"id": wire.id, "class": net_class})
        for edge in edges:
            for section in edge.sections:
                points = section.points()
                path = "M" + " L".join(
                    f"{format_number(point.x)},{format_number(point.y)}" for point in points
                )
                ET.SubElement(group, svg_tag("path"), {"d": path, "class": net_class})
            for point in edge.junction_points:
                ET.SubElement(
                    group,
                    svg_tag("circle"),
                    {
                        "cx": format_number(point.x),
                        "cy": format_number(point.y),
                        "r": str(JUNCTION_RADIUS),
                        "style": "fill:#000",
                        "class": net_class,
                    },
                )
            if wire.width > 1:
                for label in edge.labels:
                    _bus_label(group, wire, label.x, label.y, label.width, label.height)
        return group


def render(
    laid_out: LaidOutGraph,
    drawable: DrawableGraph,
    catalog: TemplateCatalog,
    layout_graph: LayoutGraph,
) -> SchematicDiagram:
    return SchematicRenderer(catalog).render(laid_out, drawable, layout_graph)


def _extent(laid_out: LaidOutGraph) -> tuple[float, float]:
    width, height = laid_out.width, laid_out.height
    if width > 0 and height > 0:
        return width, height
    for node in laid_out.children:
        width = max(width, (node.x or 0.0) + node.width)
        height = max(height, (node.y or 0.0) + node.height)
    return width, height


def _check_unique(ids: Sequence[str]) -> None:
    seen = set()
    for item in ids:
        if item in seen:
            raise IncompleteRenderError(item, "emitted more than once")
        seen.add(item)


def _parent_of(root: ET.Element, child: ET.Element) -> ET.Element:
    for parent in root.iter():
        for candidate in parent:
            if candidate is child:
                return parent
    msg = "element is not part of the template fragment"
    raise ValueError(msg)


def _port_group(prototype: ET.Element, port: Port, x: float, y: float) -> ET.Element:
    clone = copy.deepcopy(prototype)
    clone.set(skin_attr("pid"), port.key)
    clone.set(skin_attr("x"), format_number(x))
    clone.set(skin_attr("y"), format_number(y))
    if clone.get("transform") is not None:
        clone.set("transform", f"translate({format_number(x)},{format_number(y)})")
    for text in clone.iter(svg_tag("text")):
        text.text = port.key
        break
    return clone


def _bus_label(
    group: ET.Element, wire: Wire, x: float, y: float, width: float, height: float
) -> None:
    ET.SubElement(
        group,
        svg_tag("rect"),
        {
            "x": format_number(x),
            "y": format_number(y),
            "width": format_number(width),
            "height": format_number(height),
            "style": "fill:#fff;stroke:none",
        },
    )
    text = ET.SubElement(
        group,
        svg_tag("text"),
        {
            "x": format_number(x + width / 2),
            "y": format_number(y + height - 1),
            "class": f"busLabel_{wire.width}",
            "text-anchor": "middle",
        },
    )
    text.text = f"/{wire.width}/"


def _constant_label(value: str) -> str:
    if len(value) > HEX_THRESHOLD and set(value) <= {"0", "1"}:
        return "0x" + format(int(value, 2), "x")
    return value


def _parameter_text(value: Any) -> str:
    if isinstance(value, str) and value and set(value) <= {"0", "1"}:
        return str(int(value, 2))
    return str(value)
