from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence, Tuple

from domain.errors import SchemaError
from domain.models import (
    Cell,
    DrawableGraph,
    ElkEdge,
    ElkLabel,
    ElkNode,
    ElkPort,
    LayoutGraph,
    Port,
    Wire,
)
from domain.templates import SIDE_EAST, SIDE_WEST

logger = logging.getLogger(__name__)

ELK_PREFIX = "org.eclipse.elk"
PORT_CONSTRAINTS = "org.eclipse.elk.portConstraints"
EDGE_THICKNESS = "org.eclipse.elk.edge.thickness"
DIRECTION_PRIORITY = "org.eclipse.elk.layered.priority.direction"
INLINE_LABEL = "org.eclipse.elk.edgeLabels.inline"
NO_LAYOUT = "org.eclipse.elk.noLayout"

DFF_TYPE = "$dff"
LABEL_CHAR_WIDTH = 6.0
LABEL_HEIGHT = 11.0


class GraphBuilder:
    """Projects a drawable graph onto the ELK node/port/edge model.

    Every node id is the cell key and every port id is ``<cell>.<port>``, so
    ids survive unchanged from the pre-layout dump to the laid-out result.
    Edge ids are ``e<n>`` counted in wire order, dummy nodes ``$d_<n>`` with
    ``<n>`` skipping any cell key already taken. Wires made only of literal
    bits are never routed.
    """

    def build(self, drawable: DrawableGraph) -> LayoutGraph:
        children = [self._node(cell) for cell in drawable.cells]
        _check_ids(children)
        state = _EdgeState({cell.key: cell.type for cell in drawable.cells})
        for wire in drawable.wires:
            self._route(wire, state)
        children.extend(ElkNode(id=dummy, width=0, height=0, ports=()) for dummy in state.dummies)

        graph = LayoutGraph(
            id=drawable.module_name,
            children=tuple(children),
            edges=tuple(state.edges),
            edge_wires=tuple(state.edge_wires),
            dummy_ids=tuple(state.dummies),
        )
        logger.debug(
            "Built layout graph %s: %d nodes, %d edges, %d dummies",
            graph.id,
            len(graph.children),
            len(graph.edges),
            len(graph.dummy_ids),
        )
        return graph

    def _node(self, cell: Cell) -> ElkNode:
        template = cell.template
        if template.is_variable_size:
            ports = self._stretched_ports(cell)
            height = template.stretched_height(
                len(cell.inputs) + len(cell.laterals), len(cell.outputs)
            )
        else:
            ports = tuple(
                ElkPort(id=f"{cell.key}.{anchor.pid}", x=anchor.x, y=anchor.y, side=anchor.side)
                for anchor in template.ports
            )
            height = template.height

        options: Dict[str, Any] = {PORT_CONSTRAINTS: "FIXED_POS"}
        for key, value in cell.attributes.items():
            if key.startswith(ELK_PREFIX):
                options[key] = value
        if f"{ELK_PREFIX}.x" in options and f"{ELK_PREFIX}.y" in options:
            options[NO_LAYOUT] = True

        return ElkNode(
            id=cell.key,
            width=template.width,
            height=height,
            ports=ports,
            layout_options=tuple(options.items()),
        )

    def _stretched_ports(self, cell: Cell) -> Tuple[ElkPort, ...]:
        template = cell.template
        labelled_in = cell.is_generic or cell.is_join
        labelled_out = cell.is_generic or cell.is_split
        ports: List[ElkPort] = []
        for prefix, group, labelled, default_side in (
            ("in", cell.inputs, labelled_in, SIDE_WEST),
            ("out", cell.outputs, labelled_out, SIDE_EAST),
        ):
            for index, port in enumerate(group):
                anchor = template.anchor(prefix, index)
                x, y, side = anchor if anchor else (0.0, 0.0, default_side)
                labels = (_port_label(port, side),) if labelled else ()
                ports.append(ElkPort(id=port.id, x=x, y=y, side=side, labels=labels))
        # inout ports of generic cells continue below the inputs
        for index, port in enumerate(cell.laterals, start=len(cell.inputs)):
            anchor = template.anchor("in", index)
            x, y, side = anchor if anchor else (0.0, 0.0, SIDE_WEST)
            ports.append(ElkPort(id=port.id, x=x, y=y, side=side))
        return tuple(ports)

    def _route(self, wire: Wire, state: _EdgeState) -> None:
        if wire.is_literal:
            return
        drivers, riders, laterals = wire.drivers, wire.riders, wire.laterals
        if drivers and riders and not laterals:
            state.connect(wire, drivers, riders)
        elif laterals and (drivers or riders):
            state.connect(wire, drivers, laterals)
            state.connect(wire, laterals, riders)
        elif len(drivers) > 1 and not riders:
            dummy = state.dummy()
            state.connect(wire, drivers, [dummy])
        elif len(riders) > 1 and not drivers:
            dummy = state.dummy()
            state.connect(wire, [dummy], riders)
        elif len(laterals) > 1:
            state.connect(wire, laterals[:1], laterals[1:])


class _EdgeState:
    def __init__(self, cell_types: Dict[str, str]) -> None:
        self.cell_types = cell_types
        self.edges: List[ElkEdge] = []
        self.edge_wires: List[Tuple[str, str]] = []
        self.dummies: List[str] = []

    def dummy(self) -> str:
        index = len(self.dummies)
        while f"$d_{index}" in self.cell_types or f"$d_{index}" in self.dummies:
            index += 1
        dummy_id = f"$d_{index}"
        self.dummies.append(dummy_id)
        return dummy_id

    def connect(
        self,
        wire: Wire,
        sources: Sequence[Port | str],
        targets: Sequence[Port | str],
    ) -> None:
        for source in sources:
            for target in targets:
                edge_id = f"e{len(self.edges)}"
                self.edges.append(_edge(edge_id, wire, self.cell_types, source, target))
                self.edge_wires.append((edge_id, wire.id))


def _endpoint(end: Port | str) -> str:
    return end if isinstance(end, str) else end.id


def _edge(
    edge_id: str,
    wire: Wire,
    cell_types: Dict[str, str],
    source: Port | str,
    target: Port | str,
) -> ElkEdge:
    options: Dict[str, Any] = {EDGE_THICKNESS: 2 if wire.width > 1 else 1}
    source_type = cell_types.get(source.parent) if isinstance(source, Port) else None
    if source_type != DFF_TYPE:
        options[DIRECTION_PRIORITY] = 10

    labels: Tuple[ElkLabel, ...] = ()
    if wire.width > 1:
        text = str(wire.width)
        labels = (
            ElkLabel(
                id=f"{edge_id}.label",
                text=text,
                width=LABEL_CHAR_WIDTH * (len(text) + 2),
                height=LABEL_HEIGHT,
                layout_options=((INLINE_LABEL, True),),
            ),
        )
    return ElkEdge(
        id=edge_id,
        sources=(_endpoint(source),),
        targets=(_endpoint(target),),
        layout_options=tuple(options.items()),
        labels=labels,
    )


def _port_label(port: Port, side: str) -> ElkLabel:
    width = LABEL_CHAR_WIDTH * len(port.key)
    x = -width - 3 if side == SIDE_WEST else 5.0
    return ElkLabel(
        id=f"{port.id}.label",
        text=port.key,
        width=width,
        height=LABEL_HEIGHT,
        x=x,
        y=-LABEL_HEIGHT - 4,
    )


def build(drawable: DrawableGraph) -> LayoutGraph:
    return GraphBuilder().build(drawable)


def _check_ids(children: Sequence[ElkNode]) -> None:
    """Node and port ids share one namespace on the engine side."""
    owners: Dict[str, str] = {child.id: "element" for child in children}
    for child in children:
        for port in child.ports:
            if port.id in owners:
                msg = f"Port id {port.id!r} collides with an {owners[port.id]} of the same name"
                raise SchemaError(msg)
            owners[port.id] = "element port"
