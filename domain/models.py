from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from domain.templates import CONSTANT, JOIN, SPLIT, CellTemplate

Signal = Union[int, str]
BitGroup = Tuple[Signal, ...]


def net_key(bits: BitGroup) -> str:
    return ",".join(str(bit) for bit in bits)


def wire_id(bits: BitGroup) -> str:
    return "net_" + "_".join(str(bit) for bit in bits)


@dataclass
class Port:
    key: str
    parent: str
    bits: List[Signal]

    @property
    def id(self) -> str:
        return f"{self.parent}.{self.key}"

    def bit_group(self) -> BitGroup:
        return tuple(self.bits)


@dataclass
class Cell:
    key: str
    type: str
    template: CellTemplate
    inputs: List[Port] = field(default_factory=list)
    outputs: List[Port] = field(default_factory=list)
    laterals: List[Port] = field(default_factory=list)
    attributes: Dict[str, Any] = field(default_factory=dict)
    parameters: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_constant(self) -> bool:
        return self.type == CONSTANT

    @property
    def is_split(self) -> bool:
        return self.type == SPLIT

    @property
    def is_join(self) -> bool:
        return self.type == JOIN

    @property
    def is_generic(self) -> bool:
        return self.template.is_generic

    def ports(self) -> List[Port]:
        return [*self.inputs, *self.outputs, *self.laterals]


@dataclass(frozen=True)
class Wire:
    id: str
    bits: BitGroup
    drivers: Tuple[Port, ...]
    riders: Tuple[Port, ...]
    laterals: Tuple[Port, ...]

    @property
    def width(self) -> int:
        return len(self.bits)

    @property
    def is_literal(self) -> bool:
        """True when every bit is a ``0``/``1``/``x``/``z`` literal."""
        return all(isinstance(bit, str) for bit in self.bits)


@dataclass
class DrawableGraph:
    module_name: str
    cells: List[Cell]
    wires: List[Wire] = field(default_factory=list)

    def cell(self, key: str) -> Optional[Cell]:
        for cell in self.cells:
            if cell.key == key:
                return cell
        return None

    def cell_ids(self) -> List[str]:
        return [cell.key for cell in self.cells]

    def wire_ids(self) -> List[str]:
        return [wire.id for wire in self.wires]


def _compact(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


@dataclass(frozen=True)
class ElkLabel:
    id: str
    text: str
    width: float
    height: float
    x: Optional[float] = None
    y: Optional[float] = None
    layout_options: Tuple[Tuple[str, Any], ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            {
                "id": self.id,
                "text": self.text,
                "width": self.width,
                "height": self.height,
                "x": self.x,
                "y": self.y,
                "layoutOptions": dict(self.layout_options) or None,
            }
        )


@dataclass(frozen=True)
class ElkPort:
    id: str
    x: float
    y: float
    side: str
    width: float = 0.0
    height: float = 0.0
    labels: Tuple[ElkLabel, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            {
                "id": self.id,
                "width": self.width,
                "height": self.height,
                "x": self.x,
                "y": self.y,
                "layoutOptions": {"org.eclipse.elk.port.side": self.side},
                "labels": [label.to_dict() for label in self.labels] or None,
            }
        )


@dataclass(frozen=True)
class ElkNode:
    id: str
    width: float
    height: float
    ports: Tuple[ElkPort, ...]
    layout_options: Tuple[Tuple[str, Any], ...] = ()
    labels: Tuple[ElkLabel, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            {
                "id": self.id,
                "width": self.width,
                "height": self.height,
                "ports": [port.to_dict() for port in self.ports],
                "layoutOptions": dict(self.layout_options),
                "labels": [label.to_dict() for label in self.labels] or None,
            }
        )


@dataclass(frozen=True)
class ElkEdge:
    id: str
    sources: Tuple[str, ...]
    targets: Tuple[str, ...]
    layout_options: Tuple[Tuple[str, Any], ...] = ()
    labels: Tuple[ElkLabel, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            {
                "id": self.id,
                "sources": list(self.sources),
                "targets": list(self.targets),
                "layoutOptions": dict(self.layout_options) or None,
                "labels": [label.to_dict() for label in self.labels] or None,
            }
        )


@dataclass(frozen=True)
class LayoutGraph:
    """Engine-facing projection of one drawable graph."""

    id: str
    children: Tuple[ElkNode, ...]
    edges: Tuple[ElkEdge, ...]
    edge_wires: Tuple[Tuple[str, str], ...] = ()
    dummy_ids: Tuple[str, ...] = ()

    def to_dict(self, layout_options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "children": [child.to_dict() for child in self.children],
            "edges": [edge.to_dict() for edge in self.edges],
        }
        if layout_options:
            payload["layoutOptions"] = dict(layout_options)
        return payload

    def wire_of(self, edge_id: str) -> Optional[str]:
        for candidate, wire in self.edge_wires:
            if candidate == edge_id:
                return wire
        return None

    def node_ids(self) -> List[str]:
        return [child.id for child in self.children]

    def edge_ids(self) -> List[str]:
        return [edge.id for edge in self.edges]


@dataclass(frozen=True)
class SchematicDiagram:
    svg: str
    element_ids: Tuple[str, ...]
    wire_ids: Tuple[str, ...]
    width: float
    height: float
    prelayout: Optional[Dict[str, Any]] = None
