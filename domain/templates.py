from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from domain.errors import UnknownCellType

SKIN_NS = "https://github.com/nturley/netlistsvg"
SVG_NS = "http://www.w3.org/2000/svg"

GENERIC_TYPE = "generic"
INPUT_EXT = "$_inputExt_"
OUTPUT_EXT = "$_outputExt_"
INOUT_EXT = "$_inoutExt_"
CONSTANT = "$_constant_"
SPLIT = "$_split_"
JOIN = "$_join_"

SIDE_WEST = "WEST"
SIDE_EAST = "EAST"
SIDE_NORTH = "NORTH"
SIDE_SOUTH = "SOUTH"

DIR_IN = "in"
DIR_OUT = "out"
DIR_LATERAL = "lateral"

_POSITION_SIDES = {
    "left": SIDE_WEST,
    "right": SIDE_EAST,
    "top": SIDE_NORTH,
    "bottom": SIDE_SOUTH,
}


def side_from_position(position: Optional[str], x: float, width: float) -> str:
    if position:
        side = _POSITION_SIDES.get(position.strip().lower())
        if side:
            return side
    return SIDE_WEST if x <= width / 2 else SIDE_EAST


def direction_from_side(declared: Optional[str], side: str) -> str:
    if declared in (DIR_IN, DIR_OUT, DIR_LATERAL):
        return declared
    return DIR_IN if side in (SIDE_WEST, SIDE_NORTH) else DIR_OUT


@dataclass(frozen=True)
class PortTemplate:
    pid: str
    x: float
    y: float
    side: str
    direction: str = DIR_IN

    @property
    def is_input(self) -> bool:
        return self.direction == DIR_IN

    @property
    def is_output(self) -> bool:
        return self.direction == DIR_OUT

    @property
    def is_lateral(self) -> bool:
        return self.direction == DIR_LATERAL


@dataclass(frozen=True)
class CellTemplate:
    type_name: str
    width: float
    height: float
    ports: Tuple[PortTemplate, ...]
    fragment: str
    aliases: Tuple[str, ...] = ()

    @property
    def is_generic(self) -> bool:
        return self.type_name == GENERIC_TYPE

    @property
    def names(self) -> Tuple[str, ...]:
        return (self.type_name, *self.aliases)

    @property
    def is_split_join(self) -> bool:
        return SPLIT in self.names or JOIN in self.names

    @property
    def is_variable_size(self) -> bool:
        return self.is_generic or self.is_split_join

    def port(self, pid: str) -> Optional[PortTemplate]:
        for port in self.ports:
            if port.pid == pid:
                return port
        return None

    def ports_with_prefix(self, prefix: str) -> Tuple[PortTemplate, ...]:
        return tuple(port for port in self.ports if port.pid.startswith(prefix))

    def pitch(self, prefix: str) -> float:
        anchors = self.ports_with_prefix(prefix)
        if len(anchors) < 2:
            return 0.0
        return anchors[1].y - anchors[0].y

    def anchor(self, prefix: str, index: int) -> Optional[Tuple[float, float, str]]:
        """Position of the ``index``-th port of a variable-size group."""
        anchors = self.ports_with_prefix(prefix)
        if not anchors:
            return None
        first = anchors[0]
        return first.x, first.y + index * self.pitch(prefix), first.side

    def stretched_height(self, in_count: int, out_count: int) -> float:
        gap = self.pitch("in") or self.pitch("out")
        return self.height + gap * (max(in_count, out_count, 1) - 2)

    def input_pids(self) -> Tuple[str, ...]:
        return tuple(port.pid for port in self.ports if port.is_input)

    def output_pids(self) -> Tuple[str, ...]:
        return tuple(port.pid for port in self.ports if port.is_output)

    def lateral_pids(self) -> Tuple[str, ...]:
        return tuple(port.pid for port in self.ports if port.is_lateral)


@dataclass(frozen=True)
class SkinProperties:
    constants: bool = True
    splits_and_joins: bool = True
    generics_laterals: bool = False


@dataclass(frozen=True)
class TemplateCatalog:
    """Read-only lookup from cell type to drawable template.

    Shared between concurrent renders, so nothing here is ever mutated after
    construction: template fragments are kept as serialized SVG text and each
    render parses its own copy.
    """

    templates: Tuple[CellTemplate, ...]
    properties: SkinProperties = SkinProperties()
    layout_options: Tuple[Tuple[str, str], ...] = ()
    svg_attributes: Tuple[Tuple[str, str], ...] = ()
    styles: str = ""
    _index: Dict[str, CellTemplate] = field(
        default_factory=dict, init=False, compare=False, repr=False
    )

    def __post_init__(self) -> None:
        index: Dict[str, CellTemplate] = {}
        for template in self.templates:
            index.setdefault(template.type_name, template)
            for alias in template.aliases:
                index.setdefault(alias, template)
        object.__setattr__(self, "_index", index)

    def find(
        self, cell_type: str, cell: str | None = None, generic_fallback: bool = False
    ) -> CellTemplate:
        template = self._index.get(cell_type)
        if template is not None:
            return template
        if generic_fallback and GENERIC_TYPE in self._index:
            return self._index[GENERIC_TYPE]
        raise UnknownCellType(cell_type, cell)

    def has(self, cell_type: str) -> bool:
        return cell_type in self._index

    def layout_options_dict(self) -> Mapping[str, str]:
        return dict(self.layout_options)
