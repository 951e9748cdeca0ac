from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from domain.errors import MultipleDriverError, SchemaError, UnresolvedInputError
from domain.models import BitGroup, Cell, DrawableGraph, Port, Signal, Wire, net_key, wire_id
from domain.netlist import CONSTANT_BITS, YosysCell, YosysModule, parse_netlist
from domain.templates import (
    CONSTANT,
    INOUT_EXT,
    INPUT_EXT,
    JOIN,
    OUTPUT_EXT,
    SPLIT,
    CellTemplate,
    TemplateCatalog,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlattenOptions:
    constants: bool = True
    splits_and_joins: bool = True
    generics_laterals: bool = False
    generic_fallback: bool = False


class NetlistFlattener:
    def __init__(self, catalog: TemplateCatalog, options: FlattenOptions | None = None) -> None:
        self.catalog = catalog
        self.options = options or FlattenOptions()

    def flatten(self, netlist: Any) -> DrawableGraph:
        parsed = parse_netlist(netlist)
        module_name, module = parsed.top_module()
        cells = self._collect_cells(module)
        self._check_drivers(cells)

        if self.options.constants:
            cells.extend(self._add_constants(cells))
        if self.options.splits_and_joins:
            cells.extend(self._add_splits_joins(cells))

        wires = self._create_wires(cells)
        logger.debug(
            "Flattened module %s into %d elements and %d wires",
            module_name,
            len(cells),
            len(wires),
        )
        return DrawableGraph(module_name=module_name, cells=cells, wires=wires)

    def _collect_cells(self, module: YosysModule) -> List[Cell]:
        cells: List[Cell] = []
        seen: set[str] = set()

        def add(cell: Cell) -> None:
            if cell.key in seen:
                msg = f"Duplicate element name {cell.key!r} in netlist"
                raise SchemaError(msg)
            seen.add(cell.key)
            cells.append(cell)

        for name, port in module.ports.items():
            bits = list(port.bits)
            if port.direction == "input":
                template = self._template(INPUT_EXT, name)
                add(Cell(name, INPUT_EXT, template, outputs=[Port("Y", name, bits)]))
            elif port.direction == "output":
                template = self._template(OUTPUT_EXT, name)
                add(Cell(name, OUTPUT_EXT, template, inputs=[Port("A", name, bits)]))
            else:
                template = self._template(INOUT_EXT, name)
                add(Cell(name, INOUT_EXT, template, laterals=[Port("Y", name, bits)]))

        for name, ycell in module.cells.items():
            add(self._cell_from_yosys(name, ycell))
        return cells

    def _template(self, cell_type: str, cell: str) -> CellTemplate:
        return self.catalog.find(cell_type, cell, generic_fallback=self.options.generic_fallback)

    def _cell_from_yosys(self, name: str, ycell: YosysCell) -> Cell:
        template = self._template(ycell.type, name)
        ports = [Port(port_name, name, list(bits)) for port_name, bits in ycell.connections.items()]

        inputs: List[Port] = []
        outputs: List[Port] = []
        laterals: List[Port] = []
        if not template.is_generic:
            input_pids = template.input_pids()
            output_pids = template.output_pids()
            lateral_pids = template.lateral_pids()
            inputs = [port for port in ports if port.key in input_pids]
            outputs = [port for port in ports if port.key in output_pids]
            laterals = [port for port in ports if port.key in lateral_pids]

        if template.is_generic or len(inputs) + len(outputs) + len(laterals) != len(ports):
            inputs, outputs, laterals = [], [], []
            for port in ports:
                direction = ycell.port_directions.get(port.key)
                if direction == "input":
                    inputs.append(port)
                elif direction == "output":
                    outputs.append(port)
                elif direction == "inout":
                    laterals.append(port)
                else:
                    msg = f"Cell {name!r}: cannot determine direction of port {port.key!r}"
                    raise SchemaError(msg)

        if not template.is_variable_size:
            for port in ports:
                if template.port(port.key) is None:
                    msg = (
                        f"Cell {name!r}: port {port.key!r} is not declared by "
                        f"template {template.type_name!r}"
                    )
                    raise SchemaError(msg)

        return Cell(
            key=name,
            type=ycell.type,
            template=template,
            inputs=inputs,
            outputs=outputs,
            laterals=laterals,
            attributes=dict(ycell.attributes),
            parameters=dict(ycell.parameters),
        )

    def _is_lateral(self, cell: Cell, port: Port) -> bool:
        if cell.is_generic:
            return self.options.generics_laterals
        port_template = cell.template.port(port.key)
        return port_template is not None and port_template.is_lateral

    def _check_drivers(self, cells: Sequence[Cell]) -> None:
        drivers: Dict[int, List[str]] = {}
        riders: Dict[int, List[str]] = {}
        external: set[int] = set()

        for cell in cells:
            for port in cell.laterals:
                external.update(bit for bit in port.bits if isinstance(bit, int))
            for port in cell.outputs:
                if self._is_lateral(cell, port):
                    external.update(bit for bit in port.bits if isinstance(bit, int))
                    continue
                for bit in port.bits:
                    if isinstance(bit, int):
                        drivers.setdefault(bit, []).append(port.id)
            for port in cell.inputs:
                if self._is_lateral(cell, port):
                    external.update(bit for bit in port.bits if isinstance(bit, int))
                    continue
                for bit in port.bits:
                    if isinstance(bit, int):
                        riders.setdefault(bit, []).append(port.id)

        for bit, sources in drivers.items():
            if len(sources) > 1:
                raise MultipleDriverError(bit, sources)
        for bit, loads in riders.items():
            if bit not in drivers and bit not in external:
                raise UnresolvedInputError(bit, loads)

    def _add_constants(self, cells: Sequence[Cell]) -> List[Cell]:
        next_signal = _max_signal(cells) + 1
        signals_by_value: Dict[str, List[int]] = {}
        taken = {cell.key for cell in cells}
        constants: List[Cell] = []

        for cell in cells:
            for port in cell.inputs:
                for start, end in _constant_runs(port.bits):
                    # port bits are LSB first, constant names read MSB first
                    value = "".join(str(bit) for bit in reversed(port.bits[start:end]))
                    signals = signals_by_value.get(value)
                    if signals is None:
                        signals = list(range(next_signal, next_signal + end - start))
                        next_signal += end - start
                        signals_by_value[value] = signals
                        key = _unique_key(value, taken)
                        constants.append(
                            Cell(
                                key=key,
                                type=CONSTANT,
                                template=self.catalog.find(CONSTANT, key),
                                outputs=[Port("Y", key, list(signals))],
                                attributes={"value": value},
                            )
                        )
                    port.bits[start:end] = signals
        return constants

    def _add_splits_joins(self, cells: Sequence[Cell]) -> List[Cell]:
        driver_groups = [
            port.bit_group()
            for cell in cells
            for port in cell.outputs
            if not self._is_lateral(cell, port)
        ]
        rider_groups = [
            port.bit_group()
            for cell in cells
            for port in cell.inputs
            if not self._is_lateral(cell, port)
        ]
        driver_set = set(driver_groups)
        splits: Dict[BitGroup, List[BitGroup]] = {}
        joins: Dict[BitGroup, List[BitGroup]] = {}

        for rider in dict.fromkeys(rider_groups):
            if rider in driver_set:
                continue
            pieces, driven = self._solve_rider(rider, driver_groups, driver_set, splits)
            if len(pieces) > 1 and driven:
                joins[rider] = pieces

        adapters: List[Cell] = []
        for target, pieces in joins.items():
            adapters.append(self._join_cell(target, pieces))
        for source, pieces in splits.items():
            adapters.append(self._split_cell(source, pieces))
        return adapters

    def _solve_rider(
        self,
        rider: BitGroup,
        driver_groups: Sequence[BitGroup],
        driver_set: set[BitGroup],
        splits: Dict[BitGroup, List[BitGroup]],
    ) -> Tuple[List[BitGroup], bool]:
        """Cut a rider group into the longest pieces some driver can supply.

        A piece matching a whole driver group connects directly, a piece found
        inside a wider driver group becomes one output of that driver's split.
        Unmatched bits fall out one at a time.
        """
        pieces: List[BitGroup] = []
        driven = False
        start = 0
        while start < len(rider):
            end = len(rider)
            while True:
                piece = rider[start:end]
                if piece in driver_set:
                    driven = True
                    break
                container = _find_container(piece, driver_groups)
                if container is not None:
                    outputs = splits.setdefault(container, [])
                    if piece not in outputs:
                        outputs.append(piece)
                    driven = True
                    break
                if end - start == 1:
                    break
                end -= 1
            pieces.append(piece)
            start = end
        return pieces, driven

    def _split_cell(self, source: BitGroup, pieces: Sequence[BitGroup]) -> Cell:
        key = f"$split${net_key(source)}"
        outputs = [
            Port(_range_name(_index_of(source, piece), len(piece)), key, list(piece))
            for piece in pieces
        ]
        return Cell(
            key=key,
            type=SPLIT,
            template=self.catalog.find(SPLIT, key),
            inputs=[Port("in", key, list(source))],
            outputs=outputs,
        )

    def _join_cell(self, target: BitGroup, pieces: Sequence[BitGroup]) -> Cell:
        key = f"$join${net_key(target)}"
        inputs: List[Port] = []
        offset = 0
        for piece in pieces:
            inputs.append(Port(_range_name(offset, len(piece)), key, list(piece)))
            offset += len(piece)
        return Cell(
            key=key,
            type=JOIN,
            template=self.catalog.find(JOIN, key),
            inputs=inputs,
            outputs=[Port("out", key, list(target))],
        )

    def _create_wires(self, cells: Sequence[Cell]) -> List[Wire]:
        riders: Dict[BitGroup, List[Port]] = {}
        drivers: Dict[BitGroup, List[Port]] = {}
        laterals: Dict[BitGroup, List[Port]] = {}

        for cell in cells:
            for port in cell.inputs:
                target = laterals if self._is_lateral(cell, port) else riders
                target.setdefault(port.bit_group(), []).append(port)
            for port in cell.outputs:
                target = laterals if self._is_lateral(cell, port) else drivers
                target.setdefault(port.bit_group(), []).append(port)
            for port in cell.laterals:
                laterals.setdefault(port.bit_group(), []).append(port)

        nets = dict.fromkeys([*riders, *drivers, *laterals])
        return [
            Wire(
                id=wire_id(bits),
                bits=bits,
                drivers=tuple(drivers.get(bits, ())),
                riders=tuple(riders.get(bits, ())),
                laterals=tuple(laterals.get(bits, ())),
            )
            for bits in nets
        ]


def flatten(
    netlist: Any, catalog: TemplateCatalog, options: FlattenOptions | None = None
) -> DrawableGraph:
    return NetlistFlattener(catalog, options).flatten(netlist)


def _max_signal(cells: Iterable[Cell]) -> int:
    highest = 1
    for cell in cells:
        for port in cell.ports():
            for bit in port.bits:
                if isinstance(bit, int) and bit > highest:
                    highest = bit
    return highest


def _constant_runs(bits: Sequence[Signal]) -> List[Tuple[int, int]]:
    runs: List[Tuple[int, int]] = []
    start: Optional[int] = None
    for index, bit in enumerate(bits):
        if isinstance(bit, str) and bit in CONSTANT_BITS:
            if start is None:
                start = index
        elif start is not None:
            runs.append((start, index))
            start = None
    if start is not None:
        runs.append((start, len(bits)))
    return runs


def _index_of(haystack: BitGroup, needle: BitGroup) -> int:
    size = len(needle)
    for index in range(len(haystack) - size + 1):
        if haystack[index : index + size] == needle:
            return index
    return -1


def _find_container(piece: BitGroup, driver_groups: Sequence[BitGroup]) -> Optional[BitGroup]:
    for group in driver_groups:
        if len(group) > len(piece) and _index_of(group, piece) >= 0:
            return group
    return None


def _range_name(start: int, length: int) -> str:
    end = start + length - 1
    return str(start) if start == end else f"{end}:{start}"


def _unique_key(value: str, taken: set[str]) -> str:
    key = value
    suffix = 1
    while key in taken:
        key = f"{value}${suffix}"
        suffix += 1
    taken.add(key)
    return key
