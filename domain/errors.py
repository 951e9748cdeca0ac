from __future__ import annotations

from collections.abc import Sequence


class SchematicError(Exception):
    """Base class for every failure that aborts a render."""


class SchemaError(SchematicError):
    pass


class UnknownCellType(SchematicError):
    def __init__(self, cell_type: str, cell: str | None = None) -> None:
        self.cell_type = cell_type
        self.cell = cell
        where = f" (cell {cell!r})" if cell else ""
        super().__init__(f"No template for cell type {cell_type!r}{where}")


class MultipleDriverError(SchematicError):
    def __init__(self, bit: int | str, drivers: Sequence[str]) -> None:
        self.bit = bit
        self.drivers = tuple(drivers)
        super().__init__(f"Net bit {bit} has multiple drivers: {', '.join(self.drivers)}")


class UnresolvedInputError(SchematicError):
    def __init__(self, bit: int | str, riders: Sequence[str]) -> None:
        self.bit = bit
        self.riders = tuple(riders)
        super().__init__(
            f"Net bit {bit} is read by {', '.join(self.riders)} but has no driver"
        )


class LayoutEngineFailure(SchematicError):
    pass


class IncompleteRenderError(SchematicError):
    def __init__(self, missing_id: str, reason: str = "missing from layout") -> None:
        self.missing_id = missing_id
        super().__init__(f"{missing_id!r} {reason}")
