from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from domain.errors import SchemaError

LITERAL_BITS = ("0", "1", "x", "z")
CONSTANT_BITS = ("0", "1")

Signal = Union[int, str]


def _check_bits(bits: List[Signal]) -> List[Signal]:
    for index, bit in enumerate(bits):
        if isinstance(bit, bool):
            msg = f"bit {index} must be a net index or literal, got {bit!r}"
            raise ValueError(msg)
        if isinstance(bit, int):
            if bit < 2:
                msg = f"bit {index}: net indices start at 2, got {bit}"
                raise ValueError(msg)
        elif bit not in LITERAL_BITS:
            msg = f"bit {index}: unknown literal {bit!r}"
            raise ValueError(msg)
    return bits


class YosysPort(BaseModel):
    direction: Literal["input", "output", "inout"]
    bits: List[Signal] = Field(..., min_length=1)

    @field_validator("bits", mode="after")
    @classmethod
    def ensure_valid_bits(cls, bits: List[Signal]) -> List[Signal]:
        return _check_bits(bits)


class YosysCell(BaseModel):
    type: str = Field(..., min_length=1)
    hide_name: int = 0
    port_directions: Dict[str, Literal["input", "output", "inout"]] = Field(
        default_factory=dict
    )
    connections: Dict[str, List[Signal]] = Field(default_factory=dict)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    attributes: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("connections", mode="after")
    @classmethod
    def ensure_known_bits(cls, connections: Dict[str, List[Signal]]) -> Dict[str, List[Signal]]:
        for port, bits in connections.items():
            if not bits:
                msg = f"port {port!r} has no bits"
                raise ValueError(msg)
            try:
                _check_bits(bits)
            except ValueError as exc:
                msg = f"port {port!r}: {exc}"
                raise ValueError(msg) from exc
        return connections


class YosysNetname(BaseModel):
    hide_name: int = 0
    bits: List[Signal] = Field(default_factory=list)
    attributes: Dict[str, Any] = Field(default_factory=dict)


class YosysModule(BaseModel):
    attributes: Dict[str, Any] = Field(default_factory=dict)
    ports: Dict[str, YosysPort] = Field(default_factory=dict)
    cells: Dict[str, YosysCell] = Field(default_factory=dict)
    netnames: Dict[str, YosysNetname] = Field(default_factory=dict)

    def is_top(self) -> bool:
        value = self.attributes.get("top")
        if isinstance(value, str):
            return value.strip("0") != ""
        return bool(value)


class YosysNetlist(BaseModel):
    creator: Optional[str] = None
    modules: Dict[str, YosysModule] = Field(default_factory=dict)

    def top_module(self) -> tuple[str, YosysModule]:
        if not self.modules:
            msg = "Netlist has no modules"
            raise SchemaError(msg)
        for name, module in self.modules.items():
            if module.is_top():
                return name, module
        name = next(iter(self.modules))
        return name, self.modules[name]


def parse_netlist(payload: Any) -> YosysNetlist:
    if isinstance(payload, YosysNetlist):
        return payload
    try:
        return YosysNetlist.model_validate(payload)
    except ValidationError as exc:
        raise SchemaError(_describe_validation_error(exc)) from exc


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        problems.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "Invalid netlist: " + "; ".join(problems)
