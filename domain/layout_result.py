from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from domain.errors import LayoutEngineFailure


class _ElkModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ElkPoint(_ElkModel):
    x: float
    y: float


class LaidOutSection(_ElkModel):
    id: Optional[str] = None
    start_point: ElkPoint = Field(..., alias="startPoint")
    end_point: ElkPoint = Field(..., alias="endPoint")
    bend_points: List[ElkPoint] = Field(default_factory=list, alias="bendPoints")

    def points(self) -> List[ElkPoint]:
        return [self.start_point, *self.bend_points, self.end_point]


class LaidOutLabel(_ElkModel):
    id: str = ""
    text: str = ""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


class LaidOutPort(_ElkModel):
    id: str
    x: Optional[float] = None
    y: Optional[float] = None
    width: float = 0.0
    height: float = 0.0


class LaidOutNode(_ElkModel):
    id: str
    x: Optional[float] = None
    y: Optional[float] = None
    width: float = 0.0
    height: float = 0.0
    ports: List[LaidOutPort] = Field(default_factory=list)
    labels: List[LaidOutLabel] = Field(default_factory=list)

    @property
    def is_positioned(self) -> bool:
        return self.x is not None and self.y is not None

    def port(self, port_id: str) -> Optional[LaidOutPort]:
        for port in self.ports:
            if port.id == port_id:
                return port
        return None


class LaidOutEdge(_ElkModel):
    id: str
    sources: List[str] = Field(default_factory=list)
    targets: List[str] = Field(default_factory=list)
    sections: List[LaidOutSection] = Field(default_factory=list)
    junction_points: List[ElkPoint] = Field(default_factory=list, alias="junctionPoints")
    labels: List[LaidOutLabel] = Field(default_factory=list)


class LaidOutGraph(_ElkModel):
    id: str = "root"
    width: float = 0.0
    height: float = 0.0
    children: List[LaidOutNode] = Field(default_factory=list)
    edges: List[LaidOutEdge] = Field(default_factory=list)

    def nodes_by_id(self) -> Dict[str, LaidOutNode]:
        return {node.id: node for node in self.children}

    def edges_by_id(self) -> Dict[str, LaidOutEdge]:
        return {edge.id: edge for edge in self.edges}


def parse_layout(payload: Any) -> LaidOutGraph:
    if isinstance(payload, LaidOutGraph):
        return payload
    try:
        return LaidOutGraph.model_validate(payload)
    except ValidationError as exc:
        msg = f"Layout engine returned a malformed graph: {exc.error_count()} error(s)"
        raise LayoutEngineFailure(msg) from exc
