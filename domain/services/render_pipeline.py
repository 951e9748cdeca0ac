from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from domain.errors import LayoutEngineFailure, SchemaError
from domain.layout_result import LaidOutGraph, parse_layout
from domain.models import DrawableGraph, LayoutGraph, SchematicDiagram
from domain.ports.layout import LayoutEngine
from domain.services.build_layout_graph import GraphBuilder
from domain.services.flatten_netlist import FlattenOptions, NetlistFlattener
from domain.services.render_schematic import SchematicRenderer
from domain.templates import TemplateCatalog

logger = logging.getLogger(__name__)


class RenderStage(str, Enum):
    FLATTENED = "Flattened"
    GRAPH_BUILT = "GraphBuilt"
    LAYOUT_REQUESTED = "LayoutRequested"
    LAYOUT_COMPLETE = "LayoutComplete"
    RENDERED = "Rendered"


@dataclass(frozen=True)
class RenderOverrides:
    """Host-level settings layered over the skin's own properties.

    ``None`` means "use whatever the skin declares".
    """

    constants: Optional[bool] = None
    splits_and_joins: Optional[bool] = None
    generics_laterals: Optional[bool] = None
    generic_fallback: bool = False
    layout_options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RenderOptions:
    constants: bool
    splits_and_joins: bool
    generics_laterals: bool
    generic_fallback: bool
    layout_options: Tuple[Tuple[str, Any], ...]

    @classmethod
    def resolve(cls, catalog: TemplateCatalog, overrides: RenderOverrides) -> "RenderOptions":
        properties = catalog.properties
        layout_options: Dict[str, Any] = dict(catalog.layout_options)
        layout_options.update(overrides.layout_options)
        return cls(
            constants=_pick(overrides.constants, properties.constants),
            splits_and_joins=_pick(overrides.splits_and_joins, properties.splits_and_joins),
            generics_laterals=_pick(overrides.generics_laterals, properties.generics_laterals),
            generic_fallback=overrides.generic_fallback,
            layout_options=tuple(layout_options.items()),
        )

    def flatten_options(self) -> FlattenOptions:
        return FlattenOptions(
            constants=self.constants,
            splits_and_joins=self.splits_and_joins,
            generics_laterals=self.generics_laterals,
            generic_fallback=self.generic_fallback,
        )

    def layout_options_dict(self) -> Dict[str, Any]:
        return dict(self.layout_options)


@dataclass(frozen=True)
class PreparedRender:
    options: RenderOptions
    drawable: DrawableGraph
    layout_graph: LayoutGraph
    request: Dict[str, Any]


class SchematicPipeline:
    """Netlist in, SVG out: flatten, build, lay out, render.

    One call runs the stages in order and stops at the first failure. The
    catalog is shared by every call; everything else is created per call, and
    ``overrides`` is read once when a call starts.
    """

    def __init__(
        self,
        catalog: TemplateCatalog,
        layout_engine: LayoutEngine,
        overrides: RenderOverrides | None = None,
    ) -> None:
        self.catalog = catalog
        self.layout_engine = layout_engine
        self.overrides = overrides or RenderOverrides()
        self.builder = GraphBuilder()
        self.renderer = SchematicRenderer(catalog)

    def snapshot(self, overrides: RenderOverrides | None = None) -> RenderOptions:
        return RenderOptions.resolve(self.catalog, overrides or self.overrides)

    def prepare(self, netlist: Any, options: RenderOptions) -> PreparedRender:
        drawable = NetlistFlattener(self.catalog, options.flatten_options()).flatten(netlist)
        _log_stage(RenderStage.FLATTENED, drawable.module_name)
        layout_graph = self.builder.build(drawable)
        _log_stage(RenderStage.GRAPH_BUILT, drawable.module_name)
        return PreparedRender(
            options=options,
            drawable=drawable,
            layout_graph=layout_graph,
            request=layout_graph.to_dict(options.layout_options_dict()),
        )

    async def render(
        self,
        netlist: Any,
        *,
        precomputed_layout: Mapping[str, Any] | None = None,
        include_prelayout: bool = False,
        overrides: RenderOverrides | None = None,
    ) -> SchematicDiagram:
        prepared = self.prepare(netlist, self.snapshot(overrides))
        module = prepared.drawable.module_name

        if precomputed_layout is None:
            _, laid_out = await self._request_layout(prepared)
        else:
            laid_out = _parse_precomputed(precomputed_layout)
        _log_stage(RenderStage.LAYOUT_COMPLETE, module)

        diagram = self.renderer.render(laid_out, prepared.drawable, prepared.layout_graph)
        _log_stage(RenderStage.RENDERED, module)
        if include_prelayout:
            diagram = replace(diagram, prelayout=prepared.request)
        return diagram

    async def dump_layout(
        self,
        netlist: Any,
        *,
        prelayout: bool = False,
        overrides: RenderOverrides | None = None,
    ) -> Dict[str, Any]:
        prepared = self.prepare(netlist, self.snapshot(overrides))
        if prelayout:
            return prepared.request
        payload, _ = await self._request_layout(prepared)
        _log_stage(RenderStage.LAYOUT_COMPLETE, prepared.drawable.module_name)
        return payload

    async def _request_layout(
        self, prepared: PreparedRender
    ) -> Tuple[Dict[str, Any], LaidOutGraph]:
        _log_stage(RenderStage.LAYOUT_REQUESTED, prepared.drawable.module_name)
        try:
            payload = await self.layout_engine.layout(
                prepared.request, prepared.options.layout_options_dict()
            )
        except LayoutEngineFailure:
            logger.exception("Layout engine rejected %s", prepared.drawable.module_name)
            raise
        except Exception as exc:
            logger.exception("Layout engine failed on %s", prepared.drawable.module_name)
            msg = f"Layout engine failed: {exc}"
            raise LayoutEngineFailure(msg) from exc
        return payload, parse_layout(payload)


def _pick(override: Optional[bool], default: bool) -> bool:
    return default if override is None else override


def _parse_precomputed(payload: Mapping[str, Any]) -> LaidOutGraph:
    try:
        return parse_layout(payload)
    except LayoutEngineFailure as exc:
        msg = f"Precomputed layout is malformed: {exc}"
        raise SchemaError(msg) from exc


def _log_stage(stage: RenderStage, module: str) -> None:
    logger.debug("%s: %s", module, stage.value)
