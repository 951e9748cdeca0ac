from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import ORJSONResponse, Response

from adapters.filesystem.json_utils import parse_json_text
from app.config import AppSettings, load_settings
from app.wiring import build_pipeline
from domain.errors import IncompleteRenderError, LayoutEngineFailure, SchematicError
from domain.services.render_pipeline import SchematicPipeline

logger = logging.getLogger(__name__)

SVG_MEDIA_TYPE = "image/svg+xml"


@dataclass(frozen=True)
class RenderContext:
    settings: AppSettings
    pipeline: SchematicPipeline


def status_for(exc: SchematicError) -> int:
    if isinstance(exc, LayoutEngineFailure):
        return 502
    if isinstance(exc, IncompleteRenderError):
        return 500
    return 422


def create_app(settings: AppSettings) -> FastAPI:
    app = FastAPI(title="Netlist Schematic")
    context = RenderContext(settings=settings, pipeline=build_pipeline(settings))

    def get_context() -> RenderContext:
        return context

    async def read_netlist(request: Request) -> dict[str, Any]:
        return parse_json_text(await request.body(), "request body")

    @app.exception_handler(SchematicError)
    async def schematic_error_handler(request: Request, exc: SchematicError) -> ORJSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return ORJSONResponse(
            {"error": type(exc).__name__, "detail": str(exc)}, status_code=status_code
        )

    @app.get("/health")
    def health() -> ORJSONResponse:
        return ORJSONResponse({"status": "ok"})

    @app.post("/api/render")
    async def api_render(
        request: Request,
        ctx: RenderContext = Depends(get_context),
    ) -> Response:
        netlist = await read_netlist(request)
        diagram = await ctx.pipeline.render(netlist)
        headers = {
            "X-Schematic-Elements": str(len(diagram.element_ids)),
            "X-Schematic-Wires": str(len(diagram.wire_ids)),
        }
        return Response(content=diagram.svg, media_type=SVG_MEDIA_TYPE, headers=headers)

    @app.post("/api/layout")
    async def api_layout(
        request: Request,
        prelayout: bool = Query(False),
        ctx: RenderContext = Depends(get_context),
    ) -> ORJSONResponse:
        netlist = await read_netlist(request)
        payload = await ctx.pipeline.dump_layout(netlist, prelayout=prelayout)
        return ORJSONResponse(payload)

    return app


app = create_app(load_settings())
