from __future__ import annotations

from adapters.layout.elkjs import ElkjsConfig, ElkjsLayoutEngine
from adapters.layout.http_engine import HttpLayoutConfig, HttpLayoutEngine
from adapters.layout.layered import LayeredLayoutEngine
from adapters.skin.svg_skin import SvgSkinLoader
from app.config import AppSettings, RenderSettings
from domain.ports.layout import LayoutEngine
from domain.services.render_pipeline import RenderOverrides, SchematicPipeline
from domain.templates import TemplateCatalog


def build_catalog(settings: AppSettings) -> TemplateCatalog:
    loader = SvgSkinLoader()
    skin_path = settings.render.skin_path
    if skin_path is None:
        return loader.load_default()
    if not skin_path.exists():
        msg = f"Skin file not found: {skin_path}"
        raise FileNotFoundError(msg)
    return loader.load_path(skin_path)


def build_layout_engine(settings: AppSettings) -> LayoutEngine:
    render = settings.render
    if render.layout_engine == "http":
        if not render.http.url:
            msg = "render.http.url is required when layout_engine is http"
            raise ValueError(msg)
        return HttpLayoutEngine(
            HttpLayoutConfig(url=render.http.url, timeout_seconds=render.http.timeout_seconds)
        )
    if render.layout_engine == "layered":
        return LayeredLayoutEngine()
    return ElkjsLayoutEngine(
        ElkjsConfig(
            node_executable=render.elkjs.node_executable,
            node_path=render.elkjs.node_path,
        )
    )


def build_overrides(render: RenderSettings) -> RenderOverrides:
    return RenderOverrides(
        constants=render.constants,
        splits_and_joins=render.splits_and_joins,
        generics_laterals=render.generics_laterals,
        generic_fallback=render.generic_fallback,
        layout_options=dict(render.layout_options),
    )


def build_pipeline(settings: AppSettings) -> SchematicPipeline:
    return SchematicPipeline(
        catalog=build_catalog(settings),
        layout_engine=build_layout_engine(settings),
        overrides=build_overrides(settings.render),
    )
