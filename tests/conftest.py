from __future__ import annotations

import os
from collections.abc import Callable, Generator
from typing import Any

import pytest

from adapters.layout.layered import LayeredLayoutEngine
from adapters.skin.svg_skin import load_default_skin
from app.config import AppSettings, RenderSettings
from domain.ports.layout import LayoutEngine
from domain.services.render_pipeline import RenderOverrides, SchematicPipeline
from domain.templates import TemplateCatalog


def _clear_schematic_env() -> None:
    for key in list(os.environ):
        if key.startswith("SCHEMATIC_"):
            os.environ.pop(key, None)


_clear_schematic_env()


@pytest.fixture(autouse=True)
def clear_schematic_env() -> Generator[None, None, None]:
    _clear_schematic_env()
    yield
    _clear_schematic_env()


@pytest.fixture(scope="session")
def catalog() -> TemplateCatalog:
    return load_default_skin()


@pytest.fixture
def pipeline_factory(catalog: TemplateCatalog) -> Callable[..., SchematicPipeline]:
    def _factory(engine: LayoutEngine | None = None, **overrides: Any) -> SchematicPipeline:
        return SchematicPipeline(
            catalog,
            engine or LayeredLayoutEngine(),
            RenderOverrides(**overrides),
        )

    return _factory


@pytest.fixture
def render_settings() -> RenderSettings:
    return RenderSettings(layout_engine="layered")


@pytest.fixture
def app_settings(render_settings: RenderSettings) -> AppSettings:
    return AppSettings(render=render_settings)


@pytest.fixture
def app_settings_factory(
    render_settings: RenderSettings,
) -> Callable[..., AppSettings]:
    def _factory(**overrides: object) -> AppSettings:
        return AppSettings(render=render_settings.model_copy(update=overrides))

    return _factory
