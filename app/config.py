from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import PydanticBaseSettingsSource, YamlConfigSettingsSource

DEFAULT_CONFIG_PATH = Path("config/schematic.yaml")

LayoutEngineName = Literal["elkjs", "http", "layered"]


class ElkjsSettings(BaseModel):
    node_executable: str = "node"
    node_path: str | None = None


class HttpLayoutSettings(BaseModel):
    url: str = "http://127.0.0.1:8090/layout"
    timeout_seconds: float | None = None


class RenderSettings(BaseModel):
    skin_path: Path | None = None
    constants: bool | None = None
    splits_and_joins: bool | None = None
    generics_laterals: bool | None = None
    generic_fallback: bool = False
    layout_engine: LayoutEngineName = "elkjs"
    layout_options: dict[str, Any] = Field(default_factory=dict)
    elkjs: ElkjsSettings = ElkjsSettings()
    http: HttpLayoutSettings = HttpLayoutSettings()

    @field_validator("layout_engine", mode="before")
    @classmethod
    def normalize_engine(cls, value: object) -> str:
        return str(value).strip().lower() if value else "elkjs"

    @field_validator("layout_options", mode="before")
    @classmethod
    def normalize_layout_options(cls, value: object) -> dict[str, Any]:
        if value is None or value == "":
            return {}
        if isinstance(value, dict):
            return {str(key): item for key, item in value.items()}
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError as exc:
                msg = "render.layout_options must be a JSON object"
                raise ValueError(msg) from exc
            if not isinstance(parsed, dict):
                msg = "render.layout_options must be a JSON object"
                raise ValueError(msg)
            return {str(key): item for key, item in parsed.items()}
        msg = "render.layout_options must be a JSON object"
        raise ValueError(msg)


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SCHEMATIC_", env_nested_delimiter="__")

    render: RenderSettings = RenderSettings()

    _yaml_path: ClassVar[Path | None] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: list[PydanticBaseSettingsSource] = [
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        ]
        if cls._yaml_path:
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=cls._yaml_path))
        return tuple(sources)


def load_settings(config_path: Path | None = None) -> AppSettings:
    env_path = os.getenv("SCHEMATIC_CONFIG_PATH")
    resolved_path: Path | None = None

    if config_path is not None:
        resolved_path = config_path
    elif env_path:
        resolved_path = Path(env_path)
    elif DEFAULT_CONFIG_PATH.exists():
        resolved_path = DEFAULT_CONFIG_PATH

    previous = AppSettings._yaml_path
    try:
        if resolved_path is not None:
            if not resolved_path.exists():
                msg = f"Config file not found: {resolved_path}"
                raise FileNotFoundError(msg)
            AppSettings._yaml_path = resolved_path
        return AppSettings()
    finally:
        AppSettings._yaml_path = previous
