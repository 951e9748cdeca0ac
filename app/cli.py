from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from adapters.filesystem.diagram_repository import FileSystemDiagramRepository
from adapters.filesystem.json_utils import load_json
from adapters.filesystem.netlist_repository import FileSystemNetlistRepository
from app.config import AppSettings, RenderSettings, load_settings
from app.wiring import build_pipeline
from domain.errors import SchematicError
from domain.services.flatten_netlist import NetlistFlattener

app = typer.Typer(no_args_is_help=True)
console = Console()


def _settings(config: Optional[Path], skin: Optional[Path], engine: Optional[str]) -> AppSettings:
    settings = load_settings(config)
    update: dict[str, object] = {}
    if skin is not None:
        update["skin_path"] = skin
    if engine is not None:
        update["layout_engine"] = engine.lower()
    if update:
        render = RenderSettings.model_validate({**settings.render.model_dump(), **update})
        settings = settings.model_copy(update={"render": render})
    return settings


def _require(path: Path) -> None:
    if not path.exists():
        console.print(f"[red]File not found:[/] {path}")
        raise typer.Exit(code=1)


@app.command("render")
def render(
    netlist_path: Path = typer.Argument(..., help="Yosys JSON netlist."),
    skin: Optional[Path] = typer.Option(None, help="SVG skin with cell templates."),
    output: Optional[Path] = typer.Option(None, help="Where to write the SVG."),
    engine: Optional[str] = typer.Option(None, help="Layout engine: elkjs, http or layered."),
    layout: Optional[Path] = typer.Option(None, help="Precomputed ELK layout JSON to draw."),
    prelayout_json: Optional[Path] = typer.Option(
        None, help="Also write the layout request sent to the engine."
    ),
    config: Optional[Path] = typer.Option(None, help="YAML settings file."),
) -> None:
    _require(netlist_path)
    target = output or netlist_path.with_suffix(".svg")
    try:
        pipeline = build_pipeline(_settings(config, skin, engine))
        netlist = FileSystemNetlistRepository().load(netlist_path)
        precomputed = load_json(layout) if layout is not None else None
        diagram = asyncio.run(
            pipeline.render(
                netlist,
                precomputed_layout=precomputed,
                include_prelayout=prelayout_json is not None,
            )
        )
    except (SchematicError, FileNotFoundError, ValueError) as exc:
        console.print(f"[red]Render failed:[/] {exc}")
        raise typer.Exit(code=1) from exc

    repository = FileSystemDiagramRepository()
    repository.save_svg(diagram.svg, target)
    console.print(
        f"[green]Wrote[/] {target} ({len(diagram.element_ids)} elements, "
        f"{len(diagram.wire_ids)} wires)"
    )
    if prelayout_json is not None and diagram.prelayout is not None:
        repository.save_json(diagram.prelayout, prelayout_json)
        console.print(f"[green]Wrote[/] {prelayout_json}")


@app.command("dump-layout")
def dump_layout(
    netlist_path: Path = typer.Argument(..., help="Yosys JSON netlist."),
    prelayout: bool = typer.Option(False, help="Skip the engine and dump the request graph."),
    output: Optional[Path] = typer.Option(None, help="Where to write the layout JSON."),
    skin: Optional[Path] = typer.Option(None, help="SVG skin with cell templates."),
    engine: Optional[str] = typer.Option(None, help="Layout engine: elkjs, http or layered."),
    config: Optional[Path] = typer.Option(None, help="YAML settings file."),
) -> None:
    _require(netlist_path)
    suffix = ".prelayout.json" if prelayout else ".layout.json"
    target = output or netlist_path.with_name(f"{netlist_path.stem}{suffix}")
    try:
        pipeline = build_pipeline(_settings(config, skin, engine))
        netlist = FileSystemNetlistRepository().load(netlist_path)
        payload = asyncio.run(pipeline.dump_layout(netlist, prelayout=prelayout))
    except (SchematicError, FileNotFoundError, ValueError) as exc:
        console.print(f"[red]Layout failed:[/] {exc}")
        raise typer.Exit(code=1) from exc

    FileSystemDiagramRepository().save_json(payload, target)
    console.print(f"[green]Wrote[/] {target}")


@app.command("validate")
def validate(
    netlist_path: Path = typer.Argument(..., help="Yosys JSON netlist to validate."),
    skin: Optional[Path] = typer.Option(None, help="SVG skin with cell templates."),
    config: Optional[Path] = typer.Option(None, help="YAML settings file."),
) -> None:
    _require(netlist_path)
    try:
        pipeline = build_pipeline(_settings(config, skin, None))
        options = pipeline.snapshot()
        netlist = FileSystemNetlistRepository().load(netlist_path)
        drawable = NetlistFlattener(pipeline.catalog, options.flatten_options()).flatten(netlist)
    except (SchematicError, FileNotFoundError, ValueError) as exc:
        console.print(f"[red]Validation failed:[/] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(
        f"[green]Valid netlist:[/] {netlist_path} (module {drawable.module_name}, "
        f"{len(drawable.cells)} elements, {len(drawable.wires)} wires)"
    )


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(8000, help="Bind port."),
) -> None:
    import uvicorn

    uvicorn.run("app.web_main:app", host=host, port=port)


if __name__ == "__main__":
    app()
