from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from filelock import FileLock

from adapters.filesystem.json_utils import write_bytes_atomic, write_json_atomic
from domain.ports.repositories import DiagramRepository


class FileSystemDiagramRepository(DiagramRepository):
    def save_svg(self, svg: str, path: Path) -> None:
        with FileLock(str(_lock_path(path))):
            write_bytes_atomic(path, svg.encode("utf-8"))

    def save_json(self, payload: Mapping[str, Any], path: Path) -> None:
        with FileLock(str(_lock_path(path))):
            write_json_atomic(path, dict(payload))


def _lock_path(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    return path.with_suffix(f"{path.suffix}.lock")
