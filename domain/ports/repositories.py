from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol


class NetlistRepository(Protocol):
    def load(self, path: Path) -> dict[str, Any]: ...


class DiagramRepository(Protocol):
    def save_svg(self, svg: str, path: Path) -> None: ...

    def save_json(self, payload: Mapping[str, Any], path: Path) -> None: ...
