from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol


class LayoutEngine(Protocol):
    async def layout(
        self, graph: dict[str, Any], layout_options: Mapping[str, Any]
    ) -> dict[str, Any]:
        ...
