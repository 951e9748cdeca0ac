from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from domain.errors import LayoutEngineFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HttpLayoutConfig:
    url: str
    timeout_seconds: Optional[float] = None


class HttpLayoutEngine:
    """Posts the graph to a layout service that answers with the laid-out graph.

    The request body is ``{"graph": ..., "layoutOptions": ...}``. No timeout is
    applied unless configured; callers wrap the render with their own deadline.
    """

    def __init__(self, config: HttpLayoutConfig) -> None:
        self.config = config

    async def layout(
        self, graph: dict[str, Any], layout_options: Mapping[str, Any]
    ) -> dict[str, Any]:
        body = {"graph": graph, "layoutOptions": dict(layout_options)}
        logger.debug("POST %s with %d nodes", self.config.url, len(graph.get("children", [])))
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                response = await client.post(self.config.url, json=body)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            msg = f"Layout service answered {exc.response.status_code}: {exc.response.text[:200]}"
            raise LayoutEngineFailure(msg) from exc
        except httpx.HTTPError as exc:
            msg = f"Layout service request failed: {exc}"
            raise LayoutEngineFailure(msg) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            msg = "Layout service returned invalid JSON"
            raise LayoutEngineFailure(msg) from exc
        if not isinstance(payload, dict):
            msg = "Layout service returned a non-object graph"
            raise LayoutEngineFailure(msg)
        return payload
