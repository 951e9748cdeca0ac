from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

import orjson

from domain.errors import LayoutEngineFailure

logger = logging.getLogger(__name__)

RUNNER_SCRIPT = """
const ELK = require('elkjs');
let input = '';
process.stdin.setEncoding('utf8');
process.stdin.on('data', (chunk) => { input += chunk; });
process.stdin.on('end', () => {
  const request = JSON.parse(input);
  new ELK()
    .layout(request.graph, { layoutOptions: request.layoutOptions })
    .then((graph) => process.stdout.write(JSON.stringify(graph)))
    .catch((err) => {
      process.stderr.write(String((err && err.stack) || err));
      process.exit(1);
    });
});
"""


@dataclass(frozen=True)
class ElkjsConfig:
    node_executable: str = "node"
    node_path: Optional[str] = None


class ElkjsLayoutEngine:
    """Runs elkjs in a short-lived Node.js process per layout call."""

    def __init__(self, config: ElkjsConfig | None = None) -> None:
        self.config = config or ElkjsConfig()

    async def layout(
        self, graph: dict[str, Any], layout_options: Mapping[str, Any]
    ) -> dict[str, Any]:
        request = orjson.dumps({"graph": graph, "layoutOptions": dict(layout_options)})
        env = dict(os.environ)
        if self.config.node_path:
            env["NODE_PATH"] = self.config.node_path

        logger.debug(
            "Running %s with elkjs on %d nodes",
            self.config.node_executable,
            len(graph.get("children", [])),
        )
        try:
            process = await asyncio.create_subprocess_exec(
                self.config.node_executable,
                "-e",
                RUNNER_SCRIPT,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as exc:
            msg = f"Cannot start {self.config.node_executable!r}: {exc}"
            raise LayoutEngineFailure(msg) from exc

        stdout, stderr = await process.communicate(request)
        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            msg = f"elkjs exited with code {process.returncode}: {detail}"
            raise LayoutEngineFailure(msg)
        try:
            payload = orjson.loads(stdout)
        except orjson.JSONDecodeError as exc:
            msg = f"elkjs returned invalid JSON: {exc}"
            raise LayoutEngineFailure(msg) from exc
        if not isinstance(payload, dict):
            msg = "elkjs returned a non-object graph"
            raise LayoutEngineFailure(msg)
        return payload
