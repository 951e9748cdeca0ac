from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

NODE_SPACING = "org.eclipse.elk.spacing.nodeNode"
LAYER_SPACING = "org.eclipse.elk.layered.spacing.nodeNodeBetweenLayers"


@dataclass(frozen=True)
class LayeredConfig:
    padding: float = 12.0
    node_spacing: float = 35.0
    layer_spacing: float = 35.0


@dataclass(frozen=True)
class _Anchor:
    node: str
    dx: float
    dy: float


class LayeredLayoutEngine:
    """Offline stand-in for ELK's layered algorithm.

    Longest-path layering left to right, barycenter ordering inside each layer
    and orthogonal edge routing with one vertical run per source port. Enough
    to exercise the full pipeline without Node.js; the result follows the ELK
    JSON response shape.
    """

    def __init__(self, config: LayeredConfig | None = None) -> None:
        self.config = config or LayeredConfig()

    async def layout(
        self, graph: dict[str, Any], layout_options: Mapping[str, Any]
    ) -> dict[str, Any]:
        return self.compute(graph, layout_options)

    def compute(
        self, graph: Mapping[str, Any], layout_options: Mapping[str, Any]
    ) -> dict[str, Any]:
        result: Dict[str, Any] = copy.deepcopy(dict(graph))
        options = {**result.get("layoutOptions", {}), **dict(layout_options)}
        node_spacing = _number(options.get(NODE_SPACING), self.config.node_spacing)
        layer_spacing = _number(options.get(LAYER_SPACING), self.config.layer_spacing)

        children: List[Dict[str, Any]] = result.get("children", [])
        edges: List[Dict[str, Any]] = result.get("edges", [])
        anchors = _anchors(children)
        node_ids = [child["id"] for child in children]
        links = [
            (anchors[edge["sources"][0]].node, anchors[edge["targets"][0]].node)
            for edge in edges
            if edge.get("sources") and edge.get("targets")
        ]

        levels, max_level = _compute_levels(node_ids, links)
        buckets = _order_layers(node_ids, links, levels, max_level)
        by_id = {child["id"]: child for child in children}

        # layers are spaced twice the configured gap to leave room for vertical wire runs
        x = self.config.padding
        layer_x: Dict[int, float] = {}
        for level in range(max_level + 1):
            layer_x[level] = x
            widest = max((by_id[node]["width"] for node in buckets.get(level, [])), default=0)
            x += widest + 2 * layer_spacing

        for level, bucket in buckets.items():
            y = self.config.padding
            for node_id in bucket:
                child = by_id[node_id]
                layout = child.get("layoutOptions", {})
                if layout.get("org.eclipse.elk.noLayout"):
                    child["x"] = _number(layout.get("org.eclipse.elk.x"), layer_x[level])
                    child["y"] = _number(layout.get("org.eclipse.elk.y"), y)
                else:
                    child["x"] = layer_x[level]
                    child["y"] = y
                y += child["height"] + node_spacing

        width = max((c["x"] + c["width"] for c in children), default=0.0) + self.config.padding
        height = max((c["y"] + c["height"] for c in children), default=0.0) + self.config.padding
        self._route(edges, anchors, by_id, layer_spacing, height)
        result["x"] = 0
        result["y"] = 0
        result["width"] = width
        result["height"] = height + layer_spacing
        logger.debug(
            "Layered %d nodes into %d layers (%sx%s)", len(children), max_level + 1, width, height
        )
        return result

    def _route(
        self,
        edges: List[Dict[str, Any]],
        anchors: Dict[str, _Anchor],
        by_id: Dict[str, Dict[str, Any]],
        layer_spacing: float,
        floor: float,
    ) -> None:
        fanout: Dict[str, int] = {}
        for edge in edges:
            if not edge.get("sources") or not edge.get("targets"):
                continue
            source_id = edge["sources"][0]
            sx, sy = _absolute(anchors[source_id], by_id)
            tx, ty = _absolute(anchors[edge["targets"][0]], by_id)
            bends: List[Dict[str, float]] = []
            if tx >= sx:
                run_x = sx + layer_spacing / 2
                if ty != sy:
                    bends = [{"x": run_x, "y": sy}, {"x": run_x, "y": ty}]
            else:
                # feedback edges loop below the drawing
                lane = floor + layer_spacing / 2
                run_x = sx + layer_spacing / 2
                bends = [
                    {"x": run_x, "y": sy},
                    {"x": run_x, "y": lane},
                    {"x": tx - layer_spacing / 2, "y": lane},
                    {"x": tx - layer_spacing / 2, "y": ty},
                ]
            edge["sections"] = [
                {
                    "id": f"{edge['id']}_s0",
                    "startPoint": {"x": sx, "y": sy},
                    "endPoint": {"x": tx, "y": ty},
                    "bendPoints": bends,
                }
            ]
            seen = fanout.get(source_id, 0)
            fanout[source_id] = seen + 1
            if seen and bends:
                edge["junctionPoints"] = [{"x": run_x, "y": sy}]
            for label in edge.get("labels", []):
                label["x"] = sx + (run_x - sx - label.get("width", 0)) / 2
                label["y"] = sy - label.get("height", 0) / 2


def _anchors(children: List[Dict[str, Any]]) -> Dict[str, _Anchor]:
    anchors: Dict[str, _Anchor] = {}
    for child in children:
        anchors[child["id"]] = _Anchor(
            child["id"], child.get("width", 0) / 2, child.get("height", 0) / 2
        )
        for port in child.get("ports", []):
            anchors[port["id"]] = _Anchor(child["id"], port.get("x", 0), port.get("y", 0))
    return anchors


def _absolute(anchor: _Anchor, by_id: Dict[str, Dict[str, Any]]) -> Tuple[float, float]:
    node = by_id[anchor.node]
    return node["x"] + anchor.dx, node["y"] + anchor.dy


def _compute_levels(
    node_ids: List[str], links: List[Tuple[str, str]]
) -> Tuple[Dict[str, int], int]:
    """Longest-path layering; cycles are broken at the earliest waiting node."""
    rank = {node_id: index for index, node_id in enumerate(node_ids)}
    indegree: Dict[str, int] = {node_id: 0 for node_id in node_ids}
    adj: Dict[str, List[str]] = {node_id: [] for node_id in node_ids}
    for source, target in links:
        if source == target:
            continue
        adj[source].append(target)
        indegree[target] += 1

    levels: Dict[str, int] = {}
    done: set[str] = set()
    queue = [node_id for node_id in node_ids if indegree[node_id] == 0]
    while len(done) < len(node_ids):
        if not queue:
            waiting = [node_id for node_id in node_ids if node_id not in done]
            queue.append(min(waiting, key=lambda n: (indegree[n], rank[n])))
        node = queue.pop(0)
        if node in done:
            continue
        done.add(node)
        level = levels.setdefault(node, 0)
        for neighbor in adj[node]:
            if neighbor in done:
                continue
            levels[neighbor] = max(levels.get(neighbor, 0), level + 1)
            indegree[neighbor] -= 1
            if indegree[neighbor] == 0:
                queue.append(neighbor)
                queue.sort(key=lambda n: (levels.get(n, 0), rank[n]))

    # sinks move to the last layer so outputs line up on the right
    max_level = max(levels.values(), default=0)
    fed = {target for source, target in links if source != target}
    for node_id in node_ids:
        if not adj[node_id] and node_id in fed:
            levels[node_id] = max_level
    return levels, max_level


def _order_layers(
    node_ids: List[str],
    links: List[Tuple[str, str]],
    levels: Dict[str, int],
    max_level: int,
) -> Dict[int, List[str]]:
    rank = {node_id: index for index, node_id in enumerate(node_ids)}
    successors: Dict[str, List[str]] = {node_id: [] for node_id in node_ids}
    for source, target in links:
        successors[source].append(target)

    buckets: Dict[int, List[str]] = {level: [] for level in range(max_level + 1)}
    for node_id in node_ids:
        buckets[levels[node_id]].append(node_id)

    positions: Dict[str, int] = {}
    for level in reversed(range(max_level + 1)):
        bucket = buckets[level]

        def barycenter(node_id: str) -> float:
            placed = [positions[child] for child in successors[node_id] if child in positions]
            if placed:
                return sum(placed) / len(placed)
            return float("inf")

        bucket.sort(key=lambda n: (barycenter(n), rank[n]))
        for index, node_id in enumerate(bucket):
            positions[node_id] = index
    return buckets


def _number(raw: Optional[Any], default: float) -> float:
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default
