from __future__ import annotations

import copy
from typing import Any

from adapters.layout.layered import LayeredConfig, LayeredLayoutEngine
from domain.services.build_layout_graph import build
from domain.services.flatten_netlist import flatten
from domain.templates import TemplateCatalog
from tests.helpers.netlist_fixtures import load_netlist


def _request(catalog: TemplateCatalog, name: str) -> dict[str, Any]:
    return build(flatten(load_netlist(name), catalog)).to_dict(catalog.layout_options_dict())


def _nodes(result: dict[str, Any]) -> dict[str, dict[str, Any]]:
    return {node["id"]: node for node in result["children"]}


async def test_diamond_is_layered_left_to_right(catalog: TemplateCatalog) -> None:
    request = _request(catalog, "diamond.json")
    pristine = copy.deepcopy(request)

    result = await LayeredLayoutEngine().layout(request, catalog.layout_options_dict())

    assert request == pristine
    nodes = _nodes(result)
    columns = {node_id: node["x"] for node_id, node in nodes.items()}
    assert columns["s0"] == columns["s1"] == 12
    assert {columns[node] for node in ("p0", "p1", "p2", "p3")} == {112}
    assert columns["k0"] == columns["k1"] == 212
    assert result["width"] > columns["k0"]
    assert result["height"] > 0


def test_layers_are_ordered_by_successor_position(catalog: TemplateCatalog) -> None:
    result = LayeredLayoutEngine().compute(_request(catalog, "diamond.json"), {})

    nodes = _nodes(result)
    middle = sorted(("p0", "p1", "p2", "p3"), key=lambda node_id: nodes[node_id]["y"])
    assert middle == ["p0", "p2", "p1", "p3"]
    assert nodes["k0"]["y"] < nodes["k1"]["y"]


def test_every_edge_gets_one_orthogonal_section(catalog: TemplateCatalog) -> None:
    result = LayeredLayoutEngine().compute(_request(catalog, "diamond.json"), {})

    for edge in result["edges"]:
        (section,) = edge["sections"]
        points = [section["startPoint"], *section["bendPoints"], section["endPoint"]]
        for first, second in zip(points, points[1:]):
            assert first["x"] == second["x"] or first["y"] == second["y"]
    fan_out = next(edge for edge in result["edges"] if edge["id"] == "e1")
    assert fan_out["junctionPoints"]
    assert "junctionPoints" not in next(e for e in result["edges"] if e["id"] == "e0")


def test_feedback_loop_is_routed_below(catalog: TemplateCatalog) -> None:
    result = LayeredLayoutEngine().compute(_request(catalog, "mux_dff.json"), {})

    nodes = _nodes(result)
    assert nodes["hold"]["x"] < nodes["state"]["x"]
    assert nodes["q"]["x"] == nodes["state"]["x"]
    feedback = next(
        edge
        for edge in result["edges"]
        if edge["sources"] == ["state.Q"] and edge["targets"] == ["hold.A"]
    )
    bends = feedback["sections"][0]["bendPoints"]
    assert len(bends) == 4
    bottom = max(node["y"] + node["height"] for node in nodes.values())
    assert bends[1]["y"] > bottom
    assert bends[1]["y"] < result["height"]


def test_spacing_options_are_honoured(catalog: TemplateCatalog) -> None:
    request = _request(catalog, "diamond.json")
    engine = LayeredLayoutEngine(LayeredConfig(padding=0))

    result = engine.compute(
        request,
        {
            "org.eclipse.elk.spacing.nodeNode": "10",
            "org.eclipse.elk.layered.spacing.nodeNodeBetweenLayers": 5,
        },
    )

    nodes = _nodes(result)
    assert nodes["s0"]["x"] == 0
    assert nodes["p0"]["x"] == 40
    assert nodes["s1"]["y"] == nodes["s0"]["y"] + nodes["s0"]["height"] + 10


def test_pinned_nodes_keep_their_position() -> None:
    graph = {
        "id": "pinned",
        "children": [
            {"id": "a", "width": 10, "height": 10, "ports": []},
            {
                "id": "b",
                "width": 10,
                "height": 10,
                "ports": [],
                "layoutOptions": {
                    "org.eclipse.elk.noLayout": True,
                    "org.eclipse.elk.x": 300,
                    "org.eclipse.elk.y": 7,
                },
            },
        ],
        "edges": [{"id": "e0", "sources": ["a"], "targets": ["b"]}],
    }

    result = LayeredLayoutEngine().compute(graph, {})

    pinned = _nodes(result)["b"]
    assert (pinned["x"], pinned["y"]) == (300, 7)
    assert result["edges"][0]["sections"][0]["endPoint"] == {"x": 305, "y": 12}


def test_bus_labels_are_placed(catalog: TemplateCatalog) -> None:
    result = LayeredLayoutEngine().compute(_request(catalog, "bus_split.json"), {})

    labelled = [edge for edge in result["edges"] if edge.get("labels")]
    assert labelled
    for edge in labelled:
        label = edge["labels"][0]
        start = edge["sections"][0]["startPoint"]
        assert label["y"] == start["y"] - label["height"] / 2
        assert abs(label["x"] + label["width"] / 2 - start["x"]) < 35
