from __future__ import annotations

import pytest

from domain.errors import SchemaError
from domain.models import DrawableGraph, LayoutGraph
from domain.services.build_layout_graph import (
    DIRECTION_PRIORITY,
    EDGE_THICKNESS,
    NO_LAYOUT,
    PORT_CONSTRAINTS,
    GraphBuilder,
    build,
)
from domain.services.flatten_netlist import FlattenOptions, flatten
from domain.templates import SIDE_EAST, SIDE_SOUTH, SIDE_WEST, TemplateCatalog
from tests.helpers.netlist_fixtures import gate, load_netlist, single_module


def _drawable(catalog: TemplateCatalog, name: str, **options: bool) -> DrawableGraph:
    return flatten(load_netlist(name), catalog, FlattenOptions(**options))


def _edges(graph: LayoutGraph) -> list[tuple[str, str, str]]:
    return [(edge.id, edge.sources[0], edge.targets[0]) for edge in graph.edges]


def test_diamond_edges_follow_wire_order(catalog: TemplateCatalog) -> None:
    drawable = _drawable(catalog, "diamond.json")

    graph = build(drawable)

    assert graph.id == "diamond"
    assert graph.node_ids() == drawable.cell_ids()
    assert _edges(graph) == [
        ("e0", "s0.Y", "p0.A"),
        ("e1", "s0.Y", "p1.A"),
        ("e2", "s1.Y", "p2.A"),
        ("e3", "s1.Y", "p3.A"),
        ("e4", "p0.Y", "k0.A"),
        ("e5", "p2.Y", "k0.B"),
        ("e6", "p1.Y", "k1.A"),
        ("e7", "p3.Y", "k1.B"),
    ]
    assert graph.wire_of("e0") == graph.wire_of("e1") == "net_2"
    assert graph.wire_of("e9") is None
    assert graph.dummy_ids == ()


def test_build_is_deterministic(catalog: TemplateCatalog) -> None:
    first = GraphBuilder().build(_drawable(catalog, "adders.json")).to_dict()
    second = GraphBuilder().build(_drawable(catalog, "adders.json")).to_dict()

    assert first == second


def test_nodes_carry_template_geometry(catalog: TemplateCatalog) -> None:
    graph = build(_drawable(catalog, "mux_dff.json"))
    payload = graph.to_dict({"org.eclipse.elk.direction": "RIGHT"})

    assert payload["layoutOptions"] == {"org.eclipse.elk.direction": "RIGHT"}
    nodes = {node["id"]: node for node in payload["children"]}
    hold = nodes["hold"]
    assert hold["width"] == 20
    assert hold["height"] == 40
    assert hold["layoutOptions"][PORT_CONSTRAINTS] == "FIXED_POS"
    sides = {
        port["id"]: port["layoutOptions"]["org.eclipse.elk.port.side"] for port in hold["ports"]
    }
    assert sides == {
        "hold.A": SIDE_WEST,
        "hold.B": SIDE_WEST,
        "hold.S": SIDE_SOUTH,
        "hold.Y": SIDE_EAST,
    }
    select = next(port for port in hold["ports"] if port["id"] == "hold.S")
    assert (select["x"], select["y"]) == (10, 35)


def test_flip_flop_outputs_have_no_direction_priority(catalog: TemplateCatalog) -> None:
    graph = build(_drawable(catalog, "mux_dff.json"))

    for edge in graph.edges:
        options = dict(edge.layout_options)
        if edge.sources[0].startswith("state."):
            assert DIRECTION_PRIORITY not in options
        else:
            assert options[DIRECTION_PRIORITY] == 10
    feedback = [edge for edge in graph.edges if edge.sources == ("state.Q",)]
    assert sorted(edge.targets[0] for edge in feedback) == ["hold.A", "q.A"]


def test_bus_edges_are_thick_and_labelled(catalog: TemplateCatalog) -> None:
    graph = build(_drawable(catalog, "bus_split.json"))

    bus_edges = [edge for edge in graph.edges if graph.wire_of(edge.id) == "net_2_3_4_5"]
    assert [edge.targets[0] for edge in bus_edges] == ["mirror.A", "$split$2,3,4,5.in"]
    for edge in bus_edges:
        assert dict(edge.layout_options)[EDGE_THICKNESS] == 2
        assert [label.text for label in edge.labels] == ["4"]

    single = next(edge for edge in graph.edges if edge.targets == ("inv1.A",))
    assert dict(single.layout_options)[EDGE_THICKNESS] == 1
    assert single.labels == ()
    assert single.sources == ("$split$2,3,4,5.1",)


def test_split_ports_are_generated_per_output(catalog: TemplateCatalog) -> None:
    graph = build(_drawable(catalog, "fallback_cells.json", generic_fallback=True))

    split = next(node for node in graph.children if node.id == "$split$2,3,4")
    assert split.height == 60
    assert [(port.id, port.y, port.side) for port in split.ports] == [
        ("$split$2,3,4.in", 20, SIDE_WEST),
        ("$split$2,3,4.0", 10, SIDE_EAST),
        ("$split$2,3,4.1", 30, SIDE_EAST),
        ("$split$2,3,4.2", 50, SIDE_EAST),
    ]
    assert [port.labels[0].text for port in split.ports[1:]] == ["0", "1", "2"]
    assert split.ports[0].labels == ()


def test_generic_cell_stretches_to_port_count(catalog: TemplateCatalog) -> None:
    graph = build(_drawable(catalog, "fallback_cells.json", generic_fallback=True))

    blackbox = next(node for node in graph.children if node.id == "blackbox")
    assert blackbox.width == 30
    assert blackbox.height == 60
    inputs = [port for port in blackbox.ports if port.side == SIDE_WEST]
    outputs = [port for port in blackbox.ports if port.side == SIDE_EAST]
    assert [(port.id, port.x, port.y) for port in inputs] == [
        ("blackbox.I0", 0, 10),
        ("blackbox.I1", 0, 30),
        ("blackbox.I2", 0, 50),
    ]
    assert [(port.id, port.x, port.y) for port in outputs] == [
        ("blackbox.O0", 30, 10),
        ("blackbox.O1", 30, 30),
    ]
    assert all(port.labels for port in blackbox.ports)


def test_join_with_two_inputs_keeps_template_height(catalog: TemplateCatalog) -> None:
    graph = build(_drawable(catalog, "adders.json"))

    join = next(node for node in graph.children if node.id == "$join$6,7,8,9")
    assert join.height == 40
    assert [port.id for port in join.ports] == [
        "$join$6,7,8,9.1:0",
        "$join$6,7,8,9.3:2",
        "$join$6,7,8,9.out",
    ]


def _split_free_fan_out(extra_cells: dict[str, object] | None = None) -> dict[str, object]:
    cells = {
        "inv1": gate("$not", A=[3], Y=[6]),
        "inv2": gate("$not", A=[3], Y=[7]),
        **(extra_cells or {}),
    }
    return single_module(
        cells,
        ports={
            "bus": {"direction": "input", "bits": [2, 3, 4, 5]},
            "y1": {"direction": "output", "bits": [6]},
            "y2": {"direction": "output", "bits": [7]},
        },
    )


def test_driverless_fan_out_gets_dummy_source(catalog: TemplateCatalog) -> None:
    drawable = flatten(_split_free_fan_out(), catalog, FlattenOptions(splits_and_joins=False))

    graph = build(drawable)

    assert graph.dummy_ids == ("$d_0",)
    dummy = next(node for node in graph.children if node.id == "$d_0")
    assert (dummy.width, dummy.height, dummy.ports) == (0, 0, ())
    from_dummy = [edge for edge in graph.edges if edge.sources == ("$d_0",)]
    assert [edge.targets[0] for edge in from_dummy] == ["inv1.A", "inv2.A"]
    assert {graph.wire_of(edge.id) for edge in from_dummy} == {"net_3"}


def test_dummy_ids_skip_taken_cell_keys(catalog: TemplateCatalog) -> None:
    netlist = _split_free_fan_out({"$d_0": gate("$not", A=[6], Y=[8])})
    drawable = flatten(netlist, catalog, FlattenOptions(splits_and_joins=False))

    graph = build(drawable)

    assert graph.dummy_ids == ("$d_1",)
    node_ids = graph.node_ids()
    assert len(node_ids) == len(set(node_ids))


@pytest.mark.parametrize("literal", ["0", "x"])
def test_literal_only_wires_are_not_routed(catalog: TemplateCatalog, literal: str) -> None:
    netlist = single_module(
        {
            "g1": gate("$and", A=[2], B=[literal], Y=[3]),
            "g2": gate("$and", A=[2], B=[literal], Y=[4]),
        },
        ports={
            "a": {"direction": "input", "bits": [2]},
            "y1": {"direction": "output", "bits": [3]},
            "y2": {"direction": "output", "bits": [4]},
        },
    )

    graph = build(flatten(netlist, catalog, FlattenOptions(constants=False)))

    assert graph.dummy_ids == ()
    assert not any(node_id.startswith("$d_") for node_id in graph.node_ids())
    assert all(graph.wire_of(edge.id) != f"net_{literal}" for edge in graph.edges)
    assert all(edge.targets[0] not in {"g1.B", "g2.B"} for edge in graph.edges)


def test_port_id_colliding_with_element_is_schema_error(catalog: TemplateCatalog) -> None:
    netlist = single_module(
        {
            "x": gate("$not", A=[2], Y=[3]),
            "x.Y": gate("$not", A=[3], Y=[4]),
        },
        ports={
            "a": {"direction": "input", "bits": [2]},
            "y": {"direction": "output", "bits": [4]},
        },
    )
    drawable = flatten(netlist, catalog)

    with pytest.raises(SchemaError, match="'x.Y' collides"):
        build(drawable)


def test_lone_rider_without_driver_has_no_edge(catalog: TemplateCatalog) -> None:
    graph = build(_drawable(catalog, "literal_input.json", constants=False))

    assert all("gate.B" not in edge.targets for edge in graph.edges)
    assert graph.dummy_ids == ()


def test_inout_port_routes_through_lateral(catalog: TemplateCatalog) -> None:
    netlist = single_module(
        {"n1": gate("$not", A=[2], Y=[3])},
        ports={
            "pad": {"direction": "inout", "bits": [2]},
            "y": {"direction": "output", "bits": [3]},
        },
    )

    graph = build(flatten(netlist, catalog))

    assert [(source, target) for _, source, target in _edges(graph)] == [
        ("n1.Y", "y.A"),
        ("pad.Y", "n1.A"),
    ]


@pytest.mark.parametrize(
    ("attributes", "pinned"),
    [
        ({"org.eclipse.elk.x": 40, "org.eclipse.elk.y": 80}, True),
        ({"org.eclipse.elk.x": 40}, False),
        ({"src": "top.v:3"}, False),
    ],
)
def test_position_attributes_pin_nodes(
    catalog: TemplateCatalog, attributes: dict[str, object], pinned: bool
) -> None:
    cell = gate("$not", A=[2], Y=[3])
    cell["attributes"] = attributes
    netlist = single_module(
        {"n1": cell},
        ports={
            "a": {"direction": "input", "bits": [2]},
            "y": {"direction": "output", "bits": [3]},
        },
    )

    graph = build(flatten(netlist, catalog))

    node = next(node for node in graph.children if node.id == "n1")
    options = dict(node.layout_options)
    assert (NO_LAYOUT in options) is pinned
    assert "src" not in options
    if pinned:
        assert options["org.eclipse.elk.x"] == 40
