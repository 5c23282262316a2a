"""Tests for group collapse / expand"""

import json

import pytest

from map_core.canvas.collapse import GraphCollapseEngine
from map_core.canvas.graph import ShapeGraph
from map_core.canvas.models import (
    GROUP_COMPACT_SIZE,
    GROUP_TYPE,
    LINKCARD_COMPACT_SIZE,
    LINKCARD_TYPE,
)
from map_core.utils.exceptions import ShapeNotFoundError, WrongShapeTypeError


def snapshot(graph: ShapeGraph):
    return {
        s.id: (s.x, s.y, s.opacity, json.dumps(s.props, sort_keys=True))
        for s in graph.get_shapes()
    }


def box(graph: ShapeGraph, shape_id: str):
    s = graph.get_shape(shape_id)
    return (s.x, s.y, s.props.get("w"), s.props.get("h"))


@pytest.fixture
def flat():
    """Group A with two link cards and a plain note."""
    graph = ShapeGraph()
    graph.create_shape(GROUP_TYPE, x=0, y=500, shape_id="a", label="A")
    graph.create_shape(LINKCARD_TYPE, x=-300, y=800, shape_id="card1")
    graph.create_shape(LINKCARD_TYPE, x=300, y=820, shape_id="card2", w=250, h=180)
    graph.create_shape("note", x=50, y=900, shape_id="note")
    graph.connect("a", "card1", arrow_id="a-card1")
    graph.connect("a", "card2", arrow_id="a-card2")
    graph.connect("a", "note", arrow_id="a-note")
    return graph


@pytest.fixture
def nested():
    """A -> card1, A -> B; B -> card3, B -> D; D -> card4."""
    graph = ShapeGraph()
    graph.create_shape(GROUP_TYPE, x=0, y=500, shape_id="a")
    graph.create_shape(LINKCARD_TYPE, x=-300, y=800, shape_id="card1")
    graph.create_shape(GROUP_TYPE, x=0, y=900, shape_id="b", font_size=20, image_url="http://img")
    graph.create_shape(LINKCARD_TYPE, x=-200, y=1200, shape_id="card3")
    graph.create_shape(GROUP_TYPE, x=200, y=1300, shape_id="d")
    graph.create_shape(LINKCARD_TYPE, x=200, y=1600, shape_id="card4")
    graph.connect("a", "card1", arrow_id="a-card1")
    graph.connect("a", "b", arrow_id="a-b")
    graph.connect("b", "card3", arrow_id="b-card3")
    graph.connect("b", "d", arrow_id="b-d")
    graph.connect("d", "card4", arrow_id="d-card4")
    return graph


def test_collapse_marks_group_and_saves_every_descendant(flat):
    GraphCollapseEngine(flat).collapse("a")
    group = flat.get_shape("a")
    assert group.props["collapsed"] is True
    saved = json.loads(group.props["saved_layout"])
    assert set(saved) == {"card1", "card2", "note"}
    assert saved["card2"] == {"x": 300, "y": 820, "w": 250, "h": 180}


def test_collapse_hides_other_shapes_and_arrows(flat):
    GraphCollapseEngine(flat).collapse("a")
    assert flat.get_shape("note").opacity == 0
    for arrow_id in ("a-card1", "a-card2", "a-note"):
        assert flat.get_shape(arrow_id).opacity == 0
    assert flat.get_shape("card1").opacity == 1


def test_collapse_compacts_cards_into_row_above_group(flat):
    GraphCollapseEngine(flat).collapse("a")
    # group box (0, 500, 210, 150): row of 54 + 20 + 54 centered on x=105
    assert box(flat, "card1") == (41, 406, LINKCARD_COMPACT_SIZE, LINKCARD_COMPACT_SIZE)
    assert box(flat, "card2") == (115, 406, LINKCARD_COMPACT_SIZE, LINKCARD_COMPACT_SIZE)
    assert flat.get_shape("card1").props["compact"] is True
    # non-card shapes keep their position
    assert (flat.get_shape("note").x, flat.get_shape("note").y) == (50, 900)


def test_collapse_then_expand_restores_exactly(flat):
    before = snapshot(flat)
    engine = GraphCollapseEngine(flat)
    engine.collapse("a")
    engine.expand("a")
    assert snapshot(flat) == before
    assert flat.get_shape("a").props["saved_layout"] == ""
    assert all(s.opacity == 1 for s in flat.get_shapes())


def test_collapse_twice_is_noop(flat):
    engine = GraphCollapseEngine(flat)
    engine.collapse("a")
    after_first = snapshot(flat)
    engine.collapse("a")
    assert snapshot(flat) == after_first


def test_expand_on_open_group_is_noop(flat):
    before = snapshot(flat)
    GraphCollapseEngine(flat).expand("a")
    assert snapshot(flat) == before


def test_nested_group_becomes_compact_not_collapsed(nested):
    GraphCollapseEngine(nested).collapse("a")
    b = nested.get_shape("b")
    assert b.props["compact"] is True
    assert b.props["collapsed"] is False
    assert b.opacity == 1
    # row: card1 (54) then b (66), 140 wide centered on x=105, top at 500-40-66
    assert box(nested, "card1") == (35, 394, LINKCARD_COMPACT_SIZE, LINKCARD_COMPACT_SIZE)
    assert box(nested, "b") == (109, 394, GROUP_COMPACT_SIZE, GROUP_COMPACT_SIZE)


def test_nested_descendants_hidden_but_arrow_to_group_visible(nested):
    GraphCollapseEngine(nested).collapse("a")
    assert nested.get_shape("a-b").opacity == 1
    assert nested.get_shape("a-card1").opacity == 0
    for shape_id in ("card3", "d", "card4", "b-card3", "b-d", "d-card4"):
        assert nested.get_shape(shape_id).opacity == 0, shape_id
    saved = json.loads(nested.get_shape("a").props["saved_layout"])
    assert set(saved) == {"card1", "b", "card3", "d", "card4"}


def test_nested_collapse_expand_round_trip(nested):
    before = snapshot(nested)
    engine = GraphCollapseEngine(nested)
    engine.collapse("a")
    engine.expand("a")
    assert snapshot(nested) == before
    b = nested.get_shape("b")
    assert b.props["font_size"] == 20
    assert b.props["image_url"] == "http://img"


def test_expand_keeps_previously_collapsed_nested_group_collapsed(nested):
    engine = GraphCollapseEngine(nested)
    engine.collapse("b")
    b_layout = nested.get_shape("b").props["saved_layout"]
    compact_card3 = box(nested, "card3")
    compact_d = box(nested, "d")

    engine.collapse("a")
    engine.expand("a")

    b = nested.get_shape("b")
    assert b.props["collapsed"] is True
    assert b.props["saved_layout"] == b_layout
    assert b.props["compact"] is False
    assert box(nested, "b") == (0, 900, 210, 150)

    # b's own children are still shown compact, deeper shapes stay hidden
    assert box(nested, "card3") == compact_card3
    assert box(nested, "d") == compact_d
    assert nested.get_shape("card3").props["compact"] is True
    assert nested.get_shape("card3").opacity == 1
    assert nested.get_shape("d").opacity == 1
    assert nested.get_shape("b-d").opacity == 1
    assert nested.get_shape("b-card3").opacity == 0
    assert nested.get_shape("card4").opacity == 0
    assert nested.get_shape("d-card4").opacity == 0


def test_inner_then_outer_round_trip(nested):
    before = snapshot(nested)
    engine = GraphCollapseEngine(nested)
    engine.collapse("b")
    engine.collapse("a")
    engine.expand("a")
    engine.expand("b")
    assert snapshot(nested) == before


def test_collapse_does_not_cascade_to_ancestors(nested):
    GraphCollapseEngine(nested).collapse("b")
    assert nested.get_shape("a").props["collapsed"] is False
    assert nested.get_shape("a").props["saved_layout"] == ""


def test_cycle_terminates_and_excludes_group(nested):
    nested.connect("card4", "a", arrow_id="card4-a")
    engine = GraphCollapseEngine(nested)
    engine.collapse("a")
    saved = json.loads(nested.get_shape("a").props["saved_layout"])
    assert "a" not in saved
    assert nested.get_shape("a").opacity == 1
    engine.expand("a")
    assert nested.get_shape("a").props["collapsed"] is False


def test_missing_or_wrong_type_is_silently_ignored(flat):
    before = snapshot(flat)
    engine = GraphCollapseEngine(flat)
    engine.collapse("nope")
    engine.expand("nope")
    engine.collapse("card1")
    engine.toggle("note")
    assert snapshot(flat) == before


def test_strict_mode_raises(flat):
    engine = GraphCollapseEngine(flat, strict=True)
    with pytest.raises(ShapeNotFoundError):
        engine.collapse("nope")
    with pytest.raises(WrongShapeTypeError):
        engine.expand("card1")


def test_each_operation_notifies_once(flat):
    events = []
    flat.subscribe(events.append)
    engine = GraphCollapseEngine(flat)
    engine.collapse("a")
    assert len(events) == 1
    assert {"a", "card1", "card2", "note", "a-note"} <= events[0]
    engine.expand("a")
    assert len(events) == 2


def test_toggle_switches_state(flat):
    engine = GraphCollapseEngine(flat)
    engine.toggle("a")
    assert flat.get_shape("a").props["collapsed"] is True
    engine.toggle("a")
    assert flat.get_shape("a").props["collapsed"] is False


def test_unreadable_saved_layout_still_expands(flat):
    engine = GraphCollapseEngine(flat)
    engine.collapse("a")
    flat.update_shape("a", props={"saved_layout": "{broken"})
    engine.expand("a")
    assert flat.get_shape("a").props["collapsed"] is False
    assert all(s.opacity == 1 for s in flat.get_shapes())


def test_zero_sizes_survive_round_trip():
    graph = ShapeGraph()
    graph.create_shape(GROUP_TYPE, x=0, y=500, shape_id="a")
    graph.create_shape(LINKCARD_TYPE, x=10, y=800, shape_id="card", w=0, h=0)
    graph.connect("a", "card", arrow_id="a-card")
    engine = GraphCollapseEngine(graph)
    engine.collapse("a")
    engine.expand("a")
    assert box(graph, "card") == (10, 800, 0, 0)


def test_missing_saved_size_falls_back_to_defaults(flat):
    engine = GraphCollapseEngine(flat)
    engine.collapse("a")
    layout = json.loads(flat.get_shape("a").props["saved_layout"])
    layout["card2"] = {"x": 1, "y": 2}
    flat.update_shape("a", props={"saved_layout": json.dumps(layout)})
    engine.expand("a")
    assert box(flat, "card2") == (1, 2, 210, 195)
