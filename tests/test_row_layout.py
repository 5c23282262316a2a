"""Tests for the compact row layout"""

from map_core.canvas.layout import NODE_SEP, RANK_SEP, ChildNode, compute_row_layout
from map_core.canvas.models import Box


def test_two_children_centered_and_top_aligned():
    positions = compute_row_layout(
        Box(x=0, y=200, w=100, h=0),
        [ChildNode("a", 50, 50), ChildNode("b", 30, 80)],
    )
    assert positions == {"a": (0, 80), "b": (70, 80)}


def test_empty_children():
    assert compute_row_layout(Box(0, 0, 100, 100), []) == {}


def test_single_child_centered():
    positions = compute_row_layout(Box(x=100, y=300, w=200, h=50), [ChildNode("only", 40, 40)])
    assert positions == {"only": (180, 300 - RANK_SEP - 40)}


def test_order_preserved_left_to_right():
    children = [ChildNode(str(i), 10, 10) for i in range(5)]
    positions = compute_row_layout(Box(0, 0, 0, 0), children)
    xs = [positions[str(i)][0] for i in range(5)]
    assert xs == sorted(xs)
    assert xs[1] - xs[0] == 10 + NODE_SEP
    # row of 5*10 + 4*20 = 130 centered on x=0
    assert xs[0] == -65
