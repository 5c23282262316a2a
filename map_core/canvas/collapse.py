"""
Collapse / expand of group shapes.

A group's children are the shapes at the `end` of arrows whose `start` is
bound to the group. Collapsing snapshots every transitive descendant's box
into the group's `saved_layout`, hides everything two or more levels deep,
and packs direct link cards and sub-groups into a compact row above the
group. Expanding restores the snapshot exactly.

Only the clicked group changes state; ancestors are never collapsed along
with it, and nested groups keep their own collapsed flag and layout.

Stale ids and non-group shapes are ignored unless the engine is strict.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from map_core.utils.exceptions import ShapeNotFoundError, WrongShapeTypeError
from map_core.utils.logger import get_logger

from .graph import Editor
from .layout import ChildNode, compute_row_layout
from .models import (
    ARROW_TYPE,
    GROUP_COMPACT_SIZE,
    GROUP_FONT_SIZE,
    GROUP_HEIGHT,
    GROUP_WIDTH,
    LINKCARD_COMPACT_SIZE,
    LINKCARD_HEIGHT,
    LINKCARD_WIDTH,
    Shape,
)

logger = get_logger(__name__)

COMPACT_ROW_FALLBACK_GAP = 12


@dataclass
class ChildSet:
    """Direct children of a group and the arrows leading to them."""

    shapes: List[Shape] = field(default_factory=list)
    arrows: List[Shape] = field(default_factory=list)
    arrows_to_groups: List[Shape] = field(default_factory=list)

    @property
    def link_cards(self) -> List[Shape]:
        return [s for s in self.shapes if s.is_linkcard]

    @property
    def groups(self) -> List[Shape]:
        return [s for s in self.shapes if s.is_group]

    @property
    def others(self) -> List[Shape]:
        return [s for s in self.shapes if not s.is_linkcard and not s.is_group]


def load_saved_layout(raw: Optional[str]) -> Dict[str, Dict[str, float]]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Discarding unreadable saved layout")
        return {}
    return data if isinstance(data, dict) else {}


def _size(box: Dict[str, float], key: str, default: float) -> float:
    """Saved width/height; only a missing value falls back to the default."""
    value = box.get(key)
    return default if value is None else value


class GraphCollapseEngine:
    def __init__(self, editor: Editor, strict: bool = False):
        self.editor = editor
        self.strict = strict

    # -- graph walks --------------------------------------------------------

    def _end_of(self, arrow_id: str) -> Optional[str]:
        for binding in self.editor.get_bindings_from_shape(arrow_id, ARROW_TYPE):
            if binding.terminal == "end":
                return binding.to_id
        return None

    def _outgoing_arrows(self, shape_id: str) -> List[Shape]:
        """Arrows whose start terminal is bound to shape_id."""
        arrows = []
        for binding in self.editor.get_bindings_to_shape(shape_id, ARROW_TYPE):
            if binding.terminal != "start":
                continue
            arrow = self.editor.get_shape(binding.from_id)
            if arrow is not None and arrow.is_arrow:
                arrows.append(arrow)
        return arrows

    def children(self, group_id: str) -> ChildSet:
        result = ChildSet()
        seen: Set[str] = set()
        for arrow in self._outgoing_arrows(group_id):
            end_id = self._end_of(arrow.id)
            if end_id is None:
                continue
            result.arrows.append(arrow)
            end_shape = self.editor.get_shape(end_id)
            if end_shape is None:
                continue
            if end_shape.is_group:
                result.arrows_to_groups.append(arrow)
            if end_id not in seen:
                seen.add(end_id)
                result.shapes.append(end_shape)
        return result

    def descendants(self, group_id: str) -> List[str]:
        """Every shape reachable through outgoing arrows; cycle-safe, excludes group_id."""
        found: List[str] = []
        found_set: Set[str] = set()
        visited: Set[str] = set()
        stack = [group_id]
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            for arrow in self._outgoing_arrows(current):
                end_id = self._end_of(arrow.id)
                if end_id is None:
                    continue
                if end_id != group_id and end_id not in found_set:
                    found_set.add(end_id)
                    found.append(end_id)
                if end_id not in visited:
                    stack.append(end_id)
        return found

    def _arrows_from(self, shape_ids: List[str]) -> List[Shape]:
        arrows: Dict[str, Shape] = {}
        for shape_id in shape_ids:
            for arrow in self._outgoing_arrows(shape_id):
                arrows.setdefault(arrow.id, arrow)
        return list(arrows.values())

    def _group(self, group_id: str) -> Optional[Shape]:
        shape = self.editor.get_shape(group_id)
        if shape is None:
            if self.strict:
                raise ShapeNotFoundError(group_id)
            logger.debug("Ignoring toggle on missing shape", shape_id=group_id)
            return None
        if not shape.is_group:
            if self.strict:
                raise WrongShapeTypeError(group_id, shape.type)
            logger.debug("Ignoring toggle on non-group shape", shape_id=group_id, shape_type=shape.type)
            return None
        return shape

    # -- operations ---------------------------------------------------------

    def collapse(self, group_id: str) -> None:
        group = self._group(group_id)
        if group is None or group.props.get("collapsed"):
            return
        bounds = self.editor.get_shape_page_bounds(group_id)
        if bounds is None:
            return

        with self.editor.batch():
            kids = self.children(group_id)
            direct_ids = {s.id for s in kids.shapes}
            descendant_ids = self.descendants(group_id)
            nested_ids = [i for i in descendant_ids if i not in direct_ids]

            keep_visible = {a.id for a in kids.arrows_to_groups}
            arrows_to_hide: Dict[str, Shape] = {}
            for arrow in kids.arrows + self._arrows_from(descendant_ids):
                if arrow.id not in keep_visible:
                    arrows_to_hide.setdefault(arrow.id, arrow)

            saved: Dict[str, Dict[str, float]] = {}
            for shape_id in descendant_ids:
                shape = self.editor.get_shape(shape_id)
                if shape is not None:
                    saved[shape_id] = {"x": shape.x, "y": shape.y, "w": shape.w, "h": shape.h}

            self.editor.update_shape(
                group_id, props={"collapsed": True, "saved_layout": json.dumps(saved)}
            )

            for shape in kids.others:
                self.editor.update_shape(shape.id, opacity=0)
            for arrow_id in arrows_to_hide:
                self.editor.update_shape(arrow_id, opacity=0)
            for shape_id in nested_ids:
                self.editor.update_shape(shape_id, opacity=0)
            for arrow_id in keep_visible:
                self.editor.update_shape(arrow_id, opacity=1)

            cards, groups = kids.link_cards, kids.groups
            row = [ChildNode(c.id, LINKCARD_COMPACT_SIZE, LINKCARD_COMPACT_SIZE) for c in cards]
            row += [ChildNode(g.id, GROUP_COMPACT_SIZE, GROUP_COMPACT_SIZE) for g in groups]
            positions = compute_row_layout(bounds, row)

            for node in row:
                x, y = positions.get(node.id) or (
                    bounds.x + (bounds.w - node.width) / 2,
                    bounds.y - node.height - COMPACT_ROW_FALLBACK_GAP,
                )
                self.editor.update_shape(
                    node.id,
                    x=x,
                    y=y,
                    props={"compact": True, "w": node.width, "h": node.height},
                )

        logger.info(
            "Group collapsed",
            group_id=group_id,
            children=len(kids.shapes),
            descendants=len(descendant_ids),
        )

    def _visible_after_expand(self, group_id: str):
        """
        Shapes and arrows visible once group_id is open, plus shapes that stay
        compact because a nested group above them is still collapsed.
        """
        shapes: Set[str] = set()
        arrows: Set[str] = set()
        compact: Set[str] = set()
        visited: Set[str] = {group_id}
        stack = [group_id]
        while stack:
            current = stack.pop()
            node = self.editor.get_shape(current)
            closed = current != group_id and node is not None and node.is_group and node.props.get("collapsed")
            kids = self.children(current)
            for arrow in kids.arrows:
                child_id = self._end_of(arrow.id)
                child = self.editor.get_shape(child_id) if child_id else None
                if child is None:
                    continue
                if closed:
                    if child.is_group:
                        arrows.add(arrow.id)
                    if child.is_group or child.is_linkcard:
                        shapes.add(child.id)
                        compact.add(child.id)
                    continue
                arrows.add(arrow.id)
                shapes.add(child.id)
                if child.id not in visited:
                    visited.add(child.id)
                    stack.append(child.id)
        return shapes, arrows, compact

    def expand(self, group_id: str) -> None:
        group = self._group(group_id)
        if group is None or not group.props.get("collapsed"):
            return

        with self.editor.batch():
            self.editor.update_shape(group_id, props={"collapsed": False})
            saved = load_saved_layout(group.props.get("saved_layout"))
            descendant_ids = self.descendants(group_id)
            visible, visible_arrows, still_compact = self._visible_after_expand(group_id)

            for shape_id in descendant_ids:
                shape = self.editor.get_shape(shape_id)
                if shape is None:
                    continue
                self.editor.update_shape(shape_id, opacity=1 if shape_id in visible else 0)
                box = saved.get(shape_id)
                if not box:
                    continue
                compact = shape_id in still_compact
                if shape.is_linkcard:
                    self.editor.update_shape(
                        shape_id,
                        x=box["x"],
                        y=box["y"],
                        props={
                            "compact": compact,
                            "w": _size(box, "w", LINKCARD_WIDTH),
                            "h": _size(box, "h", LINKCARD_HEIGHT),
                        },
                    )
                elif shape.is_group:
                    self.editor.update_shape(
                        shape_id,
                        x=box["x"],
                        y=box["y"],
                        props={
                            "compact": compact,
                            "font_size": shape.props.get("font_size", GROUP_FONT_SIZE),
                            "image_url": shape.props.get("image_url", ""),
                            "w": _size(box, "w", GROUP_WIDTH),
                            "h": _size(box, "h", GROUP_HEIGHT),
                        },
                    )
                else:
                    self.editor.update_shape(shape_id, x=box["x"], y=box["y"])

            for arrow in self.children(group_id).arrows + self._arrows_from(descendant_ids):
                self.editor.update_shape(arrow.id, opacity=1 if arrow.id in visible_arrows else 0)

            self.editor.update_shape(group_id, props={"saved_layout": ""})

        logger.info("Group expanded", group_id=group_id, descendants=len(descendant_ids))

    def toggle(self, group_id: str) -> None:
        """Button handler: collapse an open group, expand a collapsed one."""
        group = self._group(group_id)
        if group is None:
            return
        if group.props.get("collapsed"):
            self.expand(group_id)
        else:
            self.collapse(group_id)
