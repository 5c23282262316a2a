"""
Canvas records: shapes keyed by id plus arrow bindings kept apart from them.

An arrow is itself a shape (type "arrow"); each arrow has up to two bindings,
one per terminal, pointing from the arrow to the shape it is attached to.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional
from uuid import uuid4

GROUP_TYPE = "collapsible"
LINKCARD_TYPE = "linkcard"
ARROW_TYPE = "arrow"

GROUP_WIDTH = 210
GROUP_HEIGHT = 150
GROUP_COMPACT_SIZE = 66
GROUP_FONT_SIZE = 16

LINKCARD_WIDTH = 210
LINKCARD_HEIGHT = 195
LINKCARD_COMPACT_SIZE = 54

Terminal = Literal["start", "end"]


def new_id(prefix: str = "shape") -> str:
    return f"{prefix}:{uuid4().hex[:12]}"


def default_props(shape_type: str) -> Dict[str, Any]:
    if shape_type == GROUP_TYPE:
        return {
            "label": "Group",
            "collapsed": False,
            "saved_layout": "",
            "font_size": GROUP_FONT_SIZE,
            "image_url": "",
            "compact": False,
            "w": GROUP_WIDTH,
            "h": GROUP_HEIGHT,
        }
    if shape_type == LINKCARD_TYPE:
        return {
            "url": "",
            "title": "",
            "compact": False,
            "font_size": GROUP_FONT_SIZE,
            "w": LINKCARD_WIDTH,
            "h": LINKCARD_HEIGHT,
        }
    return {}


@dataclass
class Box:
    x: float
    y: float
    w: float
    h: float


@dataclass
class Shape:
    id: str
    type: str
    x: float = 0.0
    y: float = 0.0
    opacity: float = 1.0
    props: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_group(self) -> bool:
        return self.type == GROUP_TYPE

    @property
    def is_linkcard(self) -> bool:
        return self.type == LINKCARD_TYPE

    @property
    def is_arrow(self) -> bool:
        return self.type == ARROW_TYPE

    @property
    def w(self) -> Optional[float]:
        return self.props.get("w")

    @property
    def h(self) -> Optional[float]:
        return self.props.get("h")


@dataclass(frozen=True)
class Binding:
    id: str
    type: str  # binding kind, "arrow"
    from_id: str  # the arrow
    to_id: str  # the bound shape
    terminal: Terminal
