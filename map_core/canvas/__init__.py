from .collapse import GraphCollapseEngine
from .graph import Editor, ShapeGraph
from .layout import ChildNode, compute_row_layout
from .models import Binding, Box, Shape

__all__ = [
    "Binding",
    "Box",
    "ChildNode",
    "Editor",
    "GraphCollapseEngine",
    "Shape",
    "ShapeGraph",
    "compute_row_layout",
]
