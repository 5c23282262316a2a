"""
In-memory shape graph.

ShapeGraph is an arena of shapes keyed by id plus separate binding indexes.
It implements the Editor interface the collapse engine consumes. Writers wrap
a sequence of updates in batch(): the graph lock is held for the whole batch
and subscribers are notified once, with every changed id, when the outermost
batch ends.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, Set

from map_core.utils.logger import get_logger

from .models import ARROW_TYPE, Binding, Box, Shape, Terminal, default_props, new_id

logger = get_logger(__name__)

Listener = Callable[[Set[str]], None]


class Editor(Protocol):
    def get_shape(self, shape_id: str) -> Optional[Shape]: ...

    def get_bindings_to_shape(self, shape_id: str, kind: str) -> List[Binding]: ...

    def get_bindings_from_shape(self, shape_id: str, kind: str) -> List[Binding]: ...

    def update_shape(
        self,
        shape_id: str,
        *,
        x: Optional[float] = None,
        y: Optional[float] = None,
        opacity: Optional[float] = None,
        props: Optional[Dict[str, Any]] = None,
    ) -> bool: ...

    def get_shape_page_bounds(self, shape_id: str) -> Optional[Box]: ...

    def batch(self): ...


class ShapeGraph:
    def __init__(self):
        self._shapes: Dict[str, Shape] = {}
        self._bindings: Dict[str, Binding] = {}
        self._to: Dict[str, List[str]] = {}
        self._from: Dict[str, List[str]] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._changed: Set[str] = set()
        self._listeners: List[Listener] = []

    # -- transactions -------------------------------------------------------

    @contextmanager
    def batch(self) -> Iterator["ShapeGraph"]:
        """Group updates so subscribers see them as one change. No rollback on error."""
        with self._lock:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
                changed = set()
                if self._depth == 0:
                    changed, self._changed = self._changed, set()
        if changed:
            self._notify(changed)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _notify(self, changed: Set[str]) -> None:
        for listener in list(self._listeners):
            listener(changed)

    def _touch(self, *ids: str) -> None:
        if self._depth:
            self._changed.update(ids)
        else:
            self._notify(set(ids))

    # -- queries ------------------------------------------------------------

    def get_shape(self, shape_id: str) -> Optional[Shape]:
        return self._shapes.get(shape_id)

    def get_shapes(self) -> List[Shape]:
        return list(self._shapes.values())

    def get_bindings_to_shape(self, shape_id: str, kind: str = ARROW_TYPE) -> List[Binding]:
        """Bindings whose bound shape is shape_id, in creation order."""
        return [
            self._bindings[b] for b in self._to.get(shape_id, [])
            if self._bindings[b].type == kind
        ]

    def get_bindings_from_shape(self, shape_id: str, kind: str = ARROW_TYPE) -> List[Binding]:
        """Bindings owned by arrow shape_id, in creation order."""
        return [
            self._bindings[b] for b in self._from.get(shape_id, [])
            if self._bindings[b].type == kind
        ]

    def get_shape_page_bounds(self, shape_id: str) -> Optional[Box]:
        shape = self._shapes.get(shape_id)
        if shape is None:
            return None
        return Box(shape.x, shape.y, shape.w or 0, shape.h or 0)

    # -- mutations ----------------------------------------------------------

    def create_shape(
        self,
        shape_type: str,
        x: float = 0.0,
        y: float = 0.0,
        shape_id: Optional[str] = None,
        **props: Any,
    ) -> Shape:
        with self._lock:
            shape_id = shape_id or new_id()
            if shape_id in self._shapes:
                raise ValueError(f"Shape {shape_id} already exists")
            merged = default_props(shape_type)
            merged.update(props)
            shape = Shape(id=shape_id, type=shape_type, x=x, y=y, props=merged)
            self._shapes[shape_id] = shape
            self._touch(shape_id)
            return shape

    def update_shape(
        self,
        shape_id: str,
        *,
        x: Optional[float] = None,
        y: Optional[float] = None,
        opacity: Optional[float] = None,
        props: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Apply a partial patch; props are merged. False if the shape is gone."""
        with self._lock:
            shape = self._shapes.get(shape_id)
            if shape is None:
                return False
            if x is not None:
                shape.x = x
            if y is not None:
                shape.y = y
            if opacity is not None:
                shape.opacity = opacity
            if props:
                shape.props.update(props)
            self._touch(shape_id)
            return True

    def bind(self, arrow_id: str, shape_id: str, terminal: Terminal) -> Binding:
        with self._lock:
            if arrow_id not in self._shapes or shape_id not in self._shapes:
                raise KeyError(f"Cannot bind {arrow_id} -> {shape_id}: unknown shape")
            binding = Binding(
                id=new_id("binding"),
                type=ARROW_TYPE,
                from_id=arrow_id,
                to_id=shape_id,
                terminal=terminal,
            )
            self._bindings[binding.id] = binding
            self._from.setdefault(arrow_id, []).append(binding.id)
            self._to.setdefault(shape_id, []).append(binding.id)
            self._touch(arrow_id, shape_id)
            return binding

    def connect(self, start_id: str, end_id: str, arrow_id: Optional[str] = None) -> Shape:
        """Create an arrow from start_id to end_id (parent -> child)."""
        with self.batch():
            arrow = self.create_shape(ARROW_TYPE, shape_id=arrow_id or new_id("arrow"))
            self.bind(arrow.id, start_id, "start")
            self.bind(arrow.id, end_id, "end")
            return arrow

    def delete_shape(self, shape_id: str) -> bool:
        """Remove a shape and every binding to or from it."""
        with self._lock:
            if shape_id not in self._shapes:
                return False
            for binding_id in self._to.pop(shape_id, []) + self._from.pop(shape_id, []):
                binding = self._bindings.pop(binding_id, None)
                if binding is None:
                    continue
                for index, key in ((self._from, binding.from_id), (self._to, binding.to_id)):
                    ids = index.get(key)
                    if ids and binding_id in ids:
                        ids.remove(binding_id)
            del self._shapes[shape_id]
            self._touch(shape_id)
            return True
