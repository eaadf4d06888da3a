"""parent→child connection lines, derived from node data.

a connection exists iff the child has a parent_id and both endpoints exist
and are visible. nothing here is ground truth; update_all_connections()
rebuilds the set from the node store.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Iterable, NamedTuple, Optional

from .models import BOX_SIZE, CATEGORIES, FALLBACK_COLOR, CanvasNode, NodeStore
from .surface import ConnectionVisual, RenderSurface


DEFAULT_ANCHOR_SIZE = BOX_SIZE[0]


class ConnectionKey(NamedTuple):
    parent_id: int
    child_id: int


@dataclass
class Connection:
    parent_id: int
    child_id: int
    visual: Optional[ConnectionVisual]
    last_update: float


@dataclass(frozen=True)
class LineGeometry:
    """straight segment between two anchors."""

    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def length(self) -> float:
        return math.hypot(self.x2 - self.x1, self.y2 - self.y1)

    @property
    def angle(self) -> float:
        """rotation in degrees."""
        return math.degrees(math.atan2(self.y2 - self.y1, self.x2 - self.x1))


def anchor_geometry(
    parent: CanvasNode,
    child: CanvasNode,
    parent_size: Optional[tuple[float, float]] = None,
    child_size: Optional[tuple[float, float]] = None,
) -> LineGeometry:
    """right-center of the parent to left-center of the child.

    sizes fall back from rendered size, to stored size, to a 60px default.
    """
    pw, ph = _pick_size(parent_size, parent)
    _, ch = _pick_size(child_size, child)
    return LineGeometry(
        x1=parent.x + pw,
        y1=parent.y + ph / 2,
        x2=child.x,
        y2=child.y + ch / 2,
    )


def _pick_size(rendered: Optional[tuple[float, float]], node: CanvasNode) -> tuple[float, float]:
    rw, rh = rendered if rendered else (None, None)
    width = rw or node.width or DEFAULT_ANCHOR_SIZE
    height = rh or node.height or DEFAULT_ANCHOR_SIZE
    return width, height


def line_color(parent: CanvasNode) -> str:
    category = CATEGORIES.get(parent.category)
    return category.color if category else FALLBACK_COLOR


class ConnectionManager:
    """keeps connection visuals in step with parent_id fields."""

    def __init__(self, store: NodeStore, surface: Optional[RenderSurface] = None) -> None:
        self.store = store
        self.surface = surface
        self.connections: dict[ConnectionKey, Connection] = {}

    def __len__(self) -> int:
        return len(self.connections)

    def __contains__(self, key) -> bool:
        return ConnectionKey(*key) in self.connections

    def keys(self) -> set[ConnectionKey]:
        return set(self.connections)

    def _is_visible(self, node: CanvasNode) -> bool:
        if not self.store.is_visible(node):
            return False
        if self.surface is None:
            return True
        return self.surface.is_displayed(node.id)

    def _rendered_size(self, node_id: int) -> Optional[tuple[float, float]]:
        if self.surface is None:
            return None
        rendered = self.surface.get_node(node_id)
        if rendered is None:
            return None
        return rendered.width, rendered.height

    def connection_points(self, parent: CanvasNode, child: CanvasNode) -> LineGeometry:
        return anchor_geometry(
            parent,
            child,
            self._rendered_size(parent.id),
            self._rendered_size(child.id),
        )

    def ensure_connection(
        self,
        parent_id: int,
        child_id: int,
        nodes: Optional[Iterable[CanvasNode]] = None,
    ) -> Optional[Connection]:
        """make sure the parent→child line exists and sits on the current anchors.

        the old visual is always removed and a fresh one created.
        """
        key = ConnectionKey(parent_id, child_id)
        nodes = list(self.store.nodes if nodes is None else nodes)
        parent = _find(nodes, parent_id)
        child = _find(nodes, child_id)

        if parent is None or child is None or not self._is_visible(parent) or not self._is_visible(child):
            self.remove_connection(key)
            return None

        self.remove_connection(key)

        geometry = self.connection_points(parent, child)
        visual = ConnectionVisual(
            parent_id=parent_id,
            child_id=child_id,
            left=geometry.x1,
            top=geometry.y1,
            length=geometry.length,
            angle=geometry.angle,
            color=line_color(parent),
        )
        if self.surface is not None:
            self.surface.add_connection(visual)

        connection = Connection(
            parent_id=parent_id,
            child_id=child_id,
            visual=visual,
            last_update=time.time(),
        )
        self.connections[key] = connection
        return connection

    def remove_connection(self, key) -> None:
        """drop the record and any stray visual with the same identity."""
        key = ConnectionKey(*key)
        self.connections.pop(key, None)
        if self.surface is not None:
            self.surface.remove_connection(key)

    def remove_node_connections(self, node_id: int) -> None:
        stale = [k for k in self.connections if node_id in (k.parent_id, k.child_id)]
        for key in stale:
            self.remove_connection(key)

    def update_node_connections(self, node_id: int, nodes: Optional[Iterable[CanvasNode]] = None) -> None:
        """re-ensure the node's own parent edge and every edge to its children."""
        nodes = list(self.store.nodes if nodes is None else nodes)
        node = _find(nodes, node_id)
        if node is None:
            return

        for child in nodes:
            if child.parent_id == node_id:
                self.ensure_connection(node_id, child.id, nodes)

        if node.parent_id is not None:
            self.ensure_connection(node.parent_id, node_id, nodes)

    def valid_keys(self, nodes: Optional[Iterable[CanvasNode]] = None) -> set[ConnectionKey]:
        """keys that should exist given current parent ids and visibility."""
        nodes = list(self.store.nodes if nodes is None else nodes)
        by_id = {n.id: n for n in nodes}
        valid = set()
        for node in nodes:
            if node.parent_id is None:
                continue
            parent = by_id.get(node.parent_id)
            if parent is None:
                continue
            if self._is_visible(parent) and self._is_visible(node):
                valid.add(ConnectionKey(parent.id, node.id))
        return valid

    def update_all_connections(self, nodes: Optional[Iterable[CanvasNode]] = None) -> set[ConnectionKey]:
        """full reconciliation pass. returns the resulting key set."""
        nodes = list(self.store.nodes if nodes is None else nodes)
        valid = self.valid_keys(nodes)

        for key in list(self.connections):
            if key not in valid:
                self.remove_connection(key)

        # stray visuals left behind by earlier passes
        if self.surface is not None:
            for key in list(self.surface.connections):
                if key not in valid:
                    self.surface.remove_connection(key)

        for key in valid:
            self.ensure_connection(key.parent_id, key.child_id, nodes)

        logging.debug(f"reconciled connections: {len(self.connections)} active")
        return self.keys()

    def clear(self) -> None:
        self.connections.clear()
        if self.surface is not None:
            self.surface.clear_connections()


def _find(nodes: list[CanvasNode], node_id: Optional[int]) -> Optional[CanvasNode]:
    for node in nodes:
        if node.id == node_id:
            return node
    return None
