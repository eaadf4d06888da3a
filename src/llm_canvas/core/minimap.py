"""minimap projection: world coordinates to a scaled overview and back."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from .connections import anchor_geometry
from .models import CanvasNode, NodeStore, get_category
from .surface import Viewport


MINIMAP_SIZE = (276, 156)
MAX_SCALE = 0.15
MIN_NODE_PX = 4


@dataclass
class MinimapNode:
    node_id: int
    x: float
    y: float
    width: float
    height: float
    border_color: str
    fill_color: str

    def contains(self, mx: float, my: float) -> bool:
        return self.x <= mx <= self.x + self.width and self.y <= my <= self.y + self.height


@dataclass
class MinimapEdge:
    parent_id: int
    child_id: int
    x1: float
    y1: float
    length: float
    angle: float
    color: str


@dataclass
class ViewportRect:
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0


@dataclass
class MinimapFrame:
    """everything the minimap shows after one refresh."""

    scale: float
    width: float
    height: float
    nodes: list[MinimapNode] = field(default_factory=list)
    edges: list[MinimapEdge] = field(default_factory=list)
    viewport: ViewportRect = field(default_factory=ViewportRect)


@dataclass(frozen=True)
class MinimapClick:
    """result of a click on the minimap.

    node_id is set when a node rectangle was hit; otherwise world_x/world_y
    is the point the main view should centre on.
    """

    node_id: Optional[int]
    world_x: float
    world_y: float


class MinimapProjector:
    """scaled overview of every filter-visible node."""

    def __init__(
        self,
        store: NodeStore,
        width: float = MINIMAP_SIZE[0],
        height: float = MINIMAP_SIZE[1],
    ) -> None:
        self.store = store
        self.width = width
        self.height = height
        self.scale = 0.1
        self.frame = MinimapFrame(scale=self.scale, width=width, height=height)

    def compute_scale(self, canvas_width: float, canvas_height: float) -> float:
        return min(self.width / canvas_width, self.height / canvas_height, MAX_SCALE)

    def refresh(
        self,
        canvas_size: tuple[float, float],
        viewport: Viewport,
        nodes: Optional[Iterable[CanvasNode]] = None,
    ) -> MinimapFrame:
        """recompute scale and redraw nodes, edges and the viewport rect."""
        nodes = list(self.store.nodes if nodes is None else nodes)
        self.scale = self.compute_scale(*canvas_size)
        s = self.scale

        visible = [n for n in nodes if self.store.is_visible(n)]
        frame = MinimapFrame(scale=s, width=self.width, height=self.height)

        for node in visible:
            category = get_category(node.category)
            frame.nodes.append(MinimapNode(
                node_id=node.id,
                x=node.x * s,
                y=node.y * s,
                width=max(MIN_NODE_PX, node.width * s),
                height=max(MIN_NODE_PX, node.height * s),
                border_color=category.color,
                fill_color=category.bg_color,
            ))

        by_id = {n.id: n for n in visible}
        for node in visible:
            parent = by_id.get(node.parent_id) if node.parent_id is not None else None
            if parent is None:
                continue
            line = anchor_geometry(parent, node)
            frame.edges.append(MinimapEdge(
                parent_id=parent.id,
                child_id=node.id,
                x1=line.x1 * s,
                y1=line.y1 * s,
                length=line.length * s,
                angle=line.angle,
                color=get_category(parent.category).color,
            ))

        self.frame = frame
        self.update_viewport(viewport)
        return frame

    def update_viewport(self, viewport: Viewport) -> ViewportRect:
        """move the viewport indicator after a scroll or resize."""
        s = self.scale
        rect = ViewportRect(
            x=viewport.scroll_left * s,
            y=viewport.scroll_top * s,
            width=viewport.width * s,
            height=viewport.height * s,
        )
        self.frame.viewport = rect
        return rect

    def to_minimap(self, world_x: float, world_y: float) -> tuple[float, float]:
        return world_x * self.scale, world_y * self.scale

    def to_world(self, mx: float, my: float) -> tuple[float, float]:
        return mx / self.scale, my / self.scale

    def hit_test(self, mx: float, my: float) -> Optional[int]:
        """topmost node rectangle under a minimap point."""
        for rect in reversed(self.frame.nodes):
            if rect.contains(mx, my):
                return rect.node_id
        return None

    def click(self, mx: float, my: float) -> MinimapClick:
        world_x, world_y = self.to_world(mx, my)
        return MinimapClick(node_id=self.hit_test(mx, my), world_x=world_x, world_y=world_y)
