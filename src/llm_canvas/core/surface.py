"""headless render surface.

holds the rendered form of nodes and connection lines, plus the scroll
viewport. frontends read it; the engine keeps it in sync with the node store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class NodeContent(Enum):
    EXPANDED = "expanded"  # header, message list, input
    BOX = "box"            # compact icon


@dataclass
class BoxIcon:
    """compact icon shown for a boxed node."""

    color: str
    title: str


@dataclass
class RenderedMessage:
    role: str
    content: str


@dataclass
class RenderedNode:
    """rendered instance of one node."""

    node_id: int
    left: float
    top: float
    width: float
    height: float
    min_width: Optional[float] = None
    min_height: Optional[float] = None
    max_width: Optional[float] = None
    max_height: Optional[float] = None
    visible: bool = True
    z_index: int = 10
    border_color: str = ""
    classes: set[str] = field(default_factory=set)
    content: NodeContent = NodeContent.EXPANDED
    box: Optional[BoxIcon] = None
    messages: list[RenderedMessage] = field(default_factory=list)
    messages_scroll_at_end: bool = True
    input_value: str = ""
    input_disabled: bool = False
    thinking_indicator: bool = False

    # click/drag disambiguation local to a box icon
    click_tracker: Optional[object] = None


@dataclass
class ConnectionVisual:
    """straight line drawn from a parent anchor to a child anchor."""

    parent_id: int
    child_id: int
    left: float
    top: float
    length: float
    angle: float  # degrees
    color: str
    thickness: int = 3
    z_index: int = 5


@dataclass
class Viewport:
    """scrollable window onto the canvas.

    origin_x/origin_y place the canvas on screen, so client coordinates can
    be turned into canvas coordinates.
    """

    width: float = 1280
    height: float = 800
    scroll_left: float = 0
    scroll_top: float = 0
    origin_x: float = 0
    origin_y: float = 0


class RenderSurface:
    """registry of rendered nodes and connection visuals."""

    def __init__(self, viewport: Optional[Viewport] = None) -> None:
        self.viewport = viewport or Viewport()
        self.nodes: dict[int, RenderedNode] = {}
        self.connections: dict[tuple[int, int], ConnectionVisual] = {}
        self.canvas_width: float = self.viewport.width
        self.canvas_height: float = self.viewport.height

    # --- nodes ---

    def get_node(self, node_id: int) -> Optional[RenderedNode]:
        return self.nodes.get(node_id)

    def add_node(self, rendered: RenderedNode) -> RenderedNode:
        self.nodes[rendered.node_id] = rendered
        return rendered

    def remove_node(self, node_id: int) -> None:
        self.nodes.pop(node_id, None)

    def clear_nodes(self) -> None:
        self.nodes.clear()

    def is_displayed(self, node_id: int) -> bool:
        rendered = self.nodes.get(node_id)
        return rendered is not None and rendered.visible

    # --- connections ---

    def add_connection(self, visual: ConnectionVisual) -> None:
        self.connections[(visual.parent_id, visual.child_id)] = visual

    def remove_connection(self, key: tuple[int, int]) -> bool:
        """drop a visual by identity. returns True if one was present."""
        return self.connections.pop(tuple(key), None) is not None

    def clear_connections(self) -> None:
        self.connections.clear()

    # --- viewport ---

    def set_canvas_size(self, width: float, height: float) -> None:
        self.canvas_width = width
        self.canvas_height = height

    def max_scroll(self) -> tuple[float, float]:
        return (
            max(0, self.canvas_width - self.viewport.width),
            max(0, self.canvas_height - self.viewport.height),
        )

    def scroll_to(self, left: float, top: float) -> None:
        """scroll the viewport, clamped to the canvas."""
        max_x, max_y = self.max_scroll()
        self.viewport.scroll_left = max(0, min(left, max_x))
        self.viewport.scroll_top = max(0, min(top, max_y))

    def scroll_by(self, dx: float, dy: float) -> None:
        self.scroll_to(self.viewport.scroll_left + dx, self.viewport.scroll_top + dy)

    def client_to_canvas(self, client_x: float, client_y: float) -> tuple[float, float]:
        """screen coordinates to world coordinates, honoring scroll."""
        vp = self.viewport
        return (
            client_x - vp.origin_x + vp.scroll_left,
            client_y - vp.origin_y + vp.scroll_top,
        )
