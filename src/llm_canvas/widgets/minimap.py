"""minimap widget: the projected canvas drawn on a character grid.

click a node to select it, or empty space to move the view there.
"""

from __future__ import annotations

import math
from typing import Optional

from textual.message import Message
from textual.widgets import Static
from rich.text import Text

from ..core.canvas import CanvasEngine
from ..core.minimap import MinimapFrame


# minimap pixels covered by one terminal cell
CELL_WIDTH = 6
CELL_HEIGHT = 12


class NodeClicked(Message):
    """message emitted when a node is clicked in the minimap."""

    def __init__(self, node_id: int) -> None:
        self.node_id = node_id
        super().__init__()


class PositionClicked(Message):
    """message emitted when empty minimap space is clicked (world coordinates)."""

    def __init__(self, x: float, y: float) -> None:
        self.x = x
        self.y = y
        super().__init__()


class Minimap(Static):
    """scaled overview of every visible node, edge and the viewport."""

    DEFAULT_CSS = """
    Minimap {
        width: auto;
        height: auto;
        padding: 0 1;
        border: solid $surface-lighten-2;
    }
    """

    def __init__(self, engine: CanvasEngine, **kwargs) -> None:
        super().__init__(**kwargs)
        self.engine = engine

    @property
    def columns(self) -> int:
        return math.ceil(self.engine.minimap.width / CELL_WIDTH)

    @property
    def rows(self) -> int:
        return math.ceil(self.engine.minimap.height / CELL_HEIGHT)

    def render(self) -> Text:
        frame = self.engine.refresh_minimap()
        if not frame.nodes:
            return Text("(empty canvas)", style="dim")
        return self._draw(frame)

    def _draw(self, frame: MinimapFrame) -> Text:
        """rasterize the frame: viewport outline, then edges, then nodes on top."""
        cols, rows = self.columns, self.rows
        chars = [[" "] * cols for _ in range(rows)]
        styles = [[""] * cols for _ in range(rows)]

        def put(px: float, py: float, ch: str, style: str) -> None:
            col, row = int(px // CELL_WIDTH), int(py // CELL_HEIGHT)
            if 0 <= col < cols and 0 <= row < rows:
                chars[row][col] = ch
                styles[row][col] = style

        vp = frame.viewport
        x0, y0 = vp.x, vp.y
        x1, y1 = vp.x + vp.width, vp.y + vp.height
        px = x0
        while px <= x1:
            put(px, y0, "·", "dim")
            put(px, y1, "·", "dim")
            px += CELL_WIDTH
        py = y0
        while py <= y1:
            put(x0, py, "·", "dim")
            put(x1, py, "·", "dim")
            py += CELL_HEIGHT

        for edge in frame.edges:
            rad = math.radians(edge.angle)
            steps = max(1, int(edge.length // 2))
            for i in range(steps + 1):
                t = edge.length * i / steps
                put(edge.x1 + t * math.cos(rad), edge.y1 + t * math.sin(rad), "•", edge.color)

        focused = self.engine.store.focused_node_id
        for rect in frame.nodes:
            style = f"bold {rect.border_color}" if rect.node_id == focused else rect.border_color
            py = rect.y
            while py < rect.y + rect.height:
                px = rect.x
                while px < rect.x + rect.width:
                    put(px, py, "█", style)
                    px += CELL_WIDTH
                py += CELL_HEIGHT

        text = Text()
        for row in range(rows):
            for col in range(cols):
                text.append(chars[row][col], style=styles[row][col] or None)
            if row < rows - 1:
                text.append("\n")
        return text

    def cell_to_minimap(self, col: int, row: int) -> tuple[float, float]:
        """centre of a terminal cell in minimap pixels."""
        return (col + 0.5) * CELL_WIDTH, (row + 0.5) * CELL_HEIGHT

    def node_at_cell(self, col: int, row: int) -> Optional[int]:
        """topmost node whose rectangle touches a terminal cell."""
        left, top = col * CELL_WIDTH, row * CELL_HEIGHT
        for rect in reversed(self.engine.minimap.frame.nodes):
            if (rect.x < left + CELL_WIDTH and rect.x + rect.width > left
                    and rect.y < top + CELL_HEIGHT and rect.y + rect.height > top):
                return rect.node_id
        return None

    def on_click(self, event) -> None:
        """select the clicked node, or move the view to the clicked point."""
        offset = event.get_content_offset(self)
        if offset is None:
            return
        node_id = self.node_at_cell(offset.x, offset.y)
        if node_id is not None:
            self.post_message(NodeClicked(node_id))
            return
        world_x, world_y = self.engine.minimap.to_world(*self.cell_to_minimap(offset.x, offset.y))
        self.post_message(PositionClicked(world_x, world_y))

    def refresh_canvas(self, engine: CanvasEngine) -> None:
        """update with new canvas state."""
        self.engine = engine
        self.refresh()
