"""core data model for llm canvas.

branching chat threads laid out on an infinite canvas, not a linear chat.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


# --- geometry constants ---

EXPANDED_SIZE = (1100, 650)
BOX_SIZE = (60, 60)
MINIMUM_Y = 170
MIN_RESIZE_WIDTH = 300
MIN_RESIZE_HEIGHT = 400

# placement grid used when a node is created without coordinates
PLACEMENT_CELL = (700, 650)
PLACEMENT_MARGIN = 20
PLACEMENT_START_X = 150
PLACEMENT_COLUMNS = 8
PLACEMENT_ROWS = 10

CANVAS_PADDING = 300
EMPTY_CANVAS_SIZE = (2000, 1500)

FORK_OFFSET = (350, 50)
FORK_TITLE_LIMIT = 130

ORIGIN_TITLE = "Origin Prompt"
DEFAULT_CATEGORY = "general"
FALLBACK_COLOR = "#64748b"


@dataclass(frozen=True)
class Category:
    """color coding for a class of conversations."""

    key: str
    name: str
    color: str
    bg_color: str


CATEGORIES: dict[str, Category] = {
    "general": Category("general", "General", "#64748b", "#f8fafc"),
    "research": Category("research", "Research", "#3b82f6", "#eff6ff"),
    "creative": Category("creative", "Creative", "#10b981", "#ecfdf5"),
    "problem": Category("problem", "Problem Solving", "#f59e0b", "#fffbeb"),
    "planning": Category("planning", "Planning", "#8b5cf6", "#f5f3ff"),
    "learning": Category("learning", "Learning", "#ef4444", "#fef2f2"),
}


def get_category(key: Optional[str]) -> Category:
    """look up a category, falling back to general."""
    return CATEGORIES.get(key or "", CATEGORIES[DEFAULT_CATEGORY])


class Role(Enum):
    USER = "user"
    ASSISTANT = "assistant"


def now_ms() -> int:
    """wall clock in milliseconds."""
    return int(time.time() * 1000)


def is_node_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def as_number(value, default: Optional[float] = None) -> Optional[float]:
    """value when it is a real number, else the default."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return value


@dataclass
class ChatMessage:
    """one transcript entry."""

    role: Role
    content: str
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict:
        return {"role": self.role.value, "content": self.content, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, d: dict) -> ChatMessage:
        role = d.get("role", Role.USER.value)
        return cls(
            role=Role(role) if role in (r.value for r in Role) else Role.USER,
            content=str(d.get("content", "")),
            timestamp=as_number(d.get("timestamp"), 0),
        )


@dataclass
class CanvasNode:
    """single conversation thread on the canvas."""

    id: int
    x: float
    y: float
    width: float = EXPANDED_SIZE[0]
    height: float = EXPANDED_SIZE[1]
    title: str = ""
    category: str = DEFAULT_CATEGORY
    messages: list[ChatMessage] = field(default_factory=list)
    is_box_view: bool = False
    is_thinking: bool = False
    parent_id: Optional[int] = None  # weak reference, never ownership

    # size to restore when a boxed node is expanded again
    expanded_width: Optional[float] = None
    expanded_height: Optional[float] = None

    is_origin: bool = False

    # text carried into the input of a freshly forked node; not persisted
    pending_input: Optional[str] = None

    def add_message(self, role: Role, content: str) -> ChatMessage:
        """append a transcript entry."""
        message = ChatMessage(role=role, content=content)
        self.messages.append(message)
        return message

    def to_dict(self) -> dict:
        """serialize to the session schema (camelCase keys)."""
        d = {
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "title": self.title,
            "category": self.category,
            "messages": [m.to_dict() for m in self.messages],
            "isThinking": self.is_thinking,
            "parentId": self.parent_id,
            "isBoxView": self.is_box_view,
        }
        if self.expanded_width is not None:
            d["expandedWidth"] = self.expanded_width
            d["expandedHeight"] = self.expanded_height
        if self.is_origin:
            d["isOrigin"] = True
        return d

    @classmethod
    def from_dict(cls, d: dict) -> CanvasNode:
        """deserialize from the session schema. missing or mistyped values get defaults.

        the id is taken as-is; callers check it with is_node_id.
        """
        expanded_width = as_number(d.get("expandedWidth"))
        expanded_height = as_number(d.get("expandedHeight"))
        if expanded_width is None or expanded_height is None:
            expanded_width = expanded_height = None

        category = d.get("category")
        parent_id = d.get("parentId")
        messages = d.get("messages")
        if not isinstance(messages, list):
            messages = []

        return cls(
            id=d["id"],
            x=as_number(d.get("x"), PLACEMENT_START_X),
            y=as_number(d.get("y"), MINIMUM_Y),
            width=as_number(d.get("width")) or EXPANDED_SIZE[0],
            height=as_number(d.get("height")) or EXPANDED_SIZE[1],
            title=str(d.get("title") or ""),
            category=category if isinstance(category, str) and category else DEFAULT_CATEGORY,
            messages=[ChatMessage.from_dict(m) for m in messages if isinstance(m, dict)],
            is_box_view=bool(d.get("isBoxView", False)),
            is_thinking=bool(d.get("isThinking", False)),
            parent_id=parent_id if is_node_id(parent_id) else None,
            expanded_width=expanded_width,
            expanded_height=expanded_height,
            is_origin=bool(d.get("isOrigin", False)),
        )


class NodeStore:
    """authoritative node records, id allocation and filter state.

    one instance is shared by every component of a canvas.
    """

    def __init__(self) -> None:
        self.nodes: list[CanvasNode] = []
        self.next_id = 1
        self.active_filter: Optional[str] = None
        self.focused_node_id: Optional[int] = None
        self.total_messages = 0

        # text selection used for forking
        self.selected_text = ""
        self.selected_node_id: Optional[int] = None

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self):
        return iter(self.nodes)

    def allocate_id(self) -> int:
        """hand out the next id. ids are never reused."""
        node_id = self.next_id
        self.next_id += 1
        return node_id

    def get(self, node_id: Optional[int]) -> Optional[CanvasNode]:
        """find a node by id (linear scan)."""
        if node_id is None:
            return None
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def add(self, node: CanvasNode) -> CanvasNode:
        self.nodes.append(node)
        self.total_messages += len(node.messages)
        return node

    def children_of(self, node_id: int) -> list[CanvasNode]:
        """nodes whose parent_id points at node_id."""
        return [n for n in self.nodes if n.parent_id == node_id]

    def reset(self) -> None:
        """drop every node and the filter. the id counter keeps counting."""
        self.nodes = []
        self.focused_node_id = None
        self.total_messages = 0
        self.selected_text = ""
        self.selected_node_id = None
        self.active_filter = None

    def is_visible(self, node: CanvasNode) -> bool:
        """whether the active category filter lets this node through."""
        return self.active_filter is None or node.category == self.active_filter

    def set_filter(self, category: Optional[str]) -> Optional[str]:
        """apply a category filter. "all" clears it, repeating a filter toggles it off."""
        if category is None or category == "all":
            self.active_filter = None
        elif self.active_filter == category:
            self.active_filter = None
        else:
            self.active_filter = category
        return self.active_filter

    def category_counts(self) -> dict[str, int]:
        counts = {key: 0 for key in CATEGORIES}
        for node in self.nodes:
            counts[node.category] = counts.get(node.category, 0) + 1
        return counts

    def find_good_position(self) -> tuple[float, float]:
        """first free slot on the placement grid."""
        cell_w, cell_h = PLACEMENT_CELL
        for row in range(PLACEMENT_ROWS):
            for col in range(PLACEMENT_COLUMNS):
                test_x = PLACEMENT_START_X + col * (cell_w + PLACEMENT_MARGIN)
                test_y = MINIMUM_Y + row * (cell_h + PLACEMENT_MARGIN)
                if not any(self._overlaps(node, test_x, test_y) for node in self.nodes):
                    return test_x, test_y

        # grid is full, scatter near the top-left
        return (
            random.random() * 400 + PLACEMENT_START_X,
            random.random() * 300 + MINIMUM_Y,
        )

    def _overlaps(self, node: CanvasNode, x: float, y: float) -> bool:
        if node.id == self.focused_node_id:
            check_w, check_h = EXPANDED_SIZE
        else:
            check_w, check_h = BOX_SIZE
        return abs(node.x - x) < check_w + 30 and abs(node.y - y) < check_h + 30

    def canvas_bounds(self, viewport_width: float, viewport_height: float) -> tuple[float, float]:
        """size of the scrollable world needed to hold every node."""
        if not self.nodes:
            return (
                max(viewport_width, EMPTY_CANVAS_SIZE[0]),
                max(viewport_height, EMPTY_CANVAS_SIZE[1]),
            )

        max_x, max_y = viewport_width, viewport_height
        for node in self.nodes:
            max_x = max(max_x, node.x + (node.width or EXPANDED_SIZE[0]) + 100)
            max_y = max(max_y, node.y + (node.height or EXPANDED_SIZE[1]) + 100)
        return max_x + CANVAS_PADDING, max_y + CANVAS_PADDING


def get_canvas_dir() -> Path:
    """get the default storage directory for sessions and autosave."""
    canvas_dir = Path.home() / ".llm-canvas"
    canvas_dir.mkdir(parents=True, exist_ok=True)
    return canvas_dir


def truncate(text: str, max_len: int, suffix: str = "...") -> str:
    """cut text to max_len characters, marking the cut."""
    if len(text) <= max_len:
        return text
    return text[:max_len] + suffix
