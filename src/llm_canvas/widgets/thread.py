"""thread widget: the focused node's transcript, with its fork lineage.

only the focused node renders its messages in full.
"""

from __future__ import annotations

from typing import Optional

from textual.containers import ScrollableContainer
from textual.widgets import Static
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from ..core.canvas import CanvasEngine
from ..core.models import CanvasNode, ChatMessage, Role, get_category


def lineage(engine: CanvasEngine, node_id: Optional[int]) -> list[CanvasNode]:
    """ancestors of a node (oldest first) followed by the node itself.

    stops at a dangling parent id or a cycle.
    """
    chain: list[CanvasNode] = []
    seen: set[int] = set()
    node = engine.store.get(node_id)
    while node is not None and node.id not in seen:
        chain.append(node)
        seen.add(node.id)
        node = engine.store.get(node.parent_id)
    return list(reversed(chain))


class MessageWidget(Static):
    """single transcript entry."""

    DEFAULT_CSS = """
    MessageWidget {
        margin: 0 0 1 0;
        padding: 0;
    }
    """

    def __init__(self, message: ChatMessage, color: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.message = message
        self.color = color

    def render(self) -> Panel:
        if self.message.role == Role.ASSISTANT:
            content = Markdown(self.message.content)
            title = "assistant"
        else:
            content = Text(self.message.content)
            title = "you"
        return Panel(
            content,
            title=title,
            title_align="left",
            border_style=self.color if self.message.role == Role.USER else "dim",
            padding=(0, 1),
        )


class ThreadView(ScrollableContainer):
    """renders the focused node's lineage header and transcript."""

    DEFAULT_CSS = """
    ThreadView {
        height: 1fr;
        padding: 1;
        border: solid $surface-lighten-2;
    }
    """

    def __init__(self, engine: CanvasEngine, **kwargs) -> None:
        super().__init__(**kwargs)
        self.engine = engine

    def compose(self):
        chain = lineage(self.engine, self.engine.store.focused_node_id)
        if not chain:
            yield Static("(no node selected)", classes="dim")
            return

        focused = chain[-1]
        category = get_category(focused.category)

        header = Text()
        for i, node in enumerate(chain):
            if i:
                header.append(" › ", style="dim")
            style = f"bold {category.color}" if node is focused else "dim"
            header.append(node.title or f"node {node.id}", style=style)
        header.append(f"  [{category.name}]", style=category.color)
        yield Static(header, classes="thread-header")

        for message in focused.messages:
            yield MessageWidget(message, category.color)

        if focused.is_thinking:
            yield Static(Text("thinking...", style="italic dim"), classes="thinking")

    def refresh_thread(self, engine: CanvasEngine) -> None:
        """update with new canvas state."""
        self.engine = engine
        self.remove_children()
        for widget in self.compose():
            self.mount(widget)
        self.scroll_end(animate=False)
