"""llm canvas: terminal viewer.

minimap of the whole canvas next to the focused thread, with an input for
chatting and forking.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Footer, Header, Input, Static

from .core.canvas import CanvasEngine
from .core.chat import ChatDispatcher
from .core.client import DEFAULT_PROXY_URL, ClaudeClient, ClientProtocol, MockClient, ProxyClient
from .core.errors import NoSelectionError, SessionLoadError
from .core.models import CATEGORIES, get_canvas_dir
from .core.session import AUTOSAVE_FILE, AutosaveSlot
from .widgets.minimap import Minimap, NodeClicked, PositionClicked
from .widgets.thread import ThreadView


AUTOSAVE_INTERVAL = 30  # seconds

FILTER_CYCLE = ["all", *CATEGORIES]


class CanvasViewer(App):
    """main application."""

    TITLE = "llm canvas"

    CSS = """
    Screen {
        layout: vertical;
    }

    #main-container {
        height: 1fr;
    }

    #side {
        width: auto;
    }

    #filter-label {
        padding: 0 1;
        color: $text-muted;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "quit"),
        Binding("n", "new_node", "new"),
        Binding("c", "collapse", "collapse"),
        Binding("f", "cycle_filter", "filter"),
        Binding("a", "center_all", "centre"),
        Binding("ctrl+k", "fork", "fork input"),
        Binding("e", "export", "export"),
    ]

    def __init__(
        self,
        session_path: Optional[Path] = None,
        client: Optional[ClientProtocol] = None,
        canvas_dir: Optional[Path] = None,
    ):
        super().__init__()
        self.session_path = session_path
        self.canvas_dir = canvas_dir or get_canvas_dir()
        self.engine = CanvasEngine(autosave_slot=AutosaveSlot(self.canvas_dir / AUTOSAVE_FILE))
        self.dispatcher = ChatDispatcher(self.engine, client or MockClient())
        self._filter_index = 0

    def compose(self) -> ComposeResult:
        """compose the app layout."""
        yield Header()

        with Horizontal(id="main-container"):
            with Vertical(id="side"):
                yield Minimap(self.engine, id="minimap")
                yield Static("filter: all", id="filter-label")
            yield ThreadView(self.engine, id="thread")

        yield Input(placeholder="message the focused node (ctrl+k forks from this text)", id="message-input")
        yield Footer()

    async def on_mount(self) -> None:
        """initialize on mount."""
        if self.session_path and self.session_path.exists():
            try:
                self.engine.import_text(self.session_path.read_text())
            except SessionLoadError as e:
                self.notify(str(e), severity="error")
        else:
            self.engine.load_autosave()

        if not self.engine.store.nodes:
            self.engine.create_node()

        self.set_interval(AUTOSAVE_INTERVAL, self._auto_save)
        self._refresh_all()
        self.query_one("#message-input", Input).focus()

    async def on_unmount(self) -> None:
        """save and release the client on quit."""
        self._auto_save()
        close = getattr(self.dispatcher.client, "close", None)
        if close is not None:
            try:
                await close()
            except Exception as e:
                logging.debug(f"ignoring client close error: {e}")

    def on_node_clicked(self, event: NodeClicked) -> None:
        """handle node click in minimap."""
        self.engine.navigate_to_node(event.node_id)
        self._refresh_all()

    def on_position_clicked(self, event: PositionClicked) -> None:
        self.engine.navigate_to_position(event.x, event.y)
        self._refresh_all()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """send the input to the focused node."""
        node_id = self.engine.store.focused_node_id
        if node_id is None:
            self.notify("select a node first", severity="warning")
            return

        text = event.input.value.strip()
        if not text:
            return
        if self.engine.get_node(node_id).is_thinking:
            self.notify("still waiting for the last reply", severity="warning")
            return

        event.input.value = ""
        self.run_worker(self._send(node_id, text), exclusive=False)

    async def _send(self, node_id: int, text: str) -> None:
        task = asyncio.ensure_future(self.dispatcher.send_message(node_id, text))
        # let the dispatcher record the user message and thinking flag
        await asyncio.sleep(0)
        self._refresh_all()
        await task
        self._refresh_all()

    def _refresh_all(self) -> None:
        """refresh all canvas widgets."""
        self.query_one("#minimap", Minimap).refresh_canvas(self.engine)
        self.query_one("#thread", ThreadView).refresh_thread(self.engine)
        active = self.engine.store.active_filter or "all"
        self.query_one("#filter-label", Static).update(f"filter: {active}")

    def _auto_save(self) -> None:
        try:
            self.engine.autosave()
        except OSError as e:
            self.notify(f"auto-save failed: {e}", severity="error")

    def action_new_node(self) -> None:
        node = self.engine.create_node()
        self.engine.center_node(node.id)
        self._refresh_all()

    def action_collapse(self) -> None:
        node_id = self.engine.store.focused_node_id
        if node_id is None:
            return
        self.engine.collapse(node_id)
        self._refresh_all()

    def action_cycle_filter(self) -> None:
        self._filter_index = (self._filter_index + 1) % len(FILTER_CYCLE)
        self.engine.filter_by_category(FILTER_CYCLE[self._filter_index])
        self._refresh_all()

    def action_center_all(self) -> None:
        self.engine.center_all()
        self._refresh_all()

    def action_fork(self) -> None:
        """fork the focused node using the input text as the selection."""
        field = self.query_one("#message-input", Input)
        self.engine.set_text_selection(self.engine.store.focused_node_id, field.value)
        try:
            child = self.engine.fork()
        except NoSelectionError as e:
            self.notify(str(e), severity="warning")
            return
        field.value = self.engine.take_input(child.id)
        self._refresh_all()

    def action_export(self) -> None:
        """write the session next to the autosave file."""
        filename, text = self.engine.export()
        path = self.canvas_dir / filename
        path.write_text(text)
        self.notify(f"exported to {path}")


def run(
    session_path: Optional[str] = None,
    mock: bool = False,
    use_claude: bool = False,
    proxy_url: str = DEFAULT_PROXY_URL,
) -> None:
    """run the llm canvas viewer."""
    if mock:
        client: ClientProtocol = MockClient()
    elif use_claude:
        client = ClaudeClient()
    else:
        client = ProxyClient(proxy_url)
    app = CanvasViewer(
        session_path=Path(session_path) if session_path else None,
        client=client,
    )
    app.run()


if __name__ == "__main__":
    run()
