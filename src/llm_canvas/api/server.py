"""fastapi server for llm canvas.

exposes the canvas engine as REST endpoints for a browser frontend.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from ..core.canvas import CanvasEngine
from ..core.chat import DEFAULT_REQUEST_TIMEOUT, ChatDispatcher
from ..core.client import (
    DEFAULT_MODEL,
    DEFAULT_PROXY_URL,
    ClaudeClient,
    ClientProtocol,
    MockClient,
    ProxyClient,
)
from ..core.errors import NoSelectionError, SessionLoadError, UnknownNodeError
from ..core.interaction import PointerEvent, Region
from ..core.models import CATEGORIES, CanvasNode, get_canvas_dir
from ..core.session import AUTOSAVE_FILE, AutosaveSlot
from ..core.surface import RenderedNode


# --- configuration ---

DEFAULT_AUTOSAVE_INTERVAL = 30  # seconds


# --- pydantic models for api ---

class NodeCreate(BaseModel):
    """request to create a node. position is picked when omitted."""
    x: Optional[float] = None
    y: Optional[float] = None
    title: Optional[str] = None
    category: str = "general"


class NodeUpdate(BaseModel):
    """request to rename and/or recategorize a node."""
    title: Optional[str] = None
    category: Optional[str] = None


class SelectionSet(BaseModel):
    """text the user selected inside a node's transcript."""
    node_id: Optional[int] = None
    text: str = ""


class ForkRequest(BaseModel):
    """fork from explicit text, or from the stored selection when empty."""
    node_id: Optional[int] = None
    text: Optional[str] = None


class FilterRequest(BaseModel):
    category: Optional[str] = None


class PointerRequest(BaseModel):
    """pointer event in client coordinates."""
    node_id: Optional[int] = None
    client_x: float
    client_y: float
    timestamp: Optional[float] = None
    region: str = Region.DRAG_HANDLE.value


class MinimapClickRequest(BaseModel):
    x: float
    y: float


class ViewportUpdate(BaseModel):
    """window resize and/or scroll."""
    width: Optional[float] = None
    height: Optional[float] = None
    origin_x: Optional[float] = None
    origin_y: Optional[float] = None
    scroll_left: Optional[float] = None
    scroll_top: Optional[float] = None


class ChatRequest(BaseModel):
    """message to send; the node's input field is used when omitted."""
    message: Optional[str] = None


class MessageResponse(BaseModel):
    role: str
    content: str
    timestamp: int


class NodeResponse(BaseModel):
    """node in api response."""
    id: int
    x: float
    y: float
    width: float
    height: float
    title: str
    category: str
    messages: list[MessageResponse]
    is_box_view: bool
    is_thinking: bool
    parent_id: Optional[int]
    is_origin: bool = False
    expanded_width: Optional[float] = None
    expanded_height: Optional[float] = None
    visible: bool = True
    z_index: int = 10
    input_value: str = ""

    @classmethod
    def from_node(cls, node: CanvasNode, rendered: Optional[RenderedNode] = None) -> "NodeResponse":
        return cls(
            id=node.id,
            x=node.x,
            y=node.y,
            width=node.width,
            height=node.height,
            title=node.title,
            category=node.category,
            messages=[
                MessageResponse(role=m.role.value, content=m.content, timestamp=m.timestamp)
                for m in node.messages
            ],
            is_box_view=node.is_box_view,
            is_thinking=node.is_thinking,
            parent_id=node.parent_id,
            is_origin=node.is_origin,
            expanded_width=node.expanded_width,
            expanded_height=node.expanded_height,
            visible=rendered.visible if rendered else True,
            z_index=rendered.z_index if rendered else 10,
            input_value=rendered.input_value if rendered else (node.pending_input or ""),
        )


class ConnectionResponse(BaseModel):
    """connection line in api response."""
    parent_id: int
    child_id: int
    left: float
    top: float
    length: float
    angle: float
    color: str


class CanvasResponse(BaseModel):
    """canvas in api response."""
    nodes: list[NodeResponse]
    connections: list[ConnectionResponse]
    focused_node_id: Optional[int]
    active_filter: Optional[str]
    canvas_width: float
    canvas_height: float
    scroll_left: float
    scroll_top: float
    message_count: int


# --- app state ---

class AppState:
    """shared application state with auto-save and crash recovery."""

    def __init__(
        self,
        mock: bool = False,
        use_claude: bool = False,
        proxy_url: str = DEFAULT_PROXY_URL,
        model: str = DEFAULT_MODEL,
        autosave_interval: int = DEFAULT_AUTOSAVE_INTERVAL,
        canvas_dir: Optional[Path] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self.mock = mock
        self.use_claude = use_claude
        self.proxy_url = proxy_url
        self.model = model
        self.request_timeout = request_timeout
        self.canvas_dir = Path(canvas_dir) if canvas_dir else get_canvas_dir()
        self.engine = CanvasEngine(autosave_slot=AutosaveSlot(self.canvas_dir / AUTOSAVE_FILE))
        self._client: Optional[ClientProtocol] = None
        self._last_saved_at: Optional[str] = None

        # Auto-save configuration
        self.autosave_interval = autosave_interval
        self._autosave_task: Optional[asyncio.Task] = None

    @property
    def client(self) -> ClientProtocol:
        if self._client is None:
            if self.mock:
                self._client = MockClient()
            elif self.use_claude:
                self._client = ClaudeClient()
            else:
                self._client = ProxyClient(self.proxy_url, timeout=self.request_timeout)
        return self._client

    @property
    def dispatcher(self) -> ChatDispatcher:
        return ChatDispatcher(self.engine, self.client, model=self.model, timeout=self.request_timeout)

    def auto_save(self) -> bool:
        """snapshot every node to the autosave slot. returns True if saved."""
        try:
            saved = self.engine.autosave()
        except OSError as e:
            logging.warning(f"auto-save failed: {e}")
            return False
        if saved:
            self._last_saved_at = datetime.now().isoformat()
        return saved

    async def start_autosave(self) -> None:
        """start background auto-save task."""
        if self._autosave_task is not None or self.autosave_interval <= 0:
            return
        self._autosave_task = asyncio.create_task(self._autosave_loop())

    async def stop_autosave(self) -> None:
        """stop background auto-save task."""
        if self._autosave_task:
            self._autosave_task.cancel()
            try:
                await self._autosave_task
            except asyncio.CancelledError:
                pass
            self._autosave_task = None

    async def _autosave_loop(self) -> None:
        """background loop for auto-saving."""
        while True:
            await asyncio.sleep(self.autosave_interval)
            if self.auto_save():
                logging.debug(f"auto-saved {len(self.engine.store)} nodes")

    def recover_from_crash(self) -> bool:
        """restore the last autosave snapshot. returns True if recovered."""
        recovered = self.engine.load_autosave()
        if recovered:
            logging.info(f"restored {len(self.engine.store)} nodes from autosave")
        return recovered


state = AppState()


def _node_response(node: CanvasNode) -> NodeResponse:
    return NodeResponse.from_node(node, state.engine.surface.get_node(node.id))


def _canvas_response() -> CanvasResponse:
    """helper to build CanvasResponse with current state info."""
    engine = state.engine
    return CanvasResponse(
        nodes=[_node_response(n) for n in engine.store.nodes],
        connections=_connection_list(),
        focused_node_id=engine.store.focused_node_id,
        active_filter=engine.store.active_filter,
        canvas_width=engine.surface.canvas_width,
        canvas_height=engine.surface.canvas_height,
        scroll_left=engine.surface.viewport.scroll_left,
        scroll_top=engine.surface.viewport.scroll_top,
        message_count=engine.store.total_messages,
    )


def _connection_list() -> list[ConnectionResponse]:
    result = []
    for key in sorted(state.engine.connections.keys()):
        visual = state.engine.connections.connections[key].visual
        if visual is None:
            continue
        result.append(ConnectionResponse(
            parent_id=visual.parent_id,
            child_id=visual.child_id,
            left=visual.left,
            top=visual.top,
            length=visual.length,
            angle=visual.angle,
            color=visual.color,
        ))
    return result


def _require_node(node_id: int) -> CanvasNode:
    node = state.engine.store.get(node_id)
    if node is None:
        raise HTTPException(status_code=404, detail=f"node not found: {node_id}")
    return node


def _pointer_event(req: PointerRequest) -> PointerEvent:
    try:
        region = Region(req.region)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"invalid region: {req.region}")
    return PointerEvent(req.client_x, req.client_y, timestamp=req.timestamp, region=region)


# --- lifespan ---

@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup: restore the autosave slot and start auto-save
    state.recover_from_crash()
    await state.start_autosave()
    yield
    # shutdown: save the latest state
    state.auto_save()
    await state.stop_autosave()


# --- app ---

app = FastAPI(
    title="llm canvas api",
    description="REST API for branching llm conversations on a canvas",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- endpoints ---

@app.get("/health")
async def health():
    """health check."""
    return {"status": "ok"}


@app.get("/status")
async def status():
    """get current application status including autosave info."""
    stats = state.engine.stats()
    return {
        **stats,
        "active_filter": state.engine.store.active_filter,
        "autosave_interval": state.autosave_interval,
        "has_autosave": state.engine.autosave_slot.exists() if state.engine.autosave_slot else False,
        "last_saved_at": state._last_saved_at,
    }


@app.get("/categories")
async def list_categories():
    """category table with colors."""
    return [asdict(c) for c in CATEGORIES.values()]


@app.get("/canvas", response_model=CanvasResponse)
async def get_canvas():
    """get current canvas state."""
    return _canvas_response()


@app.delete("/canvas")
async def clear_canvas():
    """remove every node and the autosave snapshot."""
    state.engine.clear()
    return {"cleared": True}


@app.post("/node", response_model=NodeResponse)
async def create_node(req: NodeCreate):
    """create a new node."""
    try:
        node = state.engine.create_node(x=req.x, y=req.y, title=req.title, category=req.category)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _node_response(node)


@app.get("/node/{node_id}", response_model=NodeResponse)
async def get_node(node_id: int):
    return _node_response(_require_node(node_id))


@app.patch("/node/{node_id}", response_model=NodeResponse)
async def update_node(node_id: int, req: NodeUpdate):
    """rename and/or recategorize a node."""
    node = _require_node(node_id)
    if req.title is not None:
        state.engine.rename(node_id, req.title)
    if req.category is not None:
        try:
            state.engine.change_category(node_id, req.category)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    return _node_response(node)


@app.post("/node/{node_id}/collapse", response_model=NodeResponse)
async def collapse_node(node_id: int):
    node = _require_node(node_id)
    state.engine.collapse(node_id)
    return _node_response(node)


@app.post("/node/{node_id}/expand", response_model=NodeResponse)
async def expand_node(node_id: int):
    node = _require_node(node_id)
    state.engine.select_node(node_id)
    return _node_response(node)


@app.post("/node/{node_id}/select", response_model=NodeResponse)
async def select_node(node_id: int):
    node = _require_node(node_id)
    state.engine.select_node(node_id)
    return _node_response(node)


@app.post("/node/{node_id}/center")
async def center_node(node_id: int):
    _require_node(node_id)
    state.engine.navigate_to_node(node_id)
    vp = state.engine.surface.viewport
    return {"scroll_left": vp.scroll_left, "scroll_top": vp.scroll_top}


@app.post("/selection")
async def set_selection(req: SelectionSet):
    """remember selected transcript text for forking."""
    if req.node_id is not None:
        _require_node(req.node_id)
    state.engine.set_text_selection(req.node_id, req.text)
    return {"node_id": state.engine.store.selected_node_id, "text": state.engine.store.selected_text}


@app.post("/fork", response_model=NodeResponse)
async def fork(req: ForkRequest):
    """create a child thread from selected text."""
    try:
        child = state.engine.fork(text=req.text, node_id=req.node_id)
    except NoSelectionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UnknownNodeError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _node_response(child)


@app.post("/filter")
async def filter_nodes(req: FilterRequest):
    """show one category; "all" or repeating the active one shows everything."""
    if req.category not in (None, "all") and req.category not in CATEGORIES:
        raise HTTPException(status_code=400, detail=f"unknown category: {req.category}")
    active = state.engine.filter_by_category(req.category)
    return {"active_filter": active, "visible": [
        n.id for n in state.engine.store.nodes if state.engine.store.is_visible(n)
    ]}


# --- gestures ---

@app.post("/pointer/down")
async def pointer_down(req: PointerRequest):
    if req.node_id is None:
        raise HTTPException(status_code=400, detail="node_id is required")
    _require_node(req.node_id)
    started = state.engine.interaction.pointer_down(req.node_id, _pointer_event(req))
    return {"started": started, "state": type(state.engine.interaction.state).__name__}


@app.post("/resize/start")
async def resize_start(req: PointerRequest):
    if req.node_id is None:
        raise HTTPException(status_code=400, detail="node_id is required")
    _require_node(req.node_id)
    event = PointerEvent(req.client_x, req.client_y, timestamp=req.timestamp, region=Region.RESIZE_HANDLE)
    started = state.engine.interaction.resize_start(req.node_id, event)
    return {"started": started, "state": type(state.engine.interaction.state).__name__}


@app.post("/pointer/move")
async def pointer_move(req: PointerRequest):
    state.engine.interaction.pointer_move(_pointer_event(req))
    return {"state": type(state.engine.interaction.state).__name__}


@app.post("/pointer/up")
async def pointer_up(req: PointerRequest):
    outcome = state.engine.interaction.pointer_up(_pointer_event(req))
    state.engine.refresh_minimap()
    return {"outcome": outcome.value, "focused_node_id": state.engine.store.focused_node_id}


@app.get("/connections", response_model=list[ConnectionResponse])
async def list_connections():
    return _connection_list()


# --- minimap / viewport ---

@app.get("/minimap")
async def get_minimap():
    return asdict(state.engine.refresh_minimap())


@app.post("/minimap/click")
async def minimap_click(req: MinimapClickRequest):
    """select+centre a clicked node, or centre on the clicked point."""
    click = state.engine.minimap_click(req.x, req.y)
    vp = state.engine.surface.viewport
    return {
        **asdict(click),
        "scroll_left": vp.scroll_left,
        "scroll_top": vp.scroll_top,
    }


@app.post("/viewport")
async def update_viewport(req: ViewportUpdate):
    engine = state.engine
    vp = engine.surface.viewport
    if any(v is not None for v in (req.width, req.height, req.origin_x, req.origin_y)):
        engine.set_viewport(
            req.width if req.width is not None else vp.width,
            req.height if req.height is not None else vp.height,
            origin_x=req.origin_x,
            origin_y=req.origin_y,
        )
    if req.scroll_left is not None or req.scroll_top is not None:
        engine.scroll_to(
            req.scroll_left if req.scroll_left is not None else vp.scroll_left,
            req.scroll_top if req.scroll_top is not None else vp.scroll_top,
        )
    return {
        "width": vp.width,
        "height": vp.height,
        "scroll_left": vp.scroll_left,
        "scroll_top": vp.scroll_top,
        "canvas_width": engine.surface.canvas_width,
        "canvas_height": engine.surface.canvas_height,
    }


@app.post("/view/reset")
async def reset_view():
    state.engine.reset_view()
    return {"scroll_left": 0, "scroll_top": 0}


@app.post("/view/center-all")
async def center_all():
    state.engine.center_all()
    vp = state.engine.surface.viewport
    return {"scroll_left": vp.scroll_left, "scroll_top": vp.scroll_top}


# --- chat ---

@app.post("/chat/{node_id}", response_model=NodeResponse)
async def send_chat(node_id: int, req: ChatRequest):
    """send a message from a node and append the reply."""
    node = _require_node(node_id)
    if node.is_thinking:
        raise HTTPException(status_code=409, detail=f"node {node_id} is waiting for a reply")
    await state.dispatcher.send_message(node_id, req.message)
    return _node_response(node)


# --- sessions ---

@app.get("/session/export")
async def export_session():
    """download the whole canvas as a timestamp-named json file."""
    filename, text = state.engine.export()
    return PlainTextResponse(
        text,
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/session/import")
async def import_session(request: Request):
    """replace the canvas with an exported session (raw json body)."""
    body = (await request.body()).decode("utf-8", errors="replace")
    try:
        loaded = state.engine.import_text(body)
    except SessionLoadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"loaded": loaded, "node_count": len(state.engine.store)}


@app.post("/autosave")
async def autosave_now():
    saved = state.auto_save()
    return {"saved": saved, "last_saved_at": state._last_saved_at}


# --- entrypoint ---

def main():
    """run the api server."""
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="llm canvas api server")
    parser.add_argument("--host", default="0.0.0.0", help="host to bind")
    parser.add_argument("--port", "-p", type=int, default=8000, help="port to bind")
    parser.add_argument("--mock", "-m", action="store_true", help="use mock client")
    parser.add_argument("--claude", action="store_true", help="use claude-agent-sdk instead of the proxy")
    parser.add_argument("--proxy-url", default=DEFAULT_PROXY_URL, help="chat proxy endpoint")
    parser.add_argument("--model", default=DEFAULT_MODEL, help="model name sent to the proxy")
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_REQUEST_TIMEOUT,
        help=f"chat request timeout in seconds (default: {DEFAULT_REQUEST_TIMEOUT:g})",
    )
    parser.add_argument(
        "--autosave-interval",
        type=int,
        default=DEFAULT_AUTOSAVE_INTERVAL,
        help=f"auto-save interval in seconds (default: {DEFAULT_AUTOSAVE_INTERVAL})"
    )
    parser.add_argument(
        "--no-autosave",
        action="store_true",
        help="disable auto-save"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")

    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    # configure state
    global state
    autosave = 0 if args.no_autosave else args.autosave_interval
    state = AppState(
        mock=args.mock,
        use_claude=args.claude,
        proxy_url=args.proxy_url,
        model=args.model,
        autosave_interval=autosave,
        request_timeout=args.timeout,
    )

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
