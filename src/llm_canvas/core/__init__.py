"""core primitives shared between frontends."""

from .models import (
    CanvasNode,
    ChatMessage,
    Category,
    CATEGORIES,
    NodeStore,
    Role,
    get_category,
    get_canvas_dir,
)
from .surface import RenderSurface, RenderedNode, ConnectionVisual, Viewport
from .view_state import ViewStateController
from .connections import ConnectionKey, ConnectionManager
from .interaction import GestureOutcome, InteractionController, PointerEvent, Region
from .minimap import MinimapProjector, MinimapFrame
from .session import AutosaveSlot, SessionCodec
from .canvas import CanvasEngine
from .client import ClaudeClient, MockClient, ProxyClient, ClientProtocol, build_payload
from .chat import ChatDispatcher, interpret_response, describe_failure
from .errors import CanvasError, NoSelectionError, SessionLoadError, UnknownNodeError

__all__ = [
    # models
    "CanvasNode",
    "ChatMessage",
    "Category",
    "CATEGORIES",
    "NodeStore",
    "Role",
    "get_category",
    "get_canvas_dir",
    # rendering
    "RenderSurface",
    "RenderedNode",
    "ConnectionVisual",
    "Viewport",
    "ViewStateController",
    # engine
    "ConnectionKey",
    "ConnectionManager",
    "GestureOutcome",
    "InteractionController",
    "PointerEvent",
    "Region",
    "MinimapProjector",
    "MinimapFrame",
    "AutosaveSlot",
    "SessionCodec",
    "CanvasEngine",
    # client
    "ClaudeClient",
    "MockClient",
    "ProxyClient",
    "ClientProtocol",
    "build_payload",
    "ChatDispatcher",
    "interpret_response",
    "describe_failure",
    # errors
    "CanvasError",
    "NoSelectionError",
    "SessionLoadError",
    "UnknownNodeError",
]
