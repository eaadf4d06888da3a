"""textual widgets for llm canvas."""

from .minimap import Minimap, NodeClicked, PositionClicked
from .thread import MessageWidget, ThreadView, lineage

__all__ = [
    "Minimap",
    "NodeClicked",
    "PositionClicked",
    "MessageWidget",
    "ThreadView",
    "lineage",
]
