"""pytest fixtures for llm canvas tests."""

import pytest
import tempfile
from pathlib import Path

from llm_canvas.core.canvas import CanvasEngine
from llm_canvas.core.models import CanvasNode, ChatMessage, NodeStore, Role
from llm_canvas.core.session import AutosaveSlot
from llm_canvas.core.surface import RenderSurface


class FakeClock:
    """manually advanced millisecond clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def temp_dir():
    """temporary directory that cleans up after test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store():
    return NodeStore()


@pytest.fixture
def surface():
    return RenderSurface()


@pytest.fixture
def clock():
    return FakeClock(1000.0)


@pytest.fixture
def engine(temp_dir, clock):
    """engine with an autosave slot in a temp dir and a fake clock."""
    return CanvasEngine(autosave_slot=AutosaveSlot(temp_dir / "autosave.json"), clock=clock)


@pytest.fixture
def sample_snapshot():
    """three-node session: origin, a child, and a grandchild (ids 10/11/12)."""
    return {
        "nodes": [
            {
                "id": 10, "x": 150, "y": 170, "width": 1100, "height": 650,
                "title": "Origin Prompt", "category": "general",
                "messages": [
                    {"role": "user", "content": "what is recursion?", "timestamp": 1},
                    {"role": "assistant", "content": "a function calling itself", "timestamp": 2},
                ],
                "isThinking": False, "parentId": None, "isBoxView": False,
            },
            {
                "id": 11, "x": 500, "y": 220, "width": 60, "height": 60,
                "title": "base cases", "category": "research",
                "messages": [{"role": "user", "content": "base cases?", "timestamp": 3}],
                "isThinking": True, "parentId": 10, "isBoxView": True,
            },
            {
                "id": 12, "x": 850, "y": 100, "width": 60, "height": 60,
                "title": "tail calls", "category": "learning",
                "messages": [],
                "isThinking": False, "parentId": 11, "isBoxView": True,
            },
        ],
        "timestamp": "2026-01-01T12:00:00",
    }


@pytest.fixture
def sample_node():
    """expanded node with a short transcript."""
    return CanvasNode(
        id=1,
        x=150,
        y=170,
        title="Origin Prompt",
        messages=[
            ChatMessage(Role.USER, "hello", 1),
            ChatMessage(Role.ASSISTANT, "hi there", 2),
        ],
        is_origin=True,
    )
