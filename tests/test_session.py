"""tests for session serialize/deserialize and the autosave slot."""

import json
import logging
from datetime import datetime

import pytest

from llm_canvas.core.errors import SessionLoadError
from llm_canvas.core.models import EXPANDED_SIZE, MINIMUM_Y, CanvasNode, NodeStore, Role
from llm_canvas.core.session import (
    AutosaveSlot,
    SessionCodec,
    dumps,
    export_filename,
    is_origin_title,
    loads,
    serialize,
)


class TestSerialize:
    """tests for serialize."""

    def test_shape(self, sample_node):
        snapshot = serialize([sample_node], timestamp=datetime(2026, 1, 2, 3, 4, 5))
        assert snapshot["timestamp"] == "2026-01-02T03:04:05"
        assert snapshot["nodes"][0]["title"] == "Origin Prompt"
        assert snapshot["nodes"][0]["messages"][1]["role"] == "assistant"

    def test_deep_copy(self, sample_node):
        """later mutations never leak into a taken snapshot."""
        snapshot = serialize([sample_node])
        sample_node.add_message(Role.USER, "later")
        sample_node.title = "renamed"
        assert len(snapshot["nodes"][0]["messages"]) == 2
        assert snapshot["nodes"][0]["title"] == "Origin Prompt"

    def test_json_compatible(self, sample_node):
        text = dumps(serialize([sample_node]))
        assert json.loads(text)["nodes"][0]["id"] == 1


class TestDecode:
    """tests for SessionCodec.decode."""

    def test_fresh_ids_and_parent_remap(self, sample_snapshot):
        store = NodeStore()
        decoded = SessionCodec(store).decode(sample_snapshot)
        assert decoded.id_mapping == {10: 1, 11: 2, 12: 3}
        assert [n.id for n in decoded.nodes] == [1, 2, 3]
        assert [n.parent_id for n in decoded.nodes] == [None, 1, 2]

    def test_counter_never_rewinds(self, sample_snapshot):
        store = NodeStore()
        store.next_id = 50
        decoded = SessionCodec(store).decode(sample_snapshot)
        assert [n.id for n in decoded.nodes] == [50, 51, 52]
        assert store.next_id == 53

    def test_unmapped_parent_dropped(self):
        snapshot = {"nodes": [{"id": 7, "x": 0, "y": 200, "title": "orphan", "parentId": 3}]}
        decoded = SessionCodec(NodeStore()).decode(snapshot)
        assert decoded.nodes[0].parent_id is None

    def test_y_clamped(self, sample_snapshot):
        decoded = SessionCodec(NodeStore()).decode(sample_snapshot)
        assert decoded.nodes[2].y == MINIMUM_Y

    def test_thinking_reset(self, sample_snapshot):
        decoded = SessionCodec(NodeStore()).decode(sample_snapshot)
        assert not any(n.is_thinking for n in decoded.nodes)

    def test_messages_verbatim(self, sample_snapshot):
        decoded = SessionCodec(NodeStore()).decode(sample_snapshot)
        origin = decoded.nodes[0]
        assert [(m.role, m.content, m.timestamp) for m in origin.messages] == [
            (Role.USER, "what is recursion?", 1),
            (Role.ASSISTANT, "a function calling itself", 2),
        ]

    def test_sizes(self):
        snapshot = {"nodes": [
            {"id": 1, "x": 0, "y": 200, "width": 700, "height": 500, "isBoxView": False},
            {"id": 2, "x": 0, "y": 200, "width": 120, "height": 90, "isBoxView": False},
            {"id": 3, "x": 0, "y": 200, "width": 60, "height": 60, "isBoxView": True,
             "expandedWidth": 800, "expandedHeight": 450},
        ]}
        nodes = SessionCodec(NodeStore()).decode(snapshot).nodes
        assert (nodes[0].width, nodes[0].height) == (700, 500)
        assert (nodes[1].width, nodes[1].height) == EXPANDED_SIZE
        assert (nodes[2].width, nodes[2].height) == EXPANDED_SIZE
        assert (nodes[2].expanded_width, nodes[2].expanded_height) == (800, 450)

    def test_skips_malformed_records(self):
        snapshot = {"nodes": ["junk", {"title": "no id"}, {"id": 4, "y": 300, "title": "ok"}]}
        decoded = SessionCodec(NodeStore()).decode(snapshot)
        assert [n.title for n in decoded.nodes] == ["ok"]

    def test_skips_unusable_ids(self):
        snapshot = {"nodes": [
            {"id": [1], "y": 200},
            {"id": "2", "y": 200},
            {"id": True, "y": 200},
            {"id": 3, "y": 200, "parentId": [1]},
        ]}
        decoded = SessionCodec(NodeStore()).decode(snapshot)
        assert decoded.id_mapping == {3: 1}
        assert decoded.nodes[0].parent_id is None

    @pytest.mark.parametrize("cached", [("wide", "tall"), (800, None), (100, 90), (True, 500)])
    def test_unusable_cached_size_dropped(self, cached):
        width, height = cached
        snapshot = {"nodes": [
            {"id": 1, "y": 200, "isBoxView": True, "expandedWidth": width, "expandedHeight": height},
        ]}
        node = SessionCodec(NodeStore()).decode(snapshot).nodes[0]
        assert (node.expanded_width, node.expanded_height) == (None, None)
        assert (node.width, node.height) == EXPANDED_SIZE

    def test_mistyped_fields_get_defaults(self):
        snapshot = {"nodes": [
            {"id": 1, "x": "left", "y": [5], "width": "big", "category": ["a"], "messages": "hi"},
        ]}
        node = SessionCodec(NodeStore()).decode(snapshot).nodes[0]
        assert node.y == MINIMUM_Y
        assert isinstance(node.x, (int, float))
        assert (node.width, node.height) == EXPANDED_SIZE
        assert node.category == "general"
        assert node.messages == []

    @pytest.mark.parametrize("snapshot", [None, [], "nodes", {}, {"nodes": "x"}, {"nodes": {"a": 1}}])
    def test_malformed_snapshot(self, snapshot):
        assert SessionCodec(NodeStore()).decode(snapshot) is None


class TestOrigin:
    """tests for origin detection."""

    def test_title_rule(self):
        assert is_origin_title("Origin Prompt")
        assert is_origin_title("my ORIGIN story")
        assert not is_origin_title("Chat 3")

    def test_title_match(self, sample_snapshot):
        decoded = SessionCodec(NodeStore()).decode(sample_snapshot)
        assert decoded.origin_id == 1
        assert decoded.nodes[0].is_origin
        assert not decoded.nodes[1].is_origin

    def test_explicit_marker_wins(self, sample_snapshot):
        sample_snapshot["nodes"][2]["isOrigin"] = True
        decoded = SessionCodec(NodeStore()).decode(sample_snapshot)
        assert decoded.origin_id == 3
        assert [n.is_origin for n in decoded.nodes] == [False, False, True]

    def test_ambiguous_titles_first_wins(self, caplog):
        snapshot = {"nodes": [
            {"id": 1, "y": 200, "title": "origin one"},
            {"id": 2, "y": 200, "title": "Origin Prompt"},
        ]}
        with caplog.at_level(logging.WARNING):
            decoded = SessionCodec(NodeStore()).decode(snapshot)
        assert decoded.origin_id == decoded.nodes[0].id
        assert "look like the origin" in caplog.text

    def test_no_origin(self):
        snapshot = {"nodes": [{"id": 1, "y": 200, "title": "Chat 1"}]}
        assert SessionCodec(NodeStore()).decode(snapshot).origin_id is None


class TestTextBoundary:
    """tests for loads/dumps/export_filename."""

    def test_loads_round_trip(self, sample_snapshot):
        assert loads(dumps(sample_snapshot)) == sample_snapshot

    @pytest.mark.parametrize("text", ["{not json", "", "[1, 2]", "42"])
    def test_loads_rejects(self, text):
        with pytest.raises(SessionLoadError):
            loads(text)

    def test_export_filename(self):
        name = export_filename(datetime(2026, 3, 4, 5, 6, 7))
        assert name == "llm-canvas-session-2026-03-04T05-06-07.json"


class TestAutosaveSlot:
    """tests for AutosaveSlot."""

    def test_write_read(self, temp_dir, sample_snapshot):
        slot = AutosaveSlot(temp_dir / "autosave.json")
        slot.write(sample_snapshot)
        assert slot.exists()
        assert slot.read() == sample_snapshot

    def test_overwrites(self, temp_dir, sample_snapshot):
        slot = AutosaveSlot(temp_dir / "autosave.json")
        slot.write(sample_snapshot)
        slot.write({"nodes": [], "timestamp": "t"})
        assert slot.read() == {"nodes": [], "timestamp": "t"}
        assert [p.name for p in temp_dir.iterdir()] == ["autosave.json"]

    def test_missing(self, temp_dir):
        assert AutosaveSlot(temp_dir / "nope.json").read() is None

    def test_unreadable(self, temp_dir):
        path = temp_dir / "autosave.json"
        path.write_text("{broken")
        assert AutosaveSlot(path).read() is None

    def test_clear(self, temp_dir, sample_snapshot):
        slot = AutosaveSlot(temp_dir / "autosave.json")
        slot.write(sample_snapshot)
        slot.clear()
        assert not slot.exists()
        slot.clear()

    def test_creates_parent_dir(self, temp_dir, sample_snapshot):
        slot = AutosaveSlot(temp_dir / "nested" / "autosave.json")
        slot.write(sample_snapshot)
        assert slot.read() == sample_snapshot
