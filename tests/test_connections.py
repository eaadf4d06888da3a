"""tests for connection derivation and reconciliation."""

import math

import pytest

from llm_canvas.core.connections import ConnectionKey, ConnectionManager, anchor_geometry, line_color
from llm_canvas.core.models import CATEGORIES, FALLBACK_COLOR, MINIMUM_Y, CanvasNode
from llm_canvas.core.surface import ConnectionVisual, RenderedNode


def _add(store, surface, node: CanvasNode, visible: bool = True) -> CanvasNode:
    store.add(node)
    if surface is not None:
        surface.add_node(RenderedNode(
            node_id=node.id, left=node.x, top=node.y,
            width=node.width, height=node.height, visible=visible,
        ))
    return node


@pytest.fixture
def family(store, surface):
    """parent 1 with children 2 and 3, grandchild 4 under 2."""
    _add(store, surface, CanvasNode(id=1, x=100, y=200, category="research"))
    _add(store, surface, CanvasNode(id=2, x=1500, y=300, width=60, height=60, parent_id=1))
    _add(store, surface, CanvasNode(id=3, x=1500, y=900, width=60, height=60, parent_id=1))
    _add(store, surface, CanvasNode(id=4, x=1800, y=300, width=60, height=60, parent_id=2))
    return ConnectionManager(store, surface)


class TestGeometry:
    """tests for anchor geometry."""

    def test_right_center_to_left_center(self):
        parent = CanvasNode(id=1, x=100, y=200, width=1100, height=650)
        child = CanvasNode(id=2, x=1500, y=300, width=60, height=60)
        line = anchor_geometry(parent, child)
        assert (line.x1, line.y1) == (1200, 525)
        assert (line.x2, line.y2) == (1500, 330)
        assert line.length == pytest.approx(math.hypot(300, -195))
        assert line.angle == pytest.approx(math.degrees(math.atan2(-195, 300)))

    def test_rendered_size_wins(self):
        parent = CanvasNode(id=1, x=0, y=MINIMUM_Y, width=1100, height=650)
        child = CanvasNode(id=2, x=2000, y=MINIMUM_Y, width=60, height=60)
        line = anchor_geometry(parent, child, parent_size=(500, 400))
        assert line.x1 == 500
        assert line.y1 == MINIMUM_Y + 200

    def test_default_size_when_unknown(self):
        parent = CanvasNode(id=1, x=0, y=MINIMUM_Y, width=0, height=0)
        child = CanvasNode(id=2, x=300, y=MINIMUM_Y, width=0, height=0)
        line = anchor_geometry(parent, child)
        assert line.x1 == 60
        assert line.y1 == MINIMUM_Y + 30
        assert line.y2 == MINIMUM_Y + 30

    def test_horizontal_line_angle_zero(self):
        parent = CanvasNode(id=1, x=0, y=MINIMUM_Y, width=60, height=60)
        child = CanvasNode(id=2, x=200, y=MINIMUM_Y, width=60, height=60)
        assert anchor_geometry(parent, child).angle == 0

    def test_color(self):
        assert line_color(CanvasNode(id=1, x=0, y=MINIMUM_Y, category="creative")) == CATEGORIES["creative"].color
        assert line_color(CanvasNode(id=1, x=0, y=MINIMUM_Y, category="bogus")) == FALLBACK_COLOR


class TestEnsureConnection:
    """tests for ensure_connection."""

    def test_creates_record_and_visual(self, family, surface):
        conn = family.ensure_connection(1, 2)
        assert conn is not None
        assert ConnectionKey(1, 2) in family
        assert (1, 2) in surface.connections
        assert conn.visual.color == CATEGORIES["research"].color

    def test_no_duplicates(self, family, surface):
        family.ensure_connection(1, 2)
        family.ensure_connection(1, 2)
        family.ensure_connection(1, 2)
        assert len(family) == 1
        assert len(surface.connections) == 1

    def test_recreates_visual(self, family, surface):
        """visuals are replaced, never diffed."""
        first = family.ensure_connection(1, 2).visual
        second = family.ensure_connection(1, 2).visual
        assert first is not second
        assert surface.connections[(1, 2)] is second

    def test_missing_endpoint_removes(self, family, store, surface):
        family.ensure_connection(1, 2)
        store.nodes = [n for n in store.nodes if n.id != 1]
        assert family.ensure_connection(1, 2) is None
        assert ConnectionKey(1, 2) not in family
        assert (1, 2) not in surface.connections

    def test_filtered_endpoint(self, family, store):
        store.set_filter("research")
        assert family.ensure_connection(1, 2) is None

    def test_hidden_rendered_endpoint(self, family, surface):
        surface.get_node(2).visible = False
        assert family.ensure_connection(1, 2) is None

    def test_without_surface(self, store):
        store.add(CanvasNode(id=1, x=0, y=MINIMUM_Y))
        store.add(CanvasNode(id=2, x=2000, y=MINIMUM_Y, parent_id=1))
        manager = ConnectionManager(store)
        conn = manager.ensure_connection(1, 2)
        assert conn is not None
        assert conn.visual.left == 1100


class TestRemove:
    """tests for removal."""

    def test_remove_connection_clears_stray_visual(self, family, surface):
        surface.add_connection(ConnectionVisual(1, 3, 0, 0, 10, 0, "#fff"))
        family.remove_connection((1, 3))
        assert (1, 3) not in surface.connections

    def test_remove_node_connections(self, family):
        family.update_all_connections()
        family.remove_node_connections(2)
        assert family.keys() == {ConnectionKey(1, 3)}

    def test_clear(self, family, surface):
        family.update_all_connections()
        family.clear()
        assert len(family) == 0
        assert surface.connections == {}


class TestReconciliation:
    """tests for update_all_connections and update_node_connections."""

    def test_full_set(self, family):
        keys = family.update_all_connections()
        assert keys == {ConnectionKey(1, 2), ConnectionKey(1, 3), ConnectionKey(2, 4)}

    def test_idempotent(self, family, surface):
        first = family.update_all_connections()
        visuals = set(surface.connections)
        second = family.update_all_connections()
        assert first == second
        assert set(surface.connections) == visuals
        assert len(surface.connections) == len(family) == 3

    def test_dangling_parent(self, store, surface):
        _add(store, surface, CanvasNode(id=1, x=0, y=MINIMUM_Y, parent_id=99))
        manager = ConnectionManager(store, surface)
        assert manager.update_all_connections() == set()

    def test_drops_invalid_after_reparent(self, family):
        family.update_all_connections()
        family.store.get(4).parent_id = None
        assert ConnectionKey(2, 4) not in family.update_all_connections()

    def test_filter_hides_edges(self, family, store):
        family.update_all_connections()
        store.set_filter("general")
        # node 1 is research, every edge touches it or node 2
        assert family.update_all_connections() == {ConnectionKey(2, 4)}

    def test_stray_visuals_removed(self, family, surface):
        surface.add_connection(ConnectionVisual(3, 4, 0, 0, 10, 0, "#fff"))
        family.update_all_connections()
        assert (3, 4) not in surface.connections

    def test_update_node_connections(self, family):
        family.update_node_connections(2)
        assert family.keys() == {ConnectionKey(1, 2), ConnectionKey(2, 4)}

    def test_follows_moved_node(self, family):
        family.update_node_connections(2)
        family.store.get(2).x = 1700
        family.update_node_connections(2)
        visual = family.connections[ConnectionKey(1, 2)].visual
        assert visual.length == pytest.approx(math.hypot(1700 - 1200, 330 - 525))
