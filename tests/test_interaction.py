"""tests for the click/drag/resize gesture state machine."""

import pytest

from llm_canvas.core.connections import ConnectionKey
from llm_canvas.core.interaction import (
    BOX_Z_INDEX,
    DRAGGING_Z_INDEX,
    EXPANDED_Z_INDEX,
    BoxClickTracker,
    Dragging,
    GestureOutcome,
    Idle,
    PointerEvent,
    PotentialDrag,
    Region,
    Resizing,
)
from llm_canvas.core.models import BOX_SIZE, MIN_RESIZE_HEIGHT, MIN_RESIZE_WIDTH, MINIMUM_Y


def ev(x, y, t=None, region=Region.DRAG_HANDLE):
    return PointerEvent(client_x=x, client_y=y, timestamp=t, region=region)


@pytest.fixture
def two_nodes(engine):
    """node a at (150,170) and node b at (1500,170); b is focused."""
    a = engine.create_node(x=150, y=170)
    b = engine.create_node(x=1500, y=170)
    return a, b


class TestClickVsDrag:
    """tests for pointer down/move/up disambiguation."""

    def test_pointer_down_starts_potential_drag(self, engine, two_nodes):
        a, _ = two_nodes
        assert engine.interaction.pointer_down(a.id, ev(200, 200, 0))
        state = engine.interaction.state
        assert isinstance(state, PotentialDrag)
        assert (state.offset.x, state.offset.y) == (50, 30)

    def test_quick_click_selects(self, engine, two_nodes):
        a, b = two_nodes
        assert engine.store.focused_node_id == b.id
        engine.interaction.pointer_down(a.id, ev(200, 200, 0))
        outcome = engine.interaction.pointer_up(ev(202, 203, 100))
        assert outcome == GestureOutcome.CLICK
        assert engine.store.focused_node_id == a.id
        assert (a.x, a.y) == (150, 170)
        assert engine.interaction.is_idle

    def test_five_pixels_is_still_a_click(self, engine, two_nodes):
        a, _ = two_nodes
        engine.interaction.pointer_down(a.id, ev(200, 200, 0))
        engine.interaction.pointer_move(ev(205, 205, 50))
        assert isinstance(engine.interaction.state, PotentialDrag)
        assert engine.interaction.pointer_up(ev(205, 205, 100)) == GestureOutcome.CLICK

    def test_drag_does_not_select(self, engine, two_nodes):
        a, b = two_nodes
        engine.interaction.pointer_down(a.id, ev(200, 200, 0))
        engine.interaction.pointer_move(ev(206, 200, 20))
        assert isinstance(engine.interaction.state, Dragging)
        outcome = engine.interaction.pointer_up(ev(206, 200, 40))
        assert outcome == GestureOutcome.DRAG
        assert engine.store.focused_node_id == b.id
        assert a.x == 156

    def test_drag_moves_node_and_rendered(self, engine, two_nodes):
        a, _ = two_nodes
        engine.interaction.pointer_down(a.id, ev(200, 200, 0))
        engine.interaction.pointer_move(ev(400, 500, 10))
        assert (a.x, a.y) == (350, 470)
        rendered = engine.surface.get_node(a.id)
        assert (rendered.left, rendered.top) == (350, 470)

    def test_long_press_is_not_a_click(self, engine, two_nodes):
        a, b = two_nodes
        engine.interaction.pointer_down(a.id, ev(200, 200, 0))
        assert engine.interaction.pointer_up(ev(200, 200, 250)) == GestureOutcome.HOLD
        assert engine.store.focused_node_id == b.id

    def test_uses_clock_without_timestamps(self, engine, two_nodes, clock):
        a, _ = two_nodes
        engine.interaction.pointer_down(a.id, ev(200, 200))
        clock.advance(300)
        assert engine.interaction.pointer_up(ev(200, 200)) == GestureOutcome.HOLD

    def test_drag_clamps_to_bounds(self, engine, two_nodes):
        a, _ = two_nodes
        engine.interaction.pointer_down(a.id, ev(200, 200, 0))
        engine.interaction.pointer_move(ev(10, 10, 10))
        assert a.x == 0
        assert a.y == MINIMUM_Y

    def test_z_index_while_dragging(self, engine, two_nodes):
        a, _ = two_nodes
        rendered = engine.surface.get_node(a.id)
        engine.interaction.pointer_down(a.id, ev(200, 200, 0))
        engine.interaction.pointer_move(ev(300, 300, 10))
        assert rendered.z_index == DRAGGING_Z_INDEX
        assert "dragging" in rendered.classes
        engine.interaction.pointer_up(ev(300, 300, 20))
        assert rendered.z_index == EXPANDED_Z_INDEX
        assert "dragging" not in rendered.classes

    @pytest.mark.parametrize("region", [
        Region.TEXT_INPUT, Region.BUTTON, Region.CATEGORY_SELECTOR, Region.TITLE, Region.MESSAGES,
    ])
    def test_interactive_regions_ignored(self, engine, two_nodes, region):
        a, _ = two_nodes
        assert not engine.interaction.pointer_down(a.id, ev(200, 200, 0, region))
        assert engine.interaction.is_idle

    def test_pointer_up_when_idle(self, engine):
        assert engine.interaction.pointer_up(ev(0, 0, 0)) == GestureOutcome.NONE

    def test_unknown_node(self, engine):
        assert not engine.interaction.pointer_down(42, ev(0, 0, 0))

    def test_drag_updates_connections(self, engine, two_nodes):
        a, b = two_nodes
        b.parent_id = a.id
        engine.connections.update_all_connections()
        before = engine.connections.connections[ConnectionKey(a.id, b.id)].visual.length

        engine.interaction.pointer_down(b.id, ev(1510, 200, 0))
        engine.interaction.pointer_move(ev(1710, 200, 10))
        engine.interaction.pointer_up(ev(1710, 200, 20))

        after = engine.connections.connections[ConnectionKey(a.id, b.id)].visual.length
        assert after == pytest.approx(before + 200)


class TestEdgeScroll:
    """tests for auto-scroll near the viewport edge."""

    def test_scrolls_right_near_edge(self, engine, two_nodes):
        a, _ = two_nodes
        engine.interaction.pointer_down(a.id, ev(200, 400, 0))
        engine.interaction.pointer_move(ev(1250, 400, 10))
        assert engine.surface.viewport.scroll_left == 10
        assert engine.surface.viewport.scroll_top == 0

    def test_never_scrolls_below_zero(self, engine, two_nodes):
        a, _ = two_nodes
        engine.interaction.pointer_down(a.id, ev(200, 400, 0))
        engine.interaction.pointer_move(ev(20, 20, 10))
        assert engine.surface.viewport.scroll_left == 0
        assert engine.surface.viewport.scroll_top == 0

    def test_no_scroll_in_the_middle(self, engine):
        engine.interaction.handle_edge_scroll(640, 400)
        assert engine.surface.viewport.scroll_left == 0


class TestResize:
    """tests for the resize gesture."""

    def test_resize_start_enters_resizing(self, engine, two_nodes):
        a, _ = two_nodes
        assert engine.interaction.pointer_down(a.id, ev(1250, 820, 0, Region.RESIZE_HANDLE))
        assert isinstance(engine.interaction.state, Resizing)
        assert engine.store.focused_node_id == a.id
        assert "resizing" in engine.surface.get_node(a.id).classes

    def test_resize_grows(self, engine, two_nodes):
        a, _ = two_nodes
        engine.interaction.resize_start(a.id, ev(1250, 820))
        engine.interaction.pointer_move(ev(1350, 870))
        assert (a.width, a.height) == (1200, 700)
        rendered = engine.surface.get_node(a.id)
        assert (rendered.width, rendered.height) == (1200, 700)
        assert engine.interaction.pointer_up(ev(1350, 870)) == GestureOutcome.RESIZE
        assert "resizing" not in rendered.classes
        assert engine.interaction.is_idle

    def test_resize_minimum(self, engine, two_nodes):
        a, _ = two_nodes
        engine.interaction.resize_start(a.id, ev(1250, 820))
        engine.interaction.pointer_move(ev(0, 0))
        assert (a.width, a.height) == (MIN_RESIZE_WIDTH, MIN_RESIZE_HEIGHT)

    def test_resize_unboxes(self, engine, two_nodes):
        a, _ = two_nodes
        engine.collapse(a.id)
        assert a.is_box_view
        engine.interaction.resize_start(a.id, ev(210, 230))
        engine.interaction.pointer_move(ev(220, 240))
        assert not a.is_box_view
        # grows from the 60x60 box, so both minimums apply
        assert (a.width, a.height) == (MIN_RESIZE_WIDTH, MIN_RESIZE_HEIGHT)

    def test_resize_boxed_starts_from_box_size(self, engine, two_nodes):
        a, _ = two_nodes
        engine.collapse(a.id)
        engine.interaction.resize_start(a.id, ev(210, 230))
        assert engine.interaction.state.start_size == BOX_SIZE
        engine.interaction.pointer_move(ev(610, 750))
        assert (a.width, a.height) == (460, 580)
        assert engine.surface.get_node(a.id).width == 460


class TestBoxIcon:
    """tests for click/drag on a collapsed node."""

    def test_drag_on_box_never_expands(self, engine, two_nodes):
        a, _ = two_nodes
        engine.collapse(a.id)
        engine.interaction.pointer_down(a.id, ev(160, 180, 0, Region.BOX_ICON))
        engine.interaction.pointer_move(ev(260, 180, 50, Region.BOX_ICON))
        outcome = engine.interaction.pointer_up(ev(260, 180, 80, Region.BOX_ICON))
        assert outcome == GestureOutcome.DRAG
        assert a.is_box_view
        assert (a.width, a.height) == BOX_SIZE
        assert engine.surface.get_node(a.id).z_index == BOX_Z_INDEX

    def test_click_on_box_expands(self, engine, two_nodes):
        a, _ = two_nodes
        engine.collapse(a.id)
        engine.interaction.pointer_down(a.id, ev(160, 180, 0, Region.BOX_ICON))
        outcome = engine.interaction.pointer_up(ev(161, 181, 100, Region.BOX_ICON))
        assert outcome == GestureOutcome.CLICK
        assert not a.is_box_view
        assert engine.store.focused_node_id == a.id


class TestBoxClickTracker:
    """tests for the box-local disambiguator."""

    def test_click(self):
        tracker = BoxClickTracker()
        tracker.press(10, 10, 0)
        assert tracker.is_click(15, 12, 250)

    def test_too_slow(self):
        tracker = BoxClickTracker()
        tracker.press(10, 10, 0)
        assert not tracker.is_click(10, 10, 300)

    def test_too_far(self):
        tracker = BoxClickTracker()
        tracker.press(10, 10, 0)
        assert not tracker.is_click(20, 10, 50)


def test_cancel_returns_to_idle(engine):
    node = engine.create_node(x=150, y=170)
    engine.interaction.pointer_down(node.id, ev(200, 200, 0))
    engine.interaction.cancel()
    assert isinstance(engine.interaction.state, Idle)
