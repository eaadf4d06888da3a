"""pointer gesture state machine: click vs drag vs resize.

a press on a node's drag affordance is only a *potential* drag until the
pointer travels more than DRAG_THRESHOLD on either axis. on release, a short
press that never became a drag selects the node; a drag just commits the
new position.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from .connections import ConnectionManager
from .models import MIN_RESIZE_HEIGHT, MIN_RESIZE_WIDTH, MINIMUM_Y, NodeStore
from .surface import RenderSurface
from .view_state import ViewStateController


DRAG_THRESHOLD = 5          # pixels
CLICK_TIME_THRESHOLD = 200  # milliseconds

# auto-scroll while dragging near the viewport edge
EDGE_SCROLL_THRESHOLD = 50
EDGE_SCROLL_STEP = 10

# box icons use their own, looser disambiguation
BOX_CLICK_TIME_THRESHOLD = 300
BOX_CLICK_DISTANCE = 10

DRAGGING_Z_INDEX = 1000
EXPANDED_Z_INDEX = 50
BOX_Z_INDEX = 10


class Region(Enum):
    """part of a node the pointer went down on."""

    DRAG_HANDLE = "drag-handle"
    BODY = "body"
    BOX_ICON = "box-icon"
    TEXT_INPUT = "input-field"
    BUTTON = "button"
    CATEGORY_SELECTOR = "category-selector"
    TITLE = "node-title"
    RESIZE_HANDLE = "resize-handle"
    MESSAGES = "messages"


# pressing on these never starts a drag
INTERACTIVE_REGIONS = frozenset({
    Region.TEXT_INPUT,
    Region.BUTTON,
    Region.CATEGORY_SELECTOR,
    Region.TITLE,
    Region.RESIZE_HANDLE,
    Region.MESSAGES,
})


class GestureOutcome(Enum):
    CLICK = "click"    # node was selected
    DRAG = "drag"      # node moved
    HOLD = "hold"      # pressed too long, nothing happens
    RESIZE = "resize"  # node resized
    NONE = "none"      # no gesture in progress


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class PointerEvent:
    """pointer position in client (screen) coordinates."""

    client_x: float
    client_y: float
    timestamp: Optional[float] = None  # ms; clock is used when missing
    region: Region = Region.DRAG_HANDLE


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class PotentialDrag:
    node_id: int
    start_pos: Point
    start_time: float
    offset: Point
    region: Region = Region.DRAG_HANDLE


@dataclass(frozen=True)
class Dragging:
    node_id: int
    offset: Point
    start_pos: Point
    start_time: float
    region: Region = Region.DRAG_HANDLE


@dataclass(frozen=True)
class Resizing:
    node_id: int
    start_pos: Point
    start_size: tuple[float, float]


GestureState = Union[Idle, PotentialDrag, Dragging, Resizing]


class BoxClickTracker:
    """click/drag disambiguation local to a box icon.

    a drag that starts on the icon must never expand it.
    """

    def __init__(
        self,
        time_threshold: float = BOX_CLICK_TIME_THRESHOLD,
        distance: float = BOX_CLICK_DISTANCE,
    ) -> None:
        self.time_threshold = time_threshold
        self.distance = distance
        self._down_time = 0.0
        self._down_pos = Point(0, 0)

    def press(self, x: float, y: float, timestamp: float) -> None:
        self._down_time = timestamp
        self._down_pos = Point(x, y)

    def is_click(self, x: float, y: float, timestamp: float) -> bool:
        held = timestamp - self._down_time
        return (
            held < self.time_threshold
            and abs(x - self._down_pos.x) < self.distance
            and abs(y - self._down_pos.y) < self.distance
        )


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class InteractionController:
    """turns pointer events into drag, resize and select actions."""

    def __init__(
        self,
        store: NodeStore,
        surface: RenderSurface,
        connections: ConnectionManager,
        view_state: Optional[ViewStateController] = None,
        on_select: Optional[Callable[[int], None]] = None,
        on_bounds_changed: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        self.store = store
        self.surface = surface
        self.connections = connections
        self.view_state = view_state or ViewStateController()
        self.on_select = on_select
        self.on_bounds_changed = on_bounds_changed
        self.clock = clock
        self.state: GestureState = Idle()

    def _time(self, event: PointerEvent) -> float:
        return event.timestamp if event.timestamp is not None else self.clock()

    def _bounds_changed(self) -> None:
        if self.on_bounds_changed:
            self.on_bounds_changed()

    # --- pointer down ---

    def pointer_down(self, node_id: int, event: PointerEvent) -> bool:
        """press on a node. returns True if a gesture started."""
        if event.region == Region.RESIZE_HANDLE:
            return self.resize_start(node_id, event)
        if event.region in INTERACTIVE_REGIONS:
            logging.debug(f"pointer down ignored on interactive region {event.region.value}")
            return False

        node = self.store.get(node_id)
        if node is None:
            return False

        now = self._time(event)
        canvas_x, canvas_y = self.surface.client_to_canvas(event.client_x, event.client_y)
        self.state = PotentialDrag(
            node_id=node_id,
            start_pos=Point(event.client_x, event.client_y),
            start_time=now,
            offset=Point(canvas_x - node.x, canvas_y - node.y),
            region=event.region,
        )

        if event.region == Region.BOX_ICON:
            rendered = self.surface.get_node(node_id)
            if rendered is not None and isinstance(rendered.click_tracker, BoxClickTracker):
                rendered.click_tracker.press(event.client_x, event.client_y, now)

        return True

    def resize_start(self, node_id: int, event: PointerEvent) -> bool:
        """press on the resize handle: straight into resizing, no click/drag check."""
        node = self.store.get(node_id)
        if node is None:
            return False

        # size at pointer-down, before selecting can expand a boxed node
        self.state = Resizing(
            node_id=node_id,
            start_pos=Point(event.client_x, event.client_y),
            start_size=(node.width, node.height),
        )
        if self.on_select:
            self.on_select(node_id)

        rendered = self.surface.get_node(node_id)
        if rendered is not None:
            rendered.classes.add("resizing")
        return True

    # --- pointer move ---

    def pointer_move(self, event: PointerEvent) -> None:
        state = self.state

        if isinstance(state, PotentialDrag):
            dx = abs(event.client_x - state.start_pos.x)
            dy = abs(event.client_y - state.start_pos.y)
            if dx > DRAG_THRESHOLD or dy > DRAG_THRESHOLD:
                state = Dragging(
                    node_id=state.node_id,
                    offset=state.offset,
                    start_pos=state.start_pos,
                    start_time=state.start_time,
                    region=state.region,
                )
                self.state = state
                rendered = self.surface.get_node(state.node_id)
                if rendered is not None:
                    rendered.classes.add("dragging")
                    rendered.z_index = DRAGGING_Z_INDEX
                logging.debug(f"drag started on node {state.node_id} (dx={dx}, dy={dy})")

        if isinstance(state, Dragging):
            self._drag_to(state, event)
        elif isinstance(state, Resizing):
            self._resize_to(state, event)

    def _drag_to(self, state: Dragging, event: PointerEvent) -> None:
        node = self.store.get(state.node_id)
        if node is None:
            return

        canvas_x, canvas_y = self.surface.client_to_canvas(event.client_x, event.client_y)
        node.x = max(0, canvas_x - state.offset.x)
        node.y = max(MINIMUM_Y, canvas_y - state.offset.y)

        rendered = self.surface.get_node(node.id)
        if rendered is not None:
            rendered.left = node.x
            rendered.top = node.y

        self.handle_edge_scroll(event.client_x, event.client_y)
        self.connections.update_node_connections(node.id)
        self._bounds_changed()

    def _resize_to(self, state: Resizing, event: PointerEvent) -> None:
        node = self.store.get(state.node_id)
        if node is None:
            return

        width = max(MIN_RESIZE_WIDTH, state.start_size[0] + event.client_x - state.start_pos.x)
        height = max(MIN_RESIZE_HEIGHT, state.start_size[1] + event.client_y - state.start_pos.y)

        rendered = self.surface.get_node(node.id)
        # resizing always leaves box view
        self.view_state.set_view_state(node, rendered, box_view=False)
        self.view_state.apply_custom_size(node, rendered, width, height)

        self.connections.update_node_connections(node.id)
        self._bounds_changed()

    def handle_edge_scroll(self, client_x: float, client_y: float) -> None:
        """scroll the viewport when the pointer is close to its edge."""
        vp = self.surface.viewport
        rel_x = client_x - vp.origin_x
        rel_y = client_y - vp.origin_y

        dx = dy = 0
        if rel_x < EDGE_SCROLL_THRESHOLD:
            dx = -EDGE_SCROLL_STEP
        elif rel_x > vp.width - EDGE_SCROLL_THRESHOLD:
            dx = EDGE_SCROLL_STEP
        if rel_y < EDGE_SCROLL_THRESHOLD:
            dy = -EDGE_SCROLL_STEP
        elif rel_y > vp.height - EDGE_SCROLL_THRESHOLD:
            dy = EDGE_SCROLL_STEP

        if dx or dy:
            self.surface.scroll_by(dx, dy)

    # --- pointer up ---

    def pointer_up(self, event: PointerEvent) -> GestureOutcome:
        state = self.state
        self.state = Idle()

        if isinstance(state, Resizing):
            rendered = self.surface.get_node(state.node_id)
            if rendered is not None:
                rendered.classes.discard("resizing")
            self.connections.update_node_connections(state.node_id)
            self._bounds_changed()
            return GestureOutcome.RESIZE

        if not isinstance(state, (PotentialDrag, Dragging)):
            return GestureOutcome.NONE

        node_id = state.node_id
        node = self.store.get(node_id)
        held = self._time(event) - state.start_time
        dx = abs(event.client_x - state.start_pos.x)
        dy = abs(event.client_y - state.start_pos.y)
        was_dragging = isinstance(state, Dragging)

        rendered = self.surface.get_node(node_id)
        if rendered is not None:
            rendered.classes.discard("dragging")
            boxed = node is not None and node.is_box_view
            rendered.z_index = BOX_Z_INDEX if boxed else EXPANDED_Z_INDEX

        is_quick_click = (
            not was_dragging
            and held < CLICK_TIME_THRESHOLD
            and dx <= DRAG_THRESHOLD
            and dy <= DRAG_THRESHOLD
        )

        if is_quick_click and state.region == Region.BOX_ICON and rendered is not None:
            tracker = rendered.click_tracker
            if isinstance(tracker, BoxClickTracker):
                is_quick_click = tracker.is_click(event.client_x, event.client_y, self._time(event))

        logging.debug(
            f"pointer up on node {node_id}: dragging={was_dragging} held={held:.0f}ms "
            f"dx={dx} dy={dy} click={is_quick_click}"
        )

        if is_quick_click:
            if self.on_select:
                self.on_select(node_id)
            return GestureOutcome.CLICK

        if was_dragging:
            self.connections.update_node_connections(node_id)
            self._bounds_changed()
            return GestureOutcome.DRAG

        return GestureOutcome.HOLD

    def cancel(self) -> None:
        """drop any gesture in progress."""
        self.state = Idle()

    @property
    def is_idle(self) -> bool:
        return isinstance(self.state, Idle)
