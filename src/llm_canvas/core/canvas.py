"""canvas engine: wires the node store to its rendered form.

every mutating operation ends with an explicit reconcile of the affected
connections, the canvas bounds and the minimap.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .connections import ConnectionManager
from .errors import NoSelectionError, UnknownNodeError
from .interaction import (
    BOX_Z_INDEX,
    EXPANDED_Z_INDEX,
    BoxClickTracker,
    InteractionController,
)
from .minimap import MinimapClick, MinimapFrame, MinimapProjector
from .models import (
    CATEGORIES,
    DEFAULT_CATEGORY,
    EXPANDED_SIZE,
    FORK_OFFSET,
    FORK_TITLE_LIMIT,
    MIN_RESIZE_HEIGHT,
    MIN_RESIZE_WIDTH,
    MINIMUM_Y,
    ORIGIN_TITLE,
    CanvasNode,
    NodeStore,
    Role,
    get_category,
    truncate,
)
from .session import AutosaveSlot, SessionCodec, dumps, export_filename, loads
from .surface import (
    BoxIcon,
    NodeContent,
    RenderedMessage,
    RenderedNode,
    RenderSurface,
)
from .view_state import ViewStateController


FOCUSED_Z_INDEX = 100
BOX_TITLE_LIMIT = 24


class CanvasEngine:
    """box/expand/select, node creation, forking, filtering and sessions."""

    def __init__(
        self,
        store: Optional[NodeStore] = None,
        surface: Optional[RenderSurface] = None,
        autosave_slot: Optional[AutosaveSlot] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.store = store if store is not None else NodeStore()
        self.surface = surface if surface is not None else RenderSurface()
        self.view_state = ViewStateController()
        self.connections = ConnectionManager(self.store, self.surface)
        self.minimap = MinimapProjector(self.store)
        self.codec = SessionCodec(self.store)
        self.autosave_slot = autosave_slot

        interaction_kwargs = {"clock": clock} if clock else {}
        self.interaction = InteractionController(
            self.store,
            self.surface,
            self.connections,
            view_state=self.view_state,
            on_select=self.select_node,
            on_bounds_changed=self.update_canvas_size,
            **interaction_kwargs,
        )
        self.update_canvas_size()

    # --- lookup ---

    def get_node(self, node_id: int) -> CanvasNode:
        node = self.store.get(node_id)
        if node is None:
            raise UnknownNodeError(node_id)
        return node

    @property
    def nodes(self) -> list[CanvasNode]:
        return self.store.nodes

    # --- rendering ---

    def render_node(self, node: CanvasNode) -> Optional[RenderedNode]:
        """build the rendered form of a node.

        a failure aborts only this node's render; the canvas carries on.
        """
        try:
            if not node.category:
                node.category = DEFAULT_CATEGORY
            self.view_state.validate_position(node)
            if not node.is_box_view and (node.width < MIN_RESIZE_WIDTH or node.height < MIN_RESIZE_HEIGHT):
                self.view_state.set_view_state(node, None, box_view=False)

            rendered = RenderedNode(
                node_id=node.id,
                left=node.x,
                top=node.y,
                width=node.width,
                height=node.height,
                visible=self.store.is_visible(node),
                z_index=BOX_Z_INDEX if node.is_box_view else EXPANDED_Z_INDEX,
            )
            if node.is_box_view:
                self._build_box(node, rendered)
            else:
                self._build_expanded(node, rendered)

            self.surface.add_node(rendered)
            return rendered
        except Exception:
            logging.exception(f"failed to render node {node.id}")
            self.surface.remove_node(node.id)
            return None

    def _build_expanded(self, node: CanvasNode, rendered: RenderedNode) -> None:
        """header, message history and input area."""
        category = get_category(node.category)
        width, height = node.width, node.height
        self.view_state.set_view_state(node, rendered, box_view=False)
        self.view_state.apply_custom_size(node, rendered, width, height)
        rendered.content = NodeContent.EXPANDED
        rendered.box = None
        rendered.click_tracker = None
        rendered.border_color = category.color
        rendered.classes.discard("box-view")
        rendered.messages = [RenderedMessage(m.role.value, m.content) for m in node.messages]
        rendered.messages_scroll_at_end = True
        rendered.input_value = node.pending_input or ""
        rendered.input_disabled = node.is_thinking
        rendered.thinking_indicator = node.is_thinking

    def _build_box(self, node: CanvasNode, rendered: RenderedNode) -> None:
        """compact icon in the category color."""
        category = get_category(node.category)
        self.view_state.set_view_state(node, rendered, box_view=True)
        rendered.content = NodeContent.BOX
        rendered.box = BoxIcon(color=category.color, title=truncate(node.title, BOX_TITLE_LIMIT, "…"))
        rendered.click_tracker = BoxClickTracker()
        rendered.border_color = category.color
        rendered.classes.add("box-view")
        rendered.messages = []
        rendered.thinking_indicator = False

    # --- box / expanded ---

    def collapse(self, node_id: int, reconcile: bool = True) -> None:
        """minimize a node to its box icon."""
        node = self.get_node(node_id)
        if node.is_box_view:
            return

        if node.expanded_width is None or node.expanded_height is None:
            node.expanded_width = node.width or EXPANDED_SIZE[0]
            node.expanded_height = node.height or EXPANDED_SIZE[1]

        rendered = self.surface.get_node(node_id)
        if rendered is None:
            self.view_state.set_view_state(node, None, box_view=True)
        else:
            self._build_box(node, rendered)

        if self.store.focused_node_id == node_id:
            self.store.focused_node_id = None

        self._restack()
        if reconcile:
            self.connections.update_all_connections()
            self.update_canvas_size()
            self.refresh_minimap()

    minimize = collapse

    def expand(self, node_id: int) -> None:
        """restore a boxed node to its full chat panel."""
        node = self.get_node(node_id)
        width = node.expanded_width or EXPANDED_SIZE[0]
        height = node.expanded_height or EXPANDED_SIZE[1]

        self.view_state.set_view_state(node, None, box_view=False)
        self.view_state.apply_custom_size(node, None, width, height)
        # the restored size now lives in width/height
        node.expanded_width = None
        node.expanded_height = None

        # rebuild from scratch, replaying the transcript
        self.surface.remove_node(node_id)
        self.render_node(node)

        self.connections.update_node_connections(node_id)
        self.update_canvas_size()
        self.refresh_minimap()

    def select_node(self, node_id: int) -> None:
        """bring a node to the front and focus it, expanding it if boxed."""
        node = self.store.get(node_id)
        if node is None:
            return

        if node.is_box_view:
            self.expand(node_id)

        self.store.focused_node_id = node_id
        self._restack(focused_id=node_id)

        self.connections.update_node_connections(node_id)
        self.update_canvas_size()
        self.refresh_minimap()

    def deselect_all(self) -> None:
        """drop the focus layering. nodes stay open."""
        self._restack()

    def _restack(self, focused_id: Optional[int] = None) -> None:
        for node in self.store.nodes:
            rendered = self.surface.get_node(node.id)
            if rendered is None:
                continue
            if node.id == focused_id:
                rendered.z_index = FOCUSED_Z_INDEX
            elif node.is_box_view:
                rendered.z_index = BOX_Z_INDEX
            else:
                rendered.z_index = EXPANDED_Z_INDEX

    # --- creation ---

    def create_node(
        self,
        x: Optional[float] = None,
        y: Optional[float] = None,
        title: Optional[str] = None,
        category: str = DEFAULT_CATEGORY,
        parent_id: Optional[int] = None,
    ) -> CanvasNode:
        """add an expanded node and select it."""
        if category not in CATEGORIES:
            raise ValueError(f"unknown category: {category}")
        if x is None or y is None:
            x, y = self.store.find_good_position()

        node_id = self.store.allocate_id()
        is_origin = not title and not any(n.is_origin for n in self.store.nodes)
        if not title:
            title = ORIGIN_TITLE if is_origin else f"Chat {node_id}"

        node = CanvasNode(
            id=node_id,
            x=x,
            y=y,
            width=EXPANDED_SIZE[0],
            height=EXPANDED_SIZE[1],
            title=title,
            category=category,
            parent_id=parent_id,
            is_origin=is_origin,
        )
        self.view_state.validate_position(node)
        self.store.add(node)
        self.render_node(node)
        self.select_node(node.id)
        logging.debug(f"created node {node.id} at ({node.x}, {node.y})")
        return node

    # --- forking ---

    def set_text_selection(self, node_id: Optional[int], text: str) -> None:
        """remember transcript text the user selected inside a node."""
        text = (text or "").strip()
        if text and node_id is not None:
            self.store.selected_text = text
            self.store.selected_node_id = node_id
        else:
            self.clear_text_selection()

    def clear_text_selection(self) -> None:
        self.store.selected_text = ""
        self.store.selected_node_id = None

    def fork(self, text: Optional[str] = None, node_id: Optional[int] = None) -> CanvasNode:
        """create a child thread from selected text.

        falls back to the stored selection when no text/node is passed.
        """
        if text is not None or node_id is not None:
            self.set_text_selection(node_id, text or "")

        selected = self.store.selected_text
        parent = self.store.get(self.store.selected_node_id)
        if not selected or self.store.selected_node_id is None:
            raise NoSelectionError()
        if parent is None:
            raise UnknownNodeError(self.store.selected_node_id)

        child = self.create_node(
            x=parent.x + FORK_OFFSET[0],
            y=max(MINIMUM_Y, parent.y + FORK_OFFSET[1]),
            title=truncate(selected, FORK_TITLE_LIMIT),
            category=parent.category,
            parent_id=parent.id,
        )
        child.pending_input = selected
        rendered = self.surface.get_node(child.id)
        if rendered is not None:
            rendered.input_value = selected

        self.connections.ensure_connection(parent.id, child.id)
        self.clear_text_selection()
        return child

    # --- editing ---

    def rename(self, node_id: int, title: str) -> None:
        node = self.get_node(node_id)
        node.title = title
        rendered = self.surface.get_node(node_id)
        if rendered is not None and rendered.box is not None:
            rendered.box.title = truncate(title, BOX_TITLE_LIMIT, "…")

    def change_category(self, node_id: int, category: str) -> None:
        if category not in CATEGORIES:
            raise ValueError(f"unknown category: {category}")
        node = self.get_node(node_id)
        node.category = category

        rendered = self.surface.get_node(node_id)
        if rendered is not None:
            color = get_category(category).color
            rendered.border_color = color
            rendered.visible = self.store.is_visible(node)
            if rendered.box is not None:
                rendered.box.color = color

        self.connections.update_all_connections()
        self.refresh_minimap()

    def add_message(self, node_id: int, role: Role, content: str) -> None:
        """append to a transcript and its rendered message list."""
        node = self.store.get(node_id)
        if node is None:
            return
        node.add_message(role, content)
        self.store.total_messages += 1

        rendered = self.surface.get_node(node_id)
        if rendered is not None and rendered.content == NodeContent.EXPANDED:
            rendered.messages.append(RenderedMessage(role.value, content))
            rendered.messages_scroll_at_end = True

    def set_thinking(self, node_id: int, thinking: bool) -> None:
        """mark a node as waiting on the backend. disables its input."""
        node = self.store.get(node_id)
        if node is None:
            return
        node.is_thinking = thinking

        rendered = self.surface.get_node(node_id)
        if rendered is not None:
            rendered.input_disabled = thinking
            rendered.thinking_indicator = thinking and rendered.content == NodeContent.EXPANDED

    def take_input(self, node_id: int) -> str:
        """read and clear the node's input field."""
        node = self.get_node(node_id)
        rendered = self.surface.get_node(node_id)
        value = rendered.input_value if rendered is not None else (node.pending_input or "")
        if rendered is not None:
            rendered.input_value = ""
        node.pending_input = None
        return value

    # --- filtering / clearing ---

    def filter_by_category(self, category: Optional[str]) -> Optional[str]:
        """show only one category. "all" (or the active one again) shows everything."""
        active = self.store.set_filter(category)
        for node in self.store.nodes:
            rendered = self.surface.get_node(node.id)
            if rendered is not None:
                rendered.visible = self.store.is_visible(node)

        self.connections.update_all_connections()
        self.refresh_minimap()
        return active

    def clear(self) -> None:
        """remove every node, connection and the autosave slot."""
        self.interaction.cancel()
        self.store.reset()
        self.connections.clear()
        self.surface.clear_nodes()
        if self.autosave_slot is not None:
            self.autosave_slot.clear()
        self.update_canvas_size()
        self.refresh_minimap()

    # --- bounds / viewport ---

    def update_canvas_size(self) -> tuple[float, float]:
        vp = self.surface.viewport
        width, height = self.store.canvas_bounds(vp.width, vp.height)
        self.surface.set_canvas_size(width, height)
        return width, height

    def set_viewport(
        self,
        width: float,
        height: float,
        origin_x: Optional[float] = None,
        origin_y: Optional[float] = None,
    ) -> None:
        """window resized."""
        vp = self.surface.viewport
        vp.width, vp.height = width, height
        if origin_x is not None:
            vp.origin_x = origin_x
        if origin_y is not None:
            vp.origin_y = origin_y
        self.update_canvas_size()
        self.refresh_minimap()

    def scroll_to(self, left: float, top: float) -> None:
        self.surface.scroll_to(left, top)
        self.minimap.update_viewport(self.surface.viewport)

    def reset_view(self) -> None:
        self.scroll_to(0, 0)

    def center_node(self, node_id: int) -> None:
        node = self.get_node(node_id)
        vp = self.surface.viewport
        self.scroll_to(
            node.x + node.width / 2 - vp.width / 2,
            node.y + node.height / 2 - vp.height / 2,
        )

    def center_all(self) -> None:
        """centre the view on the bounding box of every node."""
        if not self.store.nodes:
            return
        min_x = min(n.x for n in self.store.nodes)
        min_y = min(n.y for n in self.store.nodes)
        max_x = max(n.x + n.width for n in self.store.nodes)
        max_y = max(n.y + n.height for n in self.store.nodes)
        self.navigate_to_position((min_x + max_x) / 2, (min_y + max_y) / 2)

    def navigate_to_node(self, node_id: int) -> None:
        self.select_node(node_id)
        self.center_node(node_id)

    def navigate_to_position(self, x: float, y: float) -> None:
        vp = self.surface.viewport
        self.scroll_to(x - vp.width / 2, y - vp.height / 2)

    # --- minimap ---

    def refresh_minimap(self) -> MinimapFrame:
        return self.minimap.refresh(
            (self.surface.canvas_width, self.surface.canvas_height),
            self.surface.viewport,
        )

    def minimap_click(self, mx: float, my: float) -> MinimapClick:
        """select+centre a clicked node, or centre on the clicked point."""
        click = self.minimap.click(mx, my)
        if click.node_id is not None:
            self.navigate_to_node(click.node_id)
        else:
            self.navigate_to_position(click.world_x, click.world_y)
        return click

    # --- sessions ---

    def serialize(self) -> dict:
        return self.codec.serialize()

    def deserialize(self, snapshot) -> bool:
        """replace the canvas with a snapshot. malformed input is a no-op.

        every node gets a fresh id; all but the origin come back boxed.
        """
        # decoding only advances the id counter; the canvas is untouched until it succeeds
        decoded = self.codec.decode(snapshot)
        if decoded is None:
            return False
        if not decoded.nodes and SessionCodec.node_records(snapshot):
            logging.warning("session snapshot has no usable node records; keeping the current canvas")
            return False

        self.interaction.cancel()
        self.store.reset()
        self.connections.clear()
        self.surface.clear_nodes()

        for node in decoded.nodes:
            self.store.nodes.append(node)

        for node in decoded.nodes:
            self.render_node(node)

        for node in decoded.nodes:
            if node.id != decoded.origin_id:
                self.collapse(node.id, reconcile=False)

        if decoded.origin_id is not None:
            self.store.focused_node_id = decoded.origin_id
            self._restack(focused_id=decoded.origin_id)

        self.store.total_messages = sum(len(n.messages) for n in self.store.nodes)

        self.connections.update_all_connections()
        self.update_canvas_size()
        self.refresh_minimap()
        logging.debug(f"session loaded: {len(decoded.nodes)} nodes, origin={decoded.origin_id}")
        return True

    load_session = deserialize

    def import_text(self, text: str) -> bool:
        """parse and load exported session text.

        raises SessionLoadError before touching any state if parsing fails.
        """
        return self.deserialize(loads(text))

    def export(self) -> tuple[str, str]:
        """(file name, json text) for a downloadable snapshot."""
        return export_filename(), dumps(self.serialize())

    def autosave(self) -> bool:
        """write the autosave slot when there is anything to save."""
        if self.autosave_slot is None or not self.store.nodes:
            return False
        self.autosave_slot.write(self.serialize())
        return True

    def load_autosave(self) -> bool:
        if self.autosave_slot is None:
            return False
        snapshot = self.autosave_slot.read()
        if not SessionCodec.node_records(snapshot):
            return False
        return self.deserialize(snapshot)

    # --- stats ---

    def stats(self) -> dict:
        return {
            "node_count": len(self.store.nodes),
            "message_count": self.store.total_messages,
            "categories": self.store.category_counts(),
        }
