"""view state: keeps a node's data and its rendered form sized consistently."""

from __future__ import annotations

from typing import Optional

from .models import BOX_SIZE, EXPANDED_SIZE, MINIMUM_Y, CanvasNode
from .surface import RenderedNode


class ViewStateController:
    """single place where box/expanded dimensions and the y floor are applied."""

    box_size = BOX_SIZE
    expanded_size = EXPANDED_SIZE
    minimum_y = MINIMUM_Y

    def set_view_state(
        self,
        node: CanvasNode,
        rendered: Optional[RenderedNode] = None,
        box_view: bool = False,
    ) -> None:
        """set width/height and view mode from the box or expanded constants.

        when a rendered instance is given its sizing bounds follow: box view
        pins max size to the box, expanded view lifts the max bounds.
        safe to call repeatedly.
        """
        width, height = self.box_size if box_view else self.expanded_size

        node.width = width
        node.height = height
        node.is_box_view = box_view

        if rendered is None:
            return

        rendered.width = width
        rendered.height = height
        rendered.min_width = width
        rendered.min_height = height
        if box_view:
            rendered.max_width = width
            rendered.max_height = height
        else:
            rendered.max_width = None
            rendered.max_height = None

    def apply_custom_size(
        self,
        node: CanvasNode,
        rendered: Optional[RenderedNode],
        width: float,
        height: float,
    ) -> None:
        """user-chosen size for an expanded node."""
        node.width = width
        node.height = height
        if rendered is not None:
            rendered.width = width
            rendered.height = height

    def validate_position(self, node: CanvasNode, rendered: Optional[RenderedNode] = None) -> None:
        """clamp y to the minimum, moving the rendered node along with it."""
        if node.y < self.minimum_y:
            node.y = self.minimum_y
            if rendered is not None:
                rendered.top = node.y
