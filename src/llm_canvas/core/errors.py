"""exceptions raised by the canvas engine."""

from __future__ import annotations


class CanvasError(Exception):
    """base class for canvas errors."""

    pass


class UnknownNodeError(CanvasError):
    """no node with the given id."""

    def __init__(self, node_id: int):
        self.node_id = node_id
        super().__init__(f"node not found: {node_id}")


class NoSelectionError(CanvasError):
    """fork invoked without an active text selection."""

    def __init__(self, message: str = "select some text first, then fork"):
        super().__init__(message)


class SessionLoadError(CanvasError):
    """session data could not be parsed."""

    pass


class BackendHTTPError(CanvasError):
    """chat backend answered with a non-success status."""

    def __init__(self, status_code: int, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"backend error: {status_code} {detail}".strip())
