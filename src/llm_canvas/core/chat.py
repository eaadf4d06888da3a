"""message dispatch: one user message in, exactly one assistant message out.

backend trouble of any kind becomes a tagged assistant entry in the
transcript rather than an exception.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from .canvas import CanvasEngine
from .client import DEFAULT_MODEL, ClientProtocol, build_payload
from .errors import BackendHTTPError
from .models import Role


DEFAULT_REQUEST_TIMEOUT = 60.0  # seconds

RETRY_HINT = "Try again in a moment."


def _completion_text(data: dict) -> str:
    choices = data.get("choices")
    if isinstance(choices, list) and choices:
        first = choices[0]
        if isinstance(first, dict):
            message = first.get("message")
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                return message["content"]
            if isinstance(first.get("text"), str):
                return first["text"]
    generated = data.get("generated_text")
    return generated if isinstance(generated, str) else ""


def interpret_response(data) -> str:
    """turn a backend response body into transcript text."""
    if not isinstance(data, dict):
        return f"[CONNECTION ISSUE] Unexpected response from the chat service. {RETRY_HINT}"

    if data.get("success"):
        text = _completion_text(data).strip()
        if text:
            return text
        return "[EMPTY RESPONSE] The model returned no text. Try rephrasing your message."

    if data.get("error"):
        status = str(data.get("status") or "")
        if "404" in status:
            return f"[MODEL UNAVAILABLE] The requested model is not available. {RETRY_HINT}"
        return f"[API ERROR] {data['error']} (Status: {status or 'unknown'})"

    return f"[CONNECTION ISSUE] Unexpected response from the chat service. {RETRY_HINT}"


def describe_failure(exc: BaseException) -> str:
    """turn a failed request into transcript text."""
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)) or "timeout" in str(exc).lower():
        return f"[TIMEOUT ERROR] The request took too long. {RETRY_HINT}"
    if isinstance(exc, BackendHTTPError):
        return f"[NETWORK ERROR] The chat service answered with status {exc.status_code}. {RETRY_HINT}"
    return f"[NETWORK ERROR] Could not reach the chat service. {RETRY_HINT}"


class ChatDispatcher:
    """sends node input to the backend and records the reply."""

    def __init__(
        self,
        engine: CanvasEngine,
        client: ClientProtocol,
        model: str = DEFAULT_MODEL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self.engine = engine
        self.client = client
        self.model = model
        self.timeout = timeout

    async def send_message(self, node_id: int, text: Optional[str] = None) -> Optional[str]:
        """submit text (or the node's input field) and append the reply.

        returns the assistant text, or None when nothing was sent (empty
        input, or the node is already waiting on a reply).
        """
        node = self.engine.get_node(node_id)
        if node.is_thinking:
            logging.debug(f"node {node_id} is already thinking; ignoring input")
            return None

        if text is None:
            text = self.engine.take_input(node_id)
        message = text.strip()
        if not message:
            return None

        self.engine.add_message(node_id, Role.USER, message)
        self.engine.set_thinking(node_id, True)

        try:
            try:
                data = await asyncio.wait_for(
                    self.client.complete(build_payload(message, self.model)),
                    timeout=self.timeout,
                )
                reply = interpret_response(data)
            except Exception as e:
                logging.warning(f"chat request for node {node_id} failed: {e!r}")
                reply = describe_failure(e)

            self.engine.add_message(node_id, Role.ASSISTANT, reply)
            return reply
        finally:
            self.engine.set_thinking(node_id, False)
