"""chat backend clients.

every client takes a completion payload and returns the backend's json-ish
response dict. interpreting that dict (and any failure) into transcript text
happens in chat.py.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

import httpx
from claude_agent_sdk import (
    ClaudeAgentOptions,
    ClaudeSDKClient,
)

from .errors import BackendHTTPError


DEFAULT_MODEL = "deepseek-chat"
DEFAULT_PROXY_URL = "http://localhost:8787/api/chat"
DEFAULT_MAX_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_P = 0.9


def build_payload(message: str, model: str = DEFAULT_MODEL) -> dict:
    """completion request for a single user message."""
    return {
        "model": model,
        "messages": [{"role": "user", "content": message}],
        "max_tokens": DEFAULT_MAX_TOKENS,
        "temperature": DEFAULT_TEMPERATURE,
        "stream": False,
        "top_p": DEFAULT_TOP_P,
    }


def prompt_text(payload: dict) -> str:
    """the user content carried by a payload."""
    parts = [
        m.get("content", "")
        for m in payload.get("messages", [])
        if isinstance(m, dict) and m.get("role") == "user"
    ]
    return "\n\n".join(parts)


def completion(text: str) -> dict:
    """wrap text in the success shape the proxy returns."""
    return {"success": True, "choices": [{"message": {"content": text}}]}


@runtime_checkable
class ClientProtocol(Protocol):
    """protocol for chat backends (real or mock)."""

    async def complete(self, payload: dict) -> dict:
        """send payload and return the raw response."""
        ...


class MockClient:
    """mock client for testing without api calls."""

    def __init__(self, responses: Optional[dict[str, str]] = None, delay: float = 0.5):
        """init with optional response mapping.

        responses: dict mapping prompt substrings to responses.
        if prompt contains key (case-insensitive), return value.
        delay: simulated API delay in seconds.
        """
        self.responses = responses or {}
        self.calls: list[dict] = []  # track all payloads sent
        self.delay = delay
        self.default_response = "## mock response\n\nthis is a simulated response from mock mode.\n\n- point 1\n- point 2\n- point 3"

    async def __aenter__(self) -> "MockClient":
        return self

    async def __aexit__(self, *args) -> None:
        pass

    async def complete(self, payload: dict) -> dict:
        """return mock response based on prompt."""
        self.calls.append(payload)

        # simulate API delay
        await asyncio.sleep(self.delay)

        prompt_lower = prompt_text(payload).lower()
        for key, response in self.responses.items():
            if key.lower() in prompt_lower:
                return completion(response)

        return completion(self.default_response)


class ProxyClient:
    """posts completion payloads to the chat proxy over http."""

    def __init__(self, url: str = DEFAULT_PROXY_URL, timeout: float = 60.0):
        self.url = url
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"Content-Type": "application/json"},
                timeout=httpx.Timeout(self.timeout),
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ProxyClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def complete(self, payload: dict) -> dict:
        """POST {"requestData": <json payload>} and return the decoded body.

        raises BackendHTTPError on a non-success status.
        """
        response = await self.client.post(self.url, json={"requestData": json.dumps(payload)})
        logging.debug(f"proxy responded {response.status_code}")
        if response.status_code >= 400:
            raise BackendHTTPError(response.status_code, response.reason_phrase)
        return response.json()


class ClaudeClient:
    """async client for claude using claude-agent-sdk.

    creates a fresh connection per query to avoid state conflicts.
    the payload's model name is ignored in favour of self.model.
    """

    def __init__(self, cwd: Optional[Path] = None, model: str = "opus"):
        self.cwd = cwd or Path.cwd()
        self.model = model

    async def __aenter__(self) -> ClaudeClient:
        return self

    async def __aexit__(self, *args) -> None:
        pass

    async def complete(self, payload: dict) -> dict:
        """send the payload's user content and collect the full response."""
        # no tools - pure text generation
        options = ClaudeAgentOptions(
            cwd=str(self.cwd),
            model=self.model,
            tools=[],
            allowed_tools=[],
        )
        client: Optional[ClaudeSDKClient] = None

        try:
            client = ClaudeSDKClient(options)
            await client.connect()
            await client.query(prompt_text(payload))

            text_parts: list[str] = []
            async for event in client.receive_response():
                logging.debug(f"event type: {type(event).__name__}")

                if hasattr(event, "message") and hasattr(event.message, "content"):
                    for block in event.message.content:
                        if hasattr(block, "text"):
                            text_parts.append(block.text)
                elif isinstance(getattr(event, "content", None), list):
                    for block in event.content:
                        if hasattr(block, "text"):
                            text_parts.append(block.text)
                        elif isinstance(block, dict) and "text" in block:
                            text_parts.append(block["text"])

            logging.debug(f"total text parts collected: {len(text_parts)}")
            return completion("\n".join(text_parts))

        except Exception as e:
            raise RuntimeError(f"claude api error: {e}") from e

        finally:
            if client:
                try:
                    await client.disconnect()
                except Exception as e:
                    logging.debug(f"ignoring disconnect error: {e}")
