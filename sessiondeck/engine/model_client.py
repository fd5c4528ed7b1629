"""Model invocation for the overseer.

ModelClient is the seam the overseer loop calls. AnthropicModelClient
talks to the Messages API with tool use; responses are normalized to
plain dict blocks so they can be appended to history as-is.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Protocol

import anthropic

from .errors import ModelCallError

logger = logging.getLogger(__name__)


@dataclass
class ModelResponse:
    """Text and/or tool_use blocks plus the stop reason."""
    content: list[dict[str, Any]] = field(default_factory=list)
    stop_reason: str | None = None

    @property
    def text(self) -> str:
        return "\n".join(
            b["text"] for b in self.content
            if b.get("type") == "text" and b.get("text")
        )

    @property
    def tool_uses(self) -> list[dict[str, Any]]:
        return [b for b in self.content if b.get("type") == "tool_use"]


class ModelClient(Protocol):
    async def create(
        self,
        *,
        model: str,
        system: str,
        tools: list[dict[str, Any]],
        messages: list[dict[str, Any]],
    ) -> ModelResponse: ...


def normalize_block(block: Any) -> dict[str, Any] | None:
    """Convert an SDK content block to a replayable dict, or None to skip."""
    btype = getattr(block, "type", None)
    if btype == "text":
        return {"type": "text", "text": block.text}
    if btype == "tool_use":
        return {
            "type": "tool_use",
            "id": block.id,
            "name": block.name,
            "input": dict(block.input or {}),
        }
    return None


class AnthropicModelClient:
    """ModelClient backed by ``anthropic.AsyncAnthropic``.

    No request timeout is imposed beyond the SDK's own; abort() is
    the way to stop a hung call.
    """

    def __init__(
        self,
        max_tokens: int = 4096,
        api_key_env: str | None = "ANTHROPIC_API_KEY",
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self._max_tokens = max_tokens
        if client is None:
            api_key = os.environ.get(api_key_env) if api_key_env else None
            client = anthropic.AsyncAnthropic(api_key=api_key) if api_key else anthropic.AsyncAnthropic()
        self._client = client

    async def create(
        self,
        *,
        model: str,
        system: str,
        tools: list[dict[str, Any]],
        messages: list[dict[str, Any]],
    ) -> ModelResponse:
        try:
            response = await self._client.messages.create(
                model=model,
                max_tokens=self._max_tokens,
                system=system,
                tools=tools,
                messages=messages,
            )
        except anthropic.APIError as exc:
            logger.error("Overseer model call failed: %s", exc)
            raise ModelCallError(model, str(exc)) from exc

        content = [
            b for b in (normalize_block(block) for block in response.content)
            if b is not None
        ]
        logger.debug(
            "Model %s returned %d block(s), stop_reason=%s",
            model, len(content), response.stop_reason,
        )
        return ModelResponse(content=content, stop_reason=response.stop_reason)
