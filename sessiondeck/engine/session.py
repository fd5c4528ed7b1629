"""Per-session state machine.

A Session owns its status, continuation identity, output ring buffer
and de-duplication fingerprint. It is the only writer of that state;
every change is published on the manager's SessionEvents channels.

Status is driven by decoded stream records:

    result     -> idle (and capture session_id for --resume)
    system     -> ignored
    assistant  -> running_tool on a tool_use block,
                  thinking on a text block

Process exit forces idle regardless of records seen.
"""
from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from collections import deque
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from .events import (
    SessionMessageEvent,
    SessionOutput,
    SessionStatusChanged,
)
from .models import PermissionMode, SessionMessage, SessionStatus, SessionView

if TYPE_CHECKING:
    from .events import SessionEvents
    from .process import ProcessHandle

logger = logging.getLogger(__name__)


def extract_content(record: dict[str, Any]) -> list[dict[str, Any]]:
    """Pull user-facing content blocks out of an assistant record."""
    message = record.get("message")
    if not isinstance(message, dict):
        return []
    blocks = message.get("content")
    if not isinstance(blocks, list):
        return []

    content: list[dict[str, Any]] = []
    for block in blocks:
        if not isinstance(block, dict):
            continue
        btype = block.get("type")
        if btype == "text" and block.get("text"):
            content.append({"type": "text", "text": block["text"]})
        elif btype == "thinking" and block.get("thinking"):
            content.append({"type": "thinking", "thinking": block["thinking"]})
        elif btype == "tool_use":
            content.append({
                "type": "tool_use",
                "id": block.get("id"),
                "name": block.get("name"),
                "input": block.get("input"),
            })
        elif btype == "tool_result":
            result = block.get("content")
            content.append({
                "type": "tool_result",
                "tool_use_id": block.get("tool_use_id"),
                "content": result if isinstance(result, str) else json.dumps(result),
                "is_error": block.get("is_error"),
            })
    return content


def content_fingerprint(content: list[dict[str, Any]]) -> str:
    encoded = json.dumps(content, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


class Session:
    """One managed assistant session bound to a working directory."""

    def __init__(
        self,
        session_id: str,
        cwd: str,
        events: SessionEvents,
        *,
        model: str,
        permission_mode: PermissionMode = PermissionMode.DEFAULT,
        continuation_id: str | None = None,
        buffer_capacity: int = 1000,
    ) -> None:
        self.id = session_id
        self.cwd = cwd
        self.model = model
        self.permission_mode = permission_mode
        self.continuation_id = continuation_id
        self.status = SessionStatus.IDLE
        self.created_at = datetime.now(timezone.utc)
        self.buffer: deque[str] = deque(maxlen=buffer_capacity)
        self.last_fingerprint: str | None = None
        self.process: ProcessHandle | None = None
        self.pump_task: asyncio.Task | None = None
        # Set while send() is awaiting the launch, before process exists.
        self.launching = False
        self._events = events

    @property
    def busy(self) -> bool:
        return self.launching or self.process is not None

    def view(self) -> SessionView:
        return SessionView(
            id=self.id,
            cwd=self.cwd,
            continuation_id=self.continuation_id,
            permission_mode=self.permission_mode,
            status=self.status,
            model=self.model,
            created_at=self.created_at,
            busy=self.busy,
        )

    def set_status(self, status: SessionStatus) -> bool:
        """Transition and publish. Unchanged status publishes nothing."""
        if self.status == status:
            return False
        old = self.status
        self.status = status
        logger.debug("Session %s: %s -> %s", self.id, old.value, status.value)
        self._events.status.publish(SessionStatusChanged(
            session_id=self.id, status=status, old_status=old,
        ))
        return True

    def record_output(self, text: str, stream: str = "stdout") -> None:
        """Append a raw text chunk to the ring buffer and publish it."""
        if not text:
            return
        self.buffer.append(text)
        self._events.output.publish(SessionOutput(
            session_id=self.id, data=text, stream=stream,
        ))

    def tail(self, n: int) -> list[str]:
        if n <= 0:
            return []
        items = list(self.buffer)
        return items[-n:]

    def handle_record(self, record: dict[str, Any]) -> SessionMessage | None:
        """Apply one decoded record. Returns the message it emitted, if any."""
        rtype = record.get("type")

        if rtype == "result":
            self.set_status(SessionStatus.IDLE)
            continuation = record.get("session_id")
            if isinstance(continuation, str) and continuation:
                self.continuation_id = continuation
            return None

        if rtype != "assistant":
            return None

        message = record.get("message")
        if not isinstance(message, dict):
            return None
        blocks = message.get("content")
        if isinstance(blocks, list):
            for block in blocks:
                if not isinstance(block, dict):
                    continue
                if block.get("type") == "tool_use":
                    self.set_status(SessionStatus.RUNNING_TOOL)
                elif block.get("type") == "text":
                    self.set_status(SessionStatus.THINKING)

        content = extract_content(record)
        if not content:
            return None
        fingerprint = content_fingerprint(content)
        if fingerprint == self.last_fingerprint:
            return None
        self.last_fingerprint = fingerprint

        session_message = SessionMessage(content=content)
        self._events.message.publish(SessionMessageEvent(
            session_id=self.id, message=session_message,
        ))
        return session_message
