"""Core data models for the session deck.

All dataclasses, enums, and type aliases. Single source of truth
to avoid circular imports.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class SessionStatus(str, Enum):
    """Session states.

    ``waiting_input`` and ``error`` are never entered by output
    parsing; they are reached through SessionManager.mark_status()
    or a failed process launch.
    """
    IDLE = "idle"
    THINKING = "thinking"
    RUNNING_TOOL = "running_tool"
    WAITING_INPUT = "waiting_input"
    ERROR = "error"


class PermissionMode(str, Enum):
    """Maps to the assistant CLI permission modes."""
    DEFAULT = "default"
    ACCEPT_EDITS = "acceptEdits"
    BYPASS = "bypassPermissions"
    PLAN = "plan"


class OverseerStatus(str, Enum):
    IDLE = "idle"
    THINKING = "thinking"
    SLEEPING = "sleeping"
    ACTING = "acting"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCallStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class WakeConditionType(str, Enum):
    TIMEOUT = "timeout"
    SESSION_COMPLETE = "session_complete"
    SESSION_ERROR = "session_error"
    SESSION_INPUT_NEEDED = "session_input_needed"


class WakeReason(str, Enum):
    """Why a suspended overseer turn resumed."""
    TIMEOUT = "timeout"
    SESSION_COMPLETE = "session_complete"
    SESSION_ERROR = "session_error"
    SESSION_INPUT_NEEDED = "session_input_needed"
    SESSION_KILLED = "session_killed"
    MANUAL = "manual"
    ABORTED = "aborted"


# Session status that satisfies each session-bound wake condition.
WAKE_TARGET_STATUS: dict[WakeConditionType, SessionStatus] = {
    WakeConditionType.SESSION_COMPLETE: SessionStatus.IDLE,
    WakeConditionType.SESSION_ERROR: SessionStatus.ERROR,
    WakeConditionType.SESSION_INPUT_NEEDED: SessionStatus.WAITING_INPUT,
}


def parse_permission_mode(value: str | PermissionMode) -> PermissionMode:
    """Parse a permission mode string. Raises ValueError if unknown."""
    if isinstance(value, PermissionMode):
        return value
    return PermissionMode(value)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class SessionView:
    """Read-only snapshot of a session, safe to hand to observers."""
    id: str
    cwd: str
    permission_mode: PermissionMode
    status: SessionStatus
    model: str
    created_at: datetime
    continuation_id: str | None = None
    busy: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "cwd": self.cwd,
            "continuation_id": self.continuation_id,
            "permission_mode": self.permission_mode.value,
            "status": self.status.value,
            "model": self.model,
            "created_at": self.created_at.isoformat(),
            "busy": self.busy,
        }


@dataclass
class SessionMessage:
    """De-duplicated assistant output extracted from a session's stream.

    ``content`` holds plain dict blocks of type text, thinking,
    tool_use or tool_result.
    """
    content: list[dict[str, Any]]
    type: str = "assistant"
    timestamp: int = field(default_factory=_now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "content": [dict(block) for block in self.content],
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class WakeCondition:
    type: WakeConditionType
    session_id: str | None = None
    timeout_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"type": self.type.value}
        if self.session_id is not None:
            d["session_id"] = self.session_id
        if self.timeout_ms is not None:
            d["timeout_ms"] = self.timeout_ms
        return d


@dataclass
class ToolCallRecord:
    """A single overseer tool invocation as shown to observers."""
    name: str
    input: dict[str, Any]
    status: ToolCallStatus = ToolCallStatus.RUNNING
    result: Any = None
    tool_use_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "input": dict(self.input),
            "status": self.status.value,
            "result": self.result,
            "tool_use_id": self.tool_use_id,
        }


@dataclass
class OverseerMessage:
    """Lightweight notification message, distinct from model history."""
    role: MessageRole
    content: str
    timestamp: int = field(default_factory=_now_ms)
    tool_call: ToolCallRecord | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.tool_call is not None:
            d["tool_call"] = self.tool_call.to_dict()
        return d
