"""Overseer tool catalog and executor.

TOOL_DEFINITIONS is sent verbatim to the model. ToolExecutor
validates each requested call against its schema, dispatches it to
the SessionManager or the history store, and always returns a
JSON-serializable dict. Failures come back as ``{"error": reason}``
so the model can react; nothing here raises into the loop.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .config import DeckConfig
from .errors import DeckError, InvalidPathError, ToolValidationError
from .models import PermissionMode

if TYPE_CHECKING:
    from .cancellation import CancellationToken
    from .history import HistoryStore
    from .session_manager import SessionManager

logger = logging.getLogger(__name__)

_PERMISSION_MODES = [m.value for m in PermissionMode]

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "list_sessions",
        "description": "Get status of all active assistant sessions",
        "input_schema": {"type": "object", "properties": {}},
    },
    {
        "name": "get_session_buffer",
        "description": "Read recent raw output from a specific session",
        "input_schema": {
            "type": "object",
            "properties": {
                "session_id": {"type": "string", "description": "The session ID"},
                "lines": {
                    "type": "number",
                    "description": "Number of output chunks to retrieve (default 50)",
                },
            },
            "required": ["session_id"],
        },
    },
    {
        "name": "send_to_session",
        "description": (
            "Send a message or task to a session. Fails if the session "
            "is still working on a previous message."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "session_id": {"type": "string", "description": "The session ID"},
                "message": {"type": "string", "description": "The message to send"},
            },
            "required": ["session_id", "message"],
        },
    },
    {
        "name": "spawn_session",
        "description": (
            "Create a new assistant session. Relative cwd values are "
            "resolved against the project root; the directory must exist."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "cwd": {"type": "string", "description": "Working directory for the session"},
                "model": {"type": "string", "description": "Model to use (opus, sonnet, haiku)"},
                "permission_mode": {
                    "type": "string",
                    "enum": _PERMISSION_MODES,
                    "description": "Permission mode",
                },
                "skip_permissions": {
                    "type": "boolean",
                    "description": "Skip all permission checks (use with caution)",
                },
            },
            "required": ["cwd"],
        },
    },
    {
        "name": "kill_session",
        "description": "Terminate a session",
        "input_schema": {
            "type": "object",
            "properties": {
                "session_id": {"type": "string", "description": "The session ID to kill"},
            },
            "required": ["session_id"],
        },
    },
    {
        "name": "set_permission_mode",
        "description": "Change a session's permission mode",
        "input_schema": {
            "type": "object",
            "properties": {
                "session_id": {"type": "string", "description": "The session ID"},
                "mode": {
                    "type": "string",
                    "enum": _PERMISSION_MODES,
                    "description": "The permission mode to set",
                },
            },
            "required": ["session_id", "mode"],
        },
    },
    {
        "name": "search_history",
        "description": "Search past chat sessions",
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query"},
                "limit": {"type": "number", "description": "Max results (default 10)"},
            },
            "required": ["query"],
        },
    },
    {
        "name": "sleep",
        "description": (
            "Pause execution and wait for conditions. Use this when "
            "waiting for sessions to complete tasks. At least one of "
            "timeout_ms or a wake_on_* session ID is required; the "
            "first condition met wakes you."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "timeout_ms": {
                    "type": "number",
                    "description": "Max time to sleep in milliseconds",
                },
                "wake_on_complete": {
                    "type": "string",
                    "description": "Session ID to wake on when it completes",
                },
                "wake_on_error": {
                    "type": "string",
                    "description": "Session ID to wake on when it errors",
                },
                "wake_on_input_needed": {
                    "type": "string",
                    "description": "Session ID to wake on when it needs input",
                },
            },
        },
    },
]

TOOLS_BY_NAME: dict[str, dict[str, Any]] = {t["name"]: t for t in TOOL_DEFINITIONS}

_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
}


def validate_tool_input(name: str, tool_input: Any) -> dict[str, Any]:
    """Check required fields, primitive types and enums.

    Returns the input as a dict. Raises ToolValidationError.
    """
    tool = TOOLS_BY_NAME.get(name)
    if tool is None:
        raise ToolValidationError(name, f"Unknown tool: {name}")
    if tool_input is None:
        tool_input = {}
    if not isinstance(tool_input, dict):
        raise ToolValidationError(name, "input must be an object")

    schema = tool["input_schema"]
    properties: dict[str, Any] = schema.get("properties", {})
    for field_name in schema.get("required", []):
        if tool_input.get(field_name) in (None, ""):
            raise ToolValidationError(name, f"missing required field '{field_name}'")

    for field_name, value in tool_input.items():
        prop = properties.get(field_name)
        if prop is None or value is None:
            continue
        check = _TYPE_CHECKS.get(prop.get("type", ""))
        if check is not None and not check(value):
            raise ToolValidationError(
                name, f"field '{field_name}' must be a {prop['type']}",
            )
        allowed = prop.get("enum")
        if allowed is not None and value not in allowed:
            raise ToolValidationError(
                name,
                f"field '{field_name}' must be one of {', '.join(allowed)}",
            )
    return tool_input


def resolve_session_cwd(cwd: str, project_root: str) -> str:
    """Resolve *cwd* against *project_root*. Raises InvalidPathError."""
    path = Path(cwd).expanduser()
    if not path.is_absolute():
        path = Path(project_root).expanduser() / path
    resolved = path.resolve()
    if not resolved.is_dir():
        raise InvalidPathError(cwd, str(resolved))
    return str(resolved)


SleepHandler = Callable[[dict[str, Any]], dict[str, Any]]


class ToolExecutor:
    """Maps a tool invocation to a SessionManager / history call."""

    def __init__(
        self,
        manager: SessionManager,
        config: DeckConfig | None = None,
        history: HistoryStore | None = None,
        sleep_handler: SleepHandler | None = None,
    ) -> None:
        self._manager = manager
        self._config = config or DeckConfig()
        self._history = history
        self._sleep_handler = sleep_handler
        self._handlers = {
            "list_sessions": self._list_sessions,
            "get_session_buffer": self._get_session_buffer,
            "send_to_session": self._send_to_session,
            "spawn_session": self._spawn_session,
            "kill_session": self._kill_session,
            "set_permission_mode": self._set_permission_mode,
            "search_history": self._search_history,
            "sleep": self._sleep,
        }

    @property
    def definitions(self) -> list[dict[str, Any]]:
        return TOOL_DEFINITIONS

    async def execute(
        self,
        name: str,
        tool_input: Any,
        token: CancellationToken | None = None,
    ) -> Any:
        if token is not None and token.cancelled:
            return {"error": "aborted"}
        try:
            validated = validate_tool_input(name, tool_input)
            return await self._handlers[name](validated)
        except DeckError as exc:
            logger.info("Tool %s failed: %s", name, exc)
            return {"error": str(exc)}
        except Exception as exc:
            logger.exception("Tool %s raised unexpectedly", name)
            return {"error": f"{type(exc).__name__}: {exc}"}

    async def _list_sessions(self, _input: dict[str, Any]) -> list[dict[str, Any]]:
        return [view.to_dict() for view in self._manager.list()]

    async def _get_session_buffer(self, tool_input: dict[str, Any]) -> list[str]:
        lines = int(tool_input.get("lines") or self._config.default_buffer_lines)
        return self._manager.get_buffer(tool_input["session_id"], lines)

    async def _send_to_session(self, tool_input: dict[str, Any]) -> dict[str, Any]:
        await self._manager.send(tool_input["session_id"], tool_input["message"])
        return {"success": True}

    async def _spawn_session(self, tool_input: dict[str, Any]) -> dict[str, Any]:
        cwd = resolve_session_cwd(tool_input["cwd"], self._config.project_root)
        mode = tool_input.get("permission_mode")
        if tool_input.get("skip_permissions"):
            mode = PermissionMode.BYPASS.value
        view = await self._manager.spawn(
            cwd, model=tool_input.get("model"), permission_mode=mode,
        )
        return view.to_dict()

    async def _kill_session(self, tool_input: dict[str, Any]) -> dict[str, Any]:
        await self._manager.kill(tool_input["session_id"])
        return {"success": True}

    async def _set_permission_mode(self, tool_input: dict[str, Any]) -> dict[str, Any]:
        self._manager.set_permission_mode(tool_input["session_id"], tool_input["mode"])
        return {"success": True}

    async def _search_history(self, tool_input: dict[str, Any]) -> Any:
        if self._history is None:
            return {"error": "History search is not configured"}
        limit = int(tool_input.get("limit") or self._config.default_search_limit)
        return await self._history.search(tool_input["query"], limit)

    async def _sleep(self, tool_input: dict[str, Any]) -> dict[str, Any]:
        if self._sleep_handler is None:
            return {"error": "sleep is only available inside the overseer loop"}
        return self._sleep_handler(tool_input)
