"""Exception hierarchy for the session deck.

Specific exceptions for each failure mode. Tool-level failures are
caught by the ToolExecutor and turned into error payloads; only
transport-level failures escape the overseer loop.
"""
from __future__ import annotations


class DeckError(Exception):
    """Base exception for all session deck errors."""


class CapacityExceededError(DeckError):
    """Spawn refused because the session limit is reached."""
    def __init__(self, max_sessions: int):
        self.max_sessions = max_sessions
        super().__init__(f"Maximum of {max_sessions} sessions allowed")


class SessionNotFoundError(DeckError):
    """No session with the given id."""
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class SessionBusyError(DeckError):
    """A process is already running for this session."""
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(
            f"Session {session_id} is busy: a process is already running"
        )


class UnsupportedOperationError(DeckError):
    """Operation requires an interactive terminal, which sessions lack."""
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(
            f"{operation} is not supported in non-interactive print mode"
        )


class InvalidPermissionModeError(DeckError):
    def __init__(self, mode: str):
        self.mode = mode
        super().__init__(f"Invalid permission mode: {mode}")


class InvalidPathError(DeckError):
    """Working directory does not exist."""
    def __init__(self, path: str, resolved: str):
        self.path = path
        self.resolved = resolved
        super().__init__(
            f"Directory does not exist: {path} (resolved to {resolved})"
        )


class ProcessLaunchError(DeckError):
    """The assistant CLI could not be started."""
    def __init__(self, session_id: str, command: str, reason: str):
        self.session_id = session_id
        self.command = command
        self.reason = reason
        super().__init__(
            f"Failed to launch '{command}' for session {session_id}: {reason}"
        )


class ToolValidationError(DeckError):
    """Tool input does not match the declared schema."""
    def __init__(self, tool_name: str, reason: str):
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(f"Invalid input for tool '{tool_name}': {reason}")


class ModelCallError(DeckError):
    """The model invocation failed (network, API, auth)."""
    def __init__(self, model: str, reason: str):
        self.model = model
        self.reason = reason
        super().__init__(f"Model call to {model} failed: {reason}")


class OverseerBusyError(DeckError):
    """Overseer loop is mid-turn."""
    def __init__(self, operation: str, status: str):
        self.operation = operation
        self.status = status
        super().__init__(
            f"Cannot {operation} while the overseer is {status}"
        )


class TurnCancelledError(DeckError):
    """The current overseer turn was aborted or superseded."""
    def __init__(self) -> None:
        super().__init__("Overseer turn cancelled")
