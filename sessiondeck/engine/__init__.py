"""Session deck engine - assistant sessions plus an overseer agent."""
from .models import (
    MessageRole,
    OverseerMessage,
    OverseerStatus,
    PermissionMode,
    SessionMessage,
    SessionStatus,
    SessionView,
    ToolCallRecord,
    ToolCallStatus,
    WakeCondition,
    WakeConditionType,
    WakeReason,
)
from .config import DeckConfig
from .errors import (
    CapacityExceededError,
    DeckError,
    InvalidPathError,
    InvalidPermissionModeError,
    ModelCallError,
    OverseerBusyError,
    ProcessLaunchError,
    SessionBusyError,
    SessionNotFoundError,
    ToolValidationError,
    TurnCancelledError,
    UnsupportedOperationError,
)

__all__ = [
    # Core components (lazy import)
    "SessionManager",
    "Overseer",
    # Models
    "MessageRole",
    "OverseerMessage",
    "OverseerStatus",
    "PermissionMode",
    "SessionMessage",
    "SessionStatus",
    "SessionView",
    "ToolCallRecord",
    "ToolCallStatus",
    "WakeCondition",
    "WakeConditionType",
    "WakeReason",
    # Config
    "DeckConfig",
    # YAML config (lazy import)
    "load_yaml_config",
    # Collaborators (lazy import)
    "AnthropicModelClient",
    "InMemoryHistory",
    "discover_sessions",
    # Errors
    "CapacityExceededError",
    "DeckError",
    "InvalidPathError",
    "InvalidPermissionModeError",
    "ModelCallError",
    "OverseerBusyError",
    "ProcessLaunchError",
    "SessionBusyError",
    "SessionNotFoundError",
    "ToolValidationError",
    "TurnCancelledError",
    "UnsupportedOperationError",
]


def __getattr__(name: str):
    if name == "SessionManager":
        from .session_manager import SessionManager
        return SessionManager
    if name == "Overseer":
        from .overseer import Overseer
        return Overseer
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    if name == "AnthropicModelClient":
        from .model_client import AnthropicModelClient
        return AnthropicModelClient
    if name == "InMemoryHistory":
        from .history import InMemoryHistory
        return InMemoryHistory
    if name == "discover_sessions":
        from .discovery import discover_sessions
        return discover_sessions
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
