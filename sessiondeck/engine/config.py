"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via DECK_* env vars
or a YAML file (see yaml_config.py).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class DeckConfig:
    """Session deck configuration."""

    # Sessions
    max_sessions: int = 10
    buffer_capacity: int = 1000
    # Assistant CLI binary. Empty means auto-detect
    # (~/.claude/local/claude, then `claude` on PATH).
    claude_command: str = ""
    default_model: str = "sonnet"
    # Base directory for relative cwds passed to spawn_session.
    project_root: str = "."
    # Seconds between SIGTERM and SIGKILL when killing a session.
    kill_grace_seconds: float = 5.0

    # Overseer
    overseer_model: str = "claude-sonnet-4-5-20250929"
    overseer_max_tokens: int = 4096
    max_turns: int = 10
    default_buffer_lines: int = 50
    default_search_limit: int = 10
    api_key_env: str = "ANTHROPIC_API_KEY"

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> DeckConfig:
        """Load configuration from DECK_* environment variables."""
        deck_vars = {
            k: v for k, v in os.environ.items() if k.startswith("DECK_")
        }
        if deck_vars:
            logger.info(
                "DeckConfig.from_env: DECK_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(deck_vars.items())),
            )
        else:
            logger.debug("DeckConfig.from_env: no DECK_* env vars set, using defaults")

        config = cls(
            max_sessions=int(os.getenv(
                "DECK_MAX_SESSIONS", str(cls.max_sessions)
            )),
            buffer_capacity=int(os.getenv(
                "DECK_BUFFER_CAPACITY", str(cls.buffer_capacity)
            )),
            claude_command=os.getenv(
                "DECK_CLAUDE_COMMAND", cls.claude_command
            ),
            default_model=os.getenv(
                "DECK_DEFAULT_MODEL", cls.default_model
            ),
            project_root=os.getenv("DECK_PROJECT_ROOT", os.getcwd()),
            kill_grace_seconds=float(os.getenv(
                "DECK_KILL_GRACE", str(cls.kill_grace_seconds)
            )),
            overseer_model=os.getenv(
                "DECK_OVERSEER_MODEL", cls.overseer_model
            ),
            overseer_max_tokens=int(os.getenv(
                "DECK_OVERSEER_MAX_TOKENS", str(cls.overseer_max_tokens)
            )),
            max_turns=int(os.getenv("DECK_MAX_TURNS", str(cls.max_turns))),
            log_level=os.getenv("DECK_LOG_LEVEL", cls.log_level),
        )
        logger.info(
            "DeckConfig.from_env: max_sessions=%d overseer_model=%s project_root=%s",
            config.max_sessions, config.overseer_model, config.project_root,
        )
        return config
