"""YAML configuration loader.

Layers a single YAML file over the env-derived DeckConfig. Keys that
are absent keep their env/default value.

Example YAML:
    sessions:
      max_sessions: 6
      buffer_capacity: 1000
      command: ~/.claude/local/claude
      default_model: sonnet
      project_root: ~/code
      kill_grace_seconds: 5

    overseer:
      model: claude-sonnet-4-5-20250929
      max_tokens: 4096
      max_turns: 10
      api_key_env: ANTHROPIC_API_KEY

    logging:
      level: DEBUG
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from .config import DeckConfig

logger = logging.getLogger(__name__)

# (yaml section, yaml key) -> (DeckConfig field, converter)
_FIELD_MAP: dict[tuple[str, str], tuple[str, type]] = {
    ("sessions", "max_sessions"): ("max_sessions", int),
    ("sessions", "buffer_capacity"): ("buffer_capacity", int),
    ("sessions", "command"): ("claude_command", str),
    ("sessions", "default_model"): ("default_model", str),
    ("sessions", "project_root"): ("project_root", str),
    ("sessions", "kill_grace_seconds"): ("kill_grace_seconds", float),
    ("overseer", "model"): ("overseer_model", str),
    ("overseer", "max_tokens"): ("overseer_max_tokens", int),
    ("overseer", "max_turns"): ("max_turns", int),
    ("overseer", "default_buffer_lines"): ("default_buffer_lines", int),
    ("overseer", "default_search_limit"): ("default_search_limit", int),
    ("overseer", "api_key_env"): ("api_key_env", str),
    ("logging", "level"): ("log_level", str),
}

_PATH_FIELDS = {"claude_command", "project_root"}


def _expand(value: str) -> str:
    return os.path.expandvars(os.path.expanduser(value))


def apply_yaml_data(config: DeckConfig, data: dict[str, Any]) -> DeckConfig:
    """Apply parsed YAML sections onto *config* in place and return it."""
    for (section, key), (field_name, convert) in _FIELD_MAP.items():
        section_data = data.get(section)
        if not isinstance(section_data, dict) or key not in section_data:
            continue
        raw = section_data[key]
        if raw is None:
            continue
        try:
            value = convert(raw)
        except (TypeError, ValueError):
            logger.warning(
                "apply_yaml_data: ignoring %s.%s=%r (expected %s)",
                section, key, raw, convert.__name__,
            )
            continue
        if field_name in _PATH_FIELDS and value:
            value = _expand(value)
        setattr(config, field_name, value)
    return config


def load_yaml_config(
    path: str | Path,
    base: DeckConfig | None = None,
) -> DeckConfig:
    """Load a YAML config file on top of *base* (default: from_env()).

    A missing file is an error; an empty file yields the base config.
    """
    path = Path(path).expanduser()
    logger.info(
        "load_yaml_config: loading %s (exists=%s)", path, path.is_file(),
    )
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Config file {path} must contain a mapping, got {type(data).__name__}"
        )

    config = base if base is not None else DeckConfig.from_env()
    apply_yaml_data(config, data)
    sections = [k for k in data if k in ("sessions", "overseer", "logging")]
    logger.info(
        "load_yaml_config: applied sections %s",
        ", ".join(sections) if sections else "none",
    )
    return config
