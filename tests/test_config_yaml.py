from __future__ import annotations

import logging
import os
from pathlib import Path

import pytest

from sessiondeck.engine.config import DeckConfig
from sessiondeck.engine.yaml_config import apply_yaml_data, load_yaml_config


@pytest.fixture(autouse=True)
def _clean_deck_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("DECK_"):
            monkeypatch.delenv(key)


def test_defaults() -> None:
    cfg = DeckConfig()
    assert cfg.max_sessions == 10
    assert cfg.buffer_capacity == 1000
    assert cfg.default_model == "sonnet"
    assert cfg.max_turns == 10
    assert cfg.overseer_max_tokens == 4096


def test_from_env_overrides(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("DECK_MAX_SESSIONS", "4")
    monkeypatch.setenv("DECK_KILL_GRACE", "1.5")
    monkeypatch.setenv("DECK_OVERSEER_MODEL", "claude-test")
    monkeypatch.setenv("DECK_PROJECT_ROOT", str(tmp_path))
    monkeypatch.setenv("DECK_MAX_TURNS", "3")

    cfg = DeckConfig.from_env()

    assert cfg.max_sessions == 4
    assert cfg.kill_grace_seconds == 1.5
    assert cfg.overseer_model == "claude-test"
    assert cfg.project_root == str(tmp_path)
    assert cfg.max_turns == 3


def test_from_env_project_root_defaults_to_cwd(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    assert DeckConfig.from_env().project_root == os.getcwd()


def test_yaml_sections_layer_over_env(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("DECK_MAX_SESSIONS", "4")
    monkeypatch.setenv("HOME", str(tmp_path))
    path = tmp_path / "deck.yaml"
    path.write_text(
        "sessions:\n"
        "  buffer_capacity: 200\n"
        "  command: ~/bin/claude\n"
        "  project_root: ~/code\n"
        "overseer:\n"
        "  model: claude-yaml\n"
        "  max_turns: 5\n"
        "logging:\n"
        "  level: DEBUG\n"
    )

    cfg = load_yaml_config(path)

    assert cfg.max_sessions == 4
    assert cfg.buffer_capacity == 200
    assert cfg.claude_command == str(tmp_path / "bin" / "claude")
    assert cfg.project_root == str(tmp_path / "code")
    assert cfg.overseer_model == "claude-yaml"
    assert cfg.max_turns == 5
    assert cfg.log_level == "DEBUG"


def test_empty_yaml_returns_base(tmp_path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("")
    base = DeckConfig(max_sessions=7)
    assert load_yaml_config(path, base=base) is base
    assert base.max_sessions == 7


def test_missing_file_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_yaml_config(tmp_path / "nope.yaml")


def test_non_mapping_raises(tmp_path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        load_yaml_config(path)


def test_bad_values_are_ignored_with_warning(caplog) -> None:
    cfg = DeckConfig()
    with caplog.at_level(logging.WARNING):
        apply_yaml_data(cfg, {"sessions": {"max_sessions": "many", "default_model": None}})
    assert cfg.max_sessions == 10
    assert cfg.default_model == "sonnet"
    assert "sessions.max_sessions" in caplog.text


def test_unknown_sections_are_ignored(tmp_path) -> None:
    path = tmp_path / "deck.yaml"
    path.write_text("extras:\n  foo: 1\nsessions: not-a-mapping\n")
    cfg = load_yaml_config(path, base=DeckConfig())
    assert cfg == DeckConfig()


def test_path_fields_expand_env_vars(monkeypatch) -> None:
    monkeypatch.setenv("DECK_TEST_ROOT", "/srv/projects")
    cfg = apply_yaml_data(DeckConfig(), {"sessions": {"project_root": "$DECK_TEST_ROOT/app"}})
    assert cfg.project_root == str(Path("/srv/projects/app"))
