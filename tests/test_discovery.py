from __future__ import annotations

import json
import os
from pathlib import Path

from sessiondeck.engine.discovery import discover_sessions, read_session_file


def _write_transcript(path: Path, rows: list, mtime: float) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [r if isinstance(r, str) else json.dumps(r) for r in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    os.utime(path, (mtime, mtime))


def test_missing_projects_dir(tmp_path) -> None:
    assert discover_sessions(tmp_path / "nope") == []


def test_sessions_sorted_newest_first_with_previews(tmp_path) -> None:
    _write_transcript(tmp_path / "-home-me-api" / "old.jsonl", [
        {"type": "summary", "summary": "x"},
        {"type": "user", "message": {"role": "user", "content": "fix the login bug"}},
    ], mtime=1_000)
    _write_transcript(tmp_path / "-home-me-web" / "new.jsonl", [
        "not json at all",
        {"type": "user", "message": {"content": [
            {"type": "tool_result", "content": "ignored"},
            {"type": "text", "text": "y" * 300},
        ]}},
        {"type": "assistant", "message": {"content": [{"type": "text", "text": "ok"}]}},
    ], mtime=2_000)
    (tmp_path / "stray-file.txt").write_text("ignore me")
    (tmp_path / "-home-me-web" / "notes.txt").write_text("ignore me too")

    sessions = discover_sessions(tmp_path)

    assert [s.id for s in sessions] == ["new", "old"]
    assert sessions[0].project_dir == "-home-me-web"
    assert sessions[0].message_count == 3
    assert sessions[0].preview == "y" * 100
    assert sessions[1].preview == "fix the login bug"
    assert sessions[1].to_dict()["last_modified"].startswith("1970-01-01T00:16:40")


def test_limit(tmp_path) -> None:
    for i in range(5):
        _write_transcript(
            tmp_path / "proj" / f"s{i}.jsonl",
            [{"type": "user", "message": {"content": f"task {i}"}}],
            mtime=1_000 + i,
        )
    sessions = discover_sessions(tmp_path, limit=2)
    assert [s.id for s in sessions] == ["s4", "s3"]


def test_preview_only_scans_first_lines(tmp_path) -> None:
    rows = [{"type": "system"} for _ in range(10)]
    rows.append({"type": "user", "message": {"content": "too late"}})
    path = tmp_path / "proj" / "late.jsonl"
    _write_transcript(path, rows, mtime=1_000)
    session = read_session_file(path)
    assert session.preview == ""
    assert session.message_count == 11
