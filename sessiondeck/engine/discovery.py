"""Discovery of past assistant sessions on disk.

The assistant CLI keeps one JSONL transcript per session under
``~/.claude/projects/<project-dir>/<session-id>.jsonl``. A
discovered ``id`` can be passed as ``resume_id`` to
SessionManager.spawn to continue that conversation.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 100
PREVIEW_SCAN_LINES = 10


@dataclass
class DiscoveredSession:
    id: str
    project_dir: str
    last_modified: datetime
    message_count: int
    preview: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_dir": self.project_dir,
            "last_modified": self.last_modified.isoformat(),
            "message_count": self.message_count,
            "preview": self.preview,
        }


def default_projects_dir() -> Path:
    return Path.home() / ".claude" / "projects"


def _preview_from_row(row: dict[str, Any]) -> str:
    if row.get("type") != "user":
        return ""
    message = row.get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    if isinstance(content, str):
        return content[:PREVIEW_CHARS]
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                text = block.get("text")
                if isinstance(text, str) and text:
                    return text[:PREVIEW_CHARS]
                break
    return ""


def read_session_file(path: Path) -> DiscoveredSession:
    """Summarize one transcript. Raises OSError when unreadable."""
    stats = path.stat()
    lines = [
        line for line in path.read_text(encoding="utf-8", errors="replace").split("\n")
        if line
    ]
    preview = ""
    for raw in lines[:PREVIEW_SCAN_LINES]:
        try:
            row = json.loads(raw)
        except json.JSONDecodeError:
            continue
        if not isinstance(row, dict):
            continue
        preview = _preview_from_row(row)
        if preview:
            break

    return DiscoveredSession(
        id=path.stem,
        project_dir=path.parent.name,
        last_modified=datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
        message_count=len(lines),
        preview=preview,
    )


def discover_sessions(
    projects_dir: str | Path | None = None,
    limit: int = 50,
) -> list[DiscoveredSession]:
    """List transcripts newest first, at most *limit* of them."""
    root = Path(projects_dir).expanduser() if projects_dir else default_projects_dir()
    if not root.is_dir():
        logger.info("Projects directory not found: %s", root)
        return []

    sessions: list[DiscoveredSession] = []
    for project in sorted(root.iterdir()):
        if not project.is_dir():
            continue
        for path in sorted(project.glob("*.jsonl")):
            try:
                sessions.append(read_session_file(path))
            except OSError as exc:
                logger.warning("Failed to read session file %s: %s", path, exc)

    sessions.sort(key=lambda s: s.last_modified, reverse=True)
    logger.debug("Discovered %d session(s) under %s", len(sessions), root)
    return sessions[:limit]
