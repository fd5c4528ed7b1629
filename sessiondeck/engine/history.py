"""Chat-history collaborator.

The persistent indexer lives outside this package; the deck only
needs ``search`` and ``append``. InMemoryHistory satisfies the same
protocol for the CLI and tests.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Protocol


class HistoryStore(Protocol):
    async def search(self, query: str, limit: int = 10) -> list[dict[str, Any]]: ...

    async def append(self, session_id: str, message: dict[str, Any]) -> None: ...


@dataclass
class HistoryEntry:
    session_id: str
    role: str
    content: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }


def message_text(message: dict[str, Any]) -> str:
    """Flatten a session message dict into searchable text."""
    content = message.get("content")
    if isinstance(content, str):
        return content
    parts: list[str] = []
    if isinstance(content, list):
        for block in content:
            if not isinstance(block, dict):
                continue
            btype = block.get("type")
            if btype == "text":
                parts.append(str(block.get("text", "")))
            elif btype == "thinking":
                parts.append(str(block.get("thinking", "")))
            elif btype == "tool_use":
                parts.append(f"[tool {block.get('name', '')}]")
            elif btype == "tool_result":
                parts.append(str(block.get("content", "")))
    return "\n".join(p for p in parts if p)


class InMemoryHistory:
    """Process-lifetime history with case-insensitive substring search."""

    def __init__(self) -> None:
        self._entries: list[HistoryEntry] = []

    async def append(self, session_id: str, message: dict[str, Any]) -> None:
        role = message.get("role") or message.get("type") or "assistant"
        text = message_text(message)
        if not text:
            return
        self._entries.append(HistoryEntry(
            session_id=session_id, role=str(role), content=text,
        ))

    async def search(self, query: str, limit: int = 10) -> list[dict[str, Any]]:
        needle = query.lower().strip()
        if not needle:
            return []
        matches: list[dict[str, Any]] = []
        for entry in reversed(self._entries):
            if needle in entry.content.lower():
                matches.append(entry.to_dict())
                if len(matches) >= limit:
                    break
        return matches

    def __len__(self) -> int:
        return len(self._entries)
