from __future__ import annotations

import pytest

from sessiondeck.engine.history import InMemoryHistory, message_text


def test_message_text_flattens_blocks() -> None:
    text = message_text({"type": "assistant", "content": [
        {"type": "text", "text": "Ran tests"},
        {"type": "tool_use", "name": "Bash", "input": {}},
        {"type": "tool_result", "content": "3 passed"},
        {"type": "thinking", "thinking": "check coverage"},
    ]})
    assert text == "Ran tests\n[tool Bash]\n3 passed\ncheck coverage"


@pytest.mark.asyncio
async def test_search_is_case_insensitive_newest_first() -> None:
    history = InMemoryHistory()
    await history.append("session-1", {"role": "user", "content": "Refactor the Parser"})
    await history.append("session-2", {"type": "assistant", "content": [{"type": "text", "text": "parser done"}]})
    await history.append("session-2", {"role": "user", "content": ""})

    hits = await history.search("PARSER")

    assert len(history) == 2
    assert [(h["session_id"], h["role"]) for h in hits] == [
        ("session-2", "assistant"),
        ("session-1", "user"),
    ]
    assert await history.search("   ") == []
    assert len(await history.search("parser", limit=1)) == 1
