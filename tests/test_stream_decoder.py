"""Tests for line-delimited JSON decoding of the assistant stream."""
from __future__ import annotations

import json

import pytest

from sessiondeck.engine.stream_decoder import StreamDecoder, decode_stream, parse_line

_RECORDS = [
    {"type": "system", "subtype": "init"},
    {"type": "assistant", "message": {"content": [{"type": "text", "text": "héllo ✓"}]}},
    {"type": "result", "session_id": "abc"},
]
_PAYLOAD = "".join(json.dumps(r, ensure_ascii=False) + "\n" for r in _RECORDS).encode("utf-8")


def _decode_in_chunks(data: bytes, split_at: list[int]) -> list[dict]:
    decoder = StreamDecoder()
    records: list[dict] = []
    start = 0
    for end in split_at + [len(data)]:
        records.extend(decoder.feed(data[start:end]))
        start = end
    records.extend(decoder.flush())
    return records


def test_whole_payload_yields_all_records():
    assert _decode_in_chunks(_PAYLOAD, []) == _RECORDS


def test_chunk_boundaries_do_not_change_records():
    # Every single split point, including inside multi-byte characters.
    for i in range(1, len(_PAYLOAD)):
        assert _decode_in_chunks(_PAYLOAD, [i]) == _RECORDS, f"split at {i}"


def test_byte_at_a_time():
    assert _decode_in_chunks(_PAYLOAD, list(range(1, len(_PAYLOAD)))) == _RECORDS


def test_noise_lines_are_dropped():
    decoder = StreamDecoder()
    data = b'\n   \nnot json\n[1, 2]\n"str"\n{"type": "result"}\n'
    assert decoder.feed(data) == [{"type": "result"}]


def test_incomplete_tail_is_retained_until_newline():
    decoder = StreamDecoder()
    assert decoder.feed(b'{"type": "res') == []
    assert decoder.pending == '{"type": "res'
    assert decoder.feed(b'ult"}\n') == [{"type": "result"}]
    assert decoder.pending == ""


def test_flush_parses_unterminated_tail_once():
    decoder = StreamDecoder()
    decoder.feed(b'{"type": "result", "session_id": "x"}')
    assert decoder.flush() == [{"type": "result", "session_id": "x"}]
    assert decoder.flush() == []


def test_feed_after_flush_raises():
    decoder = StreamDecoder()
    decoder.flush()
    with pytest.raises(RuntimeError):
        decoder.feed(b"{}\n")


def test_parse_line_strips_whitespace():
    assert parse_line('  {"a": 1}\r') == {"a": 1}
    assert parse_line("") is None


@pytest.mark.asyncio
async def test_decode_stream_over_async_chunks():
    async def chunks():
        yield _PAYLOAD[:7]
        yield _PAYLOAD[7:40]
        yield _PAYLOAD[40:]

    records = [r async for r in decode_stream(chunks())]
    assert records == _RECORDS
