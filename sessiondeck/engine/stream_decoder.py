"""Line-delimited JSON decoding for the assistant's stream output.

The CLI (``--output-format stream-json``) writes one JSON object per
line, but reads hand us arbitrary byte chunks. StreamDecoder carries
the incomplete tail between chunks so that the records produced are
the same however the stream was split. A decoder is single-use: start
a new one for every process.
"""
from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

logger = logging.getLogger(__name__)


class StreamDecoder:
    """Incremental UTF-8 + newline splitter + JSON parser."""

    def __init__(self) -> None:
        self._text_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._carry = ""
        self._closed = False

    @property
    def pending(self) -> str:
        """Incomplete trailing line waiting for more data."""
        return self._carry

    def decode_text(self, data: bytes) -> str:
        """Decode a byte chunk, holding back split multi-byte sequences."""
        return self._text_decoder.decode(data)

    def feed_text(self, text: str) -> list[dict[str, Any]]:
        """Add decoded text and return every record completed by it."""
        if self._closed:
            raise RuntimeError("StreamDecoder already flushed; create a new one")
        if not text:
            return []
        self._carry += text
        lines = self._carry.split("\n")
        self._carry = lines.pop()
        return [r for r in (parse_line(line) for line in lines) if r is not None]

    def feed(self, data: bytes) -> list[dict[str, Any]]:
        return self.feed_text(self.decode_text(data))

    def flush(self) -> list[dict[str, Any]]:
        """End of stream: parse whatever is left in the carry buffer."""
        if self._closed:
            return []
        tail = self._carry + self._text_decoder.decode(b"", final=True)
        self._carry = ""
        self._closed = True
        records: list[dict[str, Any]] = []
        for line in tail.split("\n"):
            record = parse_line(line)
            if record is not None:
                records.append(record)
        return records


def parse_line(line: str) -> dict[str, Any] | None:
    """Parse one output line. Blank, non-JSON and non-object lines are noise."""
    stripped = line.strip()
    if not stripped:
        return None
    try:
        record = json.loads(stripped)
    except (json.JSONDecodeError, ValueError):
        logger.debug("Dropping non-JSON output line: %.80s", stripped)
        return None
    if not isinstance(record, dict):
        return None
    return record


async def decode_stream(
    chunks: AsyncIterable[bytes],
) -> AsyncIterator[dict[str, Any]]:
    """Lazily yield records from an async byte-chunk source."""
    decoder = StreamDecoder()
    async for chunk in chunks:
        for record in decoder.feed(chunk):
            yield record
    for record in decoder.flush():
        yield record
