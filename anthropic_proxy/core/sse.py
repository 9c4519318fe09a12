"""SSE (Server-Sent Events) framing utilities.

The backend stream arrives as arbitrary byte reads; records may be split
across reads or several may share one read. ``SSERecordBuffer`` turns those
reads into complete records, ``iter_sse_records`` drives it over an async
byte stream.
"""

import codecs
import json
from typing import Any, AsyncIterator, Iterator

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class SSERecordBuffer:
    """Incremental splitter of an SSE byte stream into records.

    Bytes are decoded incrementally so a multi-byte UTF-8 character cut by a
    read boundary is still decoded correctly. Line endings are normalised to
    ``\\n``; a record ends at the first blank line.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Add bytes and return every record completed by them."""
        self._buffer += self._decoder.decode(chunk)
        # A "\r" left at the end of the previous read pairs up here
        self._buffer = self._buffer.replace("\r\n", "\n")

        records: list[str] = []
        while True:
            pos = self._buffer.find("\n\n")
            if pos < 0:
                break
            record = self._buffer[:pos]
            self._buffer = self._buffer[pos + 2:]
            if record.strip():
                records.append(record)
        return records

    def flush(self) -> list[str]:
        """Return the trailing record of a stream that lacks a final blank line."""
        self._buffer += self._decoder.decode(b"", final=True)
        record, self._buffer = self._buffer.replace("\r\n", "\n"), ""
        return [record] if record.strip() else []

    @property
    def pending(self) -> str:
        return self._buffer


async def iter_sse_records(byte_stream: AsyncIterator[bytes]) -> AsyncIterator[str]:
    """Lazily yield complete SSE records from an async byte stream.

    Not restartable; errors raised by ``byte_stream`` propagate to the caller.
    """
    buffer = SSERecordBuffer()
    async for chunk in byte_stream:
        if not chunk:
            continue
        for record in buffer.feed(chunk):
            yield record
    for record in buffer.flush():
        yield record


def iter_data_payloads(record: str) -> Iterator[str]:
    """Yield the payload of every ``data:`` line in a record."""
    for line in record.split("\n"):
        if not line.startswith(DATA_PREFIX):
            continue
        payload = line[len(DATA_PREFIX):]
        if payload.startswith(" "):
            payload = payload[1:]
        yield payload


def format_sse_event(event_type: str, data: Any) -> bytes:
    """Encode one named SSE event with a JSON data line."""
    json_str = json.dumps(data, ensure_ascii=False)
    return f"event: {event_type}\ndata: {json_str}\n\n".encode("utf-8")
