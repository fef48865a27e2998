"""
sse_decoder.py — Line assembly and frame extraction for chat event streams

Decodes newline-delimited frames from async byte streams (httpx response.aiter_bytes()).
Handles: chunks split mid-line or mid-character, data: prefix stripping, [DONE] sentinel.

Only `data:` lines carry payloads. Blank separators and other framing lines
(event:, id:, retry:, comments) are skipped without error.
"""

import codecs
from dataclasses import dataclass
from typing import AsyncGenerator, AsyncIterable, Optional

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class SSEFrame:
    """One data: line with the prefix and surrounding whitespace removed."""
    data: str

    @property
    def is_sentinel(self) -> bool:
        return self.data == DONE_SENTINEL


async def iter_lines(stream: AsyncIterable[bytes]) -> AsyncGenerator[str, None]:
    """Assemble complete lines from an async byte stream.

    Bytes are decoded incrementally, so a multi-byte UTF-8 character split
    across two chunks is only emitted once both halves have arrived. The text
    after the last newline is carried into the next chunk. Whatever remains
    when the stream ends is discarded: a line without its terminator is not
    a frame. A leading byte-order mark is dropped.
    """
    decoder = codecs.getincrementaldecoder("utf-8-sig")(errors="replace")
    buffer = ""

    async for chunk in stream:
        buffer += decoder.decode(chunk)
        lines = buffer.split("\n")
        buffer = lines.pop()
        for line in lines:
            yield line


def extract_frame(line: str) -> Optional[SSEFrame]:
    """Return the frame carried by ``line``, or None if it is not a data line."""
    if not line.startswith(DATA_PREFIX):
        return None
    return SSEFrame(data=line[len(DATA_PREFIX):].strip())


async def iter_frames(stream: AsyncIterable[bytes]) -> AsyncGenerator[SSEFrame, None]:
    """Yield data frames from a byte stream, skipping non-frame lines."""
    lines = iter_lines(stream)
    try:
        async for line in lines:
            frame = extract_frame(line)
            if frame is not None:
                yield frame
    finally:
        await lines.aclose()
