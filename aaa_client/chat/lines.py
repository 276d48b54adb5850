"""Incremental line assembly over a chunked byte or text stream."""

from __future__ import annotations

import codecs
from typing import AsyncIterable, AsyncIterator


class ChunkLineAssembler:
    """Turn arbitrary chunks into complete ``\\n``-terminated lines.

    Bytes are decoded incrementally so a multi-byte character split across
    two chunks is reassembled rather than replaced. The trailing fragment
    after the last newline is held back until the next chunk or ``finish()``.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes | str) -> list[str]:
        """Consume one chunk and return every line completed by it."""
        if isinstance(chunk, (bytes, bytearray)):
            text = self._decoder.decode(bytes(chunk))
        else:
            text = chunk
        if not text:
            return []

        self._buffer += text
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return lines

    def finish(self) -> list[str]:
        """Flush the decoder and return the trailing partial line, if any."""
        self._buffer += self._decoder.decode(b"", final=True)
        tail, self._buffer = self._buffer, ""
        return [tail] if tail else []

    @property
    def pending(self) -> str:
        """Text buffered since the last complete line."""
        return self._buffer


async def aiter_lines(
    chunks: AsyncIterable[bytes | str], encoding: str = "utf-8"
) -> AsyncIterator[str]:
    """Yield lines from ``chunks``, ending with the synthetic trailing line."""
    assembler = ChunkLineAssembler(encoding)
    async for chunk in chunks:
        for line in assembler.feed(chunk):
            yield line
    for line in assembler.finish():
        yield line
