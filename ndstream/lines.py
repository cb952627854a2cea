from __future__ import annotations

import logging
from typing import AsyncIterable, AsyncIterator, Callable, Iterator

LOGGER = logging.getLogger(__name__)

InvalidLineHandler = Callable[[bytes, UnicodeDecodeError], None]


def _log_invalid(raw: bytes, exc: UnicodeDecodeError) -> None:
    LOGGER.warning("Dropping line with invalid UTF-8 (%s): %r", exc.reason, raw[:100])


class LineDecoder:
    """Reassembles newline separated text from arbitrarily split byte chunks.

    Lines are stripped and blank ones dropped. A line that is not valid UTF-8
    goes to ``on_invalid`` and is skipped; the decoder keeps going.
    """

    def __init__(self, on_invalid: InvalidLineHandler | None = None) -> None:
        self._buffer = bytearray()
        self._on_invalid = on_invalid or _log_invalid

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> Iterator[str]:
        if not chunk:
            return
        self._buffer.extend(chunk)
        while True:
            index = self._buffer.find(b"\n")
            if index < 0:
                break
            raw = bytes(self._buffer[:index])
            del self._buffer[: index + 1]
            line = self._decode(raw)
            if line:
                yield line

    def flush(self) -> Iterator[str]:
        if not self._buffer:
            return
        raw = bytes(self._buffer)
        self._buffer.clear()
        line = self._decode(raw)
        if line:
            yield line

    def _decode(self, raw: bytes) -> str | None:
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            self._on_invalid(raw, exc)
            return None
        return text.strip() or None


async def aiter_lines(
    chunks: AsyncIterable[bytes], decoder: LineDecoder | None = None
) -> AsyncIterator[str]:
    decoder = decoder or LineDecoder()
    async for chunk in chunks:
        for line in decoder.feed(chunk):
            yield line
    for line in decoder.flush():
        yield line
