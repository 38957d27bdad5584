"""
Bounded line framing for process output.

``docker events --format json`` writes one JSON object per line, but the
pipe hands the reader arbitrary chunks. LineFramingDecoder re-frames those
chunks into complete lines while holding at most ``capacity`` bytes of an
unfinished line, so a misbehaving producer cannot make memory grow without
bound.
"""

from collections import deque
from collections.abc import AsyncIterator, Iterator

from devforward.config import config
from devforward.utils.logger import get_logger

logger = get_logger(__name__)


class LineTooLongError(ValueError):
    """
    An unterminated line does not fit in the line buffer.

    Attributes:
        line: Buffered content plus the fragment that did not fit.
        buffer_size: Configured buffer capacity.
        buffer_free: Free buffer space at the time of the write.
        consumed: Bytes of the chunk that were framed into complete lines
            before the overflow.
    """

    def __init__(self, line: bytes, buffer_size: int, buffer_free: int, consumed: int):
        self.line = line
        self.buffer_size = buffer_size
        self.buffer_free = buffer_free
        self.consumed = consumed
        super().__init__(
            f"line does not contain newline and is {self.excess} bytes too long "
            f"for buffer (buffer size: {buffer_size})"
        )

    @property
    def excess(self) -> int:
        return len(self.line) - self.buffer_size


class LineFramingDecoder:
    """
    Incremental splitter turning byte chunks into text lines.

    Both ``\\n`` and ``\\r\\n`` terminate a line; the terminator is not part of
    the line. The result does not depend on where chunk boundaries fall.
    Each instance frames a single stream.
    """

    def __init__(self, capacity: int | None = None, encoding: str = "utf-8"):
        self.capacity = capacity or config.LINE_BUFFER_SIZE
        self.encoding = encoding
        self._buf = bytearray(self.capacity)
        self._used = 0
        self._lines: deque[str] = deque()
        self._discarding = False

    @property
    def buffered(self) -> int:
        """Bytes of the pending partial line."""
        return self._used

    @property
    def free(self) -> int:
        return self.capacity - self._used

    def _decode(self, data: bytes) -> str:
        return data.decode(self.encoding, errors="replace")

    def write(self, chunk: bytes) -> int:
        """
        Feed a chunk of the stream.

        Returns:
            Number of bytes consumed (always ``len(chunk)`` on success).

        Raises:
            LineTooLongError: If the unterminated tail of ``chunk`` plus the
                pending partial line exceeds the buffer. Lines completed
                earlier in the chunk are still available from ``lines()``
                and the pending partial line is left untouched.
        """
        chunk = bytes(chunk)
        total = len(chunk)
        first = 0

        if self._discarding:
            newline = chunk.find(b"\n")
            if newline < 0:
                return total
            first = newline + 1
            self._discarding = False

        while True:
            newline = chunk.find(b"\n", first)
            if newline < 0:
                break

            line = bytes(self._buf[: self._used]) + chunk[first:newline]
            self._used = 0
            # The \r may have arrived at the end of the previous chunk
            if line.endswith(b"\r"):
                line = line[:-1]
            self._lines.append(self._decode(line))

            first = newline + 1

        if first < total:
            remaining = total - first
            buffer_free = self.capacity - self._used
            if remaining > buffer_free:
                line = bytes(self._buf[: self._used]) + chunk[first:]
                raise LineTooLongError(line, self.capacity, buffer_free, consumed=first)

            self._buf[self._used : self._used + remaining] = chunk[first:]
            self._used += remaining

        return total

    def lines(self) -> Iterator[str]:
        """Yield (and remove) the lines completed so far, oldest first."""
        while self._lines:
            yield self._lines.popleft()

    def flush(self) -> str | None:
        """
        Return the pending partial line and clear the buffer.

        Returns None when nothing is buffered, so flushing right after a
        terminator never produces an empty line.
        """
        if self._used == 0:
            return None
        line = self._decode(bytes(self._buf[: self._used]))
        self._used = 0
        return line

    def discard(self) -> None:
        """
        Drop the pending partial line and skip input up to the next terminator.

        Used to resynchronise after a LineTooLongError.
        """
        self._used = 0
        self._discarding = True


async def iter_lines(
    chunks: AsyncIterator[bytes],
    decoder: LineFramingDecoder | None = None,
) -> AsyncIterator[str]:
    """
    Frame an async stream of byte chunks into lines.

    Overlong lines are logged and skipped. A trailing unterminated line is
    flushed once the stream ends.
    """
    decoder = decoder or LineFramingDecoder()

    async for chunk in chunks:
        try:
            decoder.write(chunk)
        except LineTooLongError as e:
            logger.error(f"Skipping overlong line: {e}")
            decoder.discard()
        for line in decoder.lines():
            yield line

    tail = decoder.flush()
    if tail is not None:
        yield tail
