"""Tests for line framing of process output."""

import pytest

from devforward.docker.line_stream import LineFramingDecoder, LineTooLongError, iter_lines


def _collect(decoder: LineFramingDecoder, chunks: list[bytes]) -> list[str]:
    result: list[str] = []
    for chunk in chunks:
        assert decoder.write(chunk) == len(chunk)
        result.extend(decoder.lines())
    return result


async def _chunks(*chunks: bytes):
    for chunk in chunks:
        yield chunk


# =============================================================================
# Framing
# =============================================================================


def test_lines_independent_of_chunk_boundaries():
    data = b'{"a":1}\nbb\r\n\nccc\n'
    expected = ['{"a":1}', "bb", "", "ccc"]

    for split in range(len(data) + 1):
        decoder = LineFramingDecoder(64)
        assert _collect(decoder, [data[:split], data[split:]]) == expected

    decoder = LineFramingDecoder(64)
    assert _collect(decoder, [data[i : i + 1] for i in range(len(data))]) == expected


def test_carriage_return_split_from_newline():
    decoder = LineFramingDecoder(16)
    assert _collect(decoder, [b"abc\r", b"\ndef\n"]) == ["abc", "def"]


def test_partial_line_is_kept_until_terminated():
    decoder = LineFramingDecoder(16)
    assert _collect(decoder, [b"hel", b"lo"]) == []
    assert decoder.buffered == 5
    assert decoder.free == 11

    assert _collect(decoder, [b" world\n"]) == ["hello world"]
    assert decoder.buffered == 0


def test_line_exactly_filling_the_buffer_is_accepted():
    decoder = LineFramingDecoder(8)
    assert _collect(decoder, [b"1234", b"5678", b"\n"]) == ["12345678"]


def test_invalid_utf8_is_replaced():
    decoder = LineFramingDecoder(16)
    assert _collect(decoder, [b"\xffok\n"]) == ["\ufffdok"]


# =============================================================================
# Overflow
# =============================================================================


def test_overlong_tail_reports_excess_and_consumed():
    decoder = LineFramingDecoder(8)

    with pytest.raises(LineTooLongError) as exc_info:
        decoder.write(b"ok\n0123456789")

    err = exc_info.value
    assert err.consumed == 3
    assert err.buffer_size == 8
    assert err.buffer_free == 8
    assert err.line == b"0123456789"
    assert err.excess == 2
    assert "2 bytes too long" in str(err)

    # Lines completed before the overflow are still delivered
    assert list(decoder.lines()) == ["ok"]
    assert decoder.buffered == 0


def test_overflow_includes_pending_partial_line():
    decoder = LineFramingDecoder(8)
    decoder.write(b"abcd")

    with pytest.raises(LineTooLongError) as exc_info:
        decoder.write(b"efghij")

    err = exc_info.value
    assert err.line == b"abcdefghij"
    assert err.buffer_free == 4
    assert err.consumed == 0
    assert err.excess == 2
    assert decoder.buffered == 4


def test_discard_skips_to_next_newline():
    decoder = LineFramingDecoder(4)
    with pytest.raises(LineTooLongError):
        decoder.write(b"toolong")

    decoder.discard()
    assert _collect(decoder, [b"stillgoing"]) == []
    assert _collect(decoder, [b"junk\nok\n"]) == ["ok"]


# =============================================================================
# Flush
# =============================================================================


def test_flush_returns_pending_line_once():
    decoder = LineFramingDecoder(16)
    decoder.write(b"tail")

    assert decoder.flush() == "tail"
    assert decoder.flush() is None


def test_flush_after_terminator_returns_none():
    decoder = LineFramingDecoder(16)
    assert _collect(decoder, [b"line\n"]) == ["line"]
    assert decoder.flush() is None


# =============================================================================
# iter_lines
# =============================================================================


@pytest.mark.asyncio
async def test_iter_lines_skips_overlong_line_and_flushes_tail():
    chunks = _chunks(b"one\ntw", b"o\n", b"x" * 20, b"yy\nthree\nfour")

    lines = [line async for line in iter_lines(chunks, LineFramingDecoder(8))]

    assert lines == ["one", "two", "three", "four"]


@pytest.mark.asyncio
async def test_iter_lines_empty_stream():
    lines = [line async for line in iter_lines(_chunks(), LineFramingDecoder(8))]
    assert lines == []
