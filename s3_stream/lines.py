"""Split a byte-chunk stream into text lines."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator


def _decode(line: bytes, encoding: str, errors: str) -> str:
    if line.endswith(b"\r"):
        line = line[:-1]
    return line.decode(encoding, errors)


async def iter_lines(
    chunks: AsyncIterable[bytes],
    encoding: str = "utf-8",
    errors: str = "strict",
) -> AsyncIterator[str]:
    """Yield the lines of ``chunks`` without their terminators.

    ``\\n`` ends a line and a ``\\r`` before it is dropped. A final line with
    no terminator is still yielded; a trailing terminator does not produce an
    extra empty line.
    """
    buffer = b""
    async for chunk in chunks:
        buffer += chunk
        *complete, buffer = buffer.split(b"\n")
        for line in complete:
            yield _decode(line, encoding, errors)
    if buffer:
        yield _decode(buffer, encoding, errors)
