"""Fetch descriptors and the sources that tile an object with them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024


@dataclass(frozen=True, slots=True)
class ByteRange:
    """Inclusive byte bounds of one part."""

    start: int
    end: int

    def __len__(self) -> int:
        return self.end - self.start + 1

    def request_args(self) -> dict[str, str]:
        return {"Range": f"bytes={self.start}-{self.end}"}

    def __str__(self) -> str:
        return f"bytes={self.start}-{self.end}"


@dataclass(frozen=True, slots=True)
class PartNumber:
    """One storage-native multipart segment, numbered from 1."""

    number: int

    def request_args(self) -> dict[str, int]:
        return {"PartNumber": self.number}

    def __str__(self) -> str:
        return f"part {self.number}"


FetchDescriptor = ByteRange | PartNumber


class ByteRangeSource:
    """Tile ``total_size`` bytes into consecutive ranges of ``chunk_size``.

    Iterating starts from offset 0 every time; the last range is short when
    ``total_size`` is not a multiple of ``chunk_size``.
    """

    def __init__(self, total_size: int, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if total_size < 0:
            msg = f"total_size must not be negative, got {total_size}"
            raise ValueError(msg)
        if chunk_size <= 0:
            msg = f"chunk_size must be positive, got {chunk_size}"
            raise ValueError(msg)
        self.total_size = total_size
        self.chunk_size = chunk_size

    def __iter__(self) -> Iterator[ByteRange]:
        start = 0
        while start < self.total_size:
            end = min(start + self.chunk_size, self.total_size) - 1
            yield ByteRange(start, end)
            start += self.chunk_size

    def __len__(self) -> int:
        return -(-self.total_size // self.chunk_size)

    def __repr__(self) -> str:
        return (
            f"ByteRangeSource(total_size={self.total_size}, "
            f"chunk_size={self.chunk_size})"
        )


class PartNumberSource:
    """Yield part numbers 1 through ``part_count``."""

    def __init__(self, part_count: int):
        if part_count < 0:
            msg = f"part_count must not be negative, got {part_count}"
            raise ValueError(msg)
        self.part_count = part_count

    def __iter__(self) -> Iterator[PartNumber]:
        for number in range(1, self.part_count + 1):
            yield PartNumber(number)

    def __len__(self) -> int:
        return self.part_count

    def __repr__(self) -> str:
        return f"PartNumberSource(part_count={self.part_count})"
