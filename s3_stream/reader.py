from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from .errors import MetadataUnavailableError
from .fetcher import S3PartFetcher
from .lines import iter_lines
from .parts import DEFAULT_CHUNK_SIZE, ByteRangeSource, PartNumberSource
from .pipeline import PipelinedAssembler
from .settings import StreamSettings, load_stream_settings_from_env

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .fetcher import ObjectRef

LOG = logging.getLogger("s3_stream.reader")


class StreamMode(StrEnum):
    RANGE = "range"
    MULTIPART = "multipart"


@dataclass(frozen=True, slots=True)
class ReadPlan:
    """How one object will be read, fixed before the first data fetch."""

    mode: StreamMode
    descriptors: ByteRangeSource | PartNumberSource
    total_size: int | None = None


async def select_plan(
    fetcher: S3PartFetcher,
    *,
    multipart: bool = False,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> ReadPlan:
    """Probe the object and decide between multipart and range mode.

    Multipart mode is used only when requested and the object reports a part
    count; otherwise the object is tiled into ``chunk_size`` byte ranges.

    Raises:
        MetadataUnavailableError: the range-mode probe failed.
    """
    if multipart:
        try:
            metadata = await fetcher.probe_metadata(part_number=1)
        except MetadataUnavailableError as error:
            LOG.info(
                "multipart probe failed for %s, falling back to ranges: %s",
                fetcher.object,
                error,
            )
        else:
            if metadata.part_count is not None and metadata.part_count >= 1:
                LOG.debug(
                    "reading %s as %d part(s)", fetcher.object, metadata.part_count
                )
                return ReadPlan(
                    mode=StreamMode.MULTIPART,
                    descriptors=PartNumberSource(metadata.part_count),
                )
            LOG.debug(
                "%s has no multipart structure, falling back to ranges",
                fetcher.object,
            )

    metadata = await fetcher.probe_metadata()
    if metadata.total_size is None:
        LOG.warning("no content length for %s; nothing to read", fetcher.object)
        return ReadPlan(
            mode=StreamMode.RANGE, descriptors=ByteRangeSource(0, chunk_size)
        )
    LOG.debug(
        "reading %s as %d byte(s) in ranges of %d",
        fetcher.object,
        metadata.total_size,
        chunk_size,
    )
    return ReadPlan(
        mode=StreamMode.RANGE,
        descriptors=ByteRangeSource(metadata.total_size, chunk_size),
        total_size=metadata.total_size,
    )


class S3ObjectStream:
    """Forward-only, single-use async iterator over an object's bytes."""

    def __init__(self, assembler: PipelinedAssembler, plan: ReadPlan):
        self.plan = plan
        self._assembler = assembler
        self._chunks = assembler.chunks()

    @property
    def mode(self) -> StreamMode:
        return self.plan.mode

    @property
    def assembler(self) -> PipelinedAssembler:
        return self._assembler

    def __aiter__(self) -> S3ObjectStream:
        return self

    async def __anext__(self) -> bytes:
        return await self._chunks.__anext__()

    async def read(self) -> bytes:
        """Return the remaining bytes of the object."""
        return b"".join([chunk async for chunk in self])

    def iter_lines(
        self, encoding: str = "utf-8", errors: str = "strict"
    ) -> AsyncIterator[str]:
        return iter_lines(self, encoding=encoding, errors=errors)

    async def aclose(self) -> None:
        await self._chunks.aclose()


@asynccontextmanager
async def open_object_stream(
    client: Any,
    obj: ObjectRef,
    settings: StreamSettings | None = None,
) -> AsyncIterator[S3ObjectStream]:
    """Open a session reading ``obj`` through ``client``.

    Example::

        async with open_object_stream(client, ObjectRef("bucket", "key")) as stream:
            async for line in stream.iter_lines():
                ...
    """
    if settings is None:
        settings = load_stream_settings_from_env()
    fetcher = S3PartFetcher(client, obj, read_size=settings.read_size)
    plan = await select_plan(
        fetcher, multipart=settings.multipart, chunk_size=settings.chunk_size
    )
    async with PipelinedAssembler(
        plan.descriptors,
        fetcher,
        preload_count=settings.preload_count,
        empty_body=settings.empty_body,
    ) as assembler:
        stream = S3ObjectStream(assembler, plan)
        try:
            yield stream
        finally:
            await stream.aclose()
