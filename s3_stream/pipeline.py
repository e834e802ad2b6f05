"""Bounded-lookahead assembly of an object from independently fetched parts.

The assembler keeps at most ``preload_count`` fetches in flight. Fetches run
concurrently and may finish in any order, but parts are always handed to the
consumer in the order they were issued: delivery drains the queue from the
front, so no reordering buffer is needed.

Backpressure is count-based only. Parts of very different sizes can still make
the memory held by resolved-but-undelivered parts vary widely.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING, Literal, Protocol, Self

import anyio

from .errors import EmptyBodyError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable
    from types import TracebackType

    from anyio.abc import TaskGroup

    from .parts import FetchDescriptor

LOG = logging.getLogger("s3_stream.pipeline")


class PartStream(Protocol):
    def __aiter__(self) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None: ...


class PartFetcher(Protocol):
    async def fetch(self, descriptor: FetchDescriptor) -> PartStream | None: ...


class PendingFetch:
    """A fetch that has been issued and may not have completed yet."""

    def __init__(self, descriptor: FetchDescriptor) -> None:
        self.descriptor = descriptor
        self._resolved = anyio.Event()
        self._part: PartStream | None = None
        self._error: Exception | None = None

    @property
    def resolved(self) -> bool:
        return self._resolved.is_set()

    async def run(self, fetcher: PartFetcher) -> None:
        try:
            self._part = await fetcher.fetch(self.descriptor)
        except Exception as error:  # noqa: BLE001 - re-raised from result()
            self._error = error
        finally:
            self._resolved.set()

    async def result(self) -> PartStream | None:
        await self._resolved.wait()
        if self._error is not None:
            raise self._error
        return self._part

    async def discard(self) -> None:
        part, self._part = self._part, None
        if part is not None:
            await part.aclose()


class PipelinedAssembler:
    """Turn a descriptor sequence into one ordered stream of byte chunks.

    Must be entered as an async context manager; the fetches it issues run in
    a task group owned by that context. Leaving the context cancels whatever
    is still in flight and closes parts that arrived but were never read.

    Args:
        descriptors: Parts to fetch, in object order.
        fetcher: Retrieves one part; returns ``None`` for an empty body.
        preload_count: Maximum number of fetches in the queue at once.
        empty_body: ``"end"`` treats an empty body as the end of the object,
            ``"error"`` raises :class:`EmptyBodyError` instead.
    """

    def __init__(
        self,
        descriptors: Iterable[FetchDescriptor],
        fetcher: PartFetcher,
        *,
        preload_count: int = 1,
        empty_body: Literal["end", "error"] = "end",
    ) -> None:
        if preload_count < 1:
            msg = f"preload_count must be at least 1, got {preload_count}"
            raise ValueError(msg)
        self._descriptors = iter(descriptors)
        self._fetcher = fetcher
        self._preload_count = preload_count
        self._empty_body = empty_body
        self._in_flight: deque[PendingFetch] = deque()
        self._exhausted = False
        self._finished = False
        self._issued = 0
        self._task_group: TaskGroup | None = None

    @property
    def preload_count(self) -> int:
        return self._preload_count

    @property
    def in_flight(self) -> int:
        """Number of issued fetches not yet handed to the consumer."""
        return len(self._in_flight)

    @property
    def issued(self) -> int:
        return self._issued

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    async def __aenter__(self) -> Self:
        if self._task_group is not None:
            msg = "assembler is already active"
            raise RuntimeError(msg)
        task_group = anyio.create_task_group()
        await task_group.__aenter__()
        self._task_group = task_group
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        task_group, self._task_group = self._task_group, None
        assert task_group is not None
        self._finished = True
        abandoned = list(self._in_flight)
        self._in_flight.clear()
        if abandoned:
            LOG.debug("cancelling %d in-flight fetch(es)", len(abandoned))
        task_group.cancel_scope.cancel()
        try:
            # exc_val is not passed on: the task group would wrap it in an
            # exception group.
            await task_group.__aexit__(None, None, None)
        finally:
            with anyio.CancelScope(shield=True):
                for pending in abandoned:
                    await pending.discard()

    def _top_up(self) -> None:
        if self._task_group is None:
            msg = "PipelinedAssembler must be used as an async context manager"
            raise RuntimeError(msg)
        while not self._exhausted and len(self._in_flight) < self._preload_count:
            descriptor = next(self._descriptors, None)
            if descriptor is None:
                self._exhausted = True
                LOG.debug(
                    "descriptor source exhausted after %d fetch(es)", self._issued
                )
                break
            pending = PendingFetch(descriptor)
            self._task_group.start_soon(
                pending.run, self._fetcher, name=f"fetch {descriptor}"
            )
            self._in_flight.append(pending)
            self._issued += 1
            LOG.debug(
                "issued fetch for %s (in flight: %d)",
                descriptor,
                len(self._in_flight),
            )

    async def next_part(self) -> PartStream | None:
        """Wait for the oldest issued fetch and return its part.

        Returns ``None`` once every part has been delivered. After a failure
        or the end of the stream no further fetches are issued. If the wait is
        cancelled the fetch stays at the front of the queue, so a later call
        picks it up again and teardown still closes its part.
        """
        if self._finished:
            return None
        self._top_up()
        if not self._in_flight:
            self._finished = True
            return None
        pending = self._in_flight[0]
        try:
            part = await pending.result()
        except Exception:
            self._in_flight.popleft()
            self._finished = True
            raise
        self._in_flight.popleft()
        if part is None:
            self._finished = True
            if self._empty_body == "error":
                msg = f"backend returned no body for {pending.descriptor}"
                raise EmptyBodyError(msg, descriptor=pending.descriptor)
            LOG.warning(
                "no body for %s; treating it as the end of the object",
                pending.descriptor,
            )
            return None
        LOG.debug("delivering %s", pending.descriptor)
        return part

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield every byte chunk of every part, in object order."""
        while (part := await self.next_part()) is not None:
            try:
                async for chunk in part:
                    if chunk:
                        yield chunk
            finally:
                await part.aclose()
