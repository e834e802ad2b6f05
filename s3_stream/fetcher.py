from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any

from anyio import CancelScope, to_thread
from botocore.exceptions import BotoCoreError, ClientError

from .errors import FetchFailedError, MetadataUnavailableError
from .settings import DEFAULT_READ_SIZE

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from .parts import FetchDescriptor

LOG = logging.getLogger("s3_stream.fetcher")


async def _run_sync(func: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Any:
    return await to_thread.run_sync(partial(func, *args, **kwargs))


def _status_code(error: Exception) -> int | None:
    if not isinstance(error, ClientError):
        return None
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return int(status) if status is not None else None


@dataclass(frozen=True, slots=True)
class ObjectRef:
    """Identifies the object a session reads."""

    bucket: str
    key: str
    version_id: str | None = None

    def request_args(self) -> dict[str, str]:
        args = {"Bucket": self.bucket, "Key": self.key}
        if self.version_id is not None:
            args["VersionId"] = self.version_id
        return args

    def __str__(self) -> str:
        suffix = f"?versionId={self.version_id}" if self.version_id else ""
        return f"s3://{self.bucket}/{self.key}{suffix}"


@dataclass(frozen=True, slots=True)
class ObjectMetadata:
    total_size: int | None = None
    part_count: int | None = None


class S3PartBody:
    """Async view over the streaming body of one GET response."""

    def __init__(
        self,
        body: Any,
        descriptor: FetchDescriptor,
        read_size: int = DEFAULT_READ_SIZE,
    ):
        self.descriptor = descriptor
        self._body = body
        self._read_size = read_size
        self._closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            try:
                chunk = await _run_sync(self._body.read, self._read_size)
            except BotoCoreError as error:
                msg = f"reading {self.descriptor} failed: {error}"
                raise FetchFailedError(msg, descriptor=self.descriptor) from error
            if not chunk:
                break
            yield chunk

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await _run_sync(self._body.close)


class S3PartFetcher:
    """Issue the HEAD and GET requests of one session against a boto3 client."""

    def __init__(
        self, client: Any, obj: ObjectRef, *, read_size: int = DEFAULT_READ_SIZE
    ):
        self._client = client
        self._object = obj
        self._read_size = read_size

    @property
    def object(self) -> ObjectRef:
        return self._object

    async def probe_metadata(self, part_number: int | None = None) -> ObjectMetadata:
        """HEAD the object, optionally for one part.

        Raises:
            MetadataUnavailableError: the request failed.
        """
        head_kwargs: dict[str, Any] = self._object.request_args()
        if part_number is not None:
            head_kwargs["PartNumber"] = part_number
        try:
            result = await _run_sync(self._client.head_object, **head_kwargs)
        except (ClientError, BotoCoreError) as error:
            msg = f"metadata probe failed for {self._object}: {error}"
            raise MetadataUnavailableError(
                msg, status_code=_status_code(error)
            ) from error
        metadata = ObjectMetadata(
            total_size=result.get("ContentLength"),
            part_count=result.get("PartsCount"),
        )
        LOG.debug(
            "HEAD %s part=%s -> size=%s parts=%s",
            self._object,
            part_number,
            metadata.total_size,
            metadata.part_count,
        )
        return metadata

    async def fetch(self, descriptor: FetchDescriptor) -> S3PartBody | None:
        """GET one part; ``None`` when the response carries no body.

        Raises:
            FetchFailedError: the request failed.
        """
        get_kwargs: dict[str, Any] = {
            **self._object.request_args(),
            **descriptor.request_args(),
        }
        try:
            # The thread runs to completion either way; the shield keeps its
            # response so a cancelled session can still close the body.
            with CancelScope(shield=True):
                result = await _run_sync(self._client.get_object, **get_kwargs)
        except (ClientError, BotoCoreError) as error:
            msg = f"fetching {descriptor} of {self._object} failed: {error}"
            raise FetchFailedError(
                msg, descriptor=descriptor, status_code=_status_code(error)
            ) from error
        body = result.get("Body")
        if body is None:
            LOG.debug("GET %s %s -> no body", self._object, descriptor)
            return None
        LOG.debug(
            "GET %s %s -> %s bytes",
            self._object,
            descriptor,
            result.get("ContentLength"),
        )
        return S3PartBody(body, descriptor, self._read_size)
