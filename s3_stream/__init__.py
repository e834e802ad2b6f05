"""Ordered streaming of large S3 objects with bounded prefetching."""

from .errors import (
    EmptyBodyError,
    FetchFailedError,
    MetadataUnavailableError,
    S3StreamError,
)
from .fetcher import ObjectMetadata, ObjectRef, S3PartBody, S3PartFetcher
from .lines import iter_lines
from .parts import ByteRange, ByteRangeSource, PartNumber, PartNumberSource
from .pipeline import PendingFetch, PipelinedAssembler
from .reader import (
    ReadPlan,
    S3ObjectStream,
    StreamMode,
    open_object_stream,
    select_plan,
)
from .settings import ClientSettings, StreamSettings, build_client

__all__ = [
    "ByteRange",
    "ByteRangeSource",
    "ClientSettings",
    "EmptyBodyError",
    "FetchFailedError",
    "MetadataUnavailableError",
    "ObjectMetadata",
    "ObjectRef",
    "PartNumber",
    "PartNumberSource",
    "PendingFetch",
    "PipelinedAssembler",
    "ReadPlan",
    "S3ObjectStream",
    "S3PartBody",
    "S3PartFetcher",
    "S3StreamError",
    "StreamMode",
    "StreamSettings",
    "build_client",
    "iter_lines",
    "open_object_stream",
    "select_plan",
]
