"""Command line entry points for streaming S3 objects."""

from __future__ import annotations

import logging
import sys

import anyio
import typer

from .errors import S3StreamError
from .fetcher import ObjectRef
from .reader import open_object_stream
from .settings import StreamSettings, build_client, load_client_settings_from_env

LOG = logging.getLogger("s3_stream.cli")

app = typer.Typer(
    add_completion=False,
    help="Stream S3 objects in order with bounded prefetching.",
)


def configure_logging(level: str = "WARNING") -> None:
    """Send log records at ``level`` and above to stderr."""
    numeric_level = getattr(logging, level.upper(), logging.WARNING)
    root = logging.getLogger()
    root.setLevel(numeric_level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root.addHandler(handler)


def _stream_settings(
    multipart: bool | None,
    preload_count: int | None,
    chunk_size: int | None,
) -> StreamSettings:
    overrides = {
        "multipart": multipart,
        "preload_count": preload_count,
        "chunk_size": chunk_size,
    }
    return StreamSettings(**{k: v for k, v in overrides.items() if v is not None})


async def _cat(client, obj: ObjectRef, settings: StreamSettings) -> int:
    sink = typer.get_binary_stream("stdout")
    written = 0
    async with open_object_stream(client, obj, settings) as stream:
        async for chunk in stream:
            sink.write(chunk)
            written += len(chunk)
    sink.flush()
    return written


async def _lines(client, obj: ObjectRef, settings: StreamSettings) -> int:
    count = 0
    async with open_object_stream(client, obj, settings) as stream:
        async for line in stream.iter_lines():
            typer.echo(f"Line read: {line}")
            count += 1
    return count


def _run(func, bucket: str, key: str, version_id: str | None, settings) -> int:
    client = build_client(load_client_settings_from_env())
    obj = ObjectRef(bucket, key, version_id)
    try:
        return anyio.run(func, client, obj, settings)
    except S3StreamError as error:
        typer.echo(f"error: {error}", err=True)
        raise typer.Exit(code=1) from error


MULTIPART = typer.Option(
    None, "--multipart/--no-multipart", help="Read by part number when possible"
)
PRELOAD_COUNT = typer.Option(
    None, "--preload-count", min=1, help="Fetches kept in flight"
)
CHUNK_SIZE = typer.Option(None, "--chunk-size", min=1, help="Range size in bytes")
VERSION_ID = typer.Option(None, "--version-id", help="Object version to read")
LOG_LEVEL = typer.Option("WARNING", "--log-level", help="Logging level")


@app.command()
def cat(
    bucket: str = typer.Argument(..., help="Bucket name"),
    key: str = typer.Argument(..., help="Object key"),
    multipart: bool | None = MULTIPART,
    preload_count: int | None = PRELOAD_COUNT,
    chunk_size: int | None = CHUNK_SIZE,
    version_id: str | None = VERSION_ID,
    log_level: str = LOG_LEVEL,
):
    """Write an object's bytes to stdout."""
    configure_logging(log_level)
    settings = _stream_settings(multipart, preload_count, chunk_size)
    written = _run(_cat, bucket, key, version_id, settings)
    LOG.info("wrote %d byte(s) of s3://%s/%s", written, bucket, key)


@app.command()
def lines(
    bucket: str = typer.Argument(..., help="Bucket name"),
    key: str = typer.Argument(..., help="Object key"),
    multipart: bool | None = MULTIPART,
    preload_count: int | None = PRELOAD_COUNT,
    chunk_size: int | None = CHUNK_SIZE,
    version_id: str | None = VERSION_ID,
    log_level: str = LOG_LEVEL,
):
    """Print every line of an object."""
    configure_logging(log_level)
    settings = _stream_settings(multipart, preload_count, chunk_size)
    count = _run(_lines, bucket, key, version_id, settings)
    LOG.info("read %d line(s) from s3://%s/%s", count, bucket, key)
