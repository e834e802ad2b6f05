from __future__ import annotations

import logging
from contextlib import aclosing
from typing import TYPE_CHECKING, Any

from litestar import Litestar, MediaType, Request, get
from litestar.params import Parameter
from litestar.plugins.prometheus import PrometheusConfig, PrometheusController
from litestar.response import Response, Stream

from .errors import S3StreamError
from .fetcher import ObjectRef, S3PartFetcher
from .pipeline import PipelinedAssembler
from .reader import select_plan
from .settings import (
    StreamSettings,
    build_client,
    load_client_settings_from_env,
    load_stream_settings_from_env,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

LOG = logging.getLogger("s3_stream.app")

prometheus_config = PrometheusConfig(app_name="s3_stream", prefix="s3_stream")


def _error_response(request: Request, exc: Exception) -> Response:
    status_code = 502
    if isinstance(exc, S3StreamError) and exc.status_code is not None:
        status_code = exc.status_code
    LOG.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return Response(
        content=str(exc), status_code=status_code, media_type=MediaType.TEXT
    )


def create_app(
    client: Any = None, settings: StreamSettings | None = None
) -> Litestar:
    """Create the object streaming ASGI application."""
    if settings is None:
        settings = load_stream_settings_from_env()
    if client is None:
        client = build_client(load_client_settings_from_env())
    stream_settings = settings

    @get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @get("/objects/{bucket:str}/{key:path}")
    async def read_object(
        bucket: str = Parameter(description="Bucket name"),
        key: str = Parameter(description="Object key"),
        multipart: bool | None = Parameter(query="multipart", default=None),
        version_id: str | None = Parameter(query="versionId", default=None),
    ) -> Stream:
        obj = ObjectRef(bucket, key.lstrip("/"), version_id)
        fetcher = S3PartFetcher(client, obj, read_size=stream_settings.read_size)
        plan = await select_plan(
            fetcher,
            multipart=stream_settings.multipart if multipart is None else multipart,
            chunk_size=stream_settings.chunk_size,
        )

        async def iterator() -> AsyncIterator[bytes]:
            async with PipelinedAssembler(
                plan.descriptors,
                fetcher,
                preload_count=stream_settings.preload_count,
                empty_body=stream_settings.empty_body,
            ) as assembler, aclosing(assembler.chunks()) as chunks:
                async for chunk in chunks:
                    yield chunk

        LOG.debug("streaming %s in %s mode", obj, plan.mode)
        return Stream(
            content=iterator,
            media_type="application/octet-stream",
            headers={"X-S3-Stream-Mode": str(plan.mode)},
        )

    return Litestar(
        route_handlers=[health, read_object, PrometheusController],
        exception_handlers={S3StreamError: _error_response},
        middleware=[prometheus_config.middleware],
    )


app = create_app()
