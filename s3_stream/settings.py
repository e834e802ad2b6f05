from __future__ import annotations

from typing import Literal

from boto3.session import Session
from botocore.config import Config as BotoConfig
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .parts import DEFAULT_CHUNK_SIZE

DEFAULT_READ_SIZE = 64 * 1024


class StreamSettings(BaseSettings):
    """Options controlling how one object is streamed."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    multipart: bool = Field(
        default=False,
        validation_alias="S3_STREAM_MULTIPART",
    )
    preload_count: int = Field(
        default=1,
        ge=1,
        validation_alias="S3_STREAM_PRELOAD_COUNT",
    )
    chunk_size: int = Field(
        default=DEFAULT_CHUNK_SIZE,
        gt=0,
        validation_alias="S3_STREAM_CHUNK_SIZE",
    )
    read_size: int = Field(
        default=DEFAULT_READ_SIZE,
        gt=0,
        validation_alias="S3_STREAM_READ_SIZE",
    )
    empty_body: Literal["end", "error"] = Field(
        default="end",
        validation_alias="S3_STREAM_EMPTY_BODY",
    )


class ClientSettings(BaseSettings):
    """Connection settings for the S3 endpoint objects are read from."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    endpoint: str | None = Field(
        default=None,
        validation_alias="S3_STREAM_ENDPOINT",
    )
    access_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "S3_STREAM_ACCESS_KEY_ID",
            "AWS_ACCESS_KEY_ID",
        ),
    )
    secret_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "S3_STREAM_SECRET_ACCESS_KEY",
            "AWS_SECRET_ACCESS_KEY",
        ),
    )
    session_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "S3_STREAM_SESSION_TOKEN",
            "AWS_SESSION_TOKEN",
        ),
    )
    region: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "S3_STREAM_REGION",
            "AWS_REGION",
        ),
    )
    addressing_style: Literal["auto", "virtual", "path"] = Field(
        default="virtual",
        validation_alias="S3_STREAM_ADDRESSING_STYLE",
    )
    max_retries: int = Field(
        default=0,
        ge=0,
        validation_alias="S3_STREAM_MAX_RETRIES",
    )


def load_stream_settings_from_env() -> StreamSettings:
    """Load streaming options from environment variables.

    Returns:
        StreamSettings instance populated from environment variables.
    """
    return StreamSettings()


def load_client_settings_from_env() -> ClientSettings:
    """Load S3 connection settings from environment variables.

    Returns:
        ClientSettings instance populated from environment variables.
    """
    return ClientSettings()


def build_client(settings: ClientSettings):
    """Build a boto3 S3 client from ``settings``.

    Retries are left to the caller: ``max_retries`` defaults to 0 so a failed
    request surfaces immediately.
    """
    session = Session(
        aws_access_key_id=settings.access_key,
        aws_secret_access_key=settings.secret_key,
        aws_session_token=settings.session_token,
        region_name=settings.region,
    )
    return session.client(
        "s3",
        endpoint_url=settings.endpoint,
        config=BotoConfig(
            signature_version="s3v4",
            retries={"max_attempts": settings.max_retries},
            s3={"addressing_style": settings.addressing_style},
        ),
    )
