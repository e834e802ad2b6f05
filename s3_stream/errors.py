"""Errors raised while streaming an object."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .parts import FetchDescriptor


class S3StreamError(Exception):
    """Base class for all streaming failures.

    Attributes:
        status_code: HTTP status reported by the backend, when there was one.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MetadataUnavailableError(S3StreamError):
    """The metadata probe failed, so the object cannot be tiled."""


class FetchFailedError(S3StreamError):
    """Retrieving one part of the object failed."""

    def __init__(
        self,
        message: str,
        *,
        descriptor: FetchDescriptor,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.descriptor = descriptor


class EmptyBodyError(FetchFailedError):
    """The backend answered a part request without a body."""
