from __future__ import annotations

import io
import os
import re
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import pytest
from botocore.exceptions import ClientError

if TYPE_CHECKING:
    from collections.abc import Generator

    from botocore.client import BaseClient
    from pytest_databases._service import DockerService


NO_BODY = object()


def make_data(size: int) -> bytes:
    """Bytes whose value depends on the offset, so misordering is visible."""
    return bytes(i % 251 for i in range(size))


def client_error(code: str, status: int, operation: str) -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": f"{code} ({status})"},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


class FakeBody:
    def __init__(self, data: bytes):
        self._stream = io.BytesIO(data)
        self.closed = False

    def read(self, amt: int | None = None) -> bytes:
        return self._stream.read(amt)

    def close(self) -> None:
        self.closed = True


@dataclass
class FakeObject:
    data: bytes
    part_sizes: list[int] | None = None
    version_id: str | None = None
    report_size: bool = True

    def part_bounds(self, number: int) -> tuple[int, int]:
        assert self.part_sizes is not None
        start = sum(self.part_sizes[: number - 1])
        return start, start + self.part_sizes[number - 1] - 1


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 calls made while streaming.

    ``head_object`` only reports ``PartsCount`` for objects stored with
    ``part_sizes`` and only when a ``PartNumber`` is requested, as S3 does.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], FakeObject] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.bodies: list[FakeBody] = []
        self._rules: list[tuple[str, dict[str, Any], Any]] = []
        self._lock = threading.Lock()

    def put(
        self,
        bucket: str,
        key: str,
        data: bytes,
        *,
        part_sizes: list[int] | None = None,
        version_id: str | None = None,
        report_size: bool = True,
    ) -> None:
        if part_sizes is not None:
            assert sum(part_sizes) == len(data)
        self.objects[bucket, key] = FakeObject(
            data, part_sizes, version_id, report_size
        )

    def fail(self, operation: str, error: Exception, **match: Any) -> None:
        """Raise ``error`` from ``operation`` when its kwargs contain ``match``."""
        self._rules.append((operation, match, error))

    def drop_body(self, **match: Any) -> None:
        self._rules.append(("get_object", match, NO_BODY))

    def get_calls(self) -> list[dict[str, Any]]:
        return self._calls_to("get_object")

    def head_calls(self) -> list[dict[str, Any]]:
        return self._calls_to("head_object")

    def _calls_to(self, operation: str) -> list[dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == operation]

    def _enter(self, operation: str, kwargs: dict[str, Any]) -> Any:
        with self._lock:
            self.calls.append((operation, kwargs))
        for rule_operation, match, outcome in self._rules:
            if rule_operation != operation:
                continue
            if all(kwargs.get(name) == value for name, value in match.items()):
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
        return None

    def _lookup(self, kwargs: dict[str, Any], operation: str) -> FakeObject:
        obj = self.objects.get((kwargs["Bucket"], kwargs["Key"]))
        if obj is None:
            raise client_error("NoSuchKey", 404, operation)
        version_id = kwargs.get("VersionId")
        if version_id is not None and version_id != obj.version_id:
            raise client_error("NoSuchVersion", 404, operation)
        return obj

    def _bounds(self, obj: FakeObject, kwargs: dict[str, Any]) -> tuple[int, int]:
        if "Range" in kwargs:
            match = re.fullmatch(r"bytes=(\d+)-(\d+)", kwargs["Range"])
            assert match is not None, kwargs["Range"]
            return int(match.group(1)), min(int(match.group(2)), len(obj.data) - 1)
        number = kwargs.get("PartNumber")
        if number is not None and obj.part_sizes is not None:
            return obj.part_bounds(number)
        return 0, len(obj.data) - 1

    def head_object(self, **kwargs: Any) -> dict[str, Any]:
        self._enter("head_object", kwargs)
        obj = self._lookup(kwargs, "HeadObject")
        start, end = self._bounds(obj, kwargs)
        result: dict[str, Any] = {"ContentLength": end - start + 1}
        if kwargs.get("PartNumber") is not None and obj.part_sizes is not None:
            result["PartsCount"] = len(obj.part_sizes)
        if not obj.report_size:
            del result["ContentLength"]
        return result

    def get_object(self, **kwargs: Any) -> dict[str, Any]:
        outcome = self._enter("get_object", kwargs)
        obj = self._lookup(kwargs, "GetObject")
        start, end = self._bounds(obj, kwargs)
        if outcome is NO_BODY:
            return {"ContentLength": 0}
        body = FakeBody(obj.data[start : end + 1])
        with self._lock:
            self.bodies.append(body)
        return {"Body": body, "ContentLength": end - start + 1}


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


# Integration tests run against MinIO. pytest-databases starts it in Docker
# unless S3_STREAM_TEST_ENDPOINT points at an endpoint that is already up.


@dataclass
class MinioService:
    endpoint: str
    access_key: str
    secret_key: str
    secure: bool

    @property
    def url(self) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.endpoint}"


@pytest.fixture(scope="session")
def minio_access_key() -> str:
    return os.getenv("S3_STREAM_TEST_ACCESS_KEY", "minio")


@pytest.fixture(scope="session")
def minio_secret_key() -> str:
    return os.getenv("S3_STREAM_TEST_SECRET_KEY", "minio123")


@pytest.fixture(scope="session")
def minio_service_name() -> str:
    return "s3-stream-minio"


@pytest.fixture(scope="session")
def minio_service(
    request: pytest.FixtureRequest,
    minio_access_key: str,
    minio_secret_key: str,
    minio_service_name: str,
) -> Generator[MinioService]:
    endpoint = os.getenv("S3_STREAM_TEST_ENDPOINT")
    if endpoint:
        secure = endpoint.startswith("https://")
        yield MinioService(
            endpoint=re.sub(r"^https?://", "", endpoint),
            access_key=minio_access_key,
            secret_key=minio_secret_key,
            secure=secure,
        )
        return

    from urllib.error import URLError
    from urllib.request import Request, urlopen

    from pytest_databases.types import ServiceContainer

    docker_service: DockerService = request.getfixturevalue("docker_service")

    def check(_service: ServiceContainer) -> bool:
        url = f"http://{_service.host}:{_service.port}/minio/health/ready"
        try:
            with urlopen(url=Request(url, method="GET"), timeout=10) as response:
                return response.status == 200
        except (URLError, ConnectionError):
            return False

    with docker_service.run(
        image="quay.io/minio/minio",
        name=minio_service_name,
        command="server /data",
        container_port=9000,
        timeout=20,
        pause=0.5,
        env={
            "MINIO_ROOT_USER": minio_access_key,
            "MINIO_ROOT_PASSWORD": minio_secret_key,
        },
        check=check,
    ) as service:
        yield MinioService(
            endpoint=f"{service.host}:{service.port}",
            access_key=minio_access_key,
            secret_key=minio_secret_key,
            secure=False,
        )


def _bucket_exists(client, bucket: str) -> bool:
    try:
        client.head_bucket(Bucket=bucket)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code", "")
        if code in {"404", "NoSuchBucket", "NotFound"}:
            return False
        raise
    else:
        return True


def _ensure_bucket(client, bucket: str) -> None:
    if not _bucket_exists(client, bucket):
        client.create_bucket(Bucket=bucket)


@pytest.fixture
def s3_client(minio_service: MinioService) -> BaseClient:
    """Create a boto3 S3 client for the MinIO service."""
    import boto3
    from botocore.config import Config

    return boto3.client(
        "s3",
        endpoint_url=minio_service.url,
        aws_access_key_id=minio_service.access_key,
        aws_secret_access_key=minio_service.secret_key,
        region_name="us-east-1",
        config=Config(s3={"addressing_style": "path"}),
    )


@pytest.fixture
def client_env_vars(minio_service: MinioService) -> Generator[dict[str, str]]:
    """Point ClientSettings at the integration endpoint."""
    env_vars = {
        "S3_STREAM_ENDPOINT": minio_service.url,
        "S3_STREAM_ACCESS_KEY_ID": minio_service.access_key,
        "S3_STREAM_SECRET_ACCESS_KEY": minio_service.secret_key,
        "S3_STREAM_REGION": "us-east-1",
        "S3_STREAM_ADDRESSING_STYLE": "path",
    }

    original_values = {}
    for key, value in env_vars.items():
        original_values[key] = os.environ.get(key)
        os.environ[key] = value

    yield env_vars

    for key, original_value in original_values.items():
        if original_value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original_value


@pytest.fixture
def s3_helpers():
    return {
        "bucket_exists": _bucket_exists,
        "ensure_bucket": _ensure_bucket,
    }
