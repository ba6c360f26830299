import io
import json
from datetime import timedelta

import pytest
from PIL import Image

from imgjobs.config.settings import Settings
from imgjobs.core.exceptions import (
    MetadataError,
    ObjectNotFoundError,
    QueueError,
    StorageError,
)
from imgjobs.core.registries import encoder_registry
from imgjobs.infra.metadata import FileOptions
from imgjobs.infra.queue import QueueMessage
from imgjobs.jobs import encoders  # noqa: F401
from imgjobs.jobs.abort import AbortPolicy
from imgjobs.jobs.dispatcher import Dispatcher
from imgjobs.jobs.processor import ImageProcessor
from imgjobs.jobs.registry import JobRegistry


def notification_body(
    key: str | None = "jobs/input/abc123/photo.png",
    size="204800",
    event_time: str = "2023-11-05T07:53:26.123Z",
) -> str:
    """S3 event notification as SQS delivers it."""
    obj = {"size": size} if key is None else {"key": key, "size": size}
    return json.dumps(
        {
            "Records": [
                {
                    "eventVersion": "2.1",
                    "eventSource": "aws:s3",
                    "eventTime": event_time,
                    "eventName": "ObjectCreated:Put",
                    "s3": {"bucket": {"name": "bucket"}, "object": obj},
                }
            ]
        }
    )


def make_message(
    message_id: str = "msg-1",
    receipt_handle: str | None = "receipt-1",
    body: str | None = None,
) -> QueueMessage:
    return QueueMessage(
        id=message_id,
        receipt_handle=receipt_handle,
        body=notification_body() if body is None else body,
    )


def image_bytes(size=(64, 32), mode="RGB", fmt="PNG") -> bytes:
    buffer = io.BytesIO()
    color = (200, 30, 30, 128) if mode == "RGBA" else (200, 30, 30)
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


class CallLog(list):
    """Ordered record of every collaborator call, shared by the fakes."""

    def names(self) -> list[str]:
        return [name for name, _ in self]

    def index_of(self, name: str) -> int:
        return self.names().index(name)


class FakeQueue:
    def __init__(self, calls: CallLog):
        self.calls = calls
        self.pending: list[QueueMessage] = []
        self.deleted: list[str] = []
        self.fail_receive = False
        self.fail_delete = False

    async def receive(self, max_messages: int = 1) -> list[QueueMessage]:
        self.calls.append(("queue.receive", max_messages))
        if self.fail_receive:
            raise QueueError("receive failed")
        batch = self.pending[:max_messages]
        self.pending = self.pending[max_messages:]
        return batch

    async def delete(self, receipt_handle: str) -> None:
        self.calls.append(("queue.delete", receipt_handle))
        if self.fail_delete:
            raise QueueError("delete failed")
        self.deleted.append(receipt_handle)


class FakeBlobStore:
    def __init__(self, calls: CallLog):
        self.calls = calls
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.fail_delete = False

    async def get(self, key: str) -> bytes:
        self.calls.append(("blobs.get", key))
        if key not in self.objects:
            raise ObjectNotFoundError(f"Object not found: {key}")
        return self.objects[key]

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        self.calls.append(("blobs.put", key))
        self.objects[key] = data
        self.content_types[key] = content_type

    async def delete(self, key: str) -> None:
        self.calls.append(("blobs.delete", key))
        if self.fail_delete:
            raise StorageError(f"Failed to delete object: {key}")
        self.objects.pop(key, None)

    async def signed_url(self, key: str) -> str:
        self.calls.append(("blobs.signed_url", key))
        return f"https://bucket.s3.amazonaws.com/{key}?X-Amz-Expires=900"


class FakeMetadataStore:
    def __init__(self, calls: CallLog):
        self.calls = calls
        self.rows: dict[tuple[str, str], FileOptions] = {}
        self.downloads: dict[tuple[str, str], str] = {}
        self.fail_find = False
        self.purged: list[timedelta] = []

    def add(self, session_id: str, filename: str, width=None, height=None) -> FileOptions:
        options = FileOptions(
            session_id=session_id,
            filename=filename,
            id=len(self.rows) + 1,
            width=width,
            height=height,
        )
        self.rows[(session_id, filename)] = options
        return options

    async def find_file(self, session_id: str, filename: str) -> FileOptions | None:
        self.calls.append(("metadata.find_file", (session_id, filename)))
        if self.fail_find:
            raise MetadataError("database unavailable")
        return self.rows.get((session_id, filename))

    async def set_download(self, options: FileOptions, download: str) -> int:
        self.calls.append(("metadata.set_download", options))
        self.downloads[(options.session_id, options.filename)] = download
        return 1

    async def purge_stale(self, older_than: timedelta) -> int:
        self.calls.append(("metadata.purge_stale", older_than))
        self.purged.append(older_than)
        return 0


@pytest.fixture
def settings() -> Settings:
    return Settings(
        queue_url="https://sqs.us-east-1.amazonaws.com/123456789012/jobs",
        s3_bucket="bucket",
        poll_interval_ms=10,
        max_job_concurrency=2,
        debug=True,
    )


@pytest.fixture
def calls() -> CallLog:
    return CallLog()


@pytest.fixture
def queue(calls) -> FakeQueue:
    return FakeQueue(calls)


@pytest.fixture
def blobs(calls) -> FakeBlobStore:
    return FakeBlobStore(calls)


@pytest.fixture
def metadata(calls) -> FakeMetadataStore:
    return FakeMetadataStore(calls)


@pytest.fixture
def registry() -> JobRegistry:
    return JobRegistry()


@pytest.fixture
def processor(queue, blobs, metadata) -> ImageProcessor:
    return ImageProcessor(queue, blobs, metadata, encoder_registry.get("jpeg"), quality=10)


@pytest.fixture
def abort_policy(queue, blobs, registry) -> AbortPolicy:
    return AbortPolicy(queue, blobs, registry)


@pytest.fixture
def dispatcher(registry, processor, abort_policy) -> Dispatcher:
    return Dispatcher(registry, processor, abort_policy, abort_after_failures=3)
