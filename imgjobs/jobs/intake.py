"""
Queue intake: turns S3 event notifications into validated jobs.
"""

from collections.abc import Awaitable, Callable
from urllib.parse import unquote_plus

from pydantic import ValidationError

from imgjobs.config.logging import get_logger
from imgjobs.core.exceptions import MalformedMessageError, QueueError
from imgjobs.infra.queue import MessageQueue, QueueMessage
from imgjobs.jobs.models import DEFAULT_OUTPUT_PREFIX, DEFAULT_SOURCE_PREFIX, Job
from imgjobs.jobs.registry import JobRegistry
from imgjobs.jobs.schemas import S3EventNotification

logger = get_logger(__name__)

# Messages are fetched one at a time so admission never runs ahead of capacity
RECEIVE_BATCH_SIZE = 1


def parse_job(
    message: QueueMessage,
    source_prefix: str = DEFAULT_SOURCE_PREFIX,
    output_prefix: str = DEFAULT_OUTPUT_PREFIX,
) -> Job:
    """
    Build a job from a queue message.

    Raises:
        MalformedMessageError: if the body is not a usable S3 event notification
    """
    if not message.id or not message.receipt_handle:
        raise MalformedMessageError("Message is missing its id or receipt handle")

    try:
        notification = S3EventNotification.model_validate_json(message.body or "")
    except ValidationError as e:
        raise MalformedMessageError(
            "Invalid event notification",
            details={"message_id": message.id, "errors": e.errors(include_url=False)},
        ) from e

    record = notification.first
    raw_key = record.s3.object.key
    if not raw_key.startswith(source_prefix):
        raise MalformedMessageError(
            "Object key outside the source prefix",
            details={"message_id": message.id, "key": raw_key},
        )

    # Notification keys are form-encoded: '+' is a space
    key = unquote_plus(raw_key)
    if not key.startswith(source_prefix) or key == source_prefix:
        raise MalformedMessageError(
            "Object key has no file below the source prefix",
            details={"message_id": message.id, "key": key},
        )
    return Job(
        id=message.id,
        key=key,
        receipt_handle=message.receipt_handle,
        size_bytes=record.s3.object.size,
        source_prefix=source_prefix,
        output_prefix=output_prefix,
    )


class IntakePoller:
    """Receives messages while there is capacity and hands jobs to ``submit``."""

    def __init__(
        self,
        queue: MessageQueue,
        registry: JobRegistry,
        submit: Callable[[Job], Awaitable[bool]],
        max_concurrency: int,
        source_prefix: str = DEFAULT_SOURCE_PREFIX,
        output_prefix: str = DEFAULT_OUTPUT_PREFIX,
    ):
        self.queue = queue
        self.registry = registry
        self.submit = submit
        self.max_concurrency = max_concurrency
        self.source_prefix = source_prefix
        self.output_prefix = output_prefix

    async def tick(self) -> list[Job]:
        """Run one poll. Returns the jobs handed to ``submit``."""
        if self.registry.in_flight_count() >= self.max_concurrency:
            return []

        try:
            messages = await self.queue.receive(RECEIVE_BATCH_SIZE)
        except QueueError as e:
            logger.error("Queue receive failed", error=e.message, details=e.details)
            return []

        jobs: list[Job] = []
        for message in messages:
            job = await self._accept(message)
            if job is None:
                continue
            await self.submit(job)
            jobs.append(job)
        return jobs

    async def _accept(self, message: QueueMessage) -> Job | None:
        if not message.id or not message.receipt_handle:
            # Without a receipt the message cannot be deleted; it will expire
            logger.warning(
                "Invalid message detected",
                message_id=message.id,
                has_receipt=bool(message.receipt_handle),
            )
            return None

        try:
            return parse_job(message, self.source_prefix, self.output_prefix)
        except MalformedMessageError as e:
            logger.warning("Discarding malformed message", reason=e.message, **e.details)

        # Never retry a message that cannot be parsed
        try:
            await self.queue.delete(message.receipt_handle)
        except QueueError as e:
            logger.error(
                "Failed to delete malformed message",
                message_id=message.id,
                error=e.message,
            )
        return None
