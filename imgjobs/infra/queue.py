import asyncio
from dataclasses import dataclass
from typing import Protocol

from botocore.exceptions import BotoCoreError, ClientError

from imgjobs.config.logging import get_logger
from imgjobs.core.exceptions import QueueError

logger = get_logger(__name__)


@dataclass(frozen=True)
class QueueMessage:
    """A message as delivered by the queue. Any field may be missing."""

    id: str | None
    receipt_handle: str | None
    body: str | None


class MessageQueue(Protocol):
    """At-least-once queue with visibility timeout semantics."""

    async def receive(self, max_messages: int = 1) -> list[QueueMessage]:
        ...

    async def delete(self, receipt_handle: str) -> None:
        ...


class SqsMessageQueue:
    """MessageQueue backed by an SQS queue."""

    def __init__(self, client, queue_url: str):
        self._client = client
        self.queue_url = queue_url

    async def receive(self, max_messages: int = 1) -> list[QueueMessage]:
        try:
            response = await asyncio.to_thread(
                self._client.receive_message,
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=max_messages,
            )
        except (BotoCoreError, ClientError) as e:
            raise QueueError(
                "Failed to receive messages", details={"error": str(e)}
            ) from e

        return [
            QueueMessage(
                id=msg.get("MessageId"),
                receipt_handle=msg.get("ReceiptHandle"),
                body=msg.get("Body"),
            )
            for msg in response.get("Messages", [])
        ]

    async def delete(self, receipt_handle: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.delete_message,
                QueueUrl=self.queue_url,
                ReceiptHandle=receipt_handle,
            )
        except (BotoCoreError, ClientError) as e:
            raise QueueError(
                "Failed to delete message", details={"error": str(e)}
            ) from e
        logger.debug("Message deleted")
