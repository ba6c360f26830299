"""
Queue consumer worker with fail-stop semantics.
"""

import asyncio
from datetime import timedelta
from typing import Any

from imgjobs.config.logging import get_logger
from imgjobs.config.settings import Settings
from imgjobs.core.exceptions import CleanupFailureError, MetadataError
from imgjobs.core.registries import encoder_registry
from imgjobs.infra import aws
from imgjobs.infra.database import Database
from imgjobs.infra.metadata import MetadataStore, SqlMetadataStore
from imgjobs.infra.queue import MessageQueue, SqsMessageQueue
from imgjobs.infra.storage import BlobStore, S3BlobStore
from imgjobs.jobs import encoders  # noqa: F401  registers encoders
from imgjobs.jobs.abort import AbortPolicy
from imgjobs.jobs.dispatcher import Dispatcher
from imgjobs.jobs.intake import IntakePoller
from imgjobs.jobs.processor import ImageProcessor
from imgjobs.jobs.registry import JobRegistry

logger = get_logger(__name__)


class ConsumerWorker:
    """
    Polls the job queue on a fixed interval and processes images.

    Features:
    - One message per poll, only while below the concurrency cap
    - One task per admitted job, drained on shutdown
    - Abort after repeated failures of the same message
    - Fail-stop when an abort cannot clean up after itself
    - Periodic purge of stale session metadata
    """

    def __init__(
        self,
        settings: Settings,
        queue: MessageQueue,
        blobs: BlobStore,
        metadata: MetadataStore,
        registry: JobRegistry | None = None,
        database: Database | None = None,
    ):
        self.settings = settings
        self.metadata = metadata
        self.database = database
        self.registry = registry or JobRegistry()

        encoder = encoder_registry.get(settings.output_format)
        self.processor = ImageProcessor(
            queue, blobs, metadata, encoder, quality=settings.output_quality
        )
        self.abort_policy = AbortPolicy(queue, blobs, self.registry)
        self.dispatcher = Dispatcher(
            self.registry,
            self.processor,
            self.abort_policy,
            abort_after_failures=settings.abort_after_failures,
            on_fatal=self._halt,
        )
        self.poller = IntakePoller(
            queue,
            self.registry,
            self.dispatcher.submit,
            max_concurrency=settings.max_job_concurrency,
            source_prefix=settings.source_prefix,
            output_prefix=settings.output_prefix,
        )

        self.running = False
        self.fatal_error: CleanupFailureError | None = None
        self._stop_event = asyncio.Event()

    async def start(self) -> None:
        """
        Run until ``stop()`` is called or a fatal error halts the worker.

        Raises:
            CleanupFailureError: if the worker halted because an abort failed
        """
        if self.running:
            raise RuntimeError("Worker is already running")

        self.running = True
        self._stop_event.clear()
        logger.info(
            "Starting consumer worker",
            concurrency=self.settings.max_job_concurrency,
            poll_interval_ms=self.settings.poll_interval_ms,
            abort_after_failures=self.settings.abort_after_failures,
        )

        try:
            await asyncio.gather(self._poll_loop(), self._cleanup_loop())
        finally:
            await self.dispatcher.drain()
            self.running = False
            logger.info("Consumer worker stopped", halted=self.halted)

        if self.fatal_error is not None:
            raise self.fatal_error

    def stop(self) -> None:
        """Stop polling. ``start()`` returns once in-flight jobs finish."""
        logger.info("Stopping consumer worker")
        self._stop_event.set()

    @property
    def halted(self) -> bool:
        return self.fatal_error is not None

    async def close(self) -> None:
        if self.database is not None:
            await self.database.close()

    async def run_cleanup(self) -> int:
        """Purge session metadata older than the configured TTL."""
        deleted = await self.metadata.purge_stale(
            timedelta(hours=self.settings.session_ttl_hours)
        )
        logger.info("Stale sessions purged", deleted_count=deleted)
        return deleted

    def health(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "halted": self.halted,
            "in_flight": self.registry.in_flight_count(),
            "max_concurrency": self.settings.max_job_concurrency,
            "failures": self.registry.snapshot()["failures"],
            "fatal_error": self.fatal_error.message if self.fatal_error else None,
        }

    def _halt(self, error: CleanupFailureError) -> None:
        if self.fatal_error is None:
            self.fatal_error = error
            logger.critical(
                "Halting worker: job cleanup failed",
                error=error.message,
                details=error.details,
            )
        self._stop_event.set()

    async def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.poller.tick()
            except Exception:
                logger.exception("Error in poll loop")
            await self._wait(self.settings.poll_interval_s)

    async def _cleanup_loop(self) -> None:
        while not self._stop_event.is_set():
            await self._wait(self.settings.cleanup_interval_s)
            if self._stop_event.is_set():
                break
            try:
                await self.run_cleanup()
            except MetadataError as e:
                logger.error("Stale session cleanup failed", error=e.message)
            except Exception:
                logger.exception("Error in cleanup loop")

    async def _wait(self, seconds: float) -> None:
        """Sleep that ends early when the worker is stopped."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass


def create_worker(settings: Settings) -> ConsumerWorker:
    """Wire the worker to SQS, S3 and the metadata database."""
    logger.info(
        "Wiring consumer worker",
        queue_url=settings.queue_url,
        bucket=settings.s3_bucket,
        credentials="static" if aws.has_explicit_credentials(settings) else "default chain",
    )
    database = Database(settings)
    return ConsumerWorker(
        settings,
        queue=SqsMessageQueue(aws.get_sqs_client(settings), settings.queue_url),
        blobs=S3BlobStore(
            aws.get_s3_client(settings),
            settings.s3_bucket,
            url_expires_s=settings.signed_url_expires_s,
        ),
        metadata=SqlMetadataStore(database),
        database=database,
    )
