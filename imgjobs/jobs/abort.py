from imgjobs.config.logging import get_logger
from imgjobs.core.exceptions import CleanupFailureError
from imgjobs.infra.queue import MessageQueue
from imgjobs.infra.storage import BlobStore
from imgjobs.jobs.models import Job
from imgjobs.jobs.registry import JobRegistry

logger = get_logger(__name__)


class AbortPolicy:
    """Drops a job that keeps failing instead of letting it be redelivered forever."""

    def __init__(self, queue: MessageQueue, blobs: BlobStore, registry: JobRegistry):
        self.queue = queue
        self.blobs = blobs
        self.registry = registry

    async def abort(self, job: Job) -> None:
        """
        Delete the source object, then the queue message, then the counter.

        Raises:
            CleanupFailureError: if either delete fails. The caller must halt.
        """
        try:
            await self.blobs.delete(job.key)
            await self.queue.delete(job.receipt_handle)
        except Exception as e:
            logger.critical(
                "CRITICAL ERROR ENCOUNTERED while aborting job",
                key=job.key,
                error=str(e),
            )
            raise CleanupFailureError(
                f"Failed to abort job {job.id}",
                details={"job_id": job.id, "key": job.key, "error": str(e)},
            ) from e

        self.registry.clear_failure(job.id)
        logger.warning("Job aborted", key=job.key, failures=job.failure_count)
