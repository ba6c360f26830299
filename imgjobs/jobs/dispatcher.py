import asyncio
from collections.abc import Callable

from imgjobs.config.logging import bind_job_context, get_logger
from imgjobs.core.exceptions import CleanupFailureError
from imgjobs.jobs.abort import AbortPolicy
from imgjobs.jobs.models import Job
from imgjobs.jobs.processor import ImageProcessor
from imgjobs.jobs.registry import JobRegistry

logger = get_logger(__name__)


class Dispatcher:
    """
    Admits jobs and runs each one as its own task.

    Admission goes through the registry, so a message id is never processed
    twice at once. ``submit`` returns as soon as the task is spawned; the
    in-flight slot is released when the task finishes, whatever the outcome.
    The concurrency cap is soft: the poller checks capacity before receiving,
    and a tick may overshoot it by one batch.
    """

    def __init__(
        self,
        registry: JobRegistry,
        processor: ImageProcessor,
        abort_policy: AbortPolicy,
        abort_after_failures: int = 3,
        on_fatal: Callable[[CleanupFailureError], None] | None = None,
    ):
        self.registry = registry
        self.processor = processor
        self.abort_policy = abort_policy
        self.abort_after_failures = abort_after_failures
        self.on_fatal = on_fatal
        self.fatal_error: CleanupFailureError | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    async def submit(self, job: Job) -> bool:
        """Admit ``job`` and start processing it. False for a duplicate."""
        if self.fatal_error is not None:
            logger.warning("Worker halted, job not admitted", job_id=job.id)
            return False
        if not self.registry.try_admit(job):
            logger.debug("Job already in flight", job_id=job.id)
            return False

        job.start()
        logger.info(
            "JOB ALLOCATED",
            job_id=job.id,
            file=job.filename(),
            size_mb=round(job.size_mb(), 3),
            in_flight=self.registry.in_flight_count(),
        )
        task = asyncio.create_task(self._run(job), name=f"job-{job.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def drain(self) -> None:
        """Wait for every running job task to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _run(self, job: Job) -> None:
        bind_job_context(job.id, key=job.key)
        try:
            try:
                await self.processor.process(job)
            except Exception as e:
                await self._handle_failure(job, e)
            else:
                self.registry.clear_failure(job.id)
                logger.info(
                    "JOB COMPLETED",
                    file=job.filename(),
                    duration=job.elapsed(),
                    in_flight=self.registry.in_flight_count() - 1,
                )
        except CleanupFailureError as e:
            self._halt(e)
        finally:
            self.registry.release(job.id)

    async def _handle_failure(self, job: Job, error: Exception) -> None:
        count = self.registry.record_failure(job)
        logger.error(
            "JOB FAILED",
            file=job.filename(),
            duration=job.elapsed(),
            failures=count,
            error=str(error),
            exc_info=error,
        )
        if count >= self.abort_after_failures:
            await self.abort_policy.abort(job)
        else:
            # Visibility timeout expiry redelivers the message
            logger.info("Job left for redelivery", failures=count)

    def _halt(self, error: CleanupFailureError) -> None:
        if self.fatal_error is None:
            self.fatal_error = error
        if self.on_fatal is not None:
            self.on_fatal(error)
