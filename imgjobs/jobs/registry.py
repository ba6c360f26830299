from imgjobs.jobs.models import Job


class JobRegistry:
    """
    In-memory tracking of in-flight jobs and failure counters.

    Keyed by queue message id. All calls are made from the event loop, so the
    dict updates need no locking. Nothing here survives a restart: in-flight
    state is rebuilt from queue redelivery.
    """

    def __init__(self):
        self._in_flight: dict[str, Job] = {}
        self._failures: dict[str, int] = {}

    def try_admit(self, job: Job) -> bool:
        """Mark the job in flight. False if a job with the same id already is."""
        if job.id in self._in_flight:
            return False
        self._in_flight[job.id] = job
        return True

    def release(self, job_id: str) -> None:
        self._in_flight.pop(job_id, None)

    def record_failure(self, job: Job) -> int:
        """Increment and return the failure count for ``job.id``."""
        count = self._failures.get(job.id, 0) + 1
        self._failures[job.id] = count
        job.failure_count = count
        return count

    def clear_failure(self, job_id: str) -> None:
        self._failures.pop(job_id, None)

    def failure_count(self, job_id: str) -> int:
        return self._failures.get(job_id, 0)

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def is_in_flight(self, job_id: str) -> bool:
        return job_id in self._in_flight

    def snapshot(self) -> dict[str, object]:
        return {
            "in_flight": sorted(self._in_flight),
            "failures": dict(self._failures),
        }
