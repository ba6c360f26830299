"""
Job entity for image processing.
"""

import time
from dataclasses import dataclass, field

DEFAULT_SOURCE_PREFIX = "jobs/input/"
DEFAULT_OUTPUT_PREFIX = "jobs/output/"


@dataclass(eq=False)
class Job:
    """
    One queue message referring to one uploaded file.

    Keys have the form ``{source_prefix}{session_id}/{filename}``, by default
    ``jobs/input/{session_id}/{filename}``. Session and file name are always
    derived from the key, never stored next to it.
    """

    id: str
    key: str
    receipt_handle: str
    size_bytes: int = 0

    failure_count: int = 0
    started_at: float | None = field(default=None, repr=False)

    source_prefix: str = field(default=DEFAULT_SOURCE_PREFIX, repr=False)
    output_prefix: str = field(default=DEFAULT_OUTPUT_PREFIX, repr=False)

    def size_mb(self) -> float:
        return self.size_bytes / 1_000_000

    def session(self) -> str | None:
        """Session ID (first segment after the source prefix), or None."""
        if not self.key.startswith(self.source_prefix):
            return None
        parts = self.key[len(self.source_prefix):].split("/")
        return parts[0] if len(parts) > 1 else None

    def filename(self) -> str:
        return self.key.split("/")[-1]

    def output_key(self) -> str:
        """Destination key: the source prefix replaced by the output prefix."""
        if not self.key.startswith(self.source_prefix):
            raise ValueError(f"Not an input key: {self.key}")
        return self.output_prefix + self.key[len(self.source_prefix):]

    def start(self) -> None:
        """Start the duration timer."""
        self.started_at = time.perf_counter()

    def elapsed_ms(self) -> float:
        if self.started_at is None:
            return 0.0
        return (time.perf_counter() - self.started_at) * 1000

    def elapsed(self) -> str:
        """Human readable duration since ``start()``."""
        return format_duration(self.elapsed_ms())


def format_duration(duration_ms: float) -> str:
    if duration_ms < 1000:
        return f"{duration_ms:.0f}ms"
    if duration_ms < 60_000:
        return f"{duration_ms / 1000:.2f}sec"
    minutes = int(duration_ms // 60_000)
    seconds = (duration_ms % 60_000) / 1000
    return f"{minutes}min {seconds:.2f}sec"
