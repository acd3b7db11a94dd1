from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional
import math
import time


class JobStatus(str, Enum):
    processing = "processing"
    completed = "completed"
    error = "error"

    @property
    def terminal(self) -> bool:
        return self is not JobStatus.processing


def _clamp_percent(value: float) -> int:
    # half rounds up: 12.5 -> 13
    return max(0, min(100, math.floor(value + 0.5)))


@dataclass(frozen=True)
class Job:
    """One immutable snapshot of a conversion job.

    Records are never mutated in place; every state change produces a new
    snapshot that replaces the old one in the registry, so a reader holding
    a reference always sees a consistent status/progress/error triple.
    """
    id: str
    status: JobStatus = JobStatus.processing
    progress: int = 0
    error: Optional[str] = None
    updated_at: float = field(default_factory=time.time)

    @classmethod
    def new(cls, job_id: str) -> "Job":
        return cls(id=job_id)

    def with_progress(self, percent: float) -> "Job":
        return replace(self, status=JobStatus.processing, progress=_clamp_percent(percent),
                       error=None, updated_at=time.time())

    def completed(self) -> "Job":
        return replace(self, status=JobStatus.completed, progress=100, error=None,
                       updated_at=time.time())

    def failed(self, message: str) -> "Job":
        return replace(self, status=JobStatus.error, progress=0,
                       error=message or "Unknown error", updated_at=time.time())

    def to_api(self) -> dict:
        d = {"status": self.status.value, "progress": self.progress}
        if self.status is JobStatus.error:
            d["error"] = self.error
        return d
