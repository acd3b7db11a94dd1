import logging
import threading
import time
from typing import Dict, Optional

from .models import Job

logger = logging.getLogger("vidstream.jobs")


class JobRegistry:
    """Process-wide map of job id -> latest Job snapshot.

    Created in the app lifespan and dropped at shutdown; nothing is
    persisted. Writers replace whole records under the lock, readers get
    the snapshot that was current at the time of the call.
    """

    def __init__(self, ttl_seconds: float = 0):
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()
        self.ttl_seconds = ttl_seconds

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def put(self, job: Job) -> bool:
        """Insert or replace the record for ``job.id``.

        Returns False (and leaves the registry untouched) when the stored
        record is already terminal.
        """
        with self._lock:
            current = self._jobs.get(job.id)
            if current is not None and current.status.terminal:
                logger.debug("Ignoring %s write for finished job %s", job.status.value, job.id)
                return False
            self._jobs[job.id] = job
            return True

    def create(self, job_id: str) -> Job:
        self.sweep()
        job = Job.new(job_id)
        with self._lock:
            if job_id in self._jobs:
                raise ValueError(f"Job id already issued: {job_id}")
            self._jobs[job_id] = job
        return job

    def report_progress(self, job_id: str, percent: float) -> Optional[Job]:
        return self._transition(job_id, lambda j: j.with_progress(percent))

    def complete(self, job_id: str) -> Optional[Job]:
        return self._transition(job_id, lambda j: j.completed())

    def fail(self, job_id: str, message: str) -> Optional[Job]:
        return self._transition(job_id, lambda j: j.failed(message))

    def _transition(self, job_id: str, step) -> Optional[Job]:
        with self._lock:
            current = self._jobs.get(job_id) or Job.new(job_id)
            if current.status.terminal:
                logger.debug("Ignoring update for finished job %s", job_id)
                return None
            nxt = step(current)
            self._jobs[job_id] = nxt
            return nxt

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop terminal records older than the TTL. Returns how many went."""
        if not self.ttl_seconds or self.ttl_seconds <= 0:
            return 0
        cutoff = (now if now is not None else time.time()) - self.ttl_seconds
        with self._lock:
            stale = [jid for jid, j in self._jobs.items()
                     if j.status.terminal and j.updated_at < cutoff]
            for jid in stale:
                del self._jobs[jid]
        if stale:
            logger.info("Evicted %d finished job(s) older than %.0fs", len(stale), self.ttl_seconds)
        return len(stale)
