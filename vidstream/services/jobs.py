# vidstream/services/jobs.py
"""
Background units of work for one conversion job.

Each function runs detached from the request that scheduled it and talks to
the outside world only through the JobRegistry: progress and the terminal
state are recorded there, never raised back to the HTTP caller.

Jobs run on a JobRunner, a bounded pool of their own, so a long encode never
holds one of the server's request threads.
"""
from __future__ import annotations
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Callable, Optional, Set
import logging
import os
import threading

from vidstream.core.registry import JobRegistry
from vidstream.services.encoder import Encoder, EncoderError
from vidstream.services.fetcher import Fetcher, FetchError
from vidstream.services.storage import remove_quietly

logger = logging.getLogger("vidstream.jobs")


class JobRunner:
    """Bounded executor for job tasks; extra jobs wait in its queue."""

    def __init__(self, max_workers: int = 2):
        self.max_workers = max(1, max_workers)
        self._pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="vidstream-job")
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    def submit(self, fn: Callable, *args) -> Future:
        fut = self._pool.submit(fn, *args)
        with self._lock:
            self._pending.add(fut)
        fut.add_done_callback(self._discard)
        return fut

    def _discard(self, fut: Future) -> None:
        with self._lock:
            self._pending.discard(fut)

    @property
    def active(self) -> int:
        with self._lock:
            return len(self._pending)

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for every submitted job. Returns False on timeout."""
        with self._lock:
            pending = list(self._pending)
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self) -> None:
        # queued jobs are dropped; running encodes finish on their own
        self._pool.shutdown(wait=False, cancel_futures=True)


def transcode_job(registry: JobRegistry, encoder: Encoder, job_id: str,
                  src: Path, dest: Path, part: Path) -> None:
    """Encode ``src`` into ``part`` and move it to ``dest`` once it is whole."""
    logger.info("Starting conversion for job %s: %s -> %s", job_id, src.name, dest.name)
    registry.report_progress(job_id, 0)
    last = {"pct": 0}

    def on_progress(percent: float) -> None:
        job = registry.report_progress(job_id, percent)
        if job is not None and job.progress != last["pct"]:
            last["pct"] = job.progress
            logger.info("Job %s progress: %d%%", job_id, job.progress)

    try:
        encoder.transcode(src, part, on_progress)
    except EncoderError as e:
        remove_quietly(part)
        registry.fail(job_id, str(e))
        logger.error("Job %s failed: %s", job_id, e)
        raise
    # TEMP_DIR and OUTPUT_DIR must share a filesystem for this to be atomic
    os.replace(part, dest)
    registry.complete(job_id)
    logger.info("Job %s completed successfully", job_id)


def run_upload_job(registry: JobRegistry, encoder: Encoder, job_id: str,
                   upload: Path, dest: Path, part: Path) -> None:
    try:
        transcode_job(registry, encoder, job_id, upload, dest, part)
    except EncoderError:
        pass  # already recorded on the job
    except Exception as e:
        logger.exception("Job %s crashed", job_id)
        registry.fail(job_id, str(e) or type(e).__name__)
    finally:
        remove_quietly(upload)
        remove_quietly(part)


def run_url_job(registry: JobRegistry, fetcher: Fetcher, encoder: Encoder, job_id: str,
                url: str, tmp: Path, dest: Path, part: Path) -> None:
    try:
        logger.info("Downloading video for job %s from %s", job_id, url)
        try:
            fetcher.fetch(url, tmp)
        except FetchError as e:
            registry.fail(job_id, str(e))
            logger.error("Job %s download failed: %s", job_id, e)
            return
        transcode_job(registry, encoder, job_id, tmp, dest, part)
    except EncoderError:
        pass  # already recorded on the job
    except Exception as e:
        logger.exception("Job %s crashed", job_id)
        registry.fail(job_id, str(e) or type(e).__name__)
    finally:
        remove_quietly(tmp)
        remove_quietly(part)
