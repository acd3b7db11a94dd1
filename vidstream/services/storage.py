# vidstream/services/storage.py
from __future__ import annotations
from pathlib import Path
from typing import Iterable, Optional
import logging
import os
import re
import time

from vidstream.config import PROFILE_480P, Settings

logger = logging.getLogger("vidstream.storage")

VIDEOS_PREFIX = "/videos"
_JOB_ID_RE = re.compile(r"^[A-Za-z0-9-]+$")
_OUTPUT_RE = re.compile(
    rf"^converted-(?P<job_id>[A-Za-z0-9-]+)-{PROFILE_480P.label}\.{PROFILE_480P.container}$"
)


def ensure_dirs(settings: Settings) -> None:
    for d in (settings.UPLOAD_DIR, settings.TEMP_DIR, settings.OUTPUT_DIR):
        d.mkdir(parents=True, exist_ok=True)


def is_valid_job_id(job_id: str) -> bool:
    return bool(_JOB_ID_RE.match(job_id or ""))


def output_filename(job_id: str) -> str:
    return f"converted-{job_id}-{PROFILE_480P.label}.{PROFILE_480P.container}"


def output_path(settings: Settings, job_id: str) -> Path:
    return settings.OUTPUT_DIR / output_filename(job_id)


def temp_path(settings: Settings, job_id: str) -> Path:
    return settings.TEMP_DIR / f"temp-{job_id}.{PROFILE_480P.container}"


def partial_path(settings: Settings, job_id: str) -> Path:
    # kept out of OUTPUT_DIR until the encode finished
    return settings.TEMP_DIR / f"{job_id}.part.{PROFILE_480P.container}"


def video_url(job_id: str) -> str:
    return f"{VIDEOS_PREFIX}/{output_filename(job_id)}"


def job_id_from_filename(name: str) -> Optional[str]:
    m = _OUTPUT_RE.match(name)
    return m.group("job_id") if m else None


def safe_name(name: str) -> str:
    base = os.path.basename(name or "")
    return "".join(c for c in base if c.isalnum() or c in ("-", "_", ".")).strip(".") or "video"


def remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove %s: %s", path, e)


def remove_stale_files(dirs: Iterable[Path], max_age_seconds: float, now: Optional[float] = None) -> int:
    """Delete regular files older than ``max_age_seconds`` from ``dirs``."""
    cutoff = (now if now is not None else time.time()) - max_age_seconds
    removed = 0
    for d in dirs:
        if not d.is_dir():
            continue
        for p in d.iterdir():
            try:
                if p.is_file() and p.stat().st_mtime < cutoff:
                    p.unlink()
                    removed += 1
            except OSError as e:
                logger.warning("Cleanup skipped %s: %s", p, e)
    if removed:
        logger.info("Removed %d stale file(s)", removed)
    return removed
