# vidstream/routers/stream.py
from __future__ import annotations
from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import StreamingResponse
from pathlib import Path
from typing import Iterator, Optional, Tuple
import re

from vidstream.config import Settings
from vidstream.core.deps import get_app_settings, get_registry
from vidstream.core.models import JobStatus
from vidstream.core.registry import JobRegistry
from vidstream.services.storage import is_valid_job_id, output_path

router = APIRouter(tags=["stream"])

CHUNK_SIZE = 64 * 1024
MEDIA_TYPE = "video/mp4"
_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")


class RangeNotSatisfiable(ValueError):
    pass


def parse_range(header: Optional[str], size: int) -> Optional[Tuple[int, int]]:
    """
    Parse a single ``bytes=start-end`` range against a file of ``size`` bytes.

    Returns None when no range was requested, an inclusive (start, end) pair
    otherwise. ``end`` past the last byte is clamped; ``bytes=-N`` selects the
    last N bytes. Anything else (other units, several ranges, non-numeric
    bounds, start > end, start beyond the file) raises RangeNotSatisfiable.
    """
    if header is None or not header.strip():
        return None
    m = _RANGE_RE.match(header.strip().replace(" ", ""))
    if not m:
        raise RangeNotSatisfiable(f"Malformed range: {header!r}")
    first, last = m.groups()
    if not first and not last:
        raise RangeNotSatisfiable("Empty range")
    if size <= 0:
        raise RangeNotSatisfiable("Empty file")

    if not first:
        suffix = int(last)
        if suffix == 0:
            raise RangeNotSatisfiable("Zero-length suffix range")
        return max(0, size - suffix), size - 1

    start = int(first)
    end = int(last) if last else size - 1
    if start >= size or start > end:
        raise RangeNotSatisfiable(f"Range {start}-{end} outside 0-{size - 1}")
    return start, min(end, size - 1)


def iter_file(path: Path, start: int, length: int) -> Iterator[bytes]:
    with path.open("rb") as f:
        f.seek(start)
        remaining = length
        while remaining > 0:
            chunk = f.read(min(CHUNK_SIZE, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


@router.get("/stream/{job_id}")
def stream_video(
    job_id: str,
    range_header: Optional[str] = Header(None, alias="range"),
    registry: JobRegistry = Depends(get_registry),
    settings: Settings = Depends(get_app_settings),
):
    if not is_valid_job_id(job_id):
        raise HTTPException(status_code=404, detail="Video not found")

    # Jobs this process knows about must be finished; files left by an
    # earlier run (no registry entry) are still served.
    job = registry.get(job_id)
    if job is not None and job.status is not JobStatus.completed:
        raise HTTPException(status_code=404, detail="Video not found")

    path = output_path(settings, job_id)
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Video not found")
    size = path.stat().st_size

    try:
        window = parse_range(range_header, size)
    except RangeNotSatisfiable as e:
        raise HTTPException(
            status_code=416,
            detail=str(e),
            headers={"Content-Range": f"bytes */{size}", "Accept-Ranges": "bytes"},
        )

    if window is None:
        return StreamingResponse(
            iter_file(path, 0, size),
            status_code=200,
            media_type=MEDIA_TYPE,
            headers={"Content-Length": str(size), "Accept-Ranges": "bytes"},
        )

    start, end = window
    length = end - start + 1
    return StreamingResponse(
        iter_file(path, start, length),
        status_code=206,
        media_type=MEDIA_TYPE,
        headers={
            "Content-Range": f"bytes {start}-{end}/{size}",
            "Accept-Ranges": "bytes",
            "Content-Length": str(length),
        },
    )
