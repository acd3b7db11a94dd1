# vidstream/routers/convert.py
from __future__ import annotations
from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from pydantic import BaseModel
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse
import logging
import uuid

from vidstream.config import Settings
from vidstream.core.deps import get_app_settings, get_registry, get_runner
from vidstream.core.registry import JobRegistry
from vidstream.services.jobs import JobRunner, run_upload_job, run_url_job
from vidstream.services.storage import output_path, partial_path, remove_quietly, safe_name, temp_path

logger = logging.getLogger("vidstream.jobs")

router = APIRouter(tags=["convert"])

CHUNK_SIZE = 1024 * 1024  # 1MB
STARTED_MESSAGE = "Video conversion started. Check status endpoint for progress."


class ConvertUrlRequest(BaseModel):
    url: Optional[str] = None


def _new_job_id() -> str:
    return str(uuid.uuid4())


def _started(job_id: str) -> dict:
    return {"success": True, "jobId": job_id, "message": STARTED_MESSAGE}


@router.post("/convert-url")
def convert_url(
    req: ConvertUrlRequest,
    request: Request,
    registry: JobRegistry = Depends(get_registry),
    runner: JobRunner = Depends(get_runner),
    settings: Settings = Depends(get_app_settings),
):
    url = (req.url or "").strip()
    if not url:
        raise HTTPException(status_code=400, detail="URL is required")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise HTTPException(status_code=400, detail="URL must be an absolute http(s) URL")

    job_id = _new_job_id()
    registry.create(job_id)
    runner.submit(
        run_url_job,
        registry,
        request.app.state.fetcher,
        request.app.state.encoder,
        job_id,
        url,
        temp_path(settings, job_id),
        output_path(settings, job_id),
        partial_path(settings, job_id),
    )
    logger.info("Accepted URL job %s for %s", job_id, url)
    return _started(job_id)


async def _write_upload_stream(dest_path: Path, up: UploadFile, max_bytes: int, max_mb: int):
    written = 0
    with dest_path.open("wb") as buf:
        while True:
            chunk = await up.read(CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > max_bytes:
                buf.close()
                remove_quietly(dest_path)
                raise HTTPException(status_code=413, detail=f"File too large. Maximum size is {max_mb}MB.")
            buf.write(chunk)
    return written


@router.post("/upload")
async def upload_video(
    request: Request,
    video: Optional[UploadFile] = File(None),
    registry: JobRegistry = Depends(get_registry),
    runner: JobRunner = Depends(get_runner),
    settings: Settings = Depends(get_app_settings),
):
    if video is None or not video.filename:
        raise HTTPException(status_code=400, detail="No video file uploaded")
    if not (video.content_type or "").lower().startswith("video/"):
        raise HTTPException(status_code=400, detail="Only video files are allowed!")

    upload_path = settings.UPLOAD_DIR / f"{uuid.uuid4()}-{safe_name(video.filename)}"
    try:
        size = await _write_upload_stream(upload_path, video, settings.max_upload_bytes, settings.MAX_UPLOAD_MB)
    finally:
        await video.close()

    job_id = _new_job_id()
    registry.create(job_id)
    runner.submit(
        run_upload_job,
        registry,
        request.app.state.encoder,
        job_id,
        upload_path,
        output_path(settings, job_id),
        partial_path(settings, job_id),
    )
    logger.info("Accepted upload job %s (%s, %d bytes)", job_id, upload_path.name, size)
    return _started(job_id)
