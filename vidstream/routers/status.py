# vidstream/routers/status.py
from fastapi import APIRouter, Depends, HTTPException

from vidstream.core.deps import get_registry
from vidstream.core.models import JobStatus
from vidstream.core.registry import JobRegistry
from vidstream.services.storage import video_url

router = APIRouter(tags=["status"])


@router.get("/status/{job_id}")
async def get_status(job_id: str, registry: JobRegistry = Depends(get_registry)):
    job = registry.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")

    payload = job.to_api()
    if job.status is JobStatus.completed:
        payload["streamUrl"] = video_url(job_id)
        payload["downloadUrl"] = video_url(job_id)
    return payload
