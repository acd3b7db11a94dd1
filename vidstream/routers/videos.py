# vidstream/routers/videos.py
from fastapi import APIRouter, Depends

from vidstream.config import Settings
from vidstream.core.deps import get_app_settings
from vidstream.services.storage import VIDEOS_PREFIX, job_id_from_filename

router = APIRouter(prefix="/api", tags=["videos"])


@router.get("/videos")
def list_videos(settings: Settings = Depends(get_app_settings)):
    videos = []
    if settings.OUTPUT_DIR.is_dir():
        for p in sorted(settings.OUTPUT_DIR.glob("*.mp4")):
            if not p.is_file():
                continue
            job_id = job_id_from_filename(p.name)
            videos.append({
                "filename": p.name,
                "url": f"{VIDEOS_PREFIX}/{p.name}",
                "streamUrl": f"/stream/{job_id}" if job_id else None,
                "size": p.stat().st_size,
            })
    return {"success": True, "videos": videos}
