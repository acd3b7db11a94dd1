# vidstream/routers/health.py
from fastapi import APIRouter, Depends, Request
from datetime import datetime, timezone
import shutil
import time

from vidstream.config import PROFILE_480P, Settings
from vidstream.core.deps import get_app_settings, get_registry
from vidstream.core.registry import JobRegistry

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request, registry: JobRegistry = Depends(get_registry)):
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
        "jobs": len(registry),
    }


@router.get("/health/env")
def env_preview(settings: Settings = Depends(get_app_settings)):
    return {
        "status": "ok",
        # server
        "HOST": settings.HOST,
        "PORT": settings.PORT,
        "UPLOAD_DIR": str(settings.UPLOAD_DIR.resolve()),
        "TEMP_DIR": str(settings.TEMP_DIR.resolve()),
        "OUTPUT_DIR": str(settings.OUTPUT_DIR.resolve()),
        "MAX_UPLOAD_MB": settings.MAX_UPLOAD_MB,
        "ALLOWED_ORIGINS": settings.ALLOWED_ORIGINS,
        "JOB_TTL_SECONDS": settings.JOB_TTL_SECONDS,
        # encoder
        "encoder": {
            "ffmpeg": shutil.which(settings.FFMPEG_BIN),
            "ffprobe": shutil.which(settings.FFPROBE_BIN),
            "profile": {
                "size": PROFILE_480P.size,
                "video": f"{PROFILE_480P.video_codec} {PROFILE_480P.video_bitrate}",
                "audio": f"{PROFILE_480P.audio_codec} {PROFILE_480P.audio_bitrate}",
                "fps": PROFILE_480P.fps,
                "crf": PROFILE_480P.crf,
                "preset": PROFILE_480P.preset,
            },
        },
    }
