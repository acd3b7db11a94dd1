from contextlib import asynccontextmanager
from typing import Optional
import logging
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from vidstream.config import PROFILE_480P, Settings, get_settings
from vidstream.core.registry import JobRegistry
from vidstream.services.encoder import Encoder, FFmpegEncoder
from vidstream.services.fetcher import Fetcher, HttpFetcher
from vidstream.services.jobs import JobRunner
from vidstream.services.storage import VIDEOS_PREFIX, ensure_dirs, remove_stale_files

from .middleware_logging import register_request_logging
from .error_handlers import register_error_handlers
from .routers.convert import router as convert_router
from .routers.health import router as health_router
from .routers.status import router as status_router
from .routers.stream import router as stream_router
from .routers.videos import router as videos_router

logger = logging.getLogger("vidstream")

VERSION = "0.1.0"


def create_app(
    settings: Optional[Settings] = None,
    encoder: Optional[Encoder] = None,
    fetcher: Optional[Fetcher] = None,
) -> FastAPI:
    settings = settings or get_settings()
    ensure_dirs(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.CLEANUP_ON_STARTUP:
            remove_stale_files(
                (settings.UPLOAD_DIR, settings.TEMP_DIR, settings.OUTPUT_DIR),
                settings.MAX_FILE_AGE_SECONDS,
            )
        app.state.jobs = JobRegistry(ttl_seconds=settings.JOB_TTL_SECONDS)
        app.state.runner = JobRunner(settings.MAX_CONCURRENT_JOBS)
        app.state.started_at = time.monotonic()
        logger.info("Video encoder & streaming server ready (output=%s)", settings.OUTPUT_DIR)
        yield
        # job state is not persisted across restarts
        app.state.runner.shutdown()
        logger.info("Shutting down; dropping %d job record(s)", len(app.state.jobs))

    app = FastAPI(title="Video Encoder & Streaming Server", version=VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.encoder = encoder or FFmpegEncoder(
        PROFILE_480P, ffmpeg_bin=settings.FFMPEG_BIN, ffprobe_bin=settings.FFPROBE_BIN
    )
    app.state.fetcher = fetcher or HttpFetcher(
        timeout=settings.FETCH_TIMEOUT, max_bytes=settings.max_upload_bytes
    )

    register_request_logging(app)
    register_error_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Range", "Accept-Ranges", "Content-Length"],
    )

    # Serve converted videos at /videos/*
    app.mount(VIDEOS_PREFIX, StaticFiles(directory=str(settings.OUTPUT_DIR)), name="videos")

    @app.get("/")
    def root():
        return {
            "message": "Video Encoder & Streaming Server",
            "version": VERSION,
            "endpoints": ["/convert-url", "/upload", "/status/{jobId}", "/stream/{jobId}", "/api/videos", "/health"],
        }

    app.include_router(convert_router)
    app.include_router(status_router)
    app.include_router(stream_router)
    app.include_router(videos_router)
    app.include_router(health_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    s = get_settings()
    uvicorn.run(app, host=s.HOST, port=s.PORT)
