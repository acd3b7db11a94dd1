# vidstream/config.py
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
import os
from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]

# Load in ascending precedence; later overrides earlier
load_dotenv(ROOT / ".env")
load_dotenv(ROOT / ".env.local", override=True)
load_dotenv(ROOT / "vidstream" / ".env", override=True)
load_dotenv(ROOT / "vidstream" / ".env.local", override=True)


@dataclass(frozen=True)
class TranscodeProfile:
    """Fixed output profile every job is encoded to."""
    label: str = "480p"
    width: int = 854
    height: int = 480
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    video_bitrate: str = "1000k"
    audio_bitrate: str = "128k"
    fps: int = 30
    container: str = "mp4"
    crf: int = 23
    preset: str = "medium"
    h264_profile: str = "baseline"
    h264_level: str = "3.0"
    movflags: str = "+faststart"

    @property
    def size(self) -> str:
        return f"{self.width}x{self.height}"


PROFILE_480P = TranscodeProfile()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    def __init__(self):
        # Server
        self.HOST: str = os.getenv("HOST", "0.0.0.0")
        self.PORT: int = int(os.getenv("PORT", "3000"))
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

        # Storage
        self.DATA_DIR: Path = Path(os.getenv("DATA_DIR", str(ROOT / "data")))
        self.UPLOAD_DIR: Path = Path(os.getenv("UPLOAD_DIR", str(self.DATA_DIR / "uploads")))
        self.TEMP_DIR: Path = Path(os.getenv("TEMP_DIR", str(self.DATA_DIR / "temp")))
        self.OUTPUT_DIR: Path = Path(os.getenv("OUTPUT_DIR", str(self.DATA_DIR / "output")))
        self.MAX_UPLOAD_MB: int = int(os.getenv("MAX_UPLOAD_MB", "500"))

        # CORS
        self.ALLOWED_ORIGINS: list[str] = [
            s.strip() for s in os.getenv("ALLOWED_ORIGINS", "*").split(",") if s.strip()
        ]

        # Fetch / encode
        self.FETCH_TIMEOUT: float = float(os.getenv("FETCH_TIMEOUT", "60"))
        self.FFMPEG_BIN: str = os.getenv("FFMPEG_BIN", "ffmpeg")
        self.FFPROBE_BIN: str = os.getenv("FFPROBE_BIN", "ffprobe")
        self.MAX_CONCURRENT_JOBS: int = int(os.getenv("MAX_CONCURRENT_JOBS", "2"))

        # Housekeeping
        self.JOB_TTL_SECONDS: float = float(os.getenv("JOB_TTL_SECONDS", "86400"))
        self.CLEANUP_ON_STARTUP: bool = _env_bool("CLEANUP_ON_STARTUP", "1")
        self.MAX_FILE_AGE_SECONDS: float = float(os.getenv("MAX_FILE_AGE_SECONDS", "86400"))

    @property
    def max_upload_bytes(self) -> int:
        return self.MAX_UPLOAD_MB * 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    return Settings()
