# vidstream/services/encoder.py
from __future__ import annotations
from collections import deque
from pathlib import Path
from typing import Callable, Optional, Protocol
import logging
import threading

import ffmpeg

from vidstream.config import PROFILE_480P, TranscodeProfile

logger = logging.getLogger("vidstream.encoder")

ProgressCallback = Callable[[float], None]


class EncoderError(RuntimeError):
    """The encoder could not produce the output file."""


# ---------- Interface ----------
class Encoder(Protocol):
    def transcode(self, src: str | Path, dest: str | Path, on_progress: ProgressCallback) -> None: ...


def parse_progress_line(line: str) -> Optional[float]:
    """
    Return the encoded media position (seconds) from one ``-progress`` line,
    or None if the line carries no position.
    ffmpeg writes both out_time_us and out_time_ms in microseconds.
    """
    key, sep, value = line.strip().partition("=")
    if not sep:
        return None
    value = value.strip()
    if key in ("out_time_us", "out_time_ms"):
        try:
            return max(0.0, int(value) / 1_000_000)
        except ValueError:
            return None
    if key == "out_time":
        try:
            h, m, s = value.split(":")
            return max(0.0, int(h) * 3600 + int(m) * 60 + float(s))
        except ValueError:
            return None
    return None


def probe_duration(src: str | Path, ffprobe_bin: str = "ffprobe") -> Optional[float]:
    try:
        info = ffmpeg.probe(str(src), cmd=ffprobe_bin)
    except ffmpeg.Error as e:
        stderr = (e.stderr or b"").decode(errors="ignore").strip()
        raise EncoderError(f"Cannot read input: {stderr.splitlines()[-1] if stderr else e}") from e
    except FileNotFoundError as e:
        raise EncoderError(f"{ffprobe_bin} not found on PATH") from e

    candidates = [info.get("format", {}).get("duration")]
    candidates += [s.get("duration") for s in info.get("streams", [])]
    durations = []
    for c in candidates:
        try:
            durations.append(float(c))
        except (TypeError, ValueError):
            continue
    positive = [d for d in durations if d > 0]
    return max(positive) if positive else None


def build_command(src: str | Path, dest: str | Path, profile: TranscodeProfile = PROFILE_480P):
    """ffmpeg-python stream spec for ``src`` -> ``dest`` in the given profile."""
    return (
        ffmpeg
        .input(str(src))
        .output(
            str(dest),
            vcodec=profile.video_codec,
            acodec=profile.audio_codec,
            s=profile.size,
            video_bitrate=profile.video_bitrate,
            audio_bitrate=profile.audio_bitrate,
            r=profile.fps,
            format=profile.container,
            crf=profile.crf,
            preset=profile.preset,
            movflags=profile.movflags,
            level=profile.h264_level,
            **{"profile:v": profile.h264_profile},
        )
        .global_args("-loglevel", "error", "-progress", "pipe:1", "-nostats")
        .overwrite_output()
    )


class FFmpegEncoder:
    def __init__(self, profile: TranscodeProfile = PROFILE_480P,
                 ffmpeg_bin: str = "ffmpeg", ffprobe_bin: str = "ffprobe"):
        self.profile = profile
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin

    def transcode(self, src: str | Path, dest: str | Path, on_progress: ProgressCallback) -> None:
        src, dest = Path(src), Path(dest)
        duration = probe_duration(src, self.ffprobe_bin)
        if duration is None:
            logger.warning("Unknown duration for %s; progress will jump to 100 on completion", src.name)

        dest.parent.mkdir(parents=True, exist_ok=True)
        stream = build_command(src, dest, self.profile)
        logger.debug("Running %s", " ".join(stream.compile(cmd=self.ffmpeg_bin)))
        try:
            proc = stream.run_async(cmd=self.ffmpeg_bin, pipe_stdout=True, pipe_stderr=True)
        except FileNotFoundError as e:
            raise EncoderError(f"{self.ffmpeg_bin} not found on PATH") from e

        # drain stderr so a chatty failure cannot block the progress pipe
        stderr_tail: deque[str] = deque(maxlen=20)

        def _drain():
            for raw in proc.stderr:
                text = raw.decode(errors="ignore").strip()
                if text:
                    stderr_tail.append(text)

        drain = threading.Thread(target=_drain, name=f"ffmpeg-stderr-{dest.stem}", daemon=True)
        drain.start()

        try:
            for raw in proc.stdout:
                if duration is None:
                    continue
                position = parse_progress_line(raw.decode(errors="ignore"))
                if position is not None:
                    on_progress(min(100.0, position / duration * 100.0))
        except BaseException:
            # nobody reads the progress pipe any more; ffmpeg would block on it
            proc.kill()
            dest.unlink(missing_ok=True)
            raise
        finally:
            rc = proc.wait()
            drain.join(timeout=5)

        if rc != 0:
            dest.unlink(missing_ok=True)
            detail = stderr_tail[-1] if stderr_tail else "no diagnostic output"
            raise EncoderError(f"ffmpeg exited with code {rc}: {detail}")
