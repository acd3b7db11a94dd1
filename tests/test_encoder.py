import io
from pathlib import Path

import ffmpeg
import pytest

from vidstream.services import encoder as encoder_mod
from vidstream.services.encoder import (
    EncoderError,
    FFmpegEncoder,
    build_command,
    parse_progress_line,
    probe_duration,
)


def _opt(args, flag):
    return args[args.index(flag) + 1]


class TestCommand:
    def test_profile_flags(self):
        args = build_command("in.mov", "out.mp4").compile()

        assert args[0] == "ffmpeg"
        assert _opt(args, "-i") == "in.mov"
        assert _opt(args, "-vcodec") == "libx264"
        assert _opt(args, "-acodec") == "aac"
        assert _opt(args, "-s") == "854x480"
        assert _opt(args, "-b:v") == "1000k"
        assert _opt(args, "-b:a") == "128k"
        assert _opt(args, "-r") == "30"
        assert _opt(args, "-f") == "mp4"
        assert _opt(args, "-crf") == "23"
        assert _opt(args, "-preset") == "medium"
        assert _opt(args, "-movflags") == "+faststart"
        assert _opt(args, "-profile:v") == "baseline"
        assert _opt(args, "-level") == "3.0"
        assert _opt(args, "-progress") == "pipe:1"
        assert "-nostats" in args
        assert "-y" in args
        assert "out.mp4" in args


class TestProgressLines:
    @pytest.mark.parametrize("line,expected", [
        ("out_time_us=12500000", 12.5),
        ("out_time_ms=3000000\n", 3.0),
        ("out_time=00:01:02.500000", 62.5),
    ])
    def test_positions(self, line, expected):
        assert parse_progress_line(line) == pytest.approx(expected)

    @pytest.mark.parametrize("line", [
        "progress=continue", "out_time_us=N/A", "out_time=N/A", "frame=12", "garbage", "",
    ])
    def test_non_position_lines(self, line):
        assert parse_progress_line(line) is None


class TestDuration:
    def test_uses_format_duration(self, monkeypatch):
        monkeypatch.setattr(ffmpeg, "probe", lambda *a, **k: {
            "format": {"duration": "20.0"}, "streams": [{"duration": "19.9"}],
        })
        assert probe_duration("x.mp4") == 20.0

    def test_unknown_duration(self, monkeypatch):
        monkeypatch.setattr(ffmpeg, "probe", lambda *a, **k: {"format": {}, "streams": [{"duration": "N/A"}]})
        assert probe_duration("x.mp4") is None

    def test_unreadable_input(self, monkeypatch):
        def boom(*a, **k):
            raise ffmpeg.Error("ffprobe", b"", b"x.mp4: Invalid data found when processing input\n")
        monkeypatch.setattr(ffmpeg, "probe", boom)
        with pytest.raises(EncoderError, match="Invalid data found"):
            probe_duration("x.mp4")

    def test_missing_binary(self, monkeypatch):
        def boom(*a, **k):
            raise FileNotFoundError("ffprobe")
        monkeypatch.setattr(ffmpeg, "probe", boom)
        with pytest.raises(EncoderError, match="not found"):
            probe_duration("x.mp4")


class FakeProc:
    def __init__(self, stdout: bytes, stderr: bytes, returncode: int, dest: Path = None):
        self.stdout = io.BytesIO(stdout)
        self.stderr = io.BytesIO(stderr)
        self.returncode = returncode
        self._dest = dest
        self.killed = False

    def wait(self):
        if self._dest is not None:
            self._dest.write_bytes(b"partial")
        return self.returncode

    def kill(self):
        self.killed = True


class FakeStream:
    def __init__(self, proc):
        self.proc = proc

    def compile(self, cmd="ffmpeg"):
        return [cmd, "-i", "in", "out"]

    def run_async(self, cmd="ffmpeg", pipe_stdout=False, pipe_stderr=False):
        return self.proc


class TestFFmpegEncoder:
    def _install(self, monkeypatch, proc, duration=10.0):
        monkeypatch.setattr(encoder_mod, "probe_duration", lambda src, ffprobe_bin="ffprobe": duration)
        monkeypatch.setattr(encoder_mod, "build_command", lambda src, dest, profile: FakeStream(proc))

    def test_reports_fractional_progress(self, monkeypatch, tmp_path):
        out = (
            b"out_time_us=2500000\nprogress=continue\n"
            b"out_time_us=5000000\nprogress=continue\n"
            b"out_time_us=10000000\nprogress=end\n"
        )
        proc = FakeProc(out, b"", 0)
        self._install(monkeypatch, proc)
        seen = []

        FFmpegEncoder().transcode(tmp_path / "in.mov", tmp_path / "out.mp4", seen.append)

        assert seen == [25.0, 50.0, 100.0]
        assert not proc.killed

    def test_unknown_duration_skips_progress(self, monkeypatch, tmp_path):
        self._install(monkeypatch, FakeProc(b"out_time_us=2500000\n", b"", 0), duration=None)
        seen = []
        FFmpegEncoder().transcode(tmp_path / "in.mov", tmp_path / "out.mp4", seen.append)
        assert seen == []

    def test_failure_raises_and_removes_partial_output(self, monkeypatch, tmp_path):
        dest = tmp_path / "out.mp4"
        err = b"Unknown encoder 'libx264'\nConversion failed!\n"
        self._install(monkeypatch, FakeProc(b"", err, 1, dest=dest))

        with pytest.raises(EncoderError, match="code 1: Conversion failed!"):
            FFmpegEncoder().transcode(tmp_path / "in.mov", dest, lambda p: None)
        assert not dest.exists()

    def test_callback_error_kills_ffmpeg(self, monkeypatch, tmp_path):
        dest = tmp_path / "out.mp4"
        dest.write_bytes(b"half an mp4")
        proc = FakeProc(b"out_time_us=2500000\nprogress=continue\n", b"", 0)
        self._install(monkeypatch, proc)

        def on_progress(pct):
            raise RuntimeError("registry unavailable")

        with pytest.raises(RuntimeError, match="registry unavailable"):
            FFmpegEncoder().transcode(tmp_path / "in.mov", dest, on_progress)
        assert proc.killed
        assert not dest.exists()
