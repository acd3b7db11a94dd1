import os
import shutil
import tempfile
import threading
from pathlib import Path

import pytest

# keep the module-level app in vidstream.main away from the repo's data/ dir
_IMPORT_DATA_DIR = tempfile.mkdtemp(prefix="vidstream-import-")
os.environ.setdefault("DATA_DIR", _IMPORT_DATA_DIR)
os.environ.setdefault("CLEANUP_ON_STARTUP", "0")

from fastapi.testclient import TestClient

from vidstream.config import Settings
from vidstream.main import create_app
from vidstream.services.encoder import EncoderError
from vidstream.services.fetcher import FetchError

SAMPLE_BYTES = bytes(range(256)) * 4  # 1024 bytes


class StubEncoder:
    """Writes a fake MP4 and reports the given progress values."""

    def __init__(self, steps=(12.4, 37.5, 50.0, 99.6), payload=SAMPLE_BYTES):
        self.steps = steps
        self.payload = payload
        self.calls = []

    def transcode(self, src, dest, on_progress):
        self.calls.append((Path(src), Path(dest)))
        assert Path(src).exists(), "source must exist when the encoder starts"
        for pct in self.steps:
            on_progress(pct)
        Path(dest).write_bytes(self.payload)


class FailingEncoder(StubEncoder):
    def transcode(self, src, dest, on_progress):
        self.calls.append((Path(src), Path(dest)))
        on_progress(20.0)
        raise EncoderError("ffmpeg exited with code 1: Invalid data found when processing input")


class BlockingEncoder(StubEncoder):
    """Leaves a half-written file at ``dest`` until ``release`` is set."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.release = threading.Event()
        self.started = threading.Event()

    def transcode(self, src, dest, on_progress):
        self.calls.append((Path(src), Path(dest)))
        on_progress(10.0)
        Path(dest).write_bytes(self.payload[: len(self.payload) // 2])
        self.started.set()
        if not self.release.wait(timeout=10):
            raise EncoderError("encoder was never released")
        Path(dest).write_bytes(self.payload)


class EchoEncoder(StubEncoder):
    """Copies the source bytes through unchanged."""

    def transcode(self, src, dest, on_progress):
        self.calls.append((Path(src), Path(dest)))
        Path(dest).write_bytes(Path(src).read_bytes())


class StubFetcher:
    def __init__(self, payload=SAMPLE_BYTES):
        self.payload = payload
        self.calls = []

    def fetch(self, url, dest):
        self.calls.append((url, Path(dest)))
        Path(dest).write_bytes(self.payload)


class FailingFetcher(StubFetcher):
    def fetch(self, url, dest):
        self.calls.append((url, Path(dest)))
        raise FetchError("Failed to fetch URL: connection refused")


def wait_for_jobs(app, timeout=5.0):
    """Jobs run off the request thread; block until the runner is idle."""
    assert app.state.runner.join(timeout), "jobs still running"


@pytest.fixture
def settings(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    for name in ("UPLOAD_DIR", "TEMP_DIR", "OUTPUT_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MAX_UPLOAD_MB", "1")
    monkeypatch.setenv("CLEANUP_ON_STARTUP", "0")
    monkeypatch.setenv("JOB_TTL_SECONDS", "0")
    monkeypatch.delenv("MAX_CONCURRENT_JOBS", raising=False)
    return Settings()


@pytest.fixture
def encoder():
    return StubEncoder()


@pytest.fixture
def fetcher():
    return StubFetcher()


@pytest.fixture
def app(settings, encoder, fetcher):
    return create_app(settings, encoder=encoder, fetcher=fetcher)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(_IMPORT_DATA_DIR, ignore_errors=True)
