# vidstream/services/fetcher.py
from __future__ import annotations
from pathlib import Path
from typing import Callable, Optional, Protocol
import logging

import requests

logger = logging.getLogger("vidstream.fetcher")

CHUNK_SIZE = 1024 * 1024  # 1MB


class FetchError(RuntimeError):
    """The remote resource could not be retrieved."""


class Fetcher(Protocol):
    def fetch(self, url: str, dest: str | Path) -> None: ...


class HttpFetcher:
    def __init__(self, timeout: float = 60.0, max_bytes: Optional[int] = None,
                 session_factory: Callable[[], requests.Session] = requests.Session):
        self.timeout = timeout
        self.max_bytes = max_bytes
        # one session per download; jobs fetch from several threads at once
        self.session_factory = session_factory

    def fetch(self, url: str, dest: str | Path) -> None:
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Downloading %s -> %s", url, dest.name)
        session = self.session_factory()
        try:
            with session.get(url, stream=True, timeout=self.timeout, allow_redirects=True) as r:
                r.raise_for_status()
                ctype = (r.headers.get("content-type") or "").split(";")[0].strip().lower()
                if ctype.startswith("text/"):
                    raise FetchError(f"Unsupported remote content type: {ctype}")

                written = 0
                with dest.open("wb") as out:
                    for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
                        if not chunk:
                            continue
                        written += len(chunk)
                        if self.max_bytes is not None and written > self.max_bytes:
                            raise FetchError(
                                f"Remote file too large (> {self.max_bytes // (1024 * 1024)} MB)"
                            )
                        out.write(chunk)
        except FetchError:
            dest.unlink(missing_ok=True)
            raise
        except requests.RequestException as e:
            dest.unlink(missing_ok=True)
            raise FetchError(f"Failed to fetch URL: {e}") from e
        except OSError as e:
            dest.unlink(missing_ok=True)
            raise FetchError(f"Failed to store download: {e}") from e
        finally:
            session.close()

        if written == 0:
            dest.unlink(missing_ok=True)
            raise FetchError("Remote resource is empty")
        logger.info("Download completed: %s (%d bytes)", dest.name, written)
