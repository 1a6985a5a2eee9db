from __future__ import annotations

import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Dict, List, Optional, Set

import pytest

from student_finder.config import CrawlConfig
from student_finder.models import FetchedPage


class FakeSite:
    """In-memory site served by :class:`FakeFetcher`, keyed by normalized URL."""

    def __init__(self, pages: Dict[str, str]) -> None:
        self.pages = pages
        self.slow: Set[str] = set()
        self.failing: Set[str] = set()
        self.hooks: Dict[str, Callable[[], None]] = {}
        self.fetched: List[str] = []
        self._lock = threading.Lock()

    def factory(
        self, config: CrawlConfig, cancel_event: threading.Event, deadline: Optional[float] = None
    ) -> "FakeFetcher":
        return FakeFetcher(self, config, cancel_event)


class FakeFetcher:
    def __init__(self, site: FakeSite, config: CrawlConfig, cancel_event: threading.Event) -> None:
        self.site = site
        self.config = config
        self.cancel_event = cancel_event
        self.closed = False

    def fetch(self, url: str) -> Optional[FetchedPage]:
        if self.cancel_event.is_set():
            return None
        with self.site._lock:
            self.site.fetched.append(url)
        if url in self.site.slow:
            self.cancel_event.wait(10)
            return None
        if url in self.site.failing:
            raise RuntimeError(f"boom: {url}")
        hook = self.site.hooks.get(url)
        if hook is not None:
            hook()
        html = self.site.pages.get(url)
        if html is None:
            return None
        return FetchedPage(requested_url=url, final_url=url, status=200, html=html)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_config(tmp_path) -> Callable[..., CrawlConfig]:
    def _make(**overrides) -> CrawlConfig:
        values = dict(
            start_url="https://project.cmd.hr.nl",
            base_host="hr.nl",
            include_subdomains=True,
            concurrency=1,
            deadline_seconds=5.0,
            request_timeout=2.0,
            probe_timeout=2.0,
            backoff_base=0.0,
            idle_wait=0.01,
            drain_timeout=1.0,
            output_root=tmp_path / "reports",
        )
        values.update(overrides)
        return CrawlConfig(**values)

    return _make


class SlowHandler(BaseHTTPRequestHandler):
    """``/stall`` never answers; anything else trickles a chunked HTML body."""

    protocol_version = "HTTP/1.1"

    def log_message(self, format, *args):
        pass

    def do_HEAD(self):
        self.send_response(200)
        self.send_header("Content-Type", "text/html")
        self.send_header("Content-Length", "0")
        self.end_headers()

    def do_GET(self):
        release = self.server.release
        self.close_connection = True
        try:
            if self.path.startswith("/stall"):
                release.wait(10)
                return
            self.send_response(200)
            self.send_header("Content-Type", "text/html; charset=utf-8")
            self.send_header("Transfer-Encoding", "chunked")
            self.end_headers()
            piece = b"<p>Jan Bakker</p>"
            for _ in range(100):
                if release.wait(0.1):
                    break
                self.wfile.write(b"%x\r\n%s\r\n" % (len(piece), piece))
                self.wfile.flush()
            self.wfile.write(b"0\r\n\r\n")
        except OSError:
            pass


@pytest.fixture
def slow_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), SlowHandler)
    server.daemon_threads = True
    server.release = threading.Event()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    yield f"http://{host}:{port}"
    server.release.set()
    server.shutdown()
    server.server_close()
