"""HTTP probe and retried download of candidate pages."""

from __future__ import annotations

import logging
import threading
import time
from typing import List, Optional

import requests
from requests.compat import chardet

from .config import CrawlConfig
from .models import FetchedPage

logger = logging.getLogger("student_finder.fetcher")

TRANSIENT_ERRORS = (requests.ConnectionError, requests.Timeout)
CHUNK_SIZE = 16 * 1024


def is_html_type(content_type: Optional[str]) -> bool:
    media_type = (content_type or "").split(";")[0].strip().lower()
    return "html" in media_type


def _declared_length(response: requests.Response) -> Optional[int]:
    raw = response.headers.get("Content-Length")
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def _decode_body(body: bytes, encoding: Optional[str]) -> str:
    if not encoding:
        encoding = chardet.detect(body)["encoding"] if chardet is not None else None
    try:
        return str(body, encoding or "utf-8", errors="replace")
    except LookupError:
        return str(body, "utf-8", errors="replace")


class Fetcher:
    """Wrapper around a ``requests.Session`` owned by a single crawl worker.

    ``fetch`` returns the page on success and ``None`` for anything that should
    be skipped: non-HTML resources, oversized resources, bad status codes,
    exhausted retries, or a cancelled run. It never raises for network trouble.

    ``deadline`` is an absolute :func:`time.monotonic` value. Request timeouts
    are capped by the time left before it and the body is read in chunks, so a
    stalled or trickling server cannot hold a fetch past the deadline by more
    than one socket timeout.
    """

    def __init__(
        self,
        config: CrawlConfig,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self.cancel_event = cancel_event or threading.Event()
        self.deadline = deadline
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "User-Agent": config.user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            }
        )

    def close(self) -> None:
        self.session.close()

    def _time_left(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def _stopped(self) -> bool:
        if self.cancel_event.is_set():
            return True
        left = self._time_left()
        return left is not None and left <= 0

    def _timeout(self, limit: float) -> float:
        left = self._time_left()
        if left is None:
            return limit
        return max(min(limit, left), 0.01)

    def probe(self, url: str) -> Optional[str]:
        """Header-only check; returns a skip reason or ``None`` to proceed.

        Any failure of the probe itself counts as inconclusive.
        """
        try:
            response = self.session.head(
                url,
                allow_redirects=True,
                timeout=self._timeout(self.config.probe_timeout),
                stream=True,
            )
        except requests.RequestException as exc:
            logger.debug("HEAD check failed for %s (%s), proceeding with GET", url, exc)
            return None

        try:
            if response.status_code >= 400:
                return None
            content_type = response.headers.get("Content-Type")
            if content_type and not is_html_type(content_type):
                return f"Content-Type={content_type}"
            length = _declared_length(response)
            if length is not None and length > self.config.max_content_length:
                return f"Content-Length={length}"
            return None
        finally:
            response.close()

    def _get_with_retry(self, url: str) -> Optional[requests.Response]:
        attempts = self.config.max_retries + 1
        for attempt in range(attempts):
            if self._stopped():
                return None
            try:
                return self.session.get(
                    url, timeout=self._timeout(self.config.request_timeout), stream=True
                )
            except TRANSIENT_ERRORS as exc:
                if attempt + 1 >= attempts:
                    logger.debug("Giving up on %s after %d attempts: %s", url, attempts, exc)
                    return None
                delay = self.config.backoff_base * (2 ** attempt)
                logger.debug(
                    "Transient error for %s (%s); retry %d/%d in %.1fs",
                    url,
                    exc,
                    attempt + 1,
                    self.config.max_retries,
                    delay,
                )
                if self.cancel_event.wait(delay):
                    return None
            except requests.RequestException as exc:
                logger.debug("Request for %s failed: %s", url, exc)
                return None
        return None

    def _read_body(self, url: str, response: requests.Response) -> Optional[bytes]:
        chunks: List[bytes] = []
        size = 0
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if self._stopped():
                logger.debug("Abandoning body of %s, crawl is stopping", url)
                return None
            size += len(chunk)
            if size > self.config.max_content_length:
                logger.debug("Skipping %s (body exceeds %d bytes)", url, self.config.max_content_length)
                return None
            chunks.append(chunk)
        return b"".join(chunks)

    def fetch(self, url: str) -> Optional[FetchedPage]:
        if self._stopped():
            return None

        reason = self.probe(url)
        if reason:
            logger.debug("Skipping %s (%s)", url, reason)
            return None

        response = self._get_with_retry(url)
        if response is None:
            return None

        with response:
            content_type = response.headers.get("Content-Type")
            if not response.ok or not is_html_type(content_type):
                logger.debug(
                    "Skipping %s (status=%s, Content-Type=%s)",
                    url,
                    response.status_code,
                    content_type,
                )
                return None
            try:
                body = self._read_body(url, response)
            except requests.RequestException as exc:
                logger.debug("Body download for %s failed: %s", url, exc)
                return None
            if body is None:
                return None
            declared = "charset" in (content_type or "").lower()
            return FetchedPage(
                requested_url=url,
                final_url=response.url or url,
                status=response.status_code,
                html=_decode_body(body, response.encoding if declared else None),
            )
