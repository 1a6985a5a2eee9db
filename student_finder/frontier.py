"""Work queue of discovered URLs with all-time de-duplication."""

from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Optional, Set

from .utils import normalize_url, url_key


class Frontier:
    """FIFO queue of normalized URLs; each key is enqueued at most once per run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._queue: Deque[str] = deque()
        self._seen: Set[str] = set()
        self._dequeued = 0

    def seed(self, url: str) -> str:
        normalized = normalize_url(url)
        with self._lock:
            key = url_key(normalized)
            if key not in self._seen:
                self._seen.add(key)
                self._queue.append(normalized)
        return normalized

    def offer(self, url: str) -> bool:
        normalized = normalize_url(url)
        key = url_key(normalized)
        with self._lock:
            if key in self._seen:
                return False
            self._seen.add(key)
            self._queue.append(normalized)
        return True

    def try_dequeue(self) -> Optional[str]:
        with self._lock:
            if not self._queue:
                return None
            self._dequeued += 1
            return self._queue.popleft()

    def seen(self, url: str) -> bool:
        with self._lock:
            return url_key(url) in self._seen

    @property
    def dequeued(self) -> int:
        return self._dequeued

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)
