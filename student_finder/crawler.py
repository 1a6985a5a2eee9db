"""Breadth-first crawl coordination over a bounded pool of fetch workers."""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from .admission import AdmissionFilter
from .config import CrawlConfig
from .content import extract_page
from .fetcher import Fetcher
from .frontier import Frontier
from .models import CrawlResult, FetchedPage, Finding, PageExtraction

logger = logging.getLogger("student_finder.crawler")

FetcherFactory = Callable[[CrawlConfig, threading.Event, float], Fetcher]


class CrawlState(enum.Enum):
    SEEDING = "seeding"
    RUNNING = "running"
    DRAINING = "draining"
    DONE = "done"


def _log_finding(finding: Finding) -> None:
    if finding.name and finding.image_url:
        logger.info("Found person: %s (%s) on %s", finding.name, finding.image_url, finding.url)
    elif finding.name:
        logger.info("Found name: %s on %s", finding.name, finding.url)
    else:
        logger.info("Found image: %s on %s", finding.image_url, finding.url)


class CrawlCoordinator:
    """Owns the state of a single crawl run.

    ``concurrency`` long-lived workers pull URLs from the shared frontier. A
    worker that finds the frontier empty while others are still busy backs off
    and retries, since a busy worker may still discover links. The run ends
    when the frontier is empty and nobody is busy, when the deadline expires,
    or when :meth:`cancel` is called. Pages that were fully fetched and parsed
    before that point keep their findings.
    """

    def __init__(
        self,
        config: CrawlConfig,
        fetcher_factory: FetcherFactory = Fetcher,
        admission: Optional[AdmissionFilter] = None,
    ) -> None:
        self.config = config
        self.fetcher_factory = fetcher_factory
        self.admission = admission or AdmissionFilter.from_config(config)
        self.state = CrawlState.SEEDING
        self.frontier = Frontier()
        self.result = CrawlResult()
        self._cancel_event = threading.Event()
        self._results_lock = threading.Lock()
        self._in_flight = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._wakeup: Optional[asyncio.Event] = None

    def cancel(self) -> None:
        """Stop starting new work; safe to call from any thread."""
        self._cancel_event.set()
        if self._loop is not None and self._wakeup is not None:
            self._loop.call_soon_threadsafe(self._wakeup.set)

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def _record(self, page: FetchedPage, extraction: PageExtraction) -> int:
        with self._results_lock:
            self.result.findings.extend(extraction.findings)
            self.result.visited_urls.add(page.final_url)
            self.result.pages_processed += 1
        for finding in extraction.findings:
            _log_finding(finding)

        offered = 0
        for link in extraction.links:
            if self.admission.admit(link) and self.frontier.offer(link):
                offered += 1
        return offered

    async def _process(self, url: str, fetcher: Fetcher, executor: ThreadPoolExecutor) -> None:
        loop = asyncio.get_running_loop()
        try:
            page = await loop.run_in_executor(executor, fetcher.fetch, url)
        except asyncio.CancelledError:
            logger.debug("Fetch aborted for %s", url)
            raise
        if page is None:
            return
        extraction = await loop.run_in_executor(executor, extract_page, page.html, page.final_url)
        offered = self._record(page, extraction)
        logger.debug(
            "Processed %s: %d finding(s), %d new link(s)",
            page.final_url,
            len(extraction.findings),
            offered,
        )

    async def _worker(self, worker_id: int, fetcher: Fetcher, executor: ThreadPoolExecutor) -> None:
        while not self._cancel_event.is_set():
            url = self.frontier.try_dequeue()
            if url is None:
                if self._in_flight == 0:
                    logger.debug("Worker %d found no more work", worker_id)
                    return
                await asyncio.sleep(self.config.idle_wait)
                continue

            if not self.admission.admit(url):
                logger.debug("Skipping %s (not admitted)", url)
                continue

            self._in_flight += 1
            try:
                await self._process(url, fetcher, executor)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Error processing %s", url)
            finally:
                self._in_flight -= 1

    async def _supervise(self, workers: List[asyncio.Task]) -> bool:
        """Wait for the workers; False when stopped by cancel or deadline."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.deadline_seconds
        pending = set(workers)
        stop_waiter = asyncio.ensure_future(self._wakeup.wait())
        try:
            while pending:
                if self._cancel_event.is_set():
                    logger.warning("Crawl cancelled, stopping")
                    return False
                remaining = deadline - loop.time()
                if remaining <= 0:
                    logger.warning(
                        "Crawl deadline of %.0fs reached, stopping",
                        self.config.deadline_seconds,
                    )
                    return False
                done, pending = await asyncio.wait(
                    pending | {stop_waiter},
                    timeout=remaining,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                pending.discard(stop_waiter)
            return True
        finally:
            stop_waiter.cancel()

    async def _drain(self, workers: List[asyncio.Task]) -> None:
        running = [task for task in workers if not task.done()]
        if running:
            self._cancel_event.set()
        if running and self.config.drain_timeout > 0:
            _, still_running = await asyncio.wait(running, timeout=self.config.drain_timeout)
            running = list(still_running)
        for task in running:
            task.cancel()
        outcomes = await asyncio.gather(*workers, return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, Exception):
                logger.warning("Crawl worker failed: %r", outcome)

    async def run(self) -> CrawlResult:
        self.config.validate()
        start = time.perf_counter()
        self._loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()

        seeded = self.frontier.seed(self.config.start_url)
        logger.info("Crawler starting at %s (base host %s)", seeded, self.admission.base_host)
        self.state = CrawlState.RUNNING

        concurrency = self.config.concurrency
        executor = ThreadPoolExecutor(
            max_workers=concurrency, thread_name_prefix="student-finder-worker"
        )
        deadline = time.monotonic() + self.config.deadline_seconds
        fetchers = [
            self.fetcher_factory(self.config, self._cancel_event, deadline)
            for _ in range(concurrency)
        ]
        workers = [
            asyncio.ensure_future(self._worker(idx, fetcher, executor))
            for idx, fetcher in enumerate(fetchers)
        ]
        completed = False
        try:
            completed = await self._supervise(workers)
        finally:
            self.state = CrawlState.DRAINING
            await self._drain(workers)
            executor.shutdown(wait=False, cancel_futures=True)
            for fetcher in fetchers:
                fetcher.close()

        self.result.cancelled = not completed or self._cancel_event.is_set()
        self.result.elapsed_seconds = time.perf_counter() - start
        self.state = CrawlState.DONE
        logger.info(
            "Crawl complete, pages processed: %d, findings: %d (%.1fs%s)",
            self.result.pages_processed,
            len(self.result.findings),
            self.result.elapsed_seconds,
            ", cancelled" if self.result.cancelled else "",
        )
        return self.result


async def run_crawler(
    config: CrawlConfig,
    fetcher_factory: FetcherFactory = Fetcher,
) -> CrawlResult:
    """Crawl from ``config.start_url`` and return the raw findings."""
    coordinator = CrawlCoordinator(config, fetcher_factory=fetcher_factory)
    return await coordinator.run()
