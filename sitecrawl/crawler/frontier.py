"""
Crawl frontier: the dynamic FIFO job queue and its pending-work accounting.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Optional, Set


@dataclass(frozen=True)
class CrawlJob:
    """One URL to fetch at a given depth."""
    url: str
    depth: int


class InFlightTracker:
    """
    Counts jobs that are queued or still being processed.

    A job is added when it is created and marked done only after its whole
    processing, including the creation of its children, has finished.
    Callers must add children before marking the parent done, so the count
    can only reach zero when no worker can produce more work.
    """

    def __init__(self):
        self._count = 0
        self._lock = threading.Lock()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    def add(self, amount: int = 1):
        if amount < 0:
            raise ValueError("Use done() to resolve jobs")
        with self._lock:
            self._count += amount
            if self._count > 0:
                self._idle.clear()

    def done(self):
        with self._lock:
            if self._count <= 0:
                raise RuntimeError("done() called more times than jobs were added")
            self._count -= 1
            if self._count == 0:
                self._idle.set()

    def is_idle(self) -> bool:
        return self.count == 0

    async def wait_idle(self):
        """Block until no job is queued or in progress."""
        await self._idle.wait()


class CrawlFrontier:
    """
    Unbounded FIFO of crawl jobs shared by all workers.

    A URL is enqueued at most once per run. ``close`` wakes idle workers with
    one ``None`` sentinel each so they can exit.
    """

    def __init__(self, tracker: Optional[InFlightTracker] = None):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.in_flight = tracker or InFlightTracker()
        self.logger = logging.getLogger(__name__)

        self._scheduled: Set[str] = set()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def is_scheduled(self, url: str) -> bool:
        with self._lock:
            return url in self._scheduled

    def push(self, job: CrawlJob) -> bool:
        """
        Enqueue a job and count it as in flight.

        Returns False if the frontier is closed or the URL was already
        enqueued during this run.
        """
        with self._lock:
            if self._closed or job.url in self._scheduled:
                return False
            self._scheduled.add(job.url)
            self.in_flight.add()

        self.queue.put_nowait(job)
        self.logger.debug(f"Queued {job.url} at depth {job.depth}")
        return True

    async def get(self) -> Optional[CrawlJob]:
        """Next job, or None once the frontier has been closed."""
        return await self.queue.get()

    def resolve(self, job: CrawlJob):
        """Mark ``job`` fully processed. Children must already be pushed."""
        self.in_flight.done()

    def close(self, workers: int):
        with self._lock:
            if self._closed:
                return
            self._closed = True
        for _ in range(workers):
            self.queue.put_nowait(None)
        self.logger.debug(f"Frontier closed, released {workers} workers")

    def qsize(self) -> int:
        return self.queue.qsize()
