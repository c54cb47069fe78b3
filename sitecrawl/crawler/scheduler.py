"""
Crawler scheduler that coordinates crawling tasks and manages the overall crawl process.
"""

import asyncio
import logging
import threading
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from .fetcher import PageFetcher, PageResult, WebFetcher
from .frontier import CrawlFrontier, CrawlJob
from .parser import normalize_url
from .rate_limiter import TokenBucketRateLimiter
from .sitemap import SitemapDiscovery, SitemapSource
from .stats import StatsAggregator
from .url_gate import URLGate
from .visited import VisitedSet
from ..exceptions import CheckpointError, CrawlerError
from ..storage.checkpoint import CheckpointStore, CrawlState
from ..storage.results import CrawlResults, ResultStore
from ..utils.config import CrawlerConfig
from ..utils.datetime_utils import utc_now
from ..utils.formatting import format_bytes, format_number


class CrawlScheduler:
    """
    Main scheduler that coordinates all crawler components.

    Runs a fixed pool of worker tasks over one FIFO frontier. The crawl ends
    when no job is queued or in progress, or when ``stop()`` is called; in the
    latter case a checkpoint is flushed so the next run can resume.
    """

    def __init__(self, config: CrawlerConfig,
                 fetcher: Optional[PageFetcher] = None,
                 sitemap: Optional[SitemapSource] = None,
                 checkpoint_store: Optional[CheckpointStore] = None,
                 rate_limiter: Optional[TokenBucketRateLimiter] = None):
        self.config = config
        self.logger = logging.getLogger(__name__)
        # Same form as links coming out of the parser
        self.base_url = normalize_url(config.base_url, config.base_url)

        # Components
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or WebFetcher(
            user_agent=config.user_agent,
            request_timeout=config.request_timeout,
            max_connections=config.max_workers
        )
        if sitemap is None and config.use_sitemap and isinstance(self.fetcher, WebFetcher):
            sitemap = SitemapDiscovery(
                self.fetcher,
                scheme=urlparse(config.base_url).scheme or 'https',
                max_urls=config.max_sitemap_urls
            )
        self.sitemap = sitemap
        self.checkpoints = checkpoint_store or CheckpointStore(
            config.allowed_domain, config.checkpoint_dir
        )
        self.rate_limiter = rate_limiter or TokenBucketRateLimiter(config.rate_limit)

        # Crawl state
        self.visited = VisitedSet()
        self.stats = StatsAggregator()
        self.results = ResultStore()
        self.gate = URLGate(config.allowed_domain, self.visited, self.stats,
                            config.exclude_patterns)
        self.frontier: Optional[CrawlFrontier] = None
        self.workers: List[asyncio.Task] = []
        self.is_running = False
        self.resumed = False

        self._stop_requested = False
        self._stop_event: Optional[asyncio.Event] = None
        self._save_lock = threading.Lock()
        # Held while a result and its counters are recorded, and while a checkpoint snapshot is taken
        self._state_lock = threading.Lock()
        self._pending_save: Optional[asyncio.Future] = None

    async def run(self) -> CrawlResults:
        """
        Crawl until the frontier drains or a stop is requested.

        Returns:
            CrawlResults; ``completed`` is False when the crawl was stopped
            before all work was done
        """
        if self.is_running:
            raise CrawlerError("Crawler is already running")

        self.is_running = True
        self._stop_event = asyncio.Event()
        if self._stop_requested:
            self._stop_event.set()
        self.frontier = CrawlFrontier()
        background: List[asyncio.Task] = []

        try:
            self._restore_checkpoint()
            await self._seed()

            self.workers = [
                asyncio.create_task(self._worker(f"worker-{i}"))
                for i in range(self.config.max_workers)
            ]
            background = [
                asyncio.create_task(self._progress_reporter()),
                asyncio.create_task(self._autosave()),
            ]
            self.logger.info(
                f"Started crawling {self.base_url} with {len(self.workers)} workers "
                f"(max depth {self.config.max_depth}, rate {self.config.rate_limit}/s)"
            )

            completed = await self._wait_for_completion()

            self.frontier.close(len(self.workers))
            await self._join_workers()

            if completed:
                self.logger.info("Crawl completed: no work remaining")
            else:
                self.logger.info("Crawl stopped before completion, saving checkpoint")
                self.save_checkpoint()

            self._log_final_stats()
            return CrawlResults(
                stats=self.stats.snapshot(),
                results=self.results.snapshot(),
                end_time=utc_now(),
                completed=completed
            )

        finally:
            for task in background:
                task.cancel()
            await asyncio.gather(*background, return_exceptions=True)
            if self._pending_save is not None:
                await asyncio.gather(self._pending_save, return_exceptions=True)
                self._pending_save = None
            await self._cleanup_workers()
            self.is_running = False

    async def _wait_for_completion(self) -> bool:
        """Block until in-flight work reaches zero (True) or stop() is called (False)."""
        idle = asyncio.create_task(self.frontier.in_flight.wait_idle())
        stop = asyncio.create_task(self._stop_event.wait())
        try:
            done, _ = await asyncio.wait({idle, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (idle, stop):
                task.cancel()
            await asyncio.gather(idle, stop, return_exceptions=True)
        return idle in done and not self._stop_requested

    def _restore_checkpoint(self):
        state = self.checkpoints.load()
        if state is None:
            return

        self.visited.update(state.visited_urls)
        self.visited.update(result.url for result in state.results)
        restored = self.results.extend(state.results)
        self.stats.restore(state.stats)
        self.resumed = True
        self.logger.info(
            f"Resuming crawl: {len(self.visited)} URLs already visited, "
            f"{restored} results restored"
        )

        self._requeue_pending(state.results)

    def _requeue_pending(self, results: List[PageResult]):
        """
        Re-enqueue links of restored pages that were never visited.

        These were found (and counted) by the interrupted run but still sat in
        its queue, so they are not counted again.
        """
        requeued = 0
        for result in results:
            if not result.ok or result.depth >= self.config.max_depth:
                continue
            for link in result.links:
                if link in self.visited or self.gate.is_excluded(link):
                    continue
                if not self.gate.is_allowed_domain(link):
                    continue
                if self.frontier.push(CrawlJob(link, result.depth + 1)):
                    requeued += 1

        if requeued:
            self.logger.info(f"Re-queued {requeued} pending URLs from checkpoint")

    async def _seed(self):
        """Queue the base URL at depth 0, then sitemap URLs at depth 1."""
        sitemap_urls = await self._discover_sitemap_urls()

        if self.base_url in self.visited:
            self.logger.info(f"Base URL already visited: {self.base_url}")
        else:
            self._schedule(self.base_url, 0)

        added = 0
        for url in sitemap_urls:
            url = normalize_url(url, self.base_url)
            if self.gate.screen(url) and self._schedule(url, 1):
                added += 1
        if sitemap_urls:
            self.logger.info(f"Added {added} of {len(sitemap_urls)} sitemap URLs")

    async def _discover_sitemap_urls(self) -> List[str]:
        if not self.config.use_sitemap or self.sitemap is None:
            return []
        if self.config.max_depth < 1:
            self.logger.info("Skipping sitemap discovery: max depth is 0")
            return []

        self.logger.info("Fetching sitemap URLs...")
        try:
            return list(await self.sitemap.discover(self.config.allowed_domain))
        except Exception as e:
            self.logger.warning(f"Sitemap discovery failed: {e}")
            return []

    def _schedule(self, url: str, depth: int) -> bool:
        if self.frontier.push(CrawlJob(url, depth)):
            self.stats.record_found()
            return True
        return False

    async def _worker(self, worker_id: str):
        """
        Worker coroutine that processes jobs from the frontier.
        """
        self.logger.debug(f"Worker {worker_id} started")

        while not self._stop_requested:
            job = await self.frontier.get()
            if job is None:
                break

            try:
                await self._process_job(job)
            except Exception as e:
                self.logger.error(f"Worker {worker_id} error on {job.url}: {e}", exc_info=True)
                self.stats.record_error()
            finally:
                # Children were pushed inside _process_job, before this
                self.frontier.resolve(job)

        self.logger.debug(f"Worker {worker_id} finished")

    async def _process_job(self, job: CrawlJob):
        """Admit, fetch and expand a single job."""
        if not self.gate.admit(job.url):
            self.logger.debug(f"Not admitted: {job.url}")
            return

        if not await self._acquire_token():
            # No result is recorded, so the URL stays out of the checkpoint and is crawled on resume
            self.logger.debug(f"Stopped while waiting for a token: {job.url}")
            return
        result = await self._fetch(job)

        if not self._record(result):
            self.logger.warning(f"Duplicate result ignored: {job.url}")
            return

        if job.depth < self.config.max_depth:
            self._queue_children(result, job.depth + 1)

    async def _acquire_token(self) -> bool:
        """Wait for a rate limiter token; False if stop() was called first."""
        if self._stop_requested:
            return False
        if not self.rate_limiter.enabled:
            return True

        acquire = asyncio.create_task(self.rate_limiter.acquire())
        stop = asyncio.create_task(self._stop_event.wait())
        try:
            await asyncio.wait({acquire, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (acquire, stop):
                task.cancel()
            await asyncio.gather(acquire, stop, return_exceptions=True)
        return not self._stop_requested

    def _record(self, result: PageResult) -> bool:
        with self._state_lock:
            if not self.results.append(result):
                return False
            if result.ok:
                self.stats.record_crawled()
            else:
                self.stats.record_error()

        if result.ok:
            self.logger.debug(f"Crawled {result.url} (depth {result.depth}, {len(result.links)} links)")
        else:
            self.logger.warning(f"Failed to fetch {result.url}: {result.error}")
        return True

    async def _fetch(self, job: CrawlJob) -> PageResult:
        try:
            response = await asyncio.wait_for(
                self.fetcher.fetch_page(job.url),
                timeout=self.config.request_timeout
            )
        except asyncio.TimeoutError:
            return PageResult.failed(job.url, job.depth, "Request timeout")
        except Exception as e:
            self.logger.error(f"Unexpected error fetching {job.url}: {e}")
            return PageResult.failed(job.url, job.depth, f"Fetch failed: {e}")

        return PageResult.from_response(job.url, job.depth, response)

    def _queue_children(self, result: PageResult, depth: int):
        queued = 0
        for link in result.links:
            if self.gate.screen(link) and self._schedule(link, depth):
                queued += 1

        if queued:
            self.logger.debug(f"Queued {queued} new URLs from {result.url}")

    async def _progress_reporter(self):
        """Periodically log crawl progress."""
        while True:
            await asyncio.sleep(self.config.progress_interval)
            self._log_progress()

    async def _autosave(self):
        """Periodically write a checkpoint off the event loop."""
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(self.config.checkpoint_interval)
            self._pending_save = loop.run_in_executor(None, self.save_checkpoint)
            # Cancelling the task must not orphan a save still running in its thread
            await asyncio.shield(self._pending_save)

    def _log_progress(self):
        stats = self.stats.snapshot()
        self.logger.info(
            f"Crawl Progress: "
            f"Crawled={format_number(stats.pages_crawled)}, "
            f"Found={format_number(stats.pages_found)}, "
            f"Queued={self.frontier.qsize() if self.frontier else 0}, "
            f"InFlight={self.frontier.in_flight.count if self.frontier else 0}, "
            f"Errors={stats.errors}, "
            f"Rate={stats.pages_per_minute:.1f} pages/min"
        )

    def _log_final_stats(self):
        stats = self.stats.snapshot()
        self.logger.info("=== CRAWL FINISHED ===")
        self.logger.info(f"Pages crawled: {stats.pages_crawled}")
        self.logger.info(f"Pages found: {stats.pages_found}")
        self.logger.info(f"External links skipped: {stats.external_links}")
        self.logger.info(f"Excluded links: {stats.excluded_links}")
        self.logger.info(f"Errors: {stats.errors}")
        self.logger.info(f"Total time: {stats.elapsed_time:.2f} seconds")

        if isinstance(self.fetcher, WebFetcher):
            fetcher_stats = self.fetcher.get_stats()
            self.logger.info(f"Data downloaded: {format_bytes(fetcher_stats['total_bytes_downloaded'])}")
            self.logger.info(f"Fetcher stats: {fetcher_stats}")

    def build_state(self) -> CrawlState:
        """
        Snapshot of everything a checkpoint needs.

        Only URLs with a recorded result count as visited. Jobs admitted but
        still in flight are left out so a resumed run crawls them again.
        """
        with self._state_lock:
            results = self.results.snapshot()
            stats = self.stats.snapshot()
        return CrawlState(
            visited_urls={result.url for result in results},
            results=results,
            stats=stats
        )

    def save_checkpoint(self) -> bool:
        """Write a checkpoint now. Failures are logged, not raised."""
        # Autosave runs in an executor thread; saves share one tmp file
        with self._save_lock:
            try:
                self.checkpoints.save(self.build_state())
            except CheckpointError as e:
                self.logger.warning(f"Checkpoint save skipped: {e}")
                return False
        return True

    def clear_checkpoint(self) -> bool:
        return self.checkpoints.clear()

    def stop(self):
        """Ask workers to finish their current job and exit."""
        if self._stop_requested:
            return
        self._stop_requested = True
        self.logger.info("Stopping crawler...")
        if self._stop_event is not None:
            self._stop_event.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    async def _join_workers(self):
        results = await asyncio.gather(*self.workers, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
                self.logger.error(f"Worker exited with error: {result}")
        self.workers.clear()

    async def _cleanup_workers(self):
        """Cancel and cleanup worker tasks."""
        if self.workers:
            for worker in self.workers:
                if not worker.done():
                    worker.cancel()
            await asyncio.gather(*self.workers, return_exceptions=True)
            self.workers.clear()

    async def close(self):
        """Release the fetcher if this scheduler created it."""
        if self._owns_fetcher and isinstance(self.fetcher, WebFetcher):
            await self.fetcher.close()
        self.logger.debug("Crawler scheduler closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def get_stats(self) -> Dict[str, Any]:
        """Get current crawl statistics."""
        stats = self.stats.snapshot()
        data = stats.to_dict()
        data.update({
            'elapsed_time': stats.elapsed_time,
            'pages_per_minute': stats.pages_per_minute,
            'visited_urls': len(self.visited),
            'results': len(self.results),
            'urls_in_queue': self.frontier.qsize() if self.frontier else 0,
            'in_flight': self.frontier.in_flight.count if self.frontier else 0,
            'is_running': self.is_running
        })
        return data
