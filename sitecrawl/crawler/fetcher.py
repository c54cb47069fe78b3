"""
Page fetcher: HTTP transport plus HTML parsing, producing page results.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

import aiohttp
from aiohttp import ClientError, ClientSession, ClientTimeout

from .parser import ContentParser
from ..utils.config import DEFAULT_USER_AGENT
from ..utils.datetime_utils import parse_iso, to_iso, utc_now


@dataclass
class PageResponse:
    """Structured outcome of fetching and parsing one URL."""
    status_code: int = 0
    content_type: str = ""
    title: str = ""
    links: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass(frozen=True)
class PageResult:
    """A crawled page as recorded in results and checkpoints."""
    url: str
    depth: int
    status_code: int = 0
    title: str = ""
    links: tuple = ()
    error: Optional[str] = None
    crawled_at: datetime = field(default_factory=utc_now)
    content_type: str = ""

    @property
    def ok(self) -> bool:
        return not self.error

    @classmethod
    def from_response(cls, url: str, depth: int, response: PageResponse,
                      crawled_at: Optional[datetime] = None) -> 'PageResult':
        return cls(
            url=url,
            depth=depth,
            status_code=response.status_code,
            title=response.title or "",
            links=tuple(response.links or ()),
            error=response.error or None,
            crawled_at=crawled_at or utc_now(),
            content_type=response.content_type or "",
        )

    @classmethod
    def failed(cls, url: str, depth: int, error: str,
               crawled_at: Optional[datetime] = None) -> 'PageResult':
        return cls(url=url, depth=depth, error=error, crawled_at=crawled_at or utc_now())

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'url': self.url,
            'title': self.title,
            'status_code': self.status_code,
            'depth': self.depth,
            'links': list(self.links),
        }
        if self.error:
            data['error'] = self.error
        data['crawled_at'] = to_iso(self.crawled_at)
        data['content_type'] = self.content_type
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PageResult':
        return cls(
            url=data['url'],
            depth=int(data.get('depth', 0)),
            status_code=int(data.get('status_code', 0) or 0),
            title=data.get('title') or "",
            links=tuple(data.get('links') or ()),
            error=data.get('error') or None,
            crawled_at=parse_iso(data.get('crawled_at')) or utc_now(),
            content_type=data.get('content_type') or "",
        )


class PageFetcher(Protocol):
    """Anything that can turn a URL into a PageResponse."""

    async def fetch_page(self, url: str) -> PageResponse:
        ...


class WebFetcher:
    """
    Fetches web pages over HTTP and extracts title and links from HTML.

    Per-page failures are reported in the returned PageResponse, never raised.
    """

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, request_timeout: float = 30,
                 max_connections: int = 100, parser: Optional[ContentParser] = None,
                 max_content_size: int = 10 * 1024 * 1024):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_connections = max_connections
        self.max_content_size = max_content_size
        self.parser = parser or ContentParser()

        self.logger = logging.getLogger(__name__)
        self.session: Optional[ClientSession] = None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            timeout = ClientTimeout(total=self.request_timeout)
            headers = {'User-Agent': self.user_agent}

            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                connector=aiohttp.TCPConnector(
                    limit=self.max_connections,
                    limit_per_host=self.max_connections,
                    ttl_dns_cache=300,
                    use_dns_cache=True
                )
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info(f"WebFetcher session closed, stats: {self.stats}")

    async def fetch_page(self, url: str) -> PageResponse:
        """
        Fetch a single URL and parse it if it is HTML.

        Args:
            url: The URL to fetch

        Returns:
            PageResponse; ``error`` is set for transport failures, timeouts
            and non-200 statuses
        """
        await self.start()
        self.stats['total_requests'] += 1

        try:
            async with self.session.get(url) as response:
                content_type = response.headers.get('Content-Type', '')
                page = PageResponse(status_code=response.status, content_type=content_type)

                if response.status != 200:
                    self.stats['failed_requests'] += 1
                    page.error = f"HTTP {response.status}"
                    self.logger.debug(f"Non-success status for {url}: {response.status}")
                    return page

                if 'text/html' in content_type.lower():
                    content = await self._read_content_safely(response)
                    if content is not None:
                        parsed = self.parser.parse(url, content)
                        page.title = parsed.title
                        page.links = parsed.links

                self.stats['successful_requests'] += 1
                self.logger.debug(f"Fetched {url}: {response.status} ({len(page.links)} links)")
                return page

        except asyncio.TimeoutError:
            error_msg = "Request timeout"
            self.logger.warning(f"Timeout fetching {url}")

        except ClientError as e:
            error_msg = f"Client error: {e}"
            self.logger.warning(f"Client error fetching {url}: {e}")

        self.stats['failed_requests'] += 1
        return PageResponse(error=error_msg)

    async def fetch_text(self, url: str) -> Optional[str]:
        """Return the body of a 200 response, or None on any failure."""
        await self.start()
        try:
            async with self.session.get(url) as response:
                if response.status != 200:
                    self.logger.debug(f"{url} returned {response.status}")
                    return None
                return await self._read_content_safely(response)
        except (asyncio.TimeoutError, ClientError) as e:
            self.logger.debug(f"Could not fetch {url}: {e}")
            return None

    async def _read_content_safely(self, response) -> Optional[str]:
        """
        Read response content with a size limit.

        Returns:
            Content string or None if too large
        """
        content_length = response.headers.get('Content-Length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_content_size:
            self.logger.warning(f"Content too large ({content_length} bytes): {response.url}")
            return None

        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > self.max_content_size:
                self.logger.warning(f"Content exceeded size limit during reading: {response.url}")
                return None

        self.stats['total_bytes_downloaded'] += len(content_bytes)

        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            return content_bytes.decode('utf-8', errors='ignore')

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
