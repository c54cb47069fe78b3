import asyncio
import socket
import time
from contextlib import asynccontextmanager
from typing import Dict, Iterable, List, Optional

import pytest
from aiohttp import web

from sitecrawl.crawler.fetcher import PageResponse
from sitecrawl.utils.config import CrawlerConfig


BASE = "http://example.com"


def url(path: str) -> str:
    return f"{BASE}{path}"


class FakeFetcher:
    """In-memory link graph standing in for the HTTP fetcher."""

    def __init__(self, pages: Dict[str, List[str]], errors: Optional[Dict[str, str]] = None,
                 raises: Iterable[str] = (), delay: float = 0.0):
        self.pages = pages
        self.errors = errors or {}
        self.raises = set(raises)
        self.delay = delay
        self.calls: List[str] = []
        self.started_at: List[float] = []

    async def fetch_page(self, page_url: str) -> PageResponse:
        self.calls.append(page_url)
        self.started_at.append(time.monotonic())
        if self.delay:
            await asyncio.sleep(self.delay)

        if page_url in self.raises:
            raise RuntimeError(f"boom on {page_url}")
        if page_url in self.errors:
            return PageResponse(status_code=500, error=self.errors[page_url])
        if page_url not in self.pages:
            return PageResponse(status_code=404, error="HTTP 404")

        return PageResponse(
            status_code=200,
            content_type="text/html; charset=utf-8",
            title=f"Title of {page_url}",
            links=list(self.pages[page_url]),
        )


class FakeSitemap:
    def __init__(self, urls: Iterable[str]):
        self.urls = list(urls)
        self.domains: List[str] = []

    async def discover(self, domain: str) -> List[str]:
        self.domains.append(domain)
        return list(self.urls)


@pytest.fixture
def make_config(tmp_path):
    def factory(**overrides) -> CrawlerConfig:
        values = dict(
            base_url=url("/"),
            allowed_domain="example.com",
            max_depth=2,
            max_workers=4,
            rate_limit=0,
            use_sitemap=False,
            request_timeout=5,
            output_dir=tmp_path / "out",
            checkpoint_dir=tmp_path / "checkpoints",
            checkpoint_interval=60,
            progress_interval=60,
        )
        values.update(overrides)
        return CrawlerConfig(**values)
    return factory


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@asynccontextmanager
async def serve(routes: Dict[str, object]):
    """Run an aiohttp.web app on localhost; yields its base URL."""
    app = web.Application()
    for path, handler in routes.items():
        app.router.add_get(path, handler)

    runner = web.AppRunner(app)
    await runner.setup()
    port = free_port()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        await runner.cleanup()
