"""
Sitemap discovery for seeding a crawl.
"""

import logging
from typing import List, Optional, Protocol, Sequence

from bs4 import BeautifulSoup

from .fetcher import WebFetcher


SITEMAP_PATHS: Sequence[str] = (
    '/sitemap.xml',
    '/sitemap_index.xml',
    '/wp-sitemap.xml',
)


class SitemapSource(Protocol):
    """Anything that can list candidate URLs for a domain."""

    async def discover(self, domain: str) -> List[str]:
        ...


def _locs(parent, entry_tag: str) -> List[str]:
    locs = []
    for entry in parent.find_all(entry_tag, recursive=False):
        loc = entry.find('loc')
        if loc is not None:
            locs.append(loc.get_text(strip=True))
    return locs


def parse_sitemap(xml_content: str):
    """
    Parse a sitemap document.

    Returns:
        ``('index', [child sitemap URLs])``, ``('urlset', [page URLs])`` or
        ``(None, [])`` when the document is neither.
    """
    soup = BeautifulSoup(xml_content, 'xml')

    index = soup.find('sitemapindex')
    if index is not None:
        locs = _locs(index, 'sitemap')
        return 'index', [loc for loc in locs if loc]

    urlset = soup.find('urlset')
    if urlset is not None:
        locs = _locs(urlset, 'url')
        return 'urlset', [loc for loc in locs if loc]

    return None, []


class SitemapDiscovery:
    """
    Tries a fixed list of well-known sitemap locations for a domain.

    The first location that yields a non-empty sitemap (or sitemap index) wins.
    Sitemap indexes are followed one level deep.
    """

    def __init__(self, fetcher: WebFetcher, scheme: str = 'https', max_urls: int = 1000,
                 paths: Sequence[str] = SITEMAP_PATHS):
        self.fetcher = fetcher
        self.scheme = scheme
        self.max_urls = max_urls
        self.paths = paths
        self.logger = logging.getLogger(__name__)

    async def discover(self, domain: str) -> List[str]:
        for path in self.paths:
            sitemap_url = f"{self.scheme}://{domain}{path}"
            self.logger.info(f"Trying sitemap: {sitemap_url}")

            urls = await self._try_location(sitemap_url)
            if urls:
                return self._cap(urls)

        self.logger.info(f"No sitemap found for {domain}")
        return []

    async def _try_location(self, sitemap_url: str) -> Optional[List[str]]:
        body = await self.fetcher.fetch_text(sitemap_url)
        if not body:
            return None

        kind, locs = parse_sitemap(body)
        if kind == 'index' and locs:
            self.logger.info(f"Found sitemap index with {len(locs)} sitemaps")
            urls: List[str] = []
            for child_url in locs:
                urls.extend(await self._fetch_child(child_url))
                if self.max_urls and len(urls) >= self.max_urls:
                    break
            return urls

        if kind == 'urlset' and locs:
            self.logger.info(f"Found sitemap with {len(locs)} URLs")
            return locs

        return None

    async def _fetch_child(self, sitemap_url: str) -> List[str]:
        body = await self.fetcher.fetch_text(sitemap_url)
        if not body:
            return []
        kind, locs = parse_sitemap(body)
        # Only one level of indirection is followed
        return locs if kind == 'urlset' else []

    def _cap(self, urls: List[str]) -> List[str]:
        if self.max_urls and len(urls) > self.max_urls:
            self.logger.info(f"Capping sitemap URLs at {self.max_urls} (found {len(urls)})")
            return urls[:self.max_urls]
        return urls
