"""
Web crawler core components.
"""

from .fetcher import PageFetcher, PageResponse, PageResult, WebFetcher
from .frontier import CrawlFrontier, CrawlJob, InFlightTracker
from .parser import ContentParser, ParsedContent, normalize_url
from .rate_limiter import TokenBucketRateLimiter
from .sitemap import SitemapDiscovery, SitemapSource
from .stats import CrawlStats, StatsAggregator
from .url_gate import URLGate, Verdict
from .visited import VisitedSet

__all__ = [
    'PageFetcher', 'PageResponse', 'PageResult', 'WebFetcher',
    'CrawlFrontier', 'CrawlJob', 'InFlightTracker',
    'ContentParser', 'ParsedContent', 'normalize_url',
    'TokenBucketRateLimiter',
    'SitemapDiscovery', 'SitemapSource',
    'CrawlStats', 'StatsAggregator',
    'URLGate', 'Verdict',
    'VisitedSet'
]
