"""
Crawl statistics: concurrently updated monotonic counters.
"""

import threading
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, Optional

from ..utils.datetime_utils import parse_iso, to_iso, utc_now


COUNTER_FIELDS = (
    'pages_found',
    'pages_crawled',
    'external_links',
    'excluded_links',
    'errors',
)


@dataclass(frozen=True)
class CrawlStats:
    """Point-in-time snapshot of crawl statistics."""
    start_time: datetime = field(default_factory=utc_now)
    pages_found: int = 0
    pages_crawled: int = 0
    external_links: int = 0
    excluded_links: int = 0
    errors: int = 0

    @property
    def elapsed_time(self) -> float:
        return (utc_now() - self.start_time).total_seconds()

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.pages_crawled / elapsed_minutes if elapsed_minutes > 0 else 0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {name: getattr(self, name) for name in COUNTER_FIELDS}
        data['start_time'] = to_iso(self.start_time)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CrawlStats':
        counters = {name: int(data.get(name, 0) or 0) for name in COUNTER_FIELDS}
        start_time = parse_iso(data.get('start_time')) or utc_now()
        return cls(start_time=start_time, **counters)


class StatsAggregator:
    """
    Thread-safe owner of the crawl counters.

    Counters only ever grow: ``increment`` rejects negative deltas and
    ``restore`` refuses to move a counter backwards.
    """

    def __init__(self, start_time: Optional[datetime] = None):
        self._lock = threading.Lock()
        self._start_time = start_time or utc_now()
        self._counters: Dict[str, int] = {name: 0 for name in COUNTER_FIELDS}

    def increment(self, name: str, amount: int = 1):
        if name not in self._counters:
            raise KeyError(f"Unknown stats counter: {name}")
        if amount < 0:
            raise ValueError(f"Stats counters are monotonic, got delta {amount} for {name}")
        with self._lock:
            self._counters[name] += amount

    def record_found(self, amount: int = 1):
        self.increment('pages_found', amount)

    def record_crawled(self):
        self.increment('pages_crawled')

    def record_external(self):
        self.increment('external_links')

    def record_excluded(self):
        self.increment('excluded_links')

    def record_error(self):
        self.increment('errors')

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    @property
    def start_time(self) -> datetime:
        return self._start_time

    def snapshot(self) -> CrawlStats:
        with self._lock:
            return CrawlStats(start_time=self._start_time, **self._counters)

    def restore(self, stats: CrawlStats):
        """Load counters from a checkpoint snapshot before the crawl starts."""
        with self._lock:
            for f in fields(CrawlStats):
                if f.name not in self._counters:
                    continue
                value = getattr(stats, f.name)
                if value < self._counters[f.name]:
                    raise ValueError(
                        f"Refusing to restore {f.name}={value} below current {self._counters[f.name]}"
                    )
                self._counters[f.name] = value
            self._start_time = stats.start_time
