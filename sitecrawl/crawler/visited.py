"""
Concurrent visited-URL set.
"""

import threading
from typing import Iterable, Iterator, List, Set


class VisitedSet:
    """
    Set of URLs that have been admitted for crawling in this run.

    Grows monotonically; there is no removal. ``add_if_absent`` is the only
    admission primitive, so two workers racing on the same URL cannot both win.
    """

    def __init__(self, urls: Iterable[str] = ()):
        self._urls: Set[str] = set(urls)
        self._lock = threading.Lock()

    def add_if_absent(self, url: str) -> bool:
        """Insert ``url``; return True only for the caller that inserted it."""
        with self._lock:
            if url in self._urls:
                return False
            self._urls.add(url)
            return True

    def update(self, urls: Iterable[str]):
        """Bulk insert, used when restoring a checkpoint."""
        with self._lock:
            self._urls.update(urls)

    def snapshot(self) -> List[str]:
        with self._lock:
            return list(self._urls)

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._urls

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())
