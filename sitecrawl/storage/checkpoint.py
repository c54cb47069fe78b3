"""
Checkpoint persistence for resuming interrupted crawls.

One JSON file per allowed domain holds the visited URLs, the page results
collected so far and the crawl statistics. The file is replaced wholesale on
every save and removed once a crawl finishes successfully.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

from ..crawler.fetcher import PageResult
from ..crawler.stats import CrawlStats
from ..exceptions import CheckpointError
from ..utils.datetime_utils import parse_iso, to_iso, utc_now


def checkpoint_filename(domain: str) -> str:
    """Deterministic checkpoint file name for a domain."""
    safe_domain = domain.lower().replace('.', '_').replace(':', '_').replace('/', '_')
    return f"crawler_{safe_domain}_checkpoint.json"


@dataclass
class CrawlState:
    """Everything needed to resume a crawl."""
    visited_urls: Set[str] = field(default_factory=set)
    results: List[PageResult] = field(default_factory=list)
    stats: CrawlStats = field(default_factory=CrawlStats)
    last_saved: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'visited_urls': sorted(self.visited_urls),
            'results': [result.to_dict() for result in self.results],
            'stats': self.stats.to_dict(),
            'last_saved': to_iso(self.last_saved or utc_now()),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CrawlState':
        if not isinstance(data, dict):
            raise ValueError("Checkpoint document must be a JSON object")
        return cls(
            visited_urls=set(data.get('visited_urls') or []),
            results=[PageResult.from_dict(item) for item in data.get('results') or []],
            stats=CrawlStats.from_dict(data.get('stats') or {}),
            last_saved=parse_iso(data.get('last_saved')),
        )


class CheckpointStore:
    """
    Reads and writes the checkpoint file for one domain.
    """

    def __init__(self, domain: str, directory: Union[str, Path, None] = None):
        self.domain = domain
        self.directory = Path(directory).expanduser() if directory else Path(tempfile.gettempdir())
        self.path = self.directory / checkpoint_filename(domain)
        self.logger = logging.getLogger(__name__)

    def exists(self) -> bool:
        return self.path.exists()

    def save(self, state: CrawlState) -> Path:
        """
        Replace the checkpoint file with ``state``.

        Raises:
            CheckpointError: if the file cannot be written
        """
        state.last_saved = utc_now()
        tmp_path = self.path.with_name(self.path.name + '.tmp')

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(state.to_dict(), f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            raise CheckpointError(f"Failed to save checkpoint {self.path}: {e}") from e

        self.logger.debug(
            f"Checkpoint saved: {len(state.visited_urls)} visited, {len(state.results)} results"
        )
        return self.path

    def load(self) -> Optional[CrawlState]:
        """
        Load the checkpoint for this domain.

        Returns None when there is no checkpoint or it cannot be read; a
        damaged checkpoint means starting fresh, not failing.
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            state = CrawlState.from_dict(data)
        except OSError as e:
            self.logger.warning(f"Failed to read checkpoint {self.path}: {e}")
            return None
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"Failed to parse checkpoint {self.path}: {e}")
            return None

        self.logger.info(
            f"Checkpoint loaded: {len(state.visited_urls)} visited, {len(state.results)} results"
        )
        return state

    def clear(self) -> bool:
        """Remove the checkpoint. Returns True if a file was deleted."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            self.logger.warning(f"Failed to remove checkpoint {self.path}: {e}")
            return False

        self.logger.info(f"Checkpoint cleared: {self.path}")
        return True
