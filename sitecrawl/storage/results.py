"""
Result collection and the final results document.
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from html import escape
from pathlib import Path
from typing import Any, Dict, Iterable, List, Set

from ..crawler.fetcher import PageResult
from ..crawler.stats import CrawlStats
from ..exceptions import OutputError
from ..utils.datetime_utils import to_iso, utc_now


RESULTS_FILENAME = 'results.json'


class ResultStore:
    """
    Append-only, thread-safe collection of page results.

    Holds at most one result per URL; later results for a URL are rejected.
    """

    def __init__(self, results: Iterable[PageResult] = ()):
        self._lock = threading.Lock()
        self._results: List[PageResult] = []
        self._urls: Set[str] = set()
        for result in results:
            self.append(result)

    def append(self, result: PageResult) -> bool:
        with self._lock:
            if result.url in self._urls:
                return False
            self._urls.add(result.url)
            self._results.append(result)
            return True

    def extend(self, results: Iterable[PageResult]) -> int:
        return sum(1 for result in results if self.append(result))

    def snapshot(self) -> List[PageResult]:
        with self._lock:
            return list(self._results)

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._urls

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)


@dataclass
class CrawlResults:
    """The final output of a crawl run."""
    stats: CrawlStats
    results: List[PageResult] = field(default_factory=list)
    end_time: datetime = field(default_factory=utc_now)
    completed: bool = True

    @property
    def duration(self) -> float:
        return max(0.0, (self.end_time - self.stats.start_time).total_seconds())

    def to_dict(self) -> Dict[str, Any]:
        stats = self.stats.to_dict()
        stats['end_time'] = to_iso(self.end_time)
        stats['duration'] = round(self.duration, 3)
        return {
            'stats': stats,
            'results': [result.to_dict() for result in self.results],
        }


def write_results(crawl_results: CrawlResults, output_dir: Path,
                  filename: str = RESULTS_FILENAME) -> Path:
    """
    Write ``{stats, results}`` as indented JSON into ``output_dir``.

    Raises:
        OutputError: if the directory or file cannot be written
    """
    logger = logging.getLogger(__name__)
    output_dir = Path(output_dir).expanduser()
    output_file = output_dir / filename

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        with open(output_file, 'w', encoding='utf-8') as f:
            json.dump(crawl_results.to_dict(), f, indent=2, ensure_ascii=False)
    except (OSError, TypeError, ValueError) as e:
        raise OutputError(f"Failed to write results to {output_file}: {e}") from e

    logger.info(f"Results written to {output_file} ({len(crawl_results.results)} pages)")
    return output_file



REPORT_FILENAME = 'index.html'

_REPORT_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Crawl report: {title}</title>
<style>
body {{ font-family: sans-serif; margin: 2em; }}
table {{ border-collapse: collapse; width: 100%; }}
th, td {{ border: 1px solid #ccc; padding: 4px 8px; text-align: left; }}
tr.error td {{ background: #fdecea; }}
</style>
</head>
<body>
<h1>Crawl report: {title}</h1>
<ul>
{stats}
</ul>
<table>
<tr><th>URL</th><th>Title</th><th>Status</th><th>Depth</th><th>Links</th><th>Error</th></tr>
{rows}
</table>
</body>
</html>
"""


def render_html_report(crawl_results: CrawlResults, title: str = "") -> str:
    """Render the crawl as a standalone HTML page: stats list plus one row per page."""
    data = crawl_results.to_dict()
    stats = "\n".join(
        f"<li>{escape(name)}: {escape(str(value))}</li>"
        for name, value in data['stats'].items()
    )

    rows = []
    for result in crawl_results.results:
        link = escape(result.url)
        rows.append(
            f'<tr class="{"ok" if result.ok else "error"}">'
            f'<td><a href="{link}">{link}</a></td>'
            f'<td>{escape(result.title)}</td>'
            f'<td>{result.status_code}</td>'
            f'<td>{result.depth}</td>'
            f'<td>{len(result.links)}</td>'
            f'<td>{escape(result.error or "")}</td></tr>'
        )

    return _REPORT_TEMPLATE.format(title=escape(title), stats=stats, rows="\n".join(rows))


def write_html_report(crawl_results: CrawlResults, output_dir: Path, title: str = "",
                      filename: str = REPORT_FILENAME) -> Path:
    """
    Write the HTML report next to the results document.

    Raises:
        OutputError: if the file cannot be written
    """
    logger = logging.getLogger(__name__)
    output_file = Path(output_dir).expanduser() / filename

    try:
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_text(render_html_report(crawl_results, title), encoding='utf-8')
    except OSError as e:
        raise OutputError(f"Failed to write report to {output_file}: {e}") from e

    logger.info(f"HTML report written to {output_file}")
    return output_file
