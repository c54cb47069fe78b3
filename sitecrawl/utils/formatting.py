"""
Human-readable rendering of crawl statistics and results.
"""

from typing import Iterable, List, Optional, Sequence

from ..crawler.fetcher import PageResult
from ..crawler.stats import CrawlStats


RULE_WIDTH = 60
TABLE_COLUMNS = ('URL', 'Status', 'Depth', 'Links')
TABLE_WIDTHS = (50, 10, 8, 10)


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, remaining = divmod(int(seconds), 60)
    return f"{minutes}m {remaining}s"


def format_number(num: float) -> str:
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1000:
        return f"{num / 1000:.1f}K"
    return str(num)


def format_bytes(size: int) -> str:
    if size >= 1024 * 1024:
        return f"{size / (1024 * 1024):.2f} MB"
    if size >= 1024:
        return f"{size / 1024:.2f} KB"
    return f"{size} B"


def format_stats(stats: CrawlStats, duration: Optional[float] = None) -> str:
    """
    Boxed summary of a crawl.

    Args:
        stats: counters to report
        duration: total run time in seconds; adds time and speed lines
    """
    lines = [
        "=" * RULE_WIDTH,
        "CRAWLING STATISTICS",
        "=" * RULE_WIDTH,
        f"Pages crawled:      {stats.pages_crawled}",
        f"Pages found:        {stats.pages_found}",
        f"External links:     {stats.external_links}",
        f"Excluded links:     {stats.excluded_links}",
        f"Errors:             {stats.errors}",
    ]

    if duration:
        lines.append(f"Total time:         {format_duration(duration)}")
        if stats.pages_crawled > 0:
            speed = stats.pages_crawled / duration
            lines.append(f"Average speed:      {speed:.1f} pages/sec")

    lines.append("=" * RULE_WIDTH)
    return "\n".join(lines)


def format_table_row(columns: Sequence[str], widths: Sequence[int]) -> str:
    cells = []
    for column, width in zip(columns, widths):
        if len(column) > width:
            cells.append(column[:width - 3] + "...")
        else:
            cells.append(column.ljust(width))
    return "| " + " | ".join(cells) + " |"


def create_summary_table(pages: Iterable[PageResult],
                         widths: Sequence[int] = TABLE_WIDTHS) -> str:
    separator = "+" + "+".join("-" * (width + 2) for width in widths) + "+"
    lines: List[str] = [separator, format_table_row(TABLE_COLUMNS, widths), separator]

    for page in pages:
        lines.append(format_table_row(
            [page.url, str(page.status_code), str(page.depth), str(len(page.links))],
            widths,
        ))

    lines.append(separator)
    return "\n".join(lines)
