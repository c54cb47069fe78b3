"""
Storage layer for the crawler: checkpoints and final results.
"""

from .checkpoint import CheckpointStore, CrawlState
from .results import CrawlResults, ResultStore, write_html_report, write_results

__all__ = ['CheckpointStore', 'CrawlState', 'CrawlResults', 'ResultStore',
           'write_html_report', 'write_results']
