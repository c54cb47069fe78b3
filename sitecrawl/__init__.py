"""
Site Crawler

A bounded-concurrency, single-domain web crawler with checkpoint/resume support.
"""

__version__ = "1.0.0"
__description__ = "A resumable breadth-first crawler for a single website"
