"""
Exception types raised by the crawler.
"""


class CrawlerError(Exception):
    """Base class for crawler errors."""
    pass


class ConfigError(CrawlerError, ValueError):
    """Raised when the crawl configuration is missing or invalid."""
    pass


class CheckpointError(CrawlerError):
    """Raised when a checkpoint cannot be written."""
    pass


class OutputError(CrawlerError):
    """Raised when the final results document cannot be written."""
    pass
