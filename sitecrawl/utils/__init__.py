"""
Utility modules for the crawler.
"""

from .config import Config, ConfigManager, CrawlerConfig, LoggingConfig, load_config

__all__ = ['Config', 'ConfigManager', 'CrawlerConfig', 'LoggingConfig', 'load_config']
