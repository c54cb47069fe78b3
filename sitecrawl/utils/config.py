"""
Configuration management for the crawler.

Values are layered: built-in defaults, then the YAML file, then a named
profile, then explicit overrides (usually command-line flags).
"""

import logging
import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlparse

import yaml

from ..exceptions import ConfigError


DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; WebCrawler/1.0)"


@dataclass(frozen=True)
class CrawlerConfig:
    """Configuration for crawler behavior."""
    base_url: str = ""
    allowed_domain: str = ""
    max_depth: int = 2
    max_workers: int = 20
    rate_limit: float = 2
    output_dir: Optional[Path] = None
    use_sitemap: bool = True
    request_timeout: float = 30
    user_agent: str = DEFAULT_USER_AGENT
    max_sitemap_urls: int = 1000
    checkpoint_dir: Optional[Path] = None
    checkpoint_interval: float = 30
    progress_interval: float = 5
    exclude_patterns: Tuple[str, ...] = ()


@dataclass(frozen=True)
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: Optional[str] = "logs/crawler.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass(frozen=True)
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


@dataclass(frozen=True)
class CrawlProfile:
    """A named preset of crawl tuning values."""
    name: str
    description: str
    max_depth: int
    max_workers: int
    rate_limit: float
    request_timeout: float

    def as_overrides(self) -> Dict[str, Any]:
        return {
            'max_depth': self.max_depth,
            'max_workers': self.max_workers,
            'rate_limit': self.rate_limit,
            'request_timeout': self.request_timeout,
        }


PROFILES: Dict[str, CrawlProfile] = {
    'fast': CrawlProfile('fast', "Fast crawling with high concurrency", 3, 50, 10, 15),
    'deep': CrawlProfile('deep', "Deep crawling with moderate speed", 10, 20, 5, 30),
    'gentle': CrawlProfile('gentle', "Gentle crawling respecting servers", 5, 5, 1, 60),
}

_PATH_FIELDS = ('output_dir', 'checkpoint_dir')


def safe_domain(domain: str) -> str:
    return domain.replace('.', '_').replace(':', '_')


def default_output_dir(domain: str) -> Path:
    return Path.home() / "Desktop" / f"crawler_results_{safe_domain(domain)}"


def extract_domain(url: str) -> str:
    """Host (with port, if any) of ``url``; empty string if it has none."""
    return urlparse(url).netloc.rsplit('@', 1)[-1].lower()


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path) if config_path else None
        self.logger = logging.getLogger(__name__)
        self._config: Optional[Config] = None

    def load_config(self, overrides: Optional[Mapping[str, Any]] = None,
                    profile: Optional[str] = None) -> Config:
        """
        Build and validate the configuration.

        Args:
            overrides: crawler fields that take precedence over everything
                else; ``None`` values are ignored
            profile: name of an entry in ``PROFILES``

        Raises:
            ConfigError: on a missing file, unknown profile or invalid value
        """
        config_data = self._read_file()

        crawler_data = dict(config_data.get('crawler') or {})
        if profile:
            crawler_data.update(self._profile(profile).as_overrides())
        for key, value in (overrides or {}).items():
            if value is not None:
                crawler_data[key] = value

        crawler_config = self._build(CrawlerConfig, crawler_data, 'crawler')
        logging_config = self._build(LoggingConfig, config_data.get('logging') or {}, 'logging')

        self._config = Config(
            crawler=self._resolve(crawler_config),
            logging=logging_config
        )
        self._validate_config()
        return self._config

    def _read_file(self) -> Dict[str, Any]:
        if self.config_path is None:
            return {}
        if not self.config_path.exists():
            raise ConfigError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r') as file:
                config_data = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigError(f"Configuration file {self.config_path} must contain a mapping")
        return config_data

    def _profile(self, name: str) -> CrawlProfile:
        try:
            selected = PROFILES[name.lower()]
        except KeyError:
            available = ", ".join(sorted(PROFILES))
            raise ConfigError(f"Unknown profile '{name}', available: {available}") from None
        self.logger.info(f"Using profile: {selected.name} - {selected.description}")
        return selected

    def _build(self, cls, data: Mapping[str, Any], section: str):
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown {section} option(s): {', '.join(sorted(unknown))}")

        values = dict(data)
        for name in _PATH_FIELDS:
            if values.get(name):
                values[name] = Path(values[name]).expanduser()
        if 'exclude_patterns' in values:
            values['exclude_patterns'] = tuple(values['exclude_patterns'] or ())

        try:
            return cls(**values)
        except TypeError as e:
            raise ConfigError(f"Invalid {section} configuration: {e}") from e

    def _resolve(self, crawler: CrawlerConfig) -> CrawlerConfig:
        """Fill values derived from the base URL."""
        domain = crawler.allowed_domain or extract_domain(crawler.base_url)
        output_dir = crawler.output_dir or (default_output_dir(domain) if domain else None)
        return replace(crawler, allowed_domain=domain.lower(), output_dir=output_dir)

    def _validate_config(self):
        """Validate configuration values."""
        if not self._config:
            raise ConfigError("Configuration not loaded")
        crawler = self._config.crawler

        if not crawler.base_url:
            raise ConfigError("A base URL is required")

        parsed = urlparse(crawler.base_url)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ConfigError(f"Base URL must be an absolute http(s) URL: {crawler.base_url}")

        if not crawler.allowed_domain:
            raise ConfigError("Allowed domain could not be determined")

        self._check(crawler.max_depth, int, 0, "max_depth must be a non-negative integer")
        self._check(crawler.max_workers, int, 1, "max_workers must be at least 1")
        self._check(crawler.rate_limit, (int, float), 0, "rate_limit must be non-negative")
        self._check(crawler.max_sitemap_urls, int, 0, "max_sitemap_urls must be non-negative")

        for name in ('request_timeout', 'checkpoint_interval', 'progress_interval'):
            value = getattr(crawler, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                raise ConfigError(f"{name} must be a positive number")

        for pattern in crawler.exclude_patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ConfigError(f"Invalid exclude pattern {pattern!r}: {e}") from e

        if not isinstance(logging.getLevelName(self._config.logging.level.upper()), int):
            raise ConfigError(f"Unknown log level: {self._config.logging.level}")

        self.logger.debug("Configuration validation passed")

    @staticmethod
    def _check(value: Any, types, minimum, message: str):
        if isinstance(value, bool) or not isinstance(value, types) or value < minimum:
            raise ConfigError(message)

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigError("Configuration not loaded. Call load_config() first.")
        return self._config


def load_config(config_path: Optional[str] = None,
                overrides: Optional[Mapping[str, Any]] = None,
                profile: Optional[str] = None) -> Config:
    """Load and validate configuration."""
    return ConfigManager(config_path).load_config(overrides, profile)
