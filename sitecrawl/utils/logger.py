"""
Logging setup for the crawler.
"""

import logging
import logging.handlers
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

from .config import LoggingConfig


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_entry = {
            'timestamp': timestamp.isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_entry.update(record.extra_fields)

        return json.dumps(log_entry, ensure_ascii=False)


class NoiseFilter(logging.Filter):
    """Drops chatter from HTTP and event loop internals."""

    def __init__(self, suppress_modules: Optional[Sequence[str]] = None):
        super().__init__()
        self.suppress_modules = tuple(suppress_modules or (
            'aiohttp.access',
            'aiohttp.client',
            'urllib3.connectionpool',
        ))

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith(self.suppress_modules):
            return False

        if record.levelno == logging.DEBUG:
            message = record.getMessage().lower()
            if 'connection pool' in message or 'using selector' in message:
                return False

        return True


THIRD_PARTY_LEVELS = {
    'aiohttp': logging.WARNING,
    'urllib3': logging.WARNING,
    'asyncio': logging.WARNING,
    'bs4': logging.WARNING,
}


def setup_logging(config: LoggingConfig,
                  enable_json: Optional[bool] = None,
                  debug: bool = False,
                  stream=None) -> logging.Logger:
    """
    Configure the root logger for a crawl.

    Args:
        config: logging section of the configuration
        enable_json: emit JSON lines; defaults to ``config.json``
        debug: force DEBUG level regardless of ``config.level``
        stream: console stream, stdout by default

    Returns:
        The configured root logger
    """
    if enable_json is None:
        enable_json = config.json
    level = logging.DEBUG if debug else getattr(logging, config.level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if enable_json:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(config.format)

    noise_filter = NoiseFilter()

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(noise_filter)
    root_logger.addHandler(console_handler)

    log_file = None
    if config.file:
        log_file = Path(config.file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=50 * 1024 * 1024,  # 50MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(noise_filter)
        root_logger.addHandler(file_handler)

    for logger_name, logger_level in THIRD_PARTY_LEVELS.items():
        logging.getLogger(logger_name).setLevel(logger_level)

    root_logger.debug(f"Logging initialized: level={logging.getLevelName(level)}, "
                      f"file={log_file}, json={enable_json}")
    return root_logger
