"""
Timestamp helpers shared by results, stats and checkpoints.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialize a datetime as ISO 8601, treating naive values as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_iso(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO 8601 string into an aware UTC datetime.

    Accepts a trailing ``Z``. Returns None if the value is empty or unparsable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            logging.getLogger(__name__).debug(f"Could not parse datetime string: {value}")
            return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
