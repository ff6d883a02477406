"""Datetime helpers for timezone-aware UTC timestamps.

Supabase returns timestamps as ISO 8601 strings, sometimes with a trailing
``Z``; these helpers keep everything aware and in UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO timestamp from the data gateway into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def hours_ago(hours: float) -> datetime:
    return utc_now() - timedelta(hours=hours)


def epoch_millis(moment: Optional[datetime] = None) -> int:
    moment = moment or utc_now()
    return int(moment.timestamp() * 1000)
