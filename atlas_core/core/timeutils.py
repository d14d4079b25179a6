# atlas_core/core/timeutils.py
"""Business calendar helpers. "Today" is always the day in settings.APP_TIMEZONE."""

from datetime import date, datetime, timezone
from functools import lru_cache
from typing import Any, Optional
from zoneinfo import ZoneInfo

from atlas_core.core.config import settings


@lru_cache()
def app_timezone() -> ZoneInfo:
    return ZoneInfo(settings.APP_TIMEZONE)


def local_now(now: Optional[datetime] = None) -> datetime:
    """`now` (aware, or naive UTC) expressed in the business time zone."""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(app_timezone())


def local_today(now: Optional[datetime] = None) -> date:
    return local_now(now).date()


def to_utc_iso(value: datetime) -> str:
    """Canonical comparable form: UTC, millisecond precision, 'Z' suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    utc = value.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parses a stored timestamp (datetime or ISO-8601 text). Naive values are UTC. None if unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def timestamp_to_utc_iso(value: Any) -> Optional[str]:
    parsed = parse_timestamp(value)
    return to_utc_iso(parsed) if parsed else None
