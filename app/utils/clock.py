"""Timezone helpers.

Timestamps are stored in UTC. Upstream queries use the API's UTC convention
and everything shown to operators is rendered in the display timezone.
"""

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from app.config import settings

DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S"
API_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def display_zone() -> ZoneInfo:
    return ZoneInfo(settings.display_timezone)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive values read back from databases without tz support."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_display(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    return as_utc(dt).astimezone(display_zone())


def format_display(dt: Optional[datetime]) -> Optional[str]:
    local = to_display(dt)
    return local.strftime(DISPLAY_FORMAT) if local else None


def format_api(dt: datetime) -> str:
    return as_utc(dt).strftime(API_FORMAT)
