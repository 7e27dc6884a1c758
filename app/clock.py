from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.config import get_settings


def local_today(timezone_name: str | None = None) -> date:
    name = timezone_name or get_settings().timezone
    try:
        tz = ZoneInfo(name)
    except ZoneInfoNotFoundError:
        return date.today()
    return datetime.now(tz).date()
