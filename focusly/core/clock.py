"""Wall-clock helpers shared by the policy, lifecycle and scheduler."""

from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo


def now_local(tz_name: str | None = None) -> datetime:
    """Current time in tz_name (defaults to the configured app timezone)."""
    if tz_name is None:
        from focusly.config import settings
        tz_name = settings.TIMEZONE
    return datetime.now(ZoneInfo(tz_name))


def local_date(now: datetime, tz_name: str) -> date:
    """Calendar date of `now` as seen in tz_name. Naive datetimes are taken as-is."""
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(ZoneInfo(tz_name)).date()


def day_marker(day: date) -> str:
    return day.isoformat()


def week_marker(day: date) -> str:
    """ISO week marker, e.g. '2026-W42'."""
    year, week, _ = day.isocalendar()
    return f"{year}-W{week:02d}"
