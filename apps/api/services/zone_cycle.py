"""
Weekly capture cycles.

Territory is contested in UTC weeks starting Monday 00:00. A cycle is keyed
by the date of that Monday (YYYY-MM-DD).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional


@dataclass(frozen=True)
class CycleWindow:
    cycle_key: str
    start: datetime  # inclusive
    end: datetime  # exclusive


def _as_utc(at: datetime) -> datetime:
    # Naive datetimes are treated as UTC (sqlite hands them back that way).
    if at.tzinfo is None:
        return at.replace(tzinfo=timezone.utc)
    return at.astimezone(timezone.utc)


def parse_instant(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp to an aware UTC datetime. Naive input is taken as UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return _as_utc(parsed)


def get_weekly_cycle_window_utc(at: datetime) -> CycleWindow:
    at = _as_utc(at)
    day_start = at.replace(hour=0, minute=0, second=0, microsecond=0)
    start = day_start - timedelta(days=day_start.weekday())  # Monday -> 0
    end = start + timedelta(days=7)
    return CycleWindow(cycle_key=start.strftime("%Y-%m-%d"), start=start, end=end)


def cycle_key_for(at: datetime) -> str:
    return get_weekly_cycle_window_utc(at).cycle_key
