# solis_backfill/services/time_range.py
"""Calendar-day helpers. Everything here works on ``date`` values, never on
datetimes, so enumeration cannot drift across a timezone boundary."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_day(text: str) -> date:
    """Parse a strict ``YYYY-MM-DD`` string."""
    value = (text or "").strip()
    if not _DAY_RE.match(value):
        raise ValueError(f"Invalid date '{text}' (expected YYYY-MM-DD)")
    return date.fromisoformat(value)


def utc_today(now: Optional[datetime] = None) -> date:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).date()


def yesterday(today: date) -> date:
    # Today's totals are still accumulating and never count as a finalized gap.
    return today - timedelta(days=1)


def enumerate_dates_inclusive(start: date, end: date) -> List[date]:
    if end < start:
        return []
    span = (end - start).days
    return [start + timedelta(days=offset) for offset in range(span + 1)]


def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def group_by_month(dates: Iterable[date]) -> Dict[str, List[date]]:
    groups: Dict[str, List[date]] = {}
    for day in dates:
        groups.setdefault(month_key(day), []).append(day)
    return groups


def first_of_month_offset(day: date, months_back: int) -> date:
    """First day of the month ``months_back`` calendar months before ``day``'s month."""
    index = day.year * 12 + (day.month - 1) - months_back
    return date(index // 12, index % 12 + 1, 1)
