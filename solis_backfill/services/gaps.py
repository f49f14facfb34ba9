# solis_backfill/services/gaps.py

from __future__ import annotations

from datetime import date
from typing import Iterable, List, Union

from solis_backfill.models.summary import MonthBucket
from solis_backfill.services.time_range import group_by_month


def _normalize(value: Union[date, str]) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def find_missing_dates(expected: Iterable[date], existing: Iterable[Union[date, str]]) -> List[date]:
    """Expected minus existing, in chronological order and without duplicates."""
    present = {_normalize(value) for value in existing}
    missing: List[date] = []
    seen: set[date] = set()
    for day in sorted(expected):
        if day in present or day in seen:
            continue
        seen.add(day)
        missing.append(day)
    return missing


def plan_month_buckets(missing: Iterable[date]) -> List[MonthBucket]:
    """One bucket per month that actually has gaps, oldest month first."""
    groups = group_by_month(missing)
    return [MonthBucket(month_key=key, dates=groups[key]) for key in sorted(groups)]
