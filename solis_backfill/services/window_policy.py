# solis_backfill/services/window_policy.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional, Tuple

from solis_backfill.models.device import DeviceSeries
from solis_backfill.services.time_range import first_of_month_offset, yesterday

Window = Tuple[date, date]


@dataclass(frozen=True)
class FullHistoryWindow:
    """Every day from the inverter's first generation up to yesterday."""

    max_months: Optional[int] = None

    name = "full-history"

    def resolve(self, device: DeviceSeries, today: date) -> Optional[Window]:
        first_day = device.first_generation_date
        if first_day is None:
            return None
        end = yesterday(today)
        start = first_day
        if self.max_months:
            start = max(start, first_of_month_offset(end, self.max_months - 1))
        return start, end

    def describe(self) -> str:
        if self.max_months:
            return f"first generation -> yesterday (last {self.max_months} months)"
        return "first generation -> yesterday"


@dataclass(frozen=True)
class ExplicitRangeWindow:
    """An operator-supplied inclusive range, clamped to what can exist."""

    start: date
    end: date

    name = "range"

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(
                f"End date {self.end.isoformat()} is before start date {self.start.isoformat()}"
            )

    def resolve(self, device: DeviceSeries, today: date) -> Optional[Window]:
        start = self.start
        first_day = device.first_generation_date
        if first_day is not None and first_day > start:
            start = first_day
        end = min(self.end, yesterday(today))
        return start, end

    def describe(self) -> str:
        return f"{self.start.isoformat()} -> {self.end.isoformat()}"
