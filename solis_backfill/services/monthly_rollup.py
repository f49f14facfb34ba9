from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from solis_backfill.models.summary import DaySummary, MonthSummary
from solis_backfill.services.time_range import month_key


def aggregate_monthly(device_id: str, days: Iterable[DaySummary], created_at: str) -> List[MonthSummary]:
    """Sum energy and take the peak power per ``YYYY-MM``, oldest month first."""
    months: Dict[str, MonthSummary] = {}
    for day in days:
        key = month_key(day.summary_date)
        entry = months.get(key)
        if entry is None:
            entry = months[key] = MonthSummary(
                device_id=device_id,
                summary_month=key,
                total_generation_kwh=0.0,
                peak_power_kw=0.0,
                created_at=created_at,
            )
        entry.total_generation_kwh += day.total_generation_kwh or 0.0
        entry.peak_power_kw = max(entry.peak_power_kw, day.peak_power_kw or 0.0)
    return [months[key] for key in sorted(months)]


@dataclass
class RollupResult:
    dry_run: bool
    per_device: Dict[str, int] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def rows_written(self) -> int:
        return 0 if self.dry_run else sum(self.per_device.values())

    def as_dict(self) -> dict:
        return {
            "dry_run": self.dry_run,
            "per_device": dict(self.per_device),
            "failures": dict(self.failures),
            "rows_written": self.rows_written,
        }


class MonthlyRollupService:
    """Rebuilds the monthly summary table from the daily one."""

    def __init__(
        self,
        store,
        log,
        *,
        dry_run: bool = False,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.log = log
        self.dry_run = dry_run
        self._clock = clock

    def run(self, device_ids: Optional[Iterable[str]] = None) -> RollupResult:
        result = RollupResult(dry_run=self.dry_run)
        ids = list(device_ids) if device_ids is not None else self.store.list_device_ids()
        if not ids:
            self.log.warning("No inverter records found in the daily summary table")
            return result

        created_at = self._clock().isoformat()
        for device_id in ids:
            try:
                days = self.store.day_summaries(device_id)
                months = aggregate_monthly(device_id, days, created_at)
                if not months:
                    self.log.info("%s: no daily data, nothing to roll up", device_id)
                    result.per_device[device_id] = 0
                    continue
                if self.dry_run:
                    count = len(months)
                else:
                    count = self.store.upsert_monthly_summaries(months)
            except Exception as exc:
                self.log.error("%s: monthly rollup failed: %s", device_id, exc)
                result.failures[device_id] = str(exc)
                continue
            result.per_device[device_id] = count
            self.log.info(
                "%s: %s %d monthly row(s)",
                device_id,
                "prepared" if self.dry_run else "stored",
                count,
            )
        return result
