# solis_backfill/services/run_report.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

STATUS_COMPLETE = "complete"
STATUS_PARTIAL = "partial"
STATUS_NO_GAPS = "no_gaps"
STATUS_SKIPPED = "skipped"
STATUS_WRITE_FAILED = "write_failed"
STATUS_CANCELLED = "cancelled"
STATUS_FAILED = "failed"


def _iso(days: List[date]) -> List[str]:
    return [d.isoformat() for d in days]


@dataclass
class DeviceReport:
    device_id: str
    status: str = STATUS_COMPLETE
    reason: Optional[str] = None
    window_start: Optional[date] = None
    window_end: Optional[date] = None
    dates_expected: int = 0
    missing_dates: List[date] = field(default_factory=list)
    months_planned: List[str] = field(default_factory=list)
    months_fetched: List[str] = field(default_factory=list)
    failed_months: Dict[str, str] = field(default_factory=dict)
    rows_prepared: int = 0
    rows_written: int = 0
    added_dates: List[date] = field(default_factory=list)
    zero_filled: List[date] = field(default_factory=list)
    still_missing: List[date] = field(default_factory=list)

    @property
    def skipped(self) -> bool:
        return self.status == STATUS_SKIPPED

    def as_dict(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "status": self.status,
            "reason": self.reason,
            "window_start": self.window_start.isoformat() if self.window_start else None,
            "window_end": self.window_end.isoformat() if self.window_end else None,
            "dates_expected": self.dates_expected,
            "missing_dates": _iso(self.missing_dates),
            "months_planned": list(self.months_planned),
            "months_fetched": list(self.months_fetched),
            "failed_months": dict(self.failed_months),
            "rows_prepared": self.rows_prepared,
            "rows_written": self.rows_written,
            "added_dates": _iso(self.added_dates),
            "zero_filled": _iso(self.zero_filled),
            "still_missing": _iso(self.still_missing),
        }


@dataclass
class RunReport:
    """Aggregate outcome of one reconciliation run. Never persisted."""

    mode: str
    dry_run: bool
    started_at: str
    finished_at: Optional[str] = None
    cancelled: bool = False
    devices: List[DeviceReport] = field(default_factory=list)

    def add(self, device_report: DeviceReport) -> None:
        self.devices.append(device_report)

    def device(self, device_id: str) -> Optional[DeviceReport]:
        for entry in self.devices:
            if entry.device_id == device_id:
                return entry
        return None

    # Aggregates -------------------------------------------------------
    @property
    def devices_processed(self) -> int:
        return sum(1 for d in self.devices if not d.skipped)

    @property
    def devices_skipped(self) -> int:
        return sum(1 for d in self.devices if d.skipped)

    @property
    def missing_found(self) -> int:
        return sum(len(d.missing_dates) for d in self.devices)

    @property
    def months_planned(self) -> int:
        return sum(len(d.months_planned) for d in self.devices)

    @property
    def months_fetched(self) -> int:
        return sum(len(d.months_fetched) for d in self.devices)

    @property
    def rows_prepared(self) -> int:
        return sum(d.rows_prepared for d in self.devices)

    @property
    def rows_inserted(self) -> int:
        return sum(d.rows_written for d in self.devices)

    def totals(self) -> Dict[str, int]:
        return {
            "devices_processed": self.devices_processed,
            "devices_skipped": self.devices_skipped,
            "missing_found": self.missing_found,
            "months_planned": self.months_planned,
            "months_fetched": self.months_fetched,
            "rows_prepared": self.rows_prepared,
            "rows_inserted": self.rows_inserted,
        }

    def as_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "dry_run": self.dry_run,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "cancelled": self.cancelled,
            "totals": self.totals(),
            "devices": [d.as_dict() for d in self.devices],
        }
