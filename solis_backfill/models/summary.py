# solis_backfill/models/summary.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional


def _as_float(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    return float(value)


@dataclass
class DayRecord:
    """One day inside a provider month response."""

    date_label: str
    energy: float
    max_power: float

    @staticmethod
    def label_of(entry: Any) -> Optional[str]:
        """``YYYY-MM-DD`` of a provider entry, or None when it carries no date."""
        if not isinstance(entry, dict):
            return None
        label = entry.get("dateStr") or entry.get("date")
        if not isinstance(label, str) or len(label.strip()) < 10:
            return None
        return label.strip()[:10]

    @classmethod
    def from_payload(cls, entry: Any) -> Optional["DayRecord"]:
        label = cls.label_of(entry)
        if label is None:
            return None
        try:
            energy = _as_float(entry.get("energy"))
            max_power = _as_float(entry.get("maxPower"))
        except (TypeError, ValueError):
            return None
        return cls(date_label=label, energy=energy, max_power=max_power)


@dataclass
class DaySummary:
    device_id: str
    summary_date: date
    total_generation_kwh: float
    peak_power_kw: float
    created_at: str

    @property
    def key(self) -> tuple[str, str]:
        return self.device_id, self.summary_date.isoformat()

    def as_row(self) -> Dict[str, Any]:
        return {
            "inverter_sn": self.device_id,
            "summary_date": self.summary_date.isoformat(),
            "total_generation_kwh": self.total_generation_kwh,
            "peak_power_kw": self.peak_power_kw,
            "created_at": self.created_at,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "DaySummary":
        return cls(
            device_id=row["inverter_sn"],
            summary_date=date.fromisoformat(str(row["summary_date"])[:10]),
            total_generation_kwh=_as_float(row.get("total_generation_kwh")),
            peak_power_kw=_as_float(row.get("peak_power_kw")),
            created_at=row.get("created_at") or "",
        )


@dataclass
class MonthBucket:
    month_key: str
    dates: list[date]


@dataclass
class MonthSummary:
    device_id: str
    summary_month: str
    total_generation_kwh: float
    peak_power_kw: float
    created_at: str

    def as_row(self) -> Dict[str, Any]:
        return {
            "inverter_sn": self.device_id,
            "summary_month": self.summary_month,
            "total_generation_kwh": self.total_generation_kwh,
            "peak_power_kw": self.peak_power_kw,
            "created_at": self.created_at,
        }
