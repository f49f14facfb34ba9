# solis_backfill/models/device.py
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict


@dataclass
class DeviceSeries:
    device_id: str                       # inverter serial number
    first_generation: datetime | None    # immutable once known; bounds the window
    name: str | None = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def first_generation_date(self) -> date | None:
        if self.first_generation is None:
            return None
        return self.first_generation.astimezone(timezone.utc).date()

    @staticmethod
    def parse_timestamp(value: Any) -> datetime | None:
        """Provider timestamps are epoch milliseconds, sometimes as strings."""
        if value in (None, "", 0, "0"):
            return None
        try:
            millis = int(float(value))
        except (TypeError, ValueError):
            return None
        if millis <= 0:
            return None
        return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)
