# solis_backfill/services/record_mapper.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List

from solis_backfill.models.summary import DayRecord, DaySummary, MonthBucket
from solis_backfill.services.resilient_fetcher import FetchOutcome


@dataclass
class MappedBucket:
    rows: List[DaySummary] = field(default_factory=list)
    zero_filled: List[date] = field(default_factory=list)


def map_bucket(
    device_id: str,
    bucket: MonthBucket,
    outcome: FetchOutcome,
    created_at: str,
    log,
    *,
    zero_fill: bool = True,
) -> MappedBucket:
    """Turn one fetched month into summary rows for the bucket's missing dates.

    A failed fetch yields nothing, so those dates stay open for the next
    run. When the provider answered but has no record for a date, that date
    gets a zero row (unless ``zero_fill`` is off) so it is not retried forever.
    A date whose entry came back with unreadable numbers is left open.
    """
    mapped = MappedBucket()
    if not outcome.ok:
        return mapped

    by_label: Dict[str, DayRecord] = {}
    for record in outcome.records:
        by_label.setdefault(record.date_label, record)

    unparseable = set(outcome.unparseable_dates)

    for day in bucket.dates:
        record = by_label.get(day.isoformat())
        if record is None:
            if day.isoformat() in unparseable:
                log.warning("Unreadable provider data for %s on %s; leaving open", device_id, day.isoformat())
                continue
            if not zero_fill:
                log.info("No provider data for %s on %s; leaving open", device_id, day.isoformat())
                continue
            log.warning("No provider data for %s on %s; inserting zero row", device_id, day.isoformat())
            mapped.zero_filled.append(day)
            mapped.rows.append(
                DaySummary(
                    device_id=device_id,
                    summary_date=day,
                    total_generation_kwh=0.0,
                    peak_power_kw=0.0,
                    created_at=created_at,
                )
            )
            continue
        mapped.rows.append(
            DaySummary(
                device_id=device_id,
                summary_date=day,
                total_generation_kwh=record.energy,
                peak_power_kw=record.max_power,
                created_at=created_at,
            )
        )
    return mapped
