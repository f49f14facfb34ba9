# solis_backfill/services/output_formatter.py

from __future__ import annotations

import json
from datetime import date
from typing import List, Sequence

from solis_backfill.services.monthly_rollup import RollupResult
from solis_backfill.services.run_report import DeviceReport, RunReport


def _date_list(days: Sequence[date], limit: int = 30, edge: int = 10) -> List[str]:
    labels = [d.isoformat() for d in days]
    if len(labels) <= limit:
        return [", ".join(labels)]
    return [
        f"First {edge}: {', '.join(labels[:edge])}",
        "...",
        f"Last {edge}: {', '.join(labels[-edge:])}",
        f"Total: {len(labels)} dates",
    ]


def _device_line(dev: DeviceReport) -> str:
    parts = [f"[{dev.device_id}] {dev.status}"]
    if dev.window_start and dev.window_end:
        parts.append(f"window={dev.window_start.isoformat()}..{dev.window_end.isoformat()}")
    parts.append(f"expected={dev.dates_expected}")
    parts.append(f"missing={len(dev.missing_dates)}")
    if dev.months_planned:
        parts.append(f"months={len(dev.months_fetched)}/{len(dev.months_planned)}")
    parts.append(f"prepared={dev.rows_prepared}")
    parts.append(f"written={dev.rows_written}")
    if dev.zero_filled:
        parts.append(f"zero-filled={len(dev.zero_filled)}")
    if dev.reason:
        parts.append(f"reason={dev.reason}")
    return " ".join(parts)


def format_human(report: RunReport) -> str:
    lines = ["=== BACKFILL COMPLETE ===" if not report.cancelled else "=== BACKFILL CANCELLED ==="]
    lines.append(f"Mode: {report.mode} ({'DRY RUN, no writes' if report.dry_run else 'WRITE'})")
    lines.append(f"Devices processed: {report.devices_processed} (skipped {report.devices_skipped})")
    lines.append(f"Missing dates found: {report.missing_found}")
    lines.append(f"Months fetched: {report.months_fetched}/{report.months_planned}")
    lines.append(f"Rows prepared: {report.rows_prepared}")
    lines.append(f"Rows inserted: {0 if report.dry_run else report.rows_inserted}")

    if report.devices:
        lines.append("")
        lines.append("Per-device:")
        for dev in report.devices:
            lines.append(_device_line(dev))
            for month, reason in dev.failed_months.items():
                lines.append(f"  month {month} failed: {reason}")

    added = [dev for dev in report.devices if dev.added_dates]
    if added:
        lines.append("")
        lines.append("Added dates by inverter:" if not report.dry_run else "Dates that would be added:")
        for dev in added:
            lines.append(f"- {dev.device_id}:")
            for text in _date_list(dev.added_dates):
                lines.append(f"    {text}")
    return "\n".join(lines)


def emit_human(report: RunReport) -> None:
    print(format_human(report))


def emit_json(report: RunReport) -> None:
    print(json.dumps(report.as_dict(), indent=2))


def format_rollup(result: RollupResult) -> str:
    lines = ["=== MONTHLY ROLLUP ==="]
    for device_id, count in result.per_device.items():
        lines.append(f"- {device_id}: {count} month(s){' (dry run)' if result.dry_run else ''}")
    for device_id, reason in result.failures.items():
        lines.append(f"- {device_id}: FAILED ({reason})")
    lines.append(f"Monthly rows written: {result.rows_written}")
    return "\n".join(lines)
