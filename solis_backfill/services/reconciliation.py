from __future__ import annotations

import threading
from datetime import date, datetime, timezone
from typing import Callable, Iterable, List, Optional

from solis_backfill.exceptions import StoreError
from solis_backfill.models.device import DeviceSeries
from solis_backfill.models.summary import DaySummary
from solis_backfill.services.gaps import find_missing_dates, plan_month_buckets
from solis_backfill.services.record_mapper import map_bucket
from solis_backfill.services.resilient_fetcher import ResilientFetcher
from solis_backfill.services.run_report import (
    STATUS_CANCELLED,
    STATUS_COMPLETE,
    STATUS_FAILED,
    STATUS_NO_GAPS,
    STATUS_PARTIAL,
    STATUS_SKIPPED,
    STATUS_WRITE_FAILED,
    DeviceReport,
    RunReport,
)
from solis_backfill.services.time_range import enumerate_dates_inclusive, utc_today


class ReconciliationEngine:
    """Finds missing daily summaries per inverter and fills them from the provider.

    Per device: resolve the window, diff expected dates against the store,
    group the gaps by month, fetch each month once (sequentially, paced by
    the fetcher), map to rows and write them in one idempotent upsert.
    Because the gap set is recomputed on every run, a partial or
    interrupted run is repaired simply by running again.
    """

    def __init__(
        self,
        store,
        fetcher: ResilientFetcher,
        log,
        *,
        window_policy,
        dry_run: bool = False,
        zero_fill: bool = True,
        today: Optional[date] = None,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.fetcher = fetcher
        self.log = log
        self.window_policy = window_policy
        self.dry_run = dry_run
        self.zero_fill = zero_fill
        self.today = today
        self.cancel_event = cancel_event or threading.Event()
        self._clock = clock

    # ------------------------------------------------------------------
    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def _today(self) -> date:
        return self.today or utc_today(self._clock())

    # ------------------------------------------------------------------
    def run(self, devices: Iterable[DeviceSeries]) -> RunReport:
        report = RunReport(
            mode=self.window_policy.name,
            dry_run=self.dry_run,
            started_at=self._clock().isoformat(),
        )
        today = self._today()
        self.log.info(
            "Reconciling daily summaries (%s, window %s)%s",
            self.window_policy.name,
            self.window_policy.describe(),
            " [dry run]" if self.dry_run else "",
        )

        for device in devices:
            if self.cancelled:
                self.log.warning("Run cancelled before %s; stopping", device.device_id)
                report.cancelled = True
                break
            try:
                device_report = self.reconcile_device(device, today)
            except Exception as exc:
                self.log.exception("Unexpected error reconciling %s", device.device_id)
                device_report = DeviceReport(device_id=device.device_id, status=STATUS_FAILED, reason=str(exc))
            report.add(device_report)
            if device_report.status == STATUS_CANCELLED:
                report.cancelled = True
                break

        report.finished_at = self._clock().isoformat()
        return report

    # ------------------------------------------------------------------
    def reconcile_device(self, device: DeviceSeries, today: Optional[date] = None) -> DeviceReport:
        today = today or self._today()
        sn = device.device_id
        result = DeviceReport(device_id=sn)

        # --- Start ---
        window = self.window_policy.resolve(device, today)
        if window is None:
            self.log.warning("Skipping %s (no first generation time)", sn)
            result.status = STATUS_SKIPPED
            result.reason = "no first generation time"
            return result
        start, end = window
        result.window_start, result.window_end = start, end

        expected = enumerate_dates_inclusive(start, end)
        result.dates_expected = len(expected)
        if not expected:
            self.log.info("%s: empty window %s -> %s", sn, start.isoformat(), end.isoformat())
            result.status = STATUS_NO_GAPS
            return result

        # --- ComputeGaps ---
        try:
            existing = self.store.list_dates(sn, start, end)
        except Exception as exc:
            self.log.warning("Skipping %s: existing-dates query failed: %s", sn, exc)
            result.status = STATUS_SKIPPED
            result.reason = f"existing-dates query failed: {exc}"
            return result

        missing = find_missing_dates(expected, existing)
        result.missing_dates = missing
        if not missing:
            self.log.info("%s: no missing dates in %s -> %s", sn, start.isoformat(), end.isoformat())
            result.status = STATUS_NO_GAPS
            return result
        self.log.info(
            "%s: %d of %d expected date(s) missing (%s -> %s)",
            sn,
            len(missing),
            len(expected),
            missing[0].isoformat(),
            missing[-1].isoformat(),
        )

        # --- PlanBatches / ForEachBucket ---
        buckets = plan_month_buckets(missing)
        result.months_planned = [b.month_key for b in buckets]
        created_at = self._clock().isoformat()
        rows: List[DaySummary] = []

        for bucket in buckets:
            if self.cancelled:
                self.log.warning("%s: cancelled before month %s", sn, bucket.month_key)
                result.status = STATUS_CANCELLED
                result.reason = "cancelled"
                break
            self.log.debug("%s: fetching %s (%d missing date(s))", sn, bucket.month_key, len(bucket.dates))
            outcome = self.fetcher.fetch_month(sn, bucket.month_key)
            if outcome.ok:
                result.months_fetched.append(bucket.month_key)
            else:
                result.failed_months[bucket.month_key] = outcome.reason or "failed"
                self.log.warning("%s: month %s skipped: %s", sn, bucket.month_key, outcome.reason)
            mapped = map_bucket(sn, bucket, outcome, created_at, self.log, zero_fill=self.zero_fill)
            rows.extend(mapped.rows)
            result.zero_filled.extend(mapped.zero_filled)

        result.rows_prepared = len(rows)
        prepared_dates = [r.summary_date for r in rows]

        # --- Upsert ---
        written_dates: List[date] = []
        if rows and self.dry_run:
            self.log.info("%s: dry run, not writing %d prepared row(s)", sn, len(rows))
            result.added_dates = prepared_dates
        elif rows:
            try:
                result.rows_written = self.store.upsert_day_summaries(rows)
            except Exception as exc:
                # chunked stores may have landed a prefix of the rows before failing
                partial = exc.written if isinstance(exc, StoreError) else 0
                self.log.error(
                    "%s: upsert of %d row(s) failed after %d written: %s", sn, len(rows), partial, exc
                )
                result.status = STATUS_WRITE_FAILED
                result.reason = f"upsert failed: {exc}"
                result.rows_written = partial
                written_dates = prepared_dates[:partial]
                result.added_dates = written_dates
            else:
                written_dates = prepared_dates
                result.added_dates = prepared_dates
                self.log.info("%s: wrote %d row(s)", sn, result.rows_written)

        filled = set(prepared_dates) if self.dry_run else set(written_dates)
        result.still_missing = [d for d in missing if d not in filled]
        if result.still_missing:
            if result.status == STATUS_COMPLETE:
                result.status = STATUS_PARTIAL
            self.log.info("%s: %d date(s) remain open for the next run", sn, len(result.still_missing))
        return result
