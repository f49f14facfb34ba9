# solis_backfill/services/summary_store.py

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional, Set, Union

from solis_backfill.exceptions import StoreError
from solis_backfill.models.summary import DaySummary, MonthSummary


class SqliteSummaryStore:
    """SQLite-backed daily/monthly summary tables keyed by natural key."""

    def __init__(self, path: Optional[Union[Path, str]] = None):
        default_path = Path.home() / ".solis_backfill.db"
        self._log = logging.getLogger("solis_backfill.store")
        resolved = Path(path).expanduser() if path else default_path
        self.path: Path = resolved
        try:
            resolved.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.path)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._init_schema()
        except (OSError, sqlite3.Error) as exc:
            raise StoreError(f"Cannot open summary database {resolved}: {exc}") from exc

    # ------------------------------------------------------------------
    def _init_schema(self) -> None:
        stmts = [
            """
            CREATE TABLE IF NOT EXISTS daily_summary (
                inverter_sn TEXT NOT NULL,
                summary_date TEXT NOT NULL,
                total_generation_kwh REAL NOT NULL DEFAULT 0,
                peak_power_kw REAL NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                PRIMARY KEY (inverter_sn, summary_date)
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS monthly_summary (
                inverter_sn TEXT NOT NULL,
                summary_month TEXT NOT NULL,
                total_generation_kwh REAL NOT NULL DEFAULT 0,
                peak_power_kw REAL NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                PRIMARY KEY (inverter_sn, summary_month)
            )
            """,
        ]
        for stmt in stmts:
            self._conn.execute(stmt)
        self._conn.commit()

    # ------------------------------------------------------------------
    def list_dates(self, device_id: str, start: date, end: date) -> Set[str]:
        try:
            cur = self._conn.execute(
                """
                SELECT summary_date FROM daily_summary
                WHERE inverter_sn = ? AND summary_date >= ? AND summary_date <= ?
                """,
                (device_id, start.isoformat(), end.isoformat()),
            )
            return {row["summary_date"] for row in cur.fetchall()}
        except sqlite3.Error as exc:
            raise StoreError(f"Existing-dates query failed for {device_id}: {exc}") from exc

    def upsert_day_summaries(self, rows: Iterable[DaySummary]) -> int:
        payload = [
            (r.device_id, r.summary_date.isoformat(), r.total_generation_kwh, r.peak_power_kw, r.created_at)
            for r in rows
        ]
        if not payload:
            return 0
        try:
            with self._conn:
                self._conn.executemany(
                    """
                    INSERT INTO daily_summary(
                        inverter_sn, summary_date, total_generation_kwh, peak_power_kw, created_at
                    ) VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(inverter_sn, summary_date) DO UPDATE SET
                        total_generation_kwh=excluded.total_generation_kwh,
                        peak_power_kw=excluded.peak_power_kw,
                        created_at=excluded.created_at
                    """,
                    payload,
                )
        except sqlite3.Error as exc:
            raise StoreError(f"Daily summary upsert failed: {exc}") from exc
        self._log.debug("Upserted %d daily summary row(s)", len(payload))
        return len(payload)

    # Monthly rollup ---------------------------------------------------
    def list_device_ids(self) -> List[str]:
        try:
            cur = self._conn.execute(
                """
                SELECT DISTINCT inverter_sn FROM daily_summary
                WHERE inverter_sn IS NOT NULL AND inverter_sn != ''
                ORDER BY inverter_sn
                """
            )
            return [row["inverter_sn"] for row in cur.fetchall()]
        except sqlite3.Error as exc:
            raise StoreError(f"Inverter listing from daily summaries failed: {exc}") from exc

    def day_summaries(self, device_id: str) -> List[DaySummary]:
        try:
            cur = self._conn.execute(
                """
                SELECT inverter_sn, summary_date, total_generation_kwh, peak_power_kw, created_at
                FROM daily_summary WHERE inverter_sn = ? ORDER BY summary_date
                """,
                (device_id,),
            )
            return [DaySummary.from_row(dict(row)) for row in cur.fetchall()]
        except sqlite3.Error as exc:
            raise StoreError(f"Daily summary read failed for {device_id}: {exc}") from exc

    def upsert_monthly_summaries(self, rows: Iterable[MonthSummary]) -> int:
        payload = [
            (r.device_id, r.summary_month, r.total_generation_kwh, r.peak_power_kw, r.created_at)
            for r in rows
        ]
        if not payload:
            return 0
        try:
            with self._conn:
                self._conn.executemany(
                    """
                    INSERT INTO monthly_summary(
                        inverter_sn, summary_month, total_generation_kwh, peak_power_kw, created_at
                    ) VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(inverter_sn, summary_month) DO UPDATE SET
                        total_generation_kwh=excluded.total_generation_kwh,
                        peak_power_kw=excluded.peak_power_kw,
                        created_at=excluded.created_at
                    """,
                    payload,
                )
        except sqlite3.Error as exc:
            raise StoreError(f"Monthly summary upsert failed: {exc}") from exc
        return len(payload)

    # ------------------------------------------------------------------
    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
