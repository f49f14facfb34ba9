from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import requests

from solis_backfill.config import StoreConfig
from solis_backfill.exceptions import StoreError
from solis_backfill.models.summary import DaySummary, MonthSummary


class SupabaseSummaryStore:
    """Summary tables behind Supabase's PostgREST endpoint.

    Reads page through results with ``offset``/``limit``; writes are
    ``merge-duplicates`` upserts on the natural key, sent in chunks.
    """

    PAGE_SIZE = 1000

    def __init__(self, cfg: StoreConfig, log, session: Optional[requests.Session] = None):
        if not cfg.supabase_url or not cfg.supabase_key:
            raise StoreError("Supabase store needs both a URL and a service key")
        self.cfg = cfg
        self.log = log
        self.session = session or requests.Session()
        self.base_url = cfg.supabase_url.rstrip("/") + "/rest/v1"
        self.batch_size = max(1, int(cfg.batch_size or 500))

    # ------------------------------------------------------------------
    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.cfg.supabase_key,
            "Authorization": f"Bearer {self.cfg.supabase_key}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def _select(self, table: str, params: List[Tuple[str, str]]) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        offset = 0
        url = f"{self.base_url}/{table}"
        while True:
            page_params = list(params) + [("limit", str(self.PAGE_SIZE)), ("offset", str(offset))]
            try:
                resp = self.session.get(url, params=page_params, headers=self._headers(), timeout=30)
            except requests.RequestException as exc:
                raise StoreError(f"Supabase query on {table} failed: {exc}") from exc
            if resp.status_code != 200:
                raise StoreError(f"Supabase query on {table} returned HTTP {resp.status_code}: {resp.text}")
            try:
                page = resp.json()
            except ValueError as exc:
                raise StoreError(f"Supabase query on {table} returned non-JSON payload") from exc
            if not isinstance(page, list):
                raise StoreError(f"Supabase query on {table} returned unexpected payload")
            rows.extend(page)
            if len(page) < self.PAGE_SIZE:
                return rows
            offset += self.PAGE_SIZE

    def _upsert(self, table: str, conflict: str, rows: List[Dict[str, Any]]) -> int:
        url = f"{self.base_url}/{table}"
        headers = self._headers({"Prefer": "resolution=merge-duplicates,return=minimal"})
        written = 0
        for index in range(0, len(rows), self.batch_size):
            chunk = rows[index:index + self.batch_size]
            try:
                resp = self.session.post(
                    url,
                    params={"on_conflict": conflict},
                    json=chunk,
                    headers=headers,
                    timeout=30,
                )
            except requests.RequestException as exc:
                raise StoreError(
                    f"Supabase upsert into {table} failed after {written} row(s): {exc}",
                    written=written,
                ) from exc
            if resp.status_code not in (200, 201, 204):
                raise StoreError(
                    f"Supabase upsert into {table} returned HTTP {resp.status_code} "
                    f"after {written} row(s): {resp.text}",
                    written=written,
                )
            written += len(chunk)
        return written

    # ------------------------------------------------------------------
    def list_dates(self, device_id: str, start: date, end: date) -> Set[str]:
        rows = self._select(
            self.cfg.daily_table,
            [
                ("select", "summary_date"),
                ("inverter_sn", f"eq.{device_id}"),
                ("summary_date", f"gte.{start.isoformat()}"),
                ("summary_date", f"lte.{end.isoformat()}"),
            ],
        )
        return {str(row["summary_date"])[:10] for row in rows if row.get("summary_date")}

    def upsert_day_summaries(self, rows: Iterable[DaySummary]) -> int:
        payload = [r.as_row() for r in rows]
        if not payload:
            return 0
        written = self._upsert(self.cfg.daily_table, "inverter_sn,summary_date", payload)
        self.log.debug("Upserted %d daily summary row(s) into %s", written, self.cfg.daily_table)
        return written

    def list_device_ids(self) -> List[str]:
        rows = self._select(
            self.cfg.daily_table,
            [("select", "inverter_sn"), ("inverter_sn", "not.is.null"), ("order", "inverter_sn.asc")],
        )
        # PostgREST has no DISTINCT; dedupe client-side, keeping order.
        return list(dict.fromkeys(row["inverter_sn"] for row in rows if row.get("inverter_sn")))

    def day_summaries(self, device_id: str) -> List[DaySummary]:
        rows = self._select(
            self.cfg.daily_table,
            [
                ("select", "inverter_sn,summary_date,total_generation_kwh,peak_power_kw,created_at"),
                ("inverter_sn", f"eq.{device_id}"),
                ("order", "summary_date.asc"),
            ],
        )
        return [DaySummary.from_row(row) for row in rows]

    def upsert_monthly_summaries(self, rows: Iterable[MonthSummary]) -> int:
        payload = [r.as_row() for r in rows]
        if not payload:
            return 0
        return self._upsert(self.cfg.monthly_table, "inverter_sn,summary_month", payload)

    def close(self) -> None:
        self.session.close()
