import threading
from datetime import date, datetime, timezone

from solis_backfill.exceptions import StoreError
from solis_backfill.logging import ConsoleLog, get_logger
from solis_backfill.models.device import DeviceSeries
from solis_backfill.services.reconciliation import ReconciliationEngine
from solis_backfill.services.resilient_fetcher import RequestPacer, ResilientFetcher
from solis_backfill.services.summary_store import SqliteSummaryStore
from solis_backfill.services.time_range import enumerate_dates_inclusive
from solis_backfill.services.window_policy import ExplicitRangeWindow, FullHistoryWindow

from solis_backfill.tests.fakes import FakeClock, FakeSolisClient, FakeStore, day_entries


ConsoleLog(level="INFO", quiet=True).setup()
LOG = get_logger("reconciliation-test")

FIXED_NOW = datetime(2025, 1, 15, 8, 0, tzinfo=timezone.utc)


def _device(sn, first_gen=date(2025, 1, 10)):
    when = datetime(first_gen.year, first_gen.month, first_gen.day, 7, 30, tzinfo=timezone.utc) if first_gen else None
    return DeviceSeries(device_id=sn, first_generation=when)


def _engine(store, client, *, policy=None, today=date(2025, 1, 15), **kwargs):
    clock = FakeClock()
    fetcher = ResilientFetcher(
        client,
        LOG,
        max_retries=2,
        backoff_step=1.5,
        pacer=RequestPacer(1.0, clock=clock, sleep=clock.sleep),
        sleep=clock.sleep,
    )
    return ReconciliationEngine(
        store,
        fetcher,
        LOG,
        window_policy=policy or FullHistoryWindow(),
        today=today,
        clock=lambda: FIXED_NOW,
        **kwargs,
    )


JANUARY = day_entries(*[d.isoformat() for d in enumerate_dates_inclusive(date(2025, 1, 1), date(2025, 1, 31))])


def test_new_inverter_fills_every_day_since_first_generation():
    store = FakeStore()
    client = FakeSolisClient(months={("SN1", "2025-01"): JANUARY})

    report = _engine(store, client).run([_device("SN1")])

    dev = report.device("SN1")
    assert dev.status == "complete"
    assert dev.window_start == date(2025, 1, 10)
    assert dev.window_end == date(2025, 1, 14)
    assert dev.months_planned == ["2025-01"]
    assert dev.rows_written == 5
    assert [d.day for d in dev.added_dates] == [10, 11, 12, 13, 14]
    assert dev.still_missing == []
    # one month fetched once, only the missing days written
    assert client.calls == [("SN1", "2025-01", None)]
    assert sorted(day for (_sn, day) in store.rows) == [f"2025-01-{d}" for d in range(10, 15)]
    assert report.totals()["rows_inserted"] == 5


def test_only_missing_dates_are_written_across_months():
    store = FakeStore()
    store.seed("SN1", "2024-12-30", "2025-01-02", "2025-01-03")
    client = FakeSolisClient(
        months={
            ("SN1", "2024-12"): day_entries("2024-12-29", "2024-12-30", "2024-12-31"),
            ("SN1", "2025-01"): day_entries("2025-01-01", "2025-01-02", "2025-01-03", "2025-01-04"),
        }
    )
    policy = ExplicitRangeWindow(date(2024, 12, 29), date(2025, 1, 4))

    report = _engine(store, client, policy=policy, today=date(2025, 2, 1)).run([_device("SN1", None)])

    dev = report.device("SN1")
    assert [d.isoformat() for d in dev.missing_dates] == ["2024-12-29", "2024-12-31", "2025-01-01", "2025-01-04"]
    assert dev.months_planned == ["2024-12", "2025-01"]
    assert [c[1] for c in client.calls] == ["2024-12", "2025-01"]
    assert store.upsert_calls == [4]
    assert store.rows[("SN1", "2025-01-02")].created_at == "seed"


def test_second_run_is_a_no_op(tmp_path):
    store = SqliteSummaryStore(path=tmp_path / "summaries.db")
    client = FakeSolisClient(months={("SN1", "2025-01"): JANUARY})

    first = _engine(store, client).run([_device("SN1")])
    second = _engine(store, client).run([_device("SN1")])

    assert first.rows_inserted == 5
    dev = second.device("SN1")
    assert dev.status == "no_gaps"
    assert dev.missing_dates == []
    assert second.rows_inserted == 0
    assert len(client.calls) == 1
    assert len(store.list_dates("SN1", date(2025, 1, 1), date(2025, 1, 31))) == 5
    store.close()


def test_failed_month_leaves_dates_open():
    store = FakeStore()
    client = FakeSolisClient(months={("SN1", "2025-01"): ConnectionError("gateway timeout")})

    report = _engine(store, client).run([_device("SN1")])

    dev = report.device("SN1")
    assert dev.status == "partial"
    assert dev.months_fetched == []
    assert list(dev.failed_months) == ["2025-01"]
    assert len(client.calls) == 3
    assert dev.rows_written == 0
    assert len(dev.still_missing) == 5
    assert store.rows == {}
    assert report.months_fetched == 0
    assert report.months_planned == 1


def test_one_device_failing_does_not_stop_the_others():
    store = FakeStore(fail_list_for={"SN2"})
    client = FakeSolisClient(
        months={
            ("SN1", "2025-01"): JANUARY,
            ("SN2", "2025-01"): JANUARY,
            ("SN3", "2025-01"): JANUARY,
        }
    )

    report = _engine(store, client).run([_device("SN1"), _device("SN2"), _device("SN3")])

    assert [d.status for d in report.devices] == ["complete", "skipped", "complete"]
    assert "existing-dates query failed" in report.device("SN2").reason
    assert report.devices_processed == 2
    assert report.devices_skipped == 1
    assert ("SN2", "2025-01", None) not in client.calls
    assert report.rows_inserted == 10


def test_device_without_first_generation_is_skipped_in_full_history():
    client = FakeSolisClient()
    report = _engine(FakeStore(), client).run([_device("SN1", None)])

    dev = report.device("SN1")
    assert dev.status == "skipped"
    assert dev.reason == "no first generation time"
    assert client.calls == []


def test_first_generation_today_has_empty_window():
    client = FakeSolisClient()
    report = _engine(FakeStore(), client).run([_device("SN1", date(2025, 1, 15))])

    dev = report.device("SN1")
    assert dev.status == "no_gaps"
    assert dev.dates_expected == 0
    assert client.calls == []


def test_dry_run_reports_but_never_writes():
    store = FakeStore()
    client = FakeSolisClient(months={("SN1", "2025-01"): day_entries("2025-01-10", "2025-01-11")})

    report = _engine(store, client, dry_run=True).run([_device("SN1")])

    dev = report.device("SN1")
    assert report.dry_run is True
    assert dev.rows_prepared == 5
    assert dev.rows_written == 0
    assert len(dev.added_dates) == 5
    assert [d.day for d in dev.zero_filled] == [12, 13, 14]
    assert store.upsert_calls == []
    assert store.rows == {}


def test_write_failure_is_reported_per_device():
    store = FakeStore(fail_upsert_for={"SN1"})
    client = FakeSolisClient(months={("SN1", "2025-01"): JANUARY, ("SN2", "2025-01"): JANUARY})

    report = _engine(store, client).run([_device("SN1"), _device("SN2")])

    bad = report.device("SN1")
    assert bad.status == "write_failed"
    assert bad.rows_prepared == 5
    assert bad.rows_written == 0
    assert len(bad.still_missing) == 5
    assert report.device("SN2").rows_written == 5


def test_cancellation_stops_before_next_device():
    cancel = threading.Event()
    store = FakeStore()

    class CancellingClient(FakeSolisClient):
        def fetch_month(self, device_id, month_key, currency=None):
            cancel.set()
            return super().fetch_month(device_id, month_key, currency)

    client = CancellingClient(months={("SN1", "2025-01"): JANUARY, ("SN2", "2025-01"): JANUARY})

    report = _engine(store, client, cancel_event=cancel).run([_device("SN1"), _device("SN2")])

    assert report.cancelled is True
    assert [d.device_id for d in report.devices] == ["SN1"]
    # the month already fetched is still written
    assert report.device("SN1").rows_written == 5
    assert all(sn == "SN1" for (sn, _day) in store.rows)


def test_cancellation_between_months_marks_device_cancelled():
    cancel = threading.Event()

    class CancellingClient(FakeSolisClient):
        def fetch_month(self, device_id, month_key, currency=None):
            cancel.set()
            return super().fetch_month(device_id, month_key, currency)

    client = CancellingClient(months={("SN1", "2024-12"): day_entries("2024-12-31")})
    report = _engine(FakeStore(), client, cancel_event=cancel).run([_device("SN1", date(2024, 12, 31))])

    dev = report.device("SN1")
    assert dev.status == "cancelled"
    assert dev.months_fetched == ["2024-12"]
    assert dev.rows_written == 1
    assert len(dev.still_missing) == 14
    assert report.cancelled is True


def test_unreadable_provider_values_stay_open_for_the_next_run():
    store = FakeStore()
    entries = day_entries("2025-01-10", "2025-01-11", "2025-01-12", "2025-01-13")
    entries.append({"dateStr": "2025-01-14", "energy": "12,5", "maxPower": 3})
    client = FakeSolisClient(months={("SN1", "2025-01"): entries})

    report = _engine(store, client).run([_device("SN1")])

    dev = report.device("SN1")
    assert dev.status == "partial"
    assert dev.rows_written == 4
    assert dev.zero_filled == []
    assert dev.still_missing == [date(2025, 1, 14)]
    assert ("SN1", "2025-01-14") not in store.rows


def test_partial_chunked_write_reports_rows_already_landed():
    class ChunkFailingStore(FakeStore):
        def upsert_day_summaries(self, rows):
            rows = list(rows)
            super().upsert_day_summaries(rows[:2])
            raise StoreError("chunk 2 rejected", written=2)

    store = ChunkFailingStore()
    client = FakeSolisClient(months={("SN1", "2025-01"): JANUARY})

    report = _engine(store, client).run([_device("SN1")])

    dev = report.device("SN1")
    assert dev.status == "write_failed"
    assert dev.rows_written == 2
    assert dev.added_dates == [date(2025, 1, 10), date(2025, 1, 11)]
    assert dev.still_missing == [date(2025, 1, 12), date(2025, 1, 13), date(2025, 1, 14)]
