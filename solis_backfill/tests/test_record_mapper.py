from datetime import date

from solis_backfill.logging import ConsoleLog, get_logger
from solis_backfill.models.summary import DayRecord, MonthBucket
from solis_backfill.services.record_mapper import map_bucket
from solis_backfill.services.resilient_fetcher import FetchOutcome


ConsoleLog(level="INFO", quiet=True).setup()
LOG = get_logger("mapper-test")

BUCKET = MonthBucket(month_key="2025-11", dates=[date(2025, 11, 15), date(2025, 11, 16), date(2025, 11, 17)])


def test_matching_records_are_mapped_and_gaps_zero_filled():
    outcome = FetchOutcome.success(
        [
            DayRecord(date_label="2025-11-15", energy=21.4, max_power=5.2),
            DayRecord(date_label="2025-11-17", energy=18.0, max_power=4.9),
            DayRecord(date_label="2025-11-30", energy=99.0, max_power=9.9),
        ]
    )

    mapped = map_bucket("SN1", BUCKET, outcome, "2025-12-01T00:00:00+00:00", LOG)

    assert [r.summary_date for r in mapped.rows] == BUCKET.dates
    by_day = {r.summary_date.day: r for r in mapped.rows}
    assert by_day[15].total_generation_kwh == 21.4
    assert by_day[15].peak_power_kw == 5.2
    assert by_day[16].total_generation_kwh == 0.0
    assert by_day[16].peak_power_kw == 0.0
    assert mapped.zero_filled == [date(2025, 11, 16)]
    assert all(r.device_id == "SN1" for r in mapped.rows)


def test_empty_month_zero_fills_every_date():
    mapped = map_bucket("SN1", BUCKET, FetchOutcome.empty(), "t", LOG)
    assert len(mapped.rows) == 3
    assert mapped.zero_filled == BUCKET.dates


def test_failed_bucket_emits_nothing():
    mapped = map_bucket("SN1", BUCKET, FetchOutcome.failed("timeout"), "t", LOG)
    assert mapped.rows == []
    assert mapped.zero_filled == []


def test_zero_fill_can_be_disabled():
    outcome = FetchOutcome.success([DayRecord(date_label="2025-11-15", energy=1.0, max_power=1.0)])
    mapped = map_bucket("SN1", BUCKET, outcome, "t", LOG, zero_fill=False)
    assert [r.summary_date for r in mapped.rows] == [date(2025, 11, 15)]
    assert mapped.zero_filled == []


def test_day_record_payload_parsing():
    rec = DayRecord.from_payload({"dateStr": "2025-11-15", "energy": "12.5", "maxPower": None})
    assert rec == DayRecord(date_label="2025-11-15", energy=12.5, max_power=0.0)
    assert DayRecord.from_payload({"dateStr": "bad"}) is None
    assert DayRecord.from_payload(None) is None


def test_unreadable_entry_leaves_its_date_open():
    outcome = FetchOutcome.success(
        [DayRecord(date_label="2025-11-15", energy=21.4, max_power=5.2)],
        unparseable_dates=["2025-11-16"],
    )

    mapped = map_bucket("SN1", BUCKET, outcome, "t", LOG)

    assert [r.summary_date for r in mapped.rows] == [date(2025, 11, 15), date(2025, 11, 17)]
    assert mapped.zero_filled == [date(2025, 11, 17)]
