import random
from datetime import date

from solis_backfill.services.gaps import find_missing_dates, plan_month_buckets
from solis_backfill.services.time_range import enumerate_dates_inclusive


def test_missing_is_expected_minus_existing_in_order():
    expected = enumerate_dates_inclusive(date(2025, 11, 15), date(2025, 11, 22))
    existing = {"2025-11-18", "2025-11-19"}

    missing = find_missing_dates(expected, existing)

    assert [d.isoformat() for d in missing] == [
        "2025-11-15",
        "2025-11-16",
        "2025-11-17",
        "2025-11-20",
        "2025-11-21",
        "2025-11-22",
    ]


def test_missing_accepts_date_objects_and_ignores_outside_values():
    expected = enumerate_dates_inclusive(date(2025, 1, 10), date(2025, 1, 14))
    existing = [date(2025, 1, 11), "2024-12-31"]
    assert find_missing_dates(expected, existing) == [
        date(2025, 1, 10),
        date(2025, 1, 12),
        date(2025, 1, 13),
        date(2025, 1, 14),
    ]


def test_missing_empty_cases():
    assert find_missing_dates([], {"2025-01-01"}) == []
    expected = enumerate_dates_inclusive(date(2025, 1, 1), date(2025, 1, 3))
    assert find_missing_dates(expected, {d.isoformat() for d in expected}) == []


def test_gap_correctness_randomized():
    rng = random.Random(1234)
    for _ in range(50):
        start = date.fromordinal(date(2024, 1, 1).toordinal() + rng.randint(0, 400))
        expected = enumerate_dates_inclusive(start, date.fromordinal(start.toordinal() + rng.randint(0, 90)))
        existing = {d for d in expected if rng.random() < 0.4}

        missing = find_missing_dates(expected, existing)

        assert missing == [d for d in expected if d not in existing]
        assert len(missing) == len(set(missing))


def test_buckets_cover_every_missing_date_once_in_month_order():
    missing = enumerate_dates_inclusive(date(2024, 12, 28), date(2025, 2, 2))
    missing = [d for d in missing if d.day % 3]

    buckets = plan_month_buckets(missing)

    assert [b.month_key for b in buckets] == ["2024-12", "2025-01", "2025-02"]
    flattened = [d for b in buckets for d in b.dates]
    assert sorted(flattened) == sorted(missing)
    assert len(flattened) == len(set(flattened))
    for bucket in buckets:
        assert all(d.strftime("%Y-%m") == bucket.month_key for d in bucket.dates)


def test_buckets_sorted_even_when_input_is_not():
    buckets = plan_month_buckets([date(2025, 3, 1), date(2025, 1, 4)])
    assert [b.month_key for b in buckets] == ["2025-01", "2025-03"]


def test_no_missing_dates_means_no_buckets():
    assert plan_month_buckets([]) == []
