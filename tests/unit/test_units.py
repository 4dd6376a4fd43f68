"""
Unit tests -- time unit model: magnitude classification and exact conversion.
"""
from datetime import datetime, timezone

import pytest

from querychart.timeseries.units import (
    Instant,
    TimeUnit,
    as_number,
    classify_magnitude,
    from_instant,
    infer_time_unit,
    looks_like_epoch,
    normalize_to_ms,
    to_instant,
)


# ── TimeUnit parsing ────────────────────────────────────

@pytest.mark.parametrize("raw, expected", [
    ("seconds", TimeUnit.SECONDS),
    ("ms", TimeUnit.MILLISECONDS),
    ("us", TimeUnit.MICROSECONDS),
    ("μs", TimeUnit.MICROSECONDS),
    ("ns", TimeUnit.NANOSECONDS),
    (TimeUnit.SECONDS, TimeUnit.SECONDS),
])
def test_parse_unit(raw, expected):
    assert TimeUnit.parse(raw) is expected


def test_parse_unknown_unit():
    assert TimeUnit.parse("fortnights") is None
    assert TimeUnit.parse(None) is None


# ── Magnitude classification ────────────────────────────

@pytest.mark.parametrize("value, expected", [
    (1_700_000_000, TimeUnit.SECONDS),
    (1_700_000_000_000, TimeUnit.MILLISECONDS),
    (1_700_000_000_000_000, TimeUnit.MICROSECONDS),
    (1_700_000_000_000_000_000, TimeUnit.NANOSECONDS),
])
def test_classify_magnitude(value, expected):
    assert classify_magnitude(value) is expected


def test_threshold_stays_in_coarser_bucket():
    assert classify_magnitude(10**12) is TimeUnit.SECONDS
    assert classify_magnitude(10**15) is TimeUnit.MILLISECONDS


def test_looks_like_epoch():
    assert looks_like_epoch(1_700_000_000)
    assert looks_like_epoch("1700000000000")
    assert not looks_like_epoch(42)
    assert not looks_like_epoch(True)
    assert not looks_like_epoch("abc")


def test_as_number():
    assert as_number("12") == 12
    assert as_number(" 1.5 ") == 1.5
    assert as_number(False) is None
    assert as_number("") is None


def test_infer_time_unit_from_average():
    assert infer_time_unit([1_700_000_000_000, 1_700_000_060_000]) is TimeUnit.MILLISECONDS
    assert infer_time_unit([1_700_000_000, 1_700_000_060]) is TimeUnit.SECONDS
    assert infer_time_unit([1, 2, 3]) is TimeUnit.MILLISECONDS
    assert infer_time_unit([]) is TimeUnit.MILLISECONDS


# ── Conversion ──────────────────────────────────────────

@pytest.mark.parametrize("unit", list(TimeUnit))
@pytest.mark.parametrize("n", [0, 1, 1_700_000_000, 1_700_000_000_123_456_789])
def test_round_trip_is_exact(unit, n):
    assert from_instant(to_instant(n, unit), unit) == n


def test_from_instant_floors():
    instant = Instant(1_999_999)
    assert from_instant(instant, TimeUnit.MILLISECONDS) == 1


def test_normalize_to_ms():
    assert normalize_to_ms(1_700_000_000) == 1_700_000_000_000
    assert normalize_to_ms(1_700_000_000_000_000_000) == 1_700_000_000_000


def test_instant_datetime_round_trip():
    dt = datetime(2024, 3, 10, 12, 30, 15, 250000, tzinfo=timezone.utc)
    instant = Instant.from_datetime(dt)
    assert instant.to_datetime() == dt
    assert instant.epoch_ms == int(dt.timestamp() * 1000)


def test_naive_datetime_read_as_utc():
    naive = datetime(2024, 1, 1)
    aware = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert Instant.from_datetime(naive) == Instant.from_datetime(aware)


def test_instants_are_ordered():
    assert Instant(1) < Instant(2)
    assert Instant(5).shift(-5) == Instant(0)


def test_instant_representable_window():
    assert Instant(0).is_representable is True
    assert Instant.from_datetime(datetime(1, 1, 3, tzinfo=timezone.utc)).is_representable is True
    assert Instant.from_datetime(datetime(9999, 12, 29, tzinfo=timezone.utc)).is_representable is True
    assert Instant(-10**30).is_representable is False
    assert Instant(10**30).is_representable is False
