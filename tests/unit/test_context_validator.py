"""
Unit tests -- context validator: every advisory check.
"""
from datetime import datetime, timezone

from querychart.templating.validator import ValidationResult, validate_context

NOW = datetime(2024, 3, 13, 15, 45, 30, tzinfo=timezone.utc)
LAST_HOUR = {"from": "now-1h", "to": "now"}


# ── 0. No macros → always valid ──────────────────────────

def test_plain_query_is_valid():
    result = validate_context("SELECT * FROM m")
    assert isinstance(result, ValidationResult)
    assert result.is_valid is True
    assert result.errors == []


def test_full_context_is_valid():
    result = validate_context("SELECT * FROM m WHERE $__timeFilter", "ts", LAST_HOUR, NOW)
    assert result.is_valid is True


# ── 1. $__timeFilter without a time field ───────────────

def test_filter_requires_time_field():
    result = validate_context("SELECT v FROM m WHERE $__timeFilter", None, LAST_HOUR, NOW)
    assert not result.is_valid
    assert any("requires a time field" in e for e in result.errors)


def test_filter_accepts_time_column_named_in_query():
    result = validate_context("SELECT timestamp, v FROM m WHERE $__timeFilter", None, LAST_HOUR, NOW)
    assert result.is_valid is True


def test_macro_token_is_not_a_time_column_mention():
    result = validate_context("SELECT $__timeFrom AS x FROM m WHERE $__timeFilter", None, LAST_HOUR, NOW)
    assert any("requires a time field" in e for e in result.errors)


# ── 2. $__timeFilter without a time range ───────────────

def test_filter_requires_time_range():
    result = validate_context("SELECT * FROM m WHERE $__timeFilter", "ts", None)
    assert result.errors == ["$__timeFilter requires a time range."]


# ── 3. $__timeField without a time field ────────────────

def test_time_field_requires_column():
    result = validate_context("SELECT $__timeField FROM m")
    assert result.errors == ["$__timeField requires a time field to be selected."]


# ── 4. $__timeFrom / $__timeTo without a range ──────────

def test_endpoints_require_time_range():
    result = validate_context("SELECT * FROM m WHERE ts > $__timeFrom AND ts < $__timeTo", "ts")
    assert result.errors == ["$__timeFrom/$__timeTo require a time range."]


def test_interval_alone_needs_nothing():
    assert validate_context("SELECT avg(v) FROM m GROUP BY $__interval").is_valid is True


# ── 5. Disabled range ───────────────────────────────────

def test_disabled_range_rejected():
    result = validate_context("WHERE $__timeFilter", "ts", {**LAST_HOUR, "enabled": False}, NOW)
    assert any("must be enabled" in e for e in result.errors)


# ── 6. Incomplete / unparsable ranges ───────────────────

def test_incomplete_range():
    result = validate_context("WHERE $__timeFilter", "ts", {"from": "now-1h", "to": ""}, NOW)
    assert any("incomplete" in e for e in result.errors)


def test_unparsable_bound():
    result = validate_context("WHERE $__timeFilter", "ts", {"from": "garbage-value", "to": "now"}, NOW)
    assert any("'from' could not be parsed" in e for e in result.errors)


def test_out_of_range_bound_reported():
    result = validate_context("WHERE $__timeFilter", "ts", {"from": "now-20000y/d", "to": "now"}, NOW)
    assert result.errors == ["Time range 'from' could not be parsed: 'now-20000y/d'."]


def test_unrecognised_shape():
    result = validate_context("WHERE $__timeFilter", "ts", {"kind": "rolling", "from": "1h"}, NOW)
    assert any("not a recognised shape" in e for e in result.errors)


# ── 7. Ordering ─────────────────────────────────────────

def test_from_must_precede_to():
    result = validate_context("WHERE $__timeFilter", "ts", {"from": "now", "to": "now-1h"}, NOW)
    assert result.errors == ["Time range 'from' must precede 'to'."]


def test_equal_bounds_rejected():
    result = validate_context("WHERE $__timeFilter", "ts", {"from": "now", "to": "now"}, NOW)
    assert result.errors == ["Time range 'from' must precede 'to'."]


# ── Purely advisory ─────────────────────────────────────

def test_multiple_problems_reported_together():
    result = validate_context("SELECT $__timeField FROM m WHERE $__timeFilter AND x < $__timeTo")
    assert len(result.errors) == 4
    assert result.to_dict()["is_valid"] is False


def test_invalid_input_does_not_raise():
    assert validate_context("").is_valid is True
    assert validate_context(None).is_valid is True
