"""
Unit tests -- field analyzer: schema hints, name heuristic, sampled data.
"""
import logging

import pytest

from querychart.charts.analyzer import (
    FieldInfo,
    analyze_fields,
    detect_time_fields_from_schema,
    map_schema_type,
    pick_time_field,
)
from querychart.charts.models import ColumnDescriptor
from querychart.timeseries.units import TimeUnit


def _by_name(fields: list[FieldInfo]) -> dict[str, FieldInfo]:
    return {f.name: f for f in fields}


# ── No schema: classify by data ─────────────────────────

def test_epoch_seconds_named_timestamp():
    rows = [{"__timestamp": 1700000000, "v": 1}, {"__timestamp": 1700000060, "v": 2}]
    fields = _by_name(analyze_fields(rows))

    t = fields["__timestamp"]
    assert t.is_time_field is True
    assert t.time_unit is TimeUnit.SECONDS
    assert t.role == "dimension"
    assert t.content_type == "temporal"

    v = fields["v"]
    assert v.semantic_type == "integer"
    assert v.role == "measure"
    assert v.content_type == "numeric"


def test_epoch_magnitude_without_time_name():
    rows = [{"ts": 1700000000000}, {"ts": 1700000060000}]
    ts = analyze_fields(rows)[0]
    assert ts.is_time_field is True
    assert ts.time_unit is TimeUnit.MILLISECONDS


def test_float_measure():
    rows = [{"price": 1.5}, {"price": 2}]
    price = analyze_fields(rows)[0]
    assert price.semantic_type == "float"
    assert price.role == "measure"


def test_numeric_strings_are_numeric():
    rows = [{"count": "10"}, {"count": "12"}]
    assert analyze_fields(rows)[0].semantic_type == "integer"


def test_categorical_vs_text():
    rows = [{"country": c, "note": f"note {i}"} for i, c in enumerate(["US", "US", "DE", "US", "DE", "US"])]
    fields = _by_name(analyze_fields(rows))
    assert fields["country"].content_type == "categorical"
    assert fields["country"].cardinality == 2
    assert fields["note"].content_type == "text"
    assert fields["note"].semantic_type == "string"


def test_date_strings():
    rows = [{"day": "2024-01-01"}, {"day": "2024-01-02"}, {"day": "2024-01-03 10:00:00"}]
    day = analyze_fields(rows)[0]
    assert day.semantic_type == "datetime"
    assert day.is_time_field is True
    assert day.content_type == "temporal"


def test_words_are_not_dates():
    rows = [{"month_name": m} for m in ("may", "june", "may", "june")]
    field = analyze_fields(rows)[0]
    assert field.semantic_type == "string"
    assert field.is_time_field is False


def test_booleans():
    rows = [{"ok": True}, {"ok": False}]
    assert analyze_fields(rows)[0].semantic_type == "boolean"


def test_all_null_column_defaults_to_categorical_string():
    rows = [{"x": None}, {"x": None}]
    x = analyze_fields(rows)[0]
    assert (x.semantic_type, x.role, x.content_type) == ("string", "dimension", "categorical")


def test_all_null_column_with_schema():
    rows = [{"x": None}]
    x = analyze_fields(rows, [ColumnDescriptor(column_name="x", data_type="timestamp")])[0]
    assert x.semantic_type == "datetime"
    assert x.is_time_field is True


def test_columns_are_union_of_row_keys():
    rows = [{"a": 1}, {"b": "x"}]
    assert [f.name for f in analyze_fields(rows)] == ["a", "b"]


def test_empty_rows():
    assert analyze_fields([]) == []


# ── With schema hints ───────────────────────────────────

def test_schema_bigint_cross_validated_by_magnitude():
    rows = [{"created_at": 1700000000000}, {"created_at": 1700000001000}]
    hints = [ColumnDescriptor(column_name="created_at", data_type="BIGINT")]
    field = analyze_fields(rows, hints)[0]
    assert field.semantic_type == "bigint"
    assert field.is_time_field is True
    assert field.time_unit is TimeUnit.MILLISECONDS
    assert field.original_type == "BIGINT"


def test_schema_integer_with_time_name_but_small_values():
    rows = [{"time_bucket": 1}, {"time_bucket": 2}]
    hints = [ColumnDescriptor(column_name="time_bucket", data_type="integer")]
    field = analyze_fields(rows, hints)[0]
    assert field.is_time_field is False
    assert field.role == "measure"


def test_schema_unit_wins_and_contradiction_is_logged(caplog):
    rows = [{"event_time": 1700000000000}, {"event_time": 1700000060000}]
    hints = [ColumnDescriptor(column_name="event_time", data_type="bigint", time_unit="s")]
    with caplog.at_level(logging.WARNING):
        field = analyze_fields(rows, hints)[0]
    assert field.time_unit is TimeUnit.SECONDS
    assert "event_time" in caplog.text


def test_schema_time_unit_marks_time_field():
    rows = [{"bucket": 1700000000}]
    hints = [ColumnDescriptor(column_name="bucket", data_type="UInt32", time_unit="seconds")]
    field = analyze_fields(rows, hints)[0]
    assert field.is_time_field is True
    assert field.time_unit is TimeUnit.SECONDS


def test_schema_native_timestamp():
    rows = [{"ts": "2024-01-01 00:00:00"}]
    hints = [ColumnDescriptor(column_name="ts", data_type="TIMESTAMP")]
    field = analyze_fields(rows, hints)[0]
    assert field.semantic_type == "datetime"
    assert field.is_time_field is True


def test_camel_case_hint_payload():
    hint = ColumnDescriptor.model_validate({"columnName": "ts", "dataType": "bigint", "timeUnit": "ms"})
    assert hint.time_unit is TimeUnit.MILLISECONDS


# ── Helpers ─────────────────────────────────────────────

@pytest.mark.parametrize("db_type, expected", [
    ("BIGINT", "bigint"),
    ("Int32", "integer"),
    ("Float64", "float"),
    ("DECIMAL(10,2)", "float"),
    ("Boolean", "boolean"),
    ("DateTime64(9)", "datetime"),
    ("TIMESTAMP WITH TIME ZONE", "datetime"),
    ("Date", "date"),
    ("String", "string"),
    (None, "string"),
])
def test_map_schema_type(db_type, expected):
    assert map_schema_type(db_type) == expected


def test_detect_time_fields_from_schema():
    columns = [
        ColumnDescriptor(column_name="created_at", data_type="bigint"),
        ColumnDescriptor(column_name="value", data_type="double"),
        ColumnDescriptor(column_name="ts_ns", data_type="bigint"),
        ColumnDescriptor(column_name="day", data_type="Date"),
        ColumnDescriptor(column_name="bucket", data_type="int", time_unit="seconds"),
    ]
    assert detect_time_fields_from_schema(columns) == ["created_at", "ts_ns", "day", "bucket"]


def test_pick_time_field_prefers_timestamp():
    rows = [{"created_at": "2024-01-01", "__timestamp": 1700000000, "v": 1}]
    picked = pick_time_field(analyze_fields(rows))
    assert picked is not None
    assert picked.name == "__timestamp"


def test_pick_time_field_none():
    assert pick_time_field(analyze_fields([{"v": 1}])) is None


def test_field_info_to_dict():
    data = analyze_fields([{"__timestamp": 1700000000}])[0].to_dict()
    assert data["time_unit"] == "seconds"
    assert data["is_time_field"] is True
