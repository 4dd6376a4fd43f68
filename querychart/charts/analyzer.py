"""
Column / field type analysis for query result rows.

Each column is classified with a layered decision list:

  1. schema hint (database type, declared time unit) when available
  2. name heuristic (``time``, ``date``, ``__timestamp``, ``created_at`` …)
  3. the sampled values themselves (numeric shape, epoch magnitude, date strings)

The data layer validates or overrides a suspicious schema/name signal; when
it contradicts a schema hint the contradiction is logged, never silently
ignored.  Unclear data degrades to the most conservative classification
(``string`` / ``categorical``).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any

from dateutil import parser as date_parser

from querychart.charts.models import ColumnDescriptor
from querychart.core.config import get_settings
from querychart.core.logging import get_logger
from querychart.timeseries.units import TimeUnit, as_number, infer_time_unit, looks_like_epoch

logger = get_logger(__name__)

# ── Semantic types / roles ──────────────────────────────

NUMERIC_TYPES = ("integer", "bigint", "float")
TEMPORAL_TYPES = ("date", "datetime", "time")

_TIME_NAMES = {"__timestamp", "timestamp", "time", "created_at", "updated_at"}


@dataclass
class FieldInfo:
    """Analyzer output for one result column."""
    name: str
    semantic_type: str
    role: str                      # measure | dimension
    content_type: str              # numeric | categorical | temporal | text
    is_time_field: bool = False
    time_unit: TimeUnit | None = None
    cardinality: int = 0
    original_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "semantic_type": self.semantic_type,
            "role": self.role,
            "content_type": self.content_type,
            "is_time_field": self.is_time_field,
            "time_unit": self.time_unit.value if self.time_unit else None,
            "cardinality": self.cardinality,
            "original_type": self.original_type,
        }


# ── Helpers ─────────────────────────────────────────────


def map_schema_type(data_type: str | None) -> str:
    """Map a database type name to a semantic type."""
    t = (data_type or "").lower()
    if "bigint" in t or "long" in t:
        return "bigint"
    if "int" in t:
        return "integer"
    if any(k in t for k in ("float", "double", "decimal", "numeric", "real")):
        return "float"
    if "bool" in t:
        return "boolean"
    if "timestamp" in t or "datetime" in t:
        return "datetime"
    if "date" in t:
        return "date"
    if "time" in t:
        return "time"
    return "string"


def is_time_name(column: str) -> bool:
    """Name heuristic: does this column name suggest a time axis?"""
    name = column.lower()
    return name in _TIME_NAMES or "time" in name or "date" in name


def _looks_like_date(value: Any) -> bool:
    if isinstance(value, (datetime, date, time)):
        return True
    if not isinstance(value, str):
        return False
    text = value.strip()
    # Bare words ("may", "mon") would parse as dates; require a digit.
    if not text or not any(ch.isdigit() for ch in text):
        return False
    try:
        date_parser.parse(text)
    except (ValueError, OverflowError):
        return False
    return True


def _hashable(value: Any) -> Any:
    try:
        hash(value)
    except TypeError:
        return repr(value)
    return value


def _column_names(rows: list[dict[str, Any]]) -> list[str]:
    names: list[str] = []
    seen: set[str] = set()
    for row in rows:
        for key in row:
            if key not in seen:
                seen.add(key)
                names.append(key)
    return names


# ── Per-column analysis ─────────────────────────────────


def _analyze_column(
    name: str,
    values: list[Any],
    hint: ColumnDescriptor | None,
) -> FieldInfo:
    settings = get_settings()
    non_null = [v for v in values if v is not None]
    original_type = hint.data_type if hint else None

    if not non_null:
        semantic = map_schema_type(hint.data_type) if hint else "string"
        is_time = bool(hint and (hint.time_unit or semantic in TEMPORAL_TYPES))
        return FieldInfo(
            name=name,
            semantic_type=semantic,
            role="dimension",
            content_type="temporal" if is_time else "categorical",
            is_time_field=is_time,
            time_unit=hint.time_unit if hint else None,
            original_type=original_type,
        )

    samples = non_null[: settings.sample_size]
    name_fires = is_time_name(name)
    numbers = [n for n in (as_number(v) for v in samples) if n is not None]
    is_time = False
    time_unit: TimeUnit | None = None

    if hint is not None:
        semantic = map_schema_type(hint.data_type)
        time_unit = hint.time_unit

        if semantic in ("integer", "bigint") and name_fires:
            if numbers and any(looks_like_epoch(n) for n in numbers):
                is_time = True
                inferred = infer_time_unit(numbers)
                if time_unit is not None and time_unit != inferred:
                    logger.warning(
                        "Column %s: schema declares %s but sampled values look like %s",
                        name, time_unit.value, inferred.value,
                    )
                time_unit = time_unit or inferred
            elif time_unit is not None:
                is_time = True
                logger.warning("Column %s: schema declares a time unit but values are not epoch-sized", name)
            else:
                logger.warning("Column %s: name suggests time but values are not epoch-sized", name)
        elif time_unit is not None or name_fires or semantic in TEMPORAL_TYPES:
            is_time = True
    else:
        if len(numbers) == len(samples) and not any(isinstance(v, bool) for v in samples):
            semantic = "float" if any(float(n) % 1 != 0 for n in numbers) else "integer"
            if name_fires or any(looks_like_epoch(n) for n in numbers):
                is_time = True
                time_unit = infer_time_unit(numbers)
        elif all(isinstance(v, bool) for v in samples):
            semantic = "boolean"
        else:
            dates = sum(1 for v in samples if _looks_like_date(v))
            if dates >= len(samples) * settings.date_ratio_threshold or name_fires:
                semantic = "datetime"
                is_time = True
            else:
                semantic = "string"

    if is_time:
        role, content = "dimension", "temporal"
    elif semantic in NUMERIC_TYPES:
        role, content = "measure", "numeric"
    else:
        unique = {_hashable(v) for v in samples}
        role = "dimension"
        content = "categorical" if len(unique) < len(samples) * 0.5 else "text"

    return FieldInfo(
        name=name,
        semantic_type=semantic,
        role=role,
        content_type=content,
        is_time_field=is_time,
        time_unit=time_unit,
        cardinality=len({_hashable(v) for v in non_null}),
        original_type=original_type,
    )


# ── Public API ──────────────────────────────────────────


def analyze_fields(
    rows: list[dict[str, Any]],
    schema_hints: list[ColumnDescriptor] | None = None,
) -> list[FieldInfo]:
    """Classify every column of *rows*; recomputed from scratch on each call."""
    if not rows:
        return []

    hints = {h.column_name: h for h in (schema_hints or [])}
    fields = [
        _analyze_column(name, [row.get(name) for row in rows], hints.get(name))
        for name in _column_names(rows)
    ]
    logger.debug("Analyzed %d fields over %d rows", len(fields), len(rows))
    return fields


def detect_time_fields_from_schema(columns: list[ColumnDescriptor]) -> list[str]:
    """Names of schema columns that look temporal by unit, name or type."""
    suffixes = ("_at", "_time", "_date", "_ts", "_ns", "_us", "_ms", "_s")
    found: list[str] = []
    for col in columns:
        name = col.column_name.lower()
        dtype = (col.data_type or "").lower()
        if (
            col.time_unit is not None
            or is_time_name(name)
            or name.endswith(suffixes)
            or any(t in dtype for t in ("timestamp", "datetime", "date"))
        ):
            found.append(col.column_name)
    return found


def pick_time_field(fields: list[FieldInfo]) -> FieldInfo | None:
    """Prefer ``__timestamp``, then any other time field."""
    time_fields = [f for f in fields if f.is_time_field]
    for f in time_fields:
        if f.name.lower() == "__timestamp":
            return f
    return time_fields[0] if time_fields else None
