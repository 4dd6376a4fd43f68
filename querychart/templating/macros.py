"""
Macro Interpolation Engine -- substitutes time macros into raw SQL text.

Recognised macros (the complete, fixed vocabulary):

  $__timeFilter   → ``<col> >= <lo> AND <col> <= <hi>`` (or ``1=1`` if no range)
  $__timeField    → the chosen time column
  $__interval     → ``<n>s`` bucket width keeping the range under max_points
  $__timeFrom     → epoch integer of the range start
  $__timeTo       → epoch integer of the range end

The engine does not parse SQL.  Every rewrite is a regex substitution
anchored on the macro tokens or on the known time column / alias names;
everything else in the query is opaque text.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, ValidationError

from querychart.charts.analyzer import detect_time_fields_from_schema
from querychart.charts.models import ColumnDescriptor
from querychart.core.config import get_settings
from querychart.core.logging import get_logger
from querychart.templating.sanitizer import sanitize
from querychart.timeseries.time_range import TimeBounds, load_zone, resolve
from querychart.timeseries.units import Instant, TimeUnit, from_instant

logger = get_logger(__name__)

# ── Macro vocabulary ────────────────────────────────────

TIME_FILTER = "$__timeFilter"
TIME_FIELD = "$__timeField"
INTERVAL = "$__interval"
TIME_FROM = "$__timeFrom"
TIME_TO = "$__timeTo"

MACROS = (TIME_FILTER, TIME_FIELD, INTERVAL, TIME_FROM, TIME_TO)

_ANY_MACRO_RE = re.compile(r"\$__(?:timeFilter|timeField|interval|timeFrom|timeTo)\b")
_MACRO_RES = {name: re.compile(re.escape(name) + r"\b") for name in MACROS}

DEFAULT_TIME_COLUMN = "__timestamp"

# Column names tried, in order, when $__timeField is used without a column.
_WELL_KNOWN_TIME_COLUMNS = (
    "__timestamp",
    "timestamp",
    "time",
    "created_at",
    "updated_at",
    "event_time",
    "log_time",
)

_SELECT_AS_TIME_RE = re.compile(r"\bSELECT\s+([\w.]+)\s+AS\s+time\b", re.IGNORECASE)
_ALIAS_CLAUSE_RE = re.compile(r"\bAS\s+\w+", re.IGNORECASE)

_EPOCH_NAME_MARKERS = ("epoch", "_ts", "_ns", "_ms", "_us")
_NATIVE_TIME_TYPES = ("timestamp", "datetime", "date")
_BIGINT_TYPES = ("bigint", "int64", "long", "ubigint", "uint64")


# ── Inputs / outputs ────────────────────────────────────


class InterpolationContext(BaseModel):
    """Everything the engine needs besides the query text."""

    time_column: str | None = None
    time_column_schema: ColumnDescriptor | None = None
    columns: list[ColumnDescriptor] = Field(default_factory=list, description="Table schema, used to pick a time column")
    time_range: Any = None
    time_zone: str = Field(default_factory=lambda: get_settings().default_time_zone)
    max_points: int = Field(default_factory=lambda: get_settings().max_data_points, gt=0)


@dataclass
class InterpolationResult:
    query: str
    has_time_variables: bool
    interpolated: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "has_time_variables": self.has_time_variables,
            "interpolated": dict(self.interpolated),
            "errors": list(self.errors),
        }


# ── Context ─────────────────────────────────────────────


def parse_context(raw: Any) -> tuple[InterpolationContext | None, list[str]]:
    """Coerce *raw* into an ``InterpolationContext``, reporting bad fields as errors."""
    if raw is None:
        return InterpolationContext(), []
    if isinstance(raw, InterpolationContext):
        return raw, []
    try:
        return InterpolationContext.model_validate(raw), []
    except ValidationError as exc:
        logger.warning("Invalid interpolation context: %s", exc.errors())
        errors = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err["loc"]) or "context"
            errors.append(f"Invalid context field '{loc}': {err['msg']}")
        return None, errors


def select_time_column(ctx: InterpolationContext) -> tuple[str | None, ColumnDescriptor | None]:
    """The time column and its schema entry, if either can be determined.

    An explicit ``time_column`` wins, then ``time_column_schema``, then the
    first temporal column found in ``columns``.
    """
    schema = ctx.time_column_schema
    if ctx.time_column:
        if schema is None:
            schema = next((c for c in ctx.columns if c.column_name == ctx.time_column), None)
        return ctx.time_column, schema
    if schema is not None:
        return schema.column_name, schema

    candidates = detect_time_fields_from_schema(ctx.columns)
    if not candidates:
        return None, None
    chosen = next(c for c in ctx.columns if c.column_name == candidates[0])
    logger.info("Time column '%s' picked from schema", chosen.column_name)
    return chosen.column_name, chosen


# ── Detection ───────────────────────────────────────────


def has_time_variables(query: str) -> bool:
    """True if *query* contains any of the five recognised macros."""
    if not query or not isinstance(query, str):
        return False
    return bool(_ANY_MACRO_RE.search(query))


def detect_time_column(query: str) -> str:
    """Best guess at the time column of a query that uses ``$__timeField``."""
    m = _SELECT_AS_TIME_RE.search(query)
    if m:
        return m.group(1)

    # Aliases and macro tokens would otherwise match "time" on their own.
    scan = _ALIAS_CLAUSE_RE.sub(" ", _ANY_MACRO_RE.sub(" ", query)).lower()
    for name in _WELL_KNOWN_TIME_COLUMNS:
        if re.search(rf"(?<![\w.]){re.escape(name)}\b", scan):
            return name
    return DEFAULT_TIME_COLUMN


# ── Time unit selection ─────────────────────────────────


def infer_unit_from_column(column: str, data_type: str | None = None) -> TimeUnit | None:
    """Infer the epoch unit of a column from its name and declared type.

    Returns ``None`` when nothing indicates an epoch column (for example a
    native TIMESTAMP column, which is compared against formatted strings).
    """
    name = column.lower()
    dtype = (data_type or "").lower()

    if "_ns" in name:
        return TimeUnit.NANOSECONDS
    if "_us" in name or "_μs" in name:
        return TimeUnit.MICROSECONDS
    if "_ms" in name:
        return TimeUnit.MILLISECONDS
    if name.endswith("_s"):
        return TimeUnit.SECONDS

    if name == "__timestamp":
        return TimeUnit.NANOSECONDS

    if any(t in dtype for t in _NATIVE_TIME_TYPES):
        return None

    looks_temporal = "time" in name or "date" in name or name in ("created_at", "updated_at")
    if dtype in _BIGINT_TYPES and looks_temporal:
        if "time" in name:
            return TimeUnit.NANOSECONDS
        return TimeUnit.MILLISECONDS
    if "int" in dtype and looks_temporal:
        return TimeUnit.SECONDS
    return None


def select_time_unit(column: str, schema: ColumnDescriptor | None = None) -> TimeUnit | None:
    """Schema-declared unit first, then name / type inference."""
    if schema is not None and schema.time_unit is not None:
        return schema.time_unit
    return infer_unit_from_column(column, schema.data_type if schema else None)


def should_use_epoch_format(column: str, unit: TimeUnit | None) -> bool:
    """Epoch literals for epoch-looking columns, quoted strings otherwise.

    Keyed on column-name substrings, so it is a best-effort default; callers
    that need a guaranteed format pass an explicit ``time_unit``.
    """
    name = column.lower()
    if name in ("__timestamp", "timestamp"):
        return True
    if unit is not None:
        return True
    return any(marker in name for marker in _EPOCH_NAME_MARKERS)


def _epoch_unit(column: str, unit: TimeUnit | None) -> TimeUnit:
    if unit is not None:
        return unit
    return TimeUnit.NANOSECONDS if column.lower() == DEFAULT_TIME_COLUMN else TimeUnit.MILLISECONDS


def build_time_filter(
    bounds: TimeBounds,
    column: str,
    schema: ColumnDescriptor | None,
    zone: tzinfo,
) -> str:
    """Render the comparison clause that replaces ``$__timeFilter``."""
    unit = select_time_unit(column, schema)
    if should_use_epoch_format(column, unit):
        epoch_unit = _epoch_unit(column, unit)
        lo = from_instant(bounds.from_, epoch_unit)
        hi = from_instant(bounds.to, epoch_unit)
        return f"{column} >= {lo} AND {column} <= {hi}"

    fmt = "%Y-%m-%d %H:%M:%S"
    lo_s = bounds.from_.to_datetime(zone).strftime(fmt)
    hi_s = bounds.to.to_datetime(zone).strftime(fmt)
    return f"{column} >= '{lo_s}' AND {column} <= '{hi_s}'"


def calculate_interval(bounds: TimeBounds | None, max_points: int) -> int:
    """Bucket width in seconds keeping the bucket count at or under *max_points*."""
    if bounds is None:
        return get_settings().fallback_interval_seconds
    return max(1, bounds.duration_ms // max_points // 1000)


# ── Alias rewriting ─────────────────────────────────────


def rewrite_time_aliases(query: str, time_column: str) -> str:
    """Make GROUP BY / ORDER BY reference the real time column.

    ``<col> AS <alias>`` with alias == col (case-insensitive) loses the alias;
    otherwise ``GROUP BY <alias>`` and ``ORDER BY <alias>`` are rewritten to
    ``<col>``.
    """
    col = re.escape(time_column)
    alias_re = re.compile(rf"(?<![\w.$]){col}\s+AS\s+(\w+)\b", re.IGNORECASE)

    aliases: list[str] = []
    for m in alias_re.finditer(query):
        if m.group(1) not in aliases:
            aliases.append(m.group(1))

    for alias in aliases:
        a = re.escape(alias)
        if alias.lower() == time_column.lower():
            query = re.sub(
                rf"(?<![\w.$]){col}\s+AS\s+{a}\b",
                lambda _m: time_column,
                query,
                flags=re.IGNORECASE,
            )
            continue
        query = re.sub(
            rf"\bGROUP\s+BY\s+{a}\b",
            lambda _m: f"GROUP BY {time_column}",
            query,
            flags=re.IGNORECASE,
        )
        query = re.sub(
            rf"\bORDER\s+BY\s+{a}\b",
            lambda _m: f"ORDER BY {time_column}",
            query,
            flags=re.IGNORECASE,
        )
    return query


def _replace_macro(query: str, macro: str, value: str) -> str:
    return _MACRO_RES[macro].sub(lambda _m: value, query)


# ── Public API ──────────────────────────────────────────


def interpolate(
    query: str,
    ctx: InterpolationContext | dict[str, Any] | None = None,
    now: Instant | datetime | None = None,
) -> InterpolationResult:
    """Substitute every recognised macro in *query*.

    Never raises; problems are reported in ``errors`` and the query is
    always returned in its best-effort form.
    """
    if not query or not isinstance(query, str):
        return InterpolationResult(query="", has_time_variables=False, errors=["Invalid query provided"])

    ctx, ctx_errors = parse_context(ctx)
    if ctx is None:
        return InterpolationResult(query=query, has_time_variables=has_time_variables(query), errors=ctx_errors)

    text, errors = sanitize(query)
    result = InterpolationResult(query=text, has_time_variables=has_time_variables(text), errors=errors)
    interpolated = result.interpolated

    zone = load_zone(ctx.time_zone)
    if zone is None:
        errors.append(f"Unknown time zone '{ctx.time_zone}', using UTC")
        zone = ZoneInfo("UTC")

    time_column, schema = select_time_column(ctx)

    # 1. $__timeField and alias clean-up
    if TIME_FIELD in text and not time_column:
        time_column = detect_time_column(text)
        logger.info("No time column given, detected '%s'", time_column)
    if time_column:
        if TIME_FIELD in text:
            text = _replace_macro(text, TIME_FIELD, time_column)
            interpolated["timeField"] = time_column
        text = rewrite_time_aliases(text, time_column)

    needs_range = any(m in text for m in (TIME_FILTER, INTERVAL, TIME_FROM, TIME_TO))
    bounds = resolve(ctx.time_range, now, zone) if needs_range and ctx.time_range is not None else None
    column = time_column or DEFAULT_TIME_COLUMN

    # 2. $__timeFilter
    if TIME_FILTER in text:
        if bounds is not None:
            clause = build_time_filter(bounds, column, schema, zone)
        else:
            clause = "1=1"
            logger.warning("Time range unavailable -- $__timeFilter neutralised to 1=1")
        text = _replace_macro(text, TIME_FILTER, clause)
        interpolated["timeFilter"] = clause

    # 3. $__interval
    if INTERVAL in text:
        interval = calculate_interval(bounds, ctx.max_points)
        text = _replace_macro(text, INTERVAL, f"{interval}s")
        interpolated["interval"] = interval

    # 4. $__timeFrom / $__timeTo
    if TIME_FROM in text or TIME_TO in text:
        if bounds is not None:
            unit = _epoch_unit(column, select_time_unit(column, schema))
            lo = from_instant(bounds.from_, unit)
            hi = from_instant(bounds.to, unit)
            if TIME_FROM in text:
                text = _replace_macro(text, TIME_FROM, str(lo))
                interpolated["timeFrom"] = lo
            if TIME_TO in text:
                text = _replace_macro(text, TIME_TO, str(hi))
                interpolated["timeTo"] = hi
        else:
            errors.append("$__timeFrom/$__timeTo require a resolvable time range; left unchanged.")

    result.query = text
    logger.info("Interpolated query | macros=%s | errors=%d", sorted(interpolated), len(errors))
    return result
