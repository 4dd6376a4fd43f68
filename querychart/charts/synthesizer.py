"""
Chart Configuration Synthesizer -- rows + ChartConfiguration → render spec.

Pipeline (shared by every chart kind):
  1. Coerce the x-field to millisecond epochs when time formatting is on
  2. Sort rows ascending by x, nulls last (always; line/area assume monotonic x)
  3. Build series: temporal/categorical x, with or without a group-by field
  4. Shape per kind: line (smooth), area (gradient fill, stacking), bar (summed, zero-filled)
  5. Assemble axes, legend, grid and theme colors

The render spec is a plain dict with snake_case keys and is treated as a
disposable cache: it is rebuilt from the configuration and rows on every
call.  A failure anywhere in the pipeline yields ``render_spec = None``.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser
from pydantic import ValidationError

from querychart.charts.analyzer import FieldInfo, analyze_fields
from querychart.charts.models import (
    ChartConfiguration,
    FieldMapping,
    Styling,
    ThemeColors,
    TimeFormatting,
)
from querychart.core.logging import get_logger
from querychart.core.utils import utc_now_iso
from querychart.timeseries.presets import get_series_colors, load_presets
from querychart.timeseries.units import Instant, as_number, looks_like_epoch, normalize_to_ms

logger = get_logger(__name__)

_NUMERIC_TYPES = ("integer", "bigint", "float")
_AREA_FADE = "rgba(136, 132, 216, 0.1)"
_DEFAULT_TITLES = {"line": "Line Chart", "bar": "Bar Chart", "area": "Area Chart"}


# ── Theme / palette ─────────────────────────────────────


def resolve_theme(theme: ThemeColors | dict[str, Any] | str | None) -> ThemeColors:
    """Accept a ThemeColors, a color dict, a preset theme name, or None (light)."""
    if isinstance(theme, ThemeColors):
        return theme
    if isinstance(theme, str):
        return ThemeColors(**load_presets().theme(theme))
    if isinstance(theme, dict):
        return ThemeColors(**theme)
    return ThemeColors(**load_presets().theme("light"))


def _color(index: int) -> str:
    palette = get_series_colors() or ["#3b82f6"]
    return palette[index % len(palette)]


# ── 1. Coercion ─────────────────────────────────────────


def coerce_time_value(value: Any) -> Any:
    """Best-effort conversion of an x value to a millisecond epoch.

    Values that cannot be read as a time are returned unchanged.
    """
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, datetime):
        return Instant.from_datetime(value).epoch_ms
    num = as_number(value)
    if num is not None:
        return normalize_to_ms(num) if looks_like_epoch(num) else value
    if isinstance(value, str) and value.strip():
        try:
            parsed = date_parser.parse(value)
        except (ValueError, OverflowError):
            logger.debug("Could not parse date string %r", value)
            return value
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return Instant.from_datetime(parsed).epoch_ms
    return value


def _coerce_rows(rows: list[dict[str, Any]], x_field: str, enabled: bool) -> list[dict[str, Any]]:
    if not enabled:
        return [dict(row) for row in rows]
    out = []
    for row in rows:
        copy = dict(row)
        copy[x_field] = coerce_time_value(row.get(x_field))
        out.append(copy)
    return out


# ── 2. Sort ─────────────────────────────────────────────


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def sort_rows(rows: list[dict[str, Any]], x_field: str) -> list[dict[str, Any]]:
    """Ascending by x with nulls last; numeric compare only if every x is numeric.

    Non-numeric values compare as plain ``str`` (code point order), not with
    a locale-aware collation, so ``"Zulu"`` sorts before ``"alpha"``.
    """
    present = [r.get(x_field) for r in rows if r.get(x_field) is not None]
    numeric = all(_is_number(v) for v in present)

    def key(row: dict[str, Any]) -> tuple:
        value = row.get(x_field)
        if value is None:
            return (1, 0)
        return (0, value if numeric else str(value))

    return sorted(rows, key=key)


def sort_categories(categories: list[str]) -> list[str]:
    """Numeric order if every label parses as a number, else code point string order."""
    nums = [as_number(c) for c in categories]
    if categories and all(n is not None for n in nums):
        return [c for _, c in sorted(zip(nums, categories), key=lambda p: p[0])]
    return sorted(categories)


# ── 3. Series construction ──────────────────────────────


def _label(value: Any) -> str:
    return "" if value is None else str(value)


def _partition(rows: list[dict[str, Any]], group_by: str) -> dict[str, list[dict[str, Any]]]:
    groups: dict[str, list[dict[str, Any]]] = {}
    for row in rows:
        groups.setdefault(_label(row.get(group_by)), []).append(row)
    return groups


def _y(row: dict[str, Any], y_field: str) -> float | int | None:
    return as_number(row.get(y_field))


def _line_series(
    rows: list[dict[str, Any]],
    mapping: FieldMapping,
    temporal: bool,
    smooth: bool,
) -> tuple[list[dict[str, Any]], list[str] | None]:
    """Series list and (for categorical x) the category labels."""
    x, y, group_by = mapping.x_axis, mapping.y_axis, mapping.group_by

    def base(name: str, index: int, data: list[Any]) -> dict[str, Any]:
        return {
            "name": name,
            "type": "line",
            "data": data,
            "smooth": smooth,
            "show_symbol": len(data) < 50,
            "item_style": {"color": _color(index)},
            "line_style": {"color": _color(index), "width": 2},
            "emphasis": {"focus": "series"},
        }

    if temporal and group_by:
        groups = _partition(rows, group_by)
        series = [
            base(name, i, [[r.get(x), _y(r, y)] for r in members])
            for i, (name, members) in enumerate(groups.items())
        ]
        return series, None

    if temporal:
        return [base(y, 0, [[r.get(x), _y(r, y)] for r in rows])], None

    if group_by:
        categories = sort_categories(list(dict.fromkeys(_label(r.get(x)) for r in rows if r.get(x) is not None)))
        series = []
        for i, (name, members) in enumerate(_partition(rows, group_by).items()):
            by_category: dict[str, Any] = {}
            for r in members:
                by_category.setdefault(_label(r.get(x)), _y(r, y))
            s = base(name, i, [by_category.get(c) for c in categories])
            s["connect_nulls"] = False
            series.append(s)
        return series, categories

    return [base(y, 0, [_y(r, y) for r in rows])], [_label(r.get(x)) for r in rows]


def _bar_series(
    rows: list[dict[str, Any]],
    mapping: FieldMapping,
    temporal: bool,
    stack: bool,
) -> tuple[list[dict[str, Any]], list[Any]]:
    """One summed value per category and group; missing combinations are 0."""
    x, y, group_by = mapping.x_axis, mapping.y_axis, mapping.group_by

    keys = list(dict.fromkeys(r.get(x) if temporal else _label(r.get(x)) for r in rows if r.get(x) is not None))
    if not temporal:
        keys = sort_categories(keys)

    groups = _partition(rows, group_by) if group_by else {y: rows}
    series = []
    for i, (name, members) in enumerate(groups.items()):
        totals: dict[Any, float] = {k: 0 for k in keys}
        for r in members:
            k = r.get(x) if temporal else _label(r.get(x))
            if k in totals:
                totals[k] += _y(r, y) or 0
        data = [[k, totals[k]] for k in keys] if temporal else [totals[k] for k in keys]
        s = {
            "name": name,
            "type": "bar",
            "data": data,
            "item_style": {"color": _color(i)},
        }
        if stack and group_by:
            s["stack"] = "total"
        series.append(s)
    return series, keys


def _as_area(series: list[dict[str, Any]], stack: bool) -> list[dict[str, Any]]:
    out = []
    for i, s in enumerate(series):
        color = s.get("item_style", {}).get("color") or _color(i)
        area = {
            **s,
            "area_style": {
                "color": {
                    "type": "linear",
                    "x": 0, "y": 0, "x2": 0, "y2": 1,
                    "color_stops": [
                        {"offset": 0, "color": color},
                        {"offset": 1, "color": _AREA_FADE},
                    ],
                },
                "opacity": 0.6,
            },
            "emphasis": {"focus": "series", "area_style": {"opacity": 0.8}, "line_style": {"width": 3}},
        }
        if stack:
            area["stack"] = "total"
        out.append(area)
    return out


# ── 5. Assembly ─────────────────────────────────────────


def _axis_common(theme: ThemeColors, show_grid: bool) -> dict[str, Any]:
    return {
        "axis_label": {"color": theme.axis_color},
        "axis_line": {"line_style": {"color": theme.axis_color}},
        "split_line": {"show": show_grid, "line_style": {"color": theme.grid_color}},
    }


def build_render_spec(
    rows: list[dict[str, Any]],
    config: ChartConfiguration,
    theme: ThemeColors,
) -> dict[str, Any]:
    """Run the pipeline; raises ``ValueError`` on an unusable field mapping."""
    mapping = config.field_mapping
    if not mapping.x_axis or not mapping.y_axis:
        raise ValueError(f"{config.chart_kind} chart requires both x and y axis fields")
    for name in (mapping.x_axis, mapping.y_axis, mapping.group_by):
        if name and not any(name in row for row in rows):
            raise ValueError(f"Field '{name}' is not present in the result rows")

    temporal = bool(config.time_formatting and config.time_formatting.enabled)
    styling = config.styling or Styling()
    show_grid = styling.show_grid is not False

    data = sort_rows(_coerce_rows(rows, mapping.x_axis, temporal), mapping.x_axis)

    if config.chart_kind == "bar":
        series, keys = _bar_series(data, mapping, temporal, bool(styling.stack))
        categories = None if temporal else keys
    else:
        series, categories = _line_series(data, mapping, temporal, bool(styling.smooth))
        if config.chart_kind == "area":
            stack = styling.stack if styling.stack is not None else bool(mapping.group_by)
            series = _as_area(series, stack)

    x_axis: dict[str, Any] = {"type": "temporal" if temporal else "categorical", "name": mapping.x_axis}
    if not temporal:
        labels = categories or []
        rotate = any(len(c) > 10 for c in labels)
        x_axis["data"] = labels
        x_axis.update(_axis_common(theme, show_grid))
        x_axis["axis_label"]["rotate"] = 45 if rotate else 0
    else:
        x_axis.update(_axis_common(theme, show_grid))
    x_axis["boundary_gap"] = config.chart_kind == "bar" or not temporal

    y_axis = {"type": "value", "name": mapping.y_axis, **_axis_common(theme, show_grid)}

    return {
        "title": {
            "text": config.title or _DEFAULT_TITLES[config.chart_kind],
            "text_style": {"color": theme.text_color},
        },
        "tooltip": {
            "trigger": "axis",
            "background_color": theme.tooltip_background_color,
            "text_style": {"color": theme.tooltip_text_color},
        },
        "legend": {
            "show": bool(mapping.group_by) and styling.show_legend is not False,
            "text_style": {"color": theme.text_color},
        },
        "x_axis": x_axis,
        "y_axis": y_axis,
        "series": series,
        "grid": {"left": "10%", "right": "10%", "top": "15%", "bottom": "15%", "show": show_grid},
        "background_color": theme.chart_background_color,
    }


# ── Public API ──────────────────────────────────────────


def synthesize(
    rows: list[dict[str, Any]],
    config: ChartConfiguration,
    theme_colors: ThemeColors | dict[str, Any] | str | None = None,
) -> ChartConfiguration:
    """Return a copy of *config* with ``render_spec`` rebuilt from *rows*.

    ``render_spec`` is None for an empty row set or when synthesis fails.
    """
    if not rows:
        return config.model_copy(update={"render_spec": None})

    try:
        spec = build_render_spec(rows, config, resolve_theme(theme_colors))
    except Exception:
        logger.exception("Chart synthesis failed for %s (%s)", config.id, config.chart_kind)
        spec = None

    return config.model_copy(update={"render_spec": spec, "updated_at": utc_now_iso()})


def default_configuration(
    rows: list[dict[str, Any]],
    fields: list[FieldInfo] | None = None,
) -> ChartConfiguration:
    """Pick a field mapping and chart kind for freshly loaded rows.

    Preference order: time + numeric → line, two numerics → line,
    categorical + numeric → bar, a single numeric → bar.
    """
    fields = fields if fields is not None else analyze_fields(rows)
    time_fields = [f for f in fields if f.is_time_field]
    numeric = [f for f in fields if f.semantic_type in _NUMERIC_TYPES and not f.is_time_field]
    categorical = [f for f in fields if f.content_type == "categorical"]

    x, y, kind = "", "", "line"
    if time_fields and numeric:
        x, y = time_fields[0].name, numeric[0].name
    elif len(numeric) >= 2:
        x, y = numeric[0].name, numeric[1].name
    elif categorical and numeric:
        x, y, kind = categorical[0].name, numeric[0].name, "bar"
    elif len(numeric) == 1:
        y, kind = numeric[0].name, "bar"

    time_formatting = None
    if time_fields and x == time_fields[0].name:
        time_formatting = TimeFormatting(enabled=True, source_time_unit=time_fields[0].time_unit)

    config = ChartConfiguration(
        chart_kind=kind,
        field_mapping=FieldMapping(x_axis=x, y_axis=y),
        time_formatting=time_formatting,
    )
    logger.info("Default chart | kind=%s | x=%s | y=%s", kind, x or "-", y or "-")
    return config


def export_configuration(config: ChartConfiguration) -> str:
    """Serialise a configuration to camelCase JSON, without the render spec."""
    return config.model_dump_json(by_alias=True, exclude={"render_spec"}, indent=2)


def import_configuration(
    json_text: str,
    rows: list[dict[str, Any]],
    theme_colors: ThemeColors | dict[str, Any] | str | None = None,
) -> ChartConfiguration | None:
    """Parse exported JSON and rebuild its render spec; None if the JSON is invalid."""
    try:
        config = ChartConfiguration.model_validate_json(json_text)
    except ValidationError as exc:
        logger.warning("Rejected chart configuration import: %s", exc.error_count())
        return None
    return synthesize(rows, config, theme_colors)
