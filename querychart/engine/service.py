"""
Engine service -- orchestrates the two pure pipelines.

  prepare_query:  validate context -> sanitize + interpolate -> result
  build_chart:    analyze fields -> (auto) default configuration -> synthesize

Validation is advisory.  With ``block_on_errors=False`` (the default) the
query is always interpolated and the validation errors travel alongside the
interpolation errors; with ``block_on_errors=True`` a failed validation
returns the query untouched.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from querychart.charts.analyzer import FieldInfo, analyze_fields, pick_time_field
from querychart.charts.models import ChartConfiguration, ColumnDescriptor, ThemeColors
from querychart.charts.synthesizer import default_configuration, synthesize
from querychart.core.logging import get_logger
from querychart.core.utils import timer
from querychart.templating.macros import (
    InterpolationContext,
    InterpolationResult,
    has_time_variables,
    interpolate,
    parse_context,
    select_time_column,
)
from querychart.templating.validator import validate_context
from querychart.timeseries.units import Instant

logger = get_logger(__name__)


class PreparedQuery:
    def __init__(
        self,
        query: str,
        interpolation: InterpolationResult | None,
        validation_errors: list[str],
        latency_ms: int = 0,
        blocked: bool = False,
    ):
        self.query = query
        self.interpolation = interpolation
        self.validation_errors = validation_errors
        self.latency_ms = latency_ms
        self.blocked = blocked

    @property
    def errors(self) -> list[str]:
        interp = self.interpolation.errors if self.interpolation else []
        return [*self.validation_errors, *interp]

    @property
    def success(self) -> bool:
        return not self.blocked and not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "has_time_variables": self.interpolation.has_time_variables if self.interpolation else has_time_variables(self.query),
            "interpolated": dict(self.interpolation.interpolated) if self.interpolation else {},
            "validation_errors": list(self.validation_errors),
            "interpolation_errors": list(self.interpolation.errors) if self.interpolation else [],
            "blocked": self.blocked,
            "latency_ms": self.latency_ms,
        }


class ChartBuild:
    def __init__(
        self,
        fields: list[FieldInfo],
        config: ChartConfiguration,
        auto_configured: bool = False,
    ):
        self.fields = fields
        self.config = config
        self.auto_configured = auto_configured

    @property
    def time_field(self) -> FieldInfo | None:
        return pick_time_field(self.fields)

    @property
    def drawable(self) -> bool:
        return self.config.render_spec is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "fields": [f.to_dict() for f in self.fields],
            "config": self.config.model_dump(by_alias=True),
            "auto_configured": self.auto_configured,
        }


def prepare_query(
    query: str,
    ctx: InterpolationContext | dict[str, Any] | None = None,
    now: Instant | datetime | None = None,
    block_on_errors: bool = False,
) -> PreparedQuery:
    """Validate then interpolate *query*.

    Parameters
    ----------
    query : str
        Raw SQL with macros.
    ctx : InterpolationContext | dict | None
        Time column, schema hints, time range, zone and point budget.
    now : Instant | datetime | None
        Reference instant for relative ranges; defaults to the wall clock.
    block_on_errors : bool
        If True, skip interpolation when validation fails.
    """
    ctx, ctx_errors = parse_context(ctx)
    if ctx is None:
        interpolation = InterpolationResult(query=query, has_time_variables=has_time_variables(query), errors=ctx_errors)
        logger.warning("prepare_query | invalid context | errors=%s", ctx_errors)
        return PreparedQuery(query=query, interpolation=interpolation, validation_errors=[])

    with timer() as t:
        column, _ = select_time_column(ctx)
        validation = validate_context(query, column, ctx.time_range, now)

        if block_on_errors and not validation.is_valid:
            logger.warning("Query blocked by validation | errors=%s", validation.errors)
            interpolation = None
            text = query
        else:
            interpolation = interpolate(query, ctx, now)
            text = interpolation.query

    prepared = PreparedQuery(
        query=text,
        interpolation=interpolation,
        validation_errors=validation.errors,
        latency_ms=t["elapsed_ms"],
        blocked=interpolation is None,
    )
    logger.info("prepare_query | success=%s | latency=%dms", prepared.success, prepared.latency_ms)
    return prepared


def build_chart(
    rows: list[dict[str, Any]],
    config: ChartConfiguration | dict[str, Any] | None = None,
    schema_hints: list[ColumnDescriptor] | None = None,
    theme: ThemeColors | dict[str, Any] | str | None = None,
) -> ChartBuild:
    """Analyze *rows* and synthesize a chart for them.

    Without a configuration the default mapping is detected and applied
    immediately; an explicit configuration is used as given.
    """
    fields = analyze_fields(rows, schema_hints)

    auto = config is None
    if config is None:
        config = default_configuration(rows, fields)
    elif isinstance(config, dict):
        config = ChartConfiguration.model_validate(config)

    built = synthesize(rows, config, theme)
    if rows and built.render_spec is None:
        logger.warning("Chart %s produced no render spec", built.id)
    return ChartBuild(fields=fields, config=built, auto_configured=auto)
