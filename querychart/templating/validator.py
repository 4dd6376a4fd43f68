"""
Validates that a macro-bearing query has the context it needs.

Checks performed (only when the query uses the relevant macro):
  1. $__timeFilter needs a time field, unless the query names one itself
  2. $__timeFilter needs a time range
  3. $__timeField needs a time field
  4. $__timeFrom / $__timeTo need a time range
  5. A query range with ``enabled: false`` cannot serve time macros
  6. Both bounds must be present and parse
  7. ``from`` must precede ``to``

Purely advisory: callers decide whether to block on the result.  Nothing
here raises or touches the query text.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from querychart.templating.macros import (
    TIME_FIELD,
    TIME_FILTER,
    TIME_FROM,
    TIME_TO,
    has_time_variables,
)
from querychart.timeseries.time_range import QueryTimeRange, parse_time_range, resolve_endpoints
from querychart.timeseries.units import Instant

_MACRO_TOKEN_RE = re.compile(r"\$__\w+")
_TIME_COLUMN_MENTION_RE = re.compile(r"(?<![\w.])(?:__timestamp|timestamp|time)\b", re.IGNORECASE)


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"is_valid": self.is_valid, "errors": list(self.errors)}


def _mentions_time_column(query: str) -> bool:
    return bool(_TIME_COLUMN_MENTION_RE.search(_MACRO_TOKEN_RE.sub(" ", query)))


def validate_context(
    query: str,
    time_column: str | None = None,
    time_range: Any = None,
    now: Instant | datetime | None = None,
) -> ValidationResult:
    """Return the problems that would stop macros in *query* from interpolating."""
    if not query or not isinstance(query, str) or not has_time_variables(query):
        return ValidationResult(is_valid=True)

    errors: list[str] = []
    uses_filter = TIME_FILTER in query
    uses_endpoints = TIME_FROM in query or TIME_TO in query

    if uses_filter and not time_column and not _mentions_time_column(query):
        errors.append("$__timeFilter requires a time field.")
    if uses_filter and time_range is None:
        errors.append("$__timeFilter requires a time range.")
    if TIME_FIELD in query and not time_column:
        errors.append("$__timeField requires a time field to be selected.")
    if uses_endpoints and time_range is None:
        errors.append("$__timeFrom/$__timeTo require a time range.")

    if time_range is not None:
        desc = parse_time_range(time_range)
        if desc is None:
            errors.append("Time range descriptor is not a recognised shape.")
        elif isinstance(desc, QueryTimeRange) and desc.enabled is False:
            errors.append("Query contains time variables but the time range must be enabled.")
        elif not desc.from_ or not desc.to:
            errors.append("Query contains time variables but the time range is incomplete.")
        else:
            start, end = resolve_endpoints(desc, now)
            if start is None:
                errors.append(f"Time range 'from' could not be parsed: {desc.from_!r}.")
            if end is None:
                errors.append(f"Time range 'to' could not be parsed: {desc.to!r}.")
            if start is not None and end is not None and start >= end:
                errors.append("Time range 'from' must precede 'to'.")

    return ValidationResult(is_valid=not errors, errors=errors)
