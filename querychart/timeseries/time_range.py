"""
Relative Time Resolver -- turns any accepted time-range descriptor into
concrete ``(from, to)`` instants.

Three descriptor shapes are accepted, matching the call sites that produce
them:

  relative  {"kind": "relative", "from": "6h", "to": "now"}
  absolute  {"kind": "absolute", "from": "2024-01-01T00:00:00Z", "to": ...}
  query     {"from": "now-1h", "to": "now", "enabled": true}

Resolution never raises.  A descriptor that is disabled, has an unparsable
bound, or whose ``from`` is not strictly before ``to`` resolves to ``None``;
callers treat that as "apply no time filter".
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Any, Literal, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from querychart.core.config import get_settings
from querychart.core.logging import get_logger
from querychart.timeseries.units import Instant, classify_magnitude, to_instant

logger = get_logger(__name__)


# ── Descriptor models ───────────────────────────────────


class _RangeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class RelativeTimeRange(_RangeModel):
    kind: Literal["relative"] = "relative"
    from_: str = Field(..., alias="from", description="e.g. '6h' or 'now-6h'")
    to: str = "now"


class AbsoluteTimeRange(_RangeModel):
    kind: Literal["absolute"] = "absolute"
    from_: datetime | str = Field(..., alias="from")
    to: datetime | str


class QueryTimeRange(_RangeModel):
    from_: str = Field(..., alias="from")
    to: str
    enabled: bool = True
    display: str | None = None


TimeRangeDescriptor = Union[RelativeTimeRange, AbsoluteTimeRange, QueryTimeRange]


@dataclass(frozen=True)
class TimeBounds:
    """A resolved, strictly ordered time window."""
    from_: Instant
    to: Instant

    @property
    def duration_ms(self) -> int:
        return (self.to.ns - self.from_.ns) // 1_000_000

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.from_.to_datetime().isoformat(),
            "to": self.to.to_datetime().isoformat(),
            "from_ms": self.from_.epoch_ms,
            "to_ms": self.to.epoch_ms,
            "duration_ms": self.duration_ms,
        }


# ── Descriptor parsing ──────────────────────────────────


def parse_time_range(raw: Any) -> TimeRangeDescriptor | None:
    """Coerce *raw* into one of the three descriptor models.

    Dicts carrying ``kind`` (or the older ``type`` key) are labeled variants;
    dicts with only ``from``/``to`` (and optionally ``enabled``) are query
    ranges.  Anything else is rejected with ``None``.
    """
    if raw is None:
        return None
    if isinstance(raw, (RelativeTimeRange, AbsoluteTimeRange, QueryTimeRange)):
        return raw
    if isinstance(raw, BaseModel):
        raw = raw.model_dump(by_alias=True)
    if not isinstance(raw, dict):
        logger.warning("Unsupported time range shape: %r", type(raw).__name__)
        return None

    try:
        if "kind" in raw or "type" in raw:
            kind = raw.get("kind", raw.get("type"))
            data = {k: v for k, v in raw.items() if k not in ("kind", "type")}
            if kind == "relative":
                return RelativeTimeRange(**data)
            if kind == "absolute":
                return AbsoluteTimeRange(**data)
            logger.warning("Unknown time range kind: %r", kind)
            return None
        return QueryTimeRange(**raw)
    except ValidationError as exc:
        logger.warning("Invalid time range descriptor: %s", exc.errors())
        return None


# ── Expression resolution ───────────────────────────────

_NS_PER_SECOND = 1_000_000_000

_UNIT_NANOS: dict[str, int] = {
    "s": _NS_PER_SECOND,
    "m": 60 * _NS_PER_SECOND,
    "h": 3_600 * _NS_PER_SECOND,
    "d": 86_400 * _NS_PER_SECOND,
    "w": 7 * 86_400 * _NS_PER_SECOND,
    "M": 30 * 86_400 * _NS_PER_SECOND,   # approximate month
    "y": 365 * 86_400 * _NS_PER_SECOND,  # approximate year
}

_SHIFT_RE = re.compile(r"^now([+-])(\d+)([smhdwMy])(?:/([mhdwMy]))?$")
_SNAP_RE = re.compile(r"^now/([mhdwMy])$")
_BARE_RE = re.compile(r"^(\d+)([smhdwMy])$")
_EPOCH_RE = re.compile(r"^\d{10,19}$")


def load_zone(name: str | None) -> tzinfo | None:
    """Return the named zone, or ``None`` if it is unknown."""
    try:
        return ZoneInfo(name or get_settings().default_time_zone)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def _zone(tz: tzinfo | str | None) -> tzinfo:
    if isinstance(tz, tzinfo):
        return tz
    zone = load_zone(tz)
    if zone is None:
        logger.warning("Unknown time zone %r, using UTC", tz)
        return ZoneInfo("UTC")
    return zone


def snap_to_unit(instant: Instant, unit: str, tz: tzinfo) -> Instant:
    """Round *instant* down to the start of the *unit* boundary in *tz*.

    Weeks start on Sunday at 00:00:00.
    """
    dt = instant.to_datetime(tz)
    if unit == "m":
        dt = dt.replace(second=0, microsecond=0)
    elif unit == "h":
        dt = dt.replace(minute=0, second=0, microsecond=0)
    elif unit == "d":
        dt = dt.replace(hour=0, minute=0, second=0, microsecond=0)
    elif unit == "w":
        dt = dt.replace(hour=0, minute=0, second=0, microsecond=0)
        dt = dt - timedelta(days=(dt.weekday() + 1) % 7)
    elif unit == "M":
        dt = dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    elif unit == "y":
        dt = dt.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    else:
        raise ValueError(f"Unknown snap unit '{unit}'")
    return Instant.from_datetime(dt)


def _parse_absolute(text: str, tz: tzinfo) -> Instant | None:
    try:
        dt = date_parser.isoparse(text)
    except ValueError:
        try:
            dt = date_parser.parse(text)
        except (ValueError, OverflowError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return Instant.from_datetime(dt)


def _resolve_expression(expr: Any, now: Instant, zone: tzinfo) -> Instant | None:
    if isinstance(expr, Instant):
        return expr
    if isinstance(expr, datetime):
        return Instant.from_datetime(expr if expr.tzinfo else expr.replace(tzinfo=zone))
    if isinstance(expr, (int, float)) and not isinstance(expr, bool):
        return to_instant(expr, classify_magnitude(expr))
    if not isinstance(expr, str):
        return None

    text = expr.strip()
    if not text:
        return None
    if text == "now":
        return now

    m = _SHIFT_RE.match(text)
    if m:
        sign, amount, unit, snap = m.groups()
        offset = int(amount) * _UNIT_NANOS[unit]
        shifted = now.shift(-offset if sign == "-" else offset)
        return snap_to_unit(shifted, snap, zone) if snap else shifted

    m = _SNAP_RE.match(text)
    if m:
        return snap_to_unit(now, m.group(1), zone)

    m = _BARE_RE.match(text)
    if m:
        return now.shift(-int(m.group(1)) * _UNIT_NANOS[m.group(2)])

    if _EPOCH_RE.match(text):
        value = int(text)
        return to_instant(value, classify_magnitude(value))

    return _parse_absolute(text, zone)


def resolve_expression(
    expr: Any,
    now: Instant,
    tz: tzinfo | str | None = None,
) -> Instant | None:
    """Resolve one bound of a time range, or ``None`` if it does not parse.

    Bounds that land outside the range ``datetime`` can represent (e.g.
    ``now-20000y``) are treated as unparsable too.
    """
    try:
        instant = _resolve_expression(expr, now, _zone(tz))
    except (OverflowError, ValueError):
        logger.warning("Time expression %r is out of range", expr)
        return None
    if instant is not None and not instant.is_representable:
        logger.warning("Time expression %r is out of range", expr)
        return None
    return instant


# ── Range resolution ────────────────────────────────────


def resolve_endpoints(
    descriptor: Any,
    now: Instant | datetime | None = None,
    tz: tzinfo | str | None = None,
) -> tuple[Instant | None, Instant | None]:
    """Resolve both bounds independently, without the enabled/ordering checks."""
    desc = parse_time_range(descriptor)
    if desc is None:
        return None, None
    if now is None:
        now = Instant.now()
    elif isinstance(now, datetime):
        now = Instant.from_datetime(now)

    to_expr = desc.to
    if isinstance(desc, RelativeTimeRange) and not to_expr:
        to_expr = "now"
    return (
        resolve_expression(desc.from_, now, tz),
        resolve_expression(to_expr, now, tz),
    )


def resolve(
    descriptor: Any,
    now: Instant | datetime | None = None,
    tz: tzinfo | str | None = None,
) -> TimeBounds | None:
    """Resolve *descriptor* to concrete bounds, or ``None`` for "no time filter"."""
    desc = parse_time_range(descriptor)
    if desc is None:
        return None
    if isinstance(desc, QueryTimeRange) and desc.enabled is False:
        return None

    start, end = resolve_endpoints(desc, now, tz)
    if start is None or end is None:
        logger.warning("Time range did not resolve: from=%r to=%r", desc.from_, desc.to)
        return None
    if start >= end:
        logger.warning("Time range is empty or inverted: from=%r to=%r", desc.from_, desc.to)
        return None
    return TimeBounds(from_=start, to=end)
