"""
Time Unit Model -- epoch precision classification and conversion.

Raw integers coming out of time-series databases carry no precision label.
``classify_magnitude`` buckets a value by order of magnitude assuming it
represents a moment close to "now":

  > 1e18  → nanoseconds
  > 1e15  → microseconds
  > 1e12  → milliseconds
  else    → seconds

This is a heuristic, not an exact rule.  A value sitting exactly on a
threshold stays in the coarser bucket it does not exceed.

Instants are held as integer nanoseconds so that every unit, including
nanoseconds, converts without loss.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class TimeUnit(str, Enum):
    SECONDS = "seconds"
    MILLISECONDS = "milliseconds"
    MICROSECONDS = "microseconds"
    NANOSECONDS = "nanoseconds"

    @property
    def nanos(self) -> int:
        """Nanoseconds per tick of this unit."""
        return _NANOS_PER_UNIT[self]

    @property
    def short(self) -> str:
        return _SHORT_NAMES[self]

    @classmethod
    def parse(cls, value: Any) -> TimeUnit | None:
        """Accept the enum, its value, or a short form (``s``, ``ms``, ``us``, ``μs``, ``ns``)."""
        if value is None:
            return None
        if isinstance(value, TimeUnit):
            return value
        text = str(value).strip()
        for unit in cls:
            if text == unit.value or text == unit.short:
                return unit
        if text == "μs":
            return cls.MICROSECONDS
        return None


_NANOS_PER_UNIT = {
    TimeUnit.SECONDS: 1_000_000_000,
    TimeUnit.MILLISECONDS: 1_000_000,
    TimeUnit.MICROSECONDS: 1_000,
    TimeUnit.NANOSECONDS: 1,
}

_SHORT_NAMES = {
    TimeUnit.SECONDS: "s",
    TimeUnit.MILLISECONDS: "ms",
    TimeUnit.MICROSECONDS: "us",
    TimeUnit.NANOSECONDS: "ns",
}


@dataclass(frozen=True, order=True)
class Instant:
    """An absolute point in time, in integer nanoseconds since the Unix epoch."""
    ns: int

    @classmethod
    def from_datetime(cls, value: datetime) -> Instant:
        """Naive datetimes are read as UTC."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        delta = value - _EPOCH
        micros = (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds
        return cls(micros * 1_000)

    @classmethod
    def now(cls) -> Instant:
        return cls.from_datetime(datetime.now(timezone.utc))

    def to_datetime(self, tz=timezone.utc) -> datetime:
        return (_EPOCH + timedelta(microseconds=self.ns // 1_000)).astimezone(tz)

    @property
    def epoch_ms(self) -> int:
        return self.ns // 1_000_000

    def shift(self, nanos: int) -> Instant:
        return Instant(self.ns + nanos)

    @property
    def is_representable(self) -> bool:
        """Whether this instant converts to a ``datetime`` in any zone."""
        return _MIN_NS <= self.ns <= _MAX_NS


# One day of slack either side so zone offsets stay inside datetime's range.
_MIN_NS = Instant.from_datetime(datetime.min.replace(tzinfo=timezone.utc) + timedelta(days=1)).ns
_MAX_NS = Instant.from_datetime(datetime.max.replace(tzinfo=timezone.utc) - timedelta(days=1)).ns


# ── Classification ──────────────────────────────────────


def classify_magnitude(n: float) -> TimeUnit:
    """Guess the precision of an epoch value from its magnitude."""
    value = abs(n)
    if value > 1e18:
        return TimeUnit.NANOSECONDS
    if value > 1e15:
        return TimeUnit.MICROSECONDS
    if value > 1e12:
        return TimeUnit.MILLISECONDS
    return TimeUnit.SECONDS


def as_number(value: Any) -> float | int | None:
    """Numbers and numeric strings as numbers; booleans and anything else as None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            try:
                return float(text)
            except ValueError:
                return None
    return None


def looks_like_epoch(value: Any) -> bool:
    """Does *value* fall in a plausible epoch range for any unit?

    Anything above 1e12 is taken as ms/us/ns; seconds are only accepted in
    the 10-digit window (roughly 2001 to 2286).
    """
    num = as_number(value)
    if num is None or num != num:  # NaN
        return False
    if num > 1e12:
        return True
    return 1_000_000_000 <= num <= 9_999_999_999


def infer_time_unit(values: Iterable[Any]) -> TimeUnit:
    """Infer a unit from the average magnitude of positive sample values.

    Averages at or below 1e9 are too small to be a modern epoch in any unit
    and fall back to milliseconds.
    """
    nums = [n for n in (as_number(v) for v in values) if n is not None and n == n and n > 0]
    if not nums:
        return TimeUnit.MILLISECONDS
    avg = sum(nums) / len(nums)
    if avg > 1e9:
        return classify_magnitude(avg)
    return TimeUnit.MILLISECONDS


# ── Conversion ──────────────────────────────────────────


def to_instant(n: int | float, unit: TimeUnit) -> Instant:
    if isinstance(n, int):
        return Instant(n * unit.nanos)
    return Instant(round(n * unit.nanos))


def from_instant(instant: Instant, unit: TimeUnit) -> int:
    return instant.ns // unit.nanos


def normalize_to_ms(value: int | float) -> int:
    """Rescale an epoch of unknown precision to milliseconds."""
    return to_instant(value, classify_magnitude(value)).epoch_ms
