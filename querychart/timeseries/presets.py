"""
Loads, parses, and caches the time/theme presets YAML into typed objects.

The presets file is the single source of truth for:
  - quick time-range options offered to users (``now-1h`` … ``now-1y/y``)
  - the default time range and the "no time filter" sentinel
  - the series color palette used by the chart synthesizer
  - light / dark theme colors
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from functools import lru_cache
from typing import Any

import yaml

_PRESETS_PATH = Path(__file__).resolve().parents[2] / "presets" / "time_presets.yml"


# ── Typed domain objects ─────────────────────────────────

@dataclass(frozen=True)
class QuickRange:
    display: str
    from_: str
    to: str
    enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "display": self.display,
            "from": self.from_,
            "to": self.to,
            "enabled": self.enabled,
        }


@dataclass
class Presets:
    """Fully parsed presets file."""

    version: int
    default_time_range: QuickRange
    no_time_filter: QuickRange
    quick_ranges: list[QuickRange]
    series_colors: list[str] = field(default_factory=list)
    themes: dict[str, dict[str, str]] = field(default_factory=dict)

    def quick_range(self, display: str) -> QuickRange | None:
        for qr in self.quick_ranges:
            if qr.display.lower() == display.lower():
                return qr
        return None

    def theme(self, name: str) -> dict[str, str]:
        """Theme colors by name; unknown names fall back to ``light``."""
        return dict(self.themes.get(name) or self.themes.get("light") or {})


# ── Parsing ──────────────────────────────────────────────

def _parse_range(raw: dict[str, Any]) -> QuickRange:
    return QuickRange(
        display=raw.get("display", ""),
        from_=raw.get("from", ""),
        to=raw.get("to", ""),
        enabled=raw.get("enabled", True),
    )


def _parse_presets(raw_yaml: dict[str, Any]) -> Presets:
    return Presets(
        version=raw_yaml.get("version", 1),
        default_time_range=_parse_range(raw_yaml.get("default_time_range") or {}),
        no_time_filter=_parse_range(raw_yaml.get("no_time_filter") or {"enabled": False}),
        quick_ranges=[_parse_range(r) for r in raw_yaml.get("quick_ranges", [])],
        series_colors=list(raw_yaml.get("series_colors") or []),
        themes={name: dict(colors) for name, colors in (raw_yaml.get("themes") or {}).items()},
    )


# ── Public API ───────────────────────────────────────────

@lru_cache
def load_presets() -> Presets:
    """Load and cache the presets from YAML."""
    with open(_PRESETS_PATH, encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    return _parse_presets(raw)


def get_series_colors() -> list[str]:
    return load_presets().series_colors


def get_quick_ranges() -> list[QuickRange]:
    return load_presets().quick_ranges
