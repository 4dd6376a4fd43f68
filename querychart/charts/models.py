"""
Wire models shared by the analyzer, the macro engine and the chart synthesizer.

Field names are snake_case in Python; the camelCase spelling used by the UI
(``columnName``, ``fieldMapping``, ``showLegend`` …) is accepted on input and
produced by ``model_dump(by_alias=True)``.
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from querychart.core.utils import new_id, utc_now_iso
from querychart.timeseries.units import TimeUnit

ChartKind = Literal["line", "bar", "area"]


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _parse_unit(value: Any) -> TimeUnit | None:
    if value is None or value == "":
        return None
    unit = TimeUnit.parse(value)
    if unit is None:
        raise ValueError(f"Unknown time unit '{value}'")
    return unit


class ColumnDescriptor(WireModel):
    """Schema hint for one result column, supplied by the schema collaborator."""

    column_name: str
    data_type: str = ""
    time_unit: TimeUnit | None = None
    nullable: bool | None = None

    @field_validator("time_unit", mode="before")
    @classmethod
    def normalise_unit(cls, value: Any) -> TimeUnit | None:
        return _parse_unit(value)


class FieldMapping(WireModel):
    x_axis: str = ""
    y_axis: str = ""
    group_by: str | None = None


class Styling(WireModel):
    show_legend: bool = True
    show_grid: bool = True
    smooth: bool | None = None
    stack: bool | None = None


class TimeFormatting(WireModel):
    enabled: bool = False
    source_time_unit: TimeUnit | None = None

    @field_validator("source_time_unit", mode="before")
    @classmethod
    def normalise_unit(cls, value: Any) -> TimeUnit | None:
        return _parse_unit(value)


class ThemeColors(WireModel):
    text_color: str = "hsl(240 10% 3.9%)"
    axis_color: str = "hsl(240 3.8% 46.1%)"
    grid_color: str = "hsl(240 3.8% 46.1% / 0.15)"
    tooltip_background_color: str = "hsl(0 0% 100%)"
    tooltip_text_color: str = "hsl(240 10% 3.9%)"
    chart_background_color: str = "transparent"


class ChartConfiguration(WireModel):
    """User-editable chart state plus the derived ``render_spec`` cache.

    ``render_spec`` is always recomputable from the other fields and the
    current result rows; it is never authoritative.
    """

    id: str = Field(default_factory=lambda: new_id("chart"))
    title: str = "Chart"
    chart_kind: ChartKind = "line"
    field_mapping: FieldMapping = Field(default_factory=FieldMapping)
    styling: Styling = Field(default_factory=Styling)
    time_formatting: TimeFormatting | None = None
    render_spec: dict[str, Any] | None = None
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)
