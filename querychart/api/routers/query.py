"""
POST /query/interpolate, POST /query/validate, POST /time-range/resolve,
GET /time-range/quick-ranges -- macro and time-range endpoints.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from querychart.charts.models import ColumnDescriptor
from querychart.core.config import get_settings
from querychart.core.logging import get_logger
from querychart.engine.service import prepare_query
from querychart.templating.macros import InterpolationContext
from querychart.templating.validator import validate_context
from querychart.timeseries.presets import get_quick_ranges, load_presets
from querychart.timeseries.time_range import load_zone, parse_time_range, resolve

logger = get_logger(__name__)
router = APIRouter()


class InterpolateRequest(BaseModel):
    query: str = Field(..., min_length=1, description="SQL text containing $__ macros")
    time_column: str | None = None
    time_column_schema: ColumnDescriptor | None = None
    columns: list[ColumnDescriptor] = Field(default_factory=list, description="Table schema for time column detection")
    time_range: dict[str, Any] | None = Field(None, description="relative, absolute or query range")
    time_zone: str | None = None
    max_points: int | None = Field(None, gt=0)
    now: datetime | None = Field(None, description="Reference instant for relative ranges")
    block_on_errors: bool = False


class InterpolateResponse(BaseModel):
    query: str
    has_time_variables: bool
    interpolated: dict[str, Any]
    validation_errors: list[str]
    interpolation_errors: list[str]
    blocked: bool
    latency_ms: int


class ValidateRequest(BaseModel):
    query: str
    time_column: str | None = None
    time_range: dict[str, Any] | None = None
    now: datetime | None = None


class ValidateResponse(BaseModel):
    is_valid: bool
    errors: list[str]


class ResolveRequest(BaseModel):
    time_range: dict[str, Any] | None = Field(None, description="Omit to use quick_range or the default range")
    quick_range: str | None = Field(None, description="Display name of a quick range, e.g. 'Last 24 hours'")
    time_zone: str | None = None
    now: datetime | None = None


class ResolveResponse(BaseModel):
    resolved: bool
    bounds: dict[str, Any] | None = None


class QuickRangeItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    display: str
    from_: str = Field(..., alias="from")
    to: str
    enabled: bool = True


@router.post("/query/interpolate", response_model=InterpolateResponse)
def interpolate_endpoint(req: InterpolateRequest):
    """Validate the macro context, then substitute every macro."""
    settings = get_settings()
    ctx = InterpolationContext(
        time_column=req.time_column,
        time_column_schema=req.time_column_schema,
        columns=req.columns,
        time_range=req.time_range,
        time_zone=req.time_zone or settings.default_time_zone,
        max_points=req.max_points or settings.max_data_points,
    )
    try:
        prepared = prepare_query(req.query, ctx, now=req.now, block_on_errors=req.block_on_errors)
    except Exception as exc:
        logger.exception("prepare_query failed")
        raise HTTPException(status_code=500, detail=str(exc))
    return InterpolateResponse(**prepared.to_dict())


@router.post("/query/validate", response_model=ValidateResponse)
def validate_endpoint(req: ValidateRequest):
    """Advisory check only; the query is not modified."""
    result = validate_context(req.query, req.time_column, req.time_range, req.now)
    return ValidateResponse(**result.to_dict())


@router.post("/time-range/resolve", response_model=ResolveResponse)
def resolve_endpoint(req: ResolveRequest):
    """Resolve a descriptor (or named quick range) to concrete bounds in the requested zone."""
    presets = load_presets()
    if req.quick_range:
        preset = presets.quick_range(req.quick_range)
        if preset is None:
            raise HTTPException(status_code=404, detail=f"Unknown quick range '{req.quick_range}'")
        descriptor = preset.to_dict()
    elif req.time_range is not None:
        descriptor = req.time_range
    else:
        descriptor = presets.default_time_range.to_dict()

    if parse_time_range(descriptor) is None:
        raise HTTPException(status_code=422, detail="Unrecognised time range descriptor")
    zone = load_zone(req.time_zone)
    if zone is None:
        raise HTTPException(status_code=422, detail=f"Unknown time zone '{req.time_zone}'")

    bounds = resolve(descriptor, req.now, zone)
    return ResolveResponse(resolved=bounds is not None, bounds=bounds.to_dict() if bounds else None)


@router.get("/time-range/quick-ranges", response_model=list[QuickRangeItem], response_model_by_alias=True)
def quick_ranges_endpoint(include_disabled: bool = False):
    """Quick range presets, optionally including the "no time filter" entry."""
    ranges = list(get_quick_ranges())
    if include_disabled:
        ranges.append(load_presets().no_time_filter)
    return [QuickRangeItem(display=r.display, from_=r.from_, to=r.to, enabled=r.enabled) for r in ranges]
