"""
POST /fields/analyze, POST /charts/default, POST /charts/synthesize -- chart endpoints.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from querychart.charts.analyzer import analyze_fields
from querychart.charts.models import ChartConfiguration, ColumnDescriptor, ThemeColors
from querychart.charts.synthesizer import default_configuration
from querychart.core.logging import get_logger
from querychart.engine.service import build_chart

logger = get_logger(__name__)
router = APIRouter()


class FieldItem(BaseModel):
    name: str
    semantic_type: str
    role: str
    content_type: str
    is_time_field: bool
    time_unit: str | None = None
    cardinality: int = 0
    original_type: str | None = None


class AnalyzeRequest(BaseModel):
    rows: list[dict[str, Any]]
    schema_hints: list[ColumnDescriptor] | None = None


class AnalyzeResponse(BaseModel):
    fields: list[FieldItem]


class DefaultChartRequest(BaseModel):
    rows: list[dict[str, Any]]
    schema_hints: list[ColumnDescriptor] | None = None


class SynthesizeRequest(BaseModel):
    rows: list[dict[str, Any]]
    config: ChartConfiguration | None = Field(None, description="Omit to auto-detect the mapping")
    schema_hints: list[ColumnDescriptor] | None = None
    theme: str | None = Field(None, description="Preset theme name (light | dark)")
    theme_colors: ThemeColors | None = None


class SynthesizeResponse(BaseModel):
    fields: list[FieldItem]
    config: dict[str, Any]
    auto_configured: bool
    drawable: bool


@router.post("/fields/analyze", response_model=AnalyzeResponse)
def analyze_endpoint(req: AnalyzeRequest):
    """Classify each column of the result rows."""
    fields = analyze_fields(req.rows, req.schema_hints)
    return AnalyzeResponse(fields=[FieldItem(**f.to_dict()) for f in fields])


@router.post("/charts/default")
def default_chart_endpoint(req: DefaultChartRequest) -> dict:
    """Auto-detected configuration for freshly loaded rows (no render spec)."""
    fields = analyze_fields(req.rows, req.schema_hints)
    return default_configuration(req.rows, fields).model_dump(by_alias=True)


@router.post("/charts/synthesize", response_model=SynthesizeResponse)
def synthesize_endpoint(req: SynthesizeRequest):
    """Analyze rows and (re)build the render spec for a configuration."""
    try:
        build = build_chart(req.rows, req.config, req.schema_hints, req.theme_colors or req.theme)
    except Exception as exc:
        logger.exception("build_chart failed")
        raise HTTPException(status_code=500, detail=str(exc))

    data = build.to_dict()
    return SynthesizeResponse(
        fields=[FieldItem(**f) for f in data["fields"]],
        config=data["config"],
        auto_configured=build.auto_configured,
        drawable=build.drawable,
    )
