"""
FastAPI application entry-point.
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from querychart.api.routers import charts, query
from querychart.core.config import get_settings

app = FastAPI(
    title="querychart",
    version="0.1.0",
    description="Time-series SQL macro interpolation and chart configuration synthesis",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(query.router, tags=["Query"])
app.include_router(charts.router, tags=["Charts"])


@app.get("/health")
def health():
    return {"status": "ok"}


def serve() -> None:
    """Console entry-point: run the API with uvicorn on the configured port."""
    import uvicorn

    uvicorn.run("querychart.api.main:app", host="0.0.0.0", port=get_settings().api_port)
