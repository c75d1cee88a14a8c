"""API route handlers for the poolrate web API."""

from __future__ import annotations

import logging
import math
import sqlite3

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from poolrate.storage.connection import get_connection
from poolrate.web.models import (
    HashrateListResponse,
    HashrateOut,
    PipelineRunListResponse,
    PoolListResponse,
    PoolOut,
)
from poolrate.web.queries import list_pipeline_runs, list_pools, list_reported_hashrates

logger = logging.getLogger(__name__)

router = APIRouter()
health_router = APIRouter()


@health_router.get("/health")
def health(request: Request) -> JSONResponse:
    """Check database connectivity and return health status."""
    database_path = request.app.state.database_path
    try:
        with get_connection(database_path) as conn:
            conn.execute("SELECT 1")
        return JSONResponse({"status": "healthy", "database": "ok"})
    except (sqlite3.Error, OSError) as exc:
        logger.warning("Health check failed: %s", exc)
        return JSONResponse(
            {"status": "unhealthy", "database": "error", "detail": str(exc)},
            status_code=503,
        )


@router.get("/pools", response_model=PoolListResponse)
def pools(request: Request) -> PoolListResponse:
    database_path = request.app.state.database_path
    return PoolListResponse(pools=[PoolOut(**p) for p in list_pools(database_path)])


@router.get("/hashrates/reported", response_model=HashrateListResponse)
def reported_hashrates(
    request: Request,
    pool_id: int | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(100, ge=1, le=500),
) -> HashrateListResponse:
    database_path = request.app.state.database_path
    rows, total = list_reported_hashrates(
        database_path,
        pool_id=pool_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        per_page=per_page,
    )
    pages = math.ceil(total / per_page) if total else 0
    return HashrateListResponse(
        hashrates=[HashrateOut(**r) for r in rows],
        total=total,
        page=page,
        per_page=per_page,
        pages=pages,
    )


@router.get("/runs", response_model=PipelineRunListResponse)
def runs(
    request: Request,
    run_type: str | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
) -> PipelineRunListResponse:
    database_path = request.app.state.database_path
    rows, total = list_pipeline_runs(
        database_path, run_type=run_type, page=page, per_page=per_page,
    )
    pages = math.ceil(total / per_page) if total else 0
    return PipelineRunListResponse(
        runs=rows,
        total=total,
        page=page,
        per_page=per_page,
        pages=pages,
    )
