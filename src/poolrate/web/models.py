"""Pydantic v2 response models for the poolrate web API."""

from __future__ import annotations

from pydantic import BaseModel


# ---------------------------------------------------------------------------
# Pools
# ---------------------------------------------------------------------------
class PoolOut(BaseModel):
    unique_id: int
    name: str
    slug: str
    link: str | None = None


class PoolListResponse(BaseModel):
    pools: list[PoolOut]


# ---------------------------------------------------------------------------
# Reported hashrates
# ---------------------------------------------------------------------------
class HashrateOut(BaseModel):
    hashrate_timestamp: str
    pool_id: int
    pool_name: str | None
    avg_hashrate: float


class HashrateListResponse(BaseModel):
    hashrates: list[HashrateOut]
    total: int
    page: int
    per_page: int
    pages: int


# ---------------------------------------------------------------------------
# Pipeline runs
# ---------------------------------------------------------------------------
class PipelineRun(BaseModel):
    id: str
    run_type: str
    started_at: str
    finished_at: str
    status: str
    result: dict
    error: str | None = None


class PipelineRunListResponse(BaseModel):
    runs: list[PipelineRun]
    total: int
    page: int
    per_page: int
    pages: int
