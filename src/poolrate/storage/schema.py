"""Database schema definition and initialization."""

from __future__ import annotations

import logging

from poolrate.storage.connection import get_connection

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """\
-- Mining pool registry, seeded from the pools file
CREATE TABLE IF NOT EXISTS pools (
    unique_id       INTEGER PRIMARY KEY,
    name            TEXT NOT NULL,
    slug            TEXT NOT NULL,
    link            TEXT,
    updated_at      TEXT NOT NULL
);

-- Hashrate samples, one row per (bucket, pool, type)
CREATE TABLE IF NOT EXISTS hashrates (
    hashrate_timestamp  TEXT NOT NULL,          -- ISO-8601 UTC, minute bucket
    pool_id             INTEGER NOT NULL,
    avg_hashrate        REAL NOT NULL,          -- H/s, -1 when not applicable
    share               REAL NOT NULL,          -- -1 when not applicable
    type                TEXT NOT NULL CHECK (type IN ('daily', 'weekly', 'reported')),
    PRIMARY KEY (hashrate_timestamp, pool_id, type)
);

-- Poller cycle tracking
CREATE TABLE IF NOT EXISTS pipeline_runs (
    id          TEXT PRIMARY KEY,
    run_type    TEXT NOT NULL CHECK (run_type IN ('reported_hashrate')),
    started_at  TEXT NOT NULL,
    finished_at TEXT NOT NULL,
    status      TEXT NOT NULL CHECK (status IN ('success', 'error')),
    result      TEXT NOT NULL,   -- JSON
    error       TEXT
);

-- Consecutive failure tracking per source adapter
CREATE TABLE IF NOT EXISTS source_errors (
    source_name             TEXT PRIMARY KEY,
    consecutive_failures    INTEGER NOT NULL DEFAULT 0,
    last_error              TEXT,
    last_failed_at          TEXT,
    last_succeeded_at       TEXT
);

-- Indexes: hashrates
CREATE INDEX IF NOT EXISTS idx_hashrates_pool_id ON hashrates(pool_id);
CREATE INDEX IF NOT EXISTS idx_hashrates_type_timestamp ON hashrates(type, hashrate_timestamp);

-- Indexes: pipeline_runs
CREATE INDEX IF NOT EXISTS idx_pipeline_runs_started_at ON pipeline_runs(started_at);
CREATE INDEX IF NOT EXISTS idx_pipeline_runs_run_type ON pipeline_runs(run_type);
"""


def init_db(database_path: str) -> None:
    """Create all tables and indexes if they do not already exist."""
    with get_connection(database_path) as conn:
        conn.executescript(_SCHEMA_SQL)
    logger.info("Database initialized at %s", database_path)
