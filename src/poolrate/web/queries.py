"""Read-only query functions for the web API."""

from __future__ import annotations

import json

from poolrate.web.deps import get_readonly_connection


# ---------------------------------------------------------------------------
# list_pools
# ---------------------------------------------------------------------------
def list_pools(database_path: str) -> list[dict]:
    """Return every registered pool ordered by name."""
    with get_readonly_connection(database_path) as conn:
        rows = conn.execute(
            "SELECT unique_id, name, slug, link FROM pools ORDER BY name"
        ).fetchall()
    return [dict(r) for r in rows]


# ---------------------------------------------------------------------------
# list_reported_hashrates
# ---------------------------------------------------------------------------
def list_reported_hashrates(
    database_path: str,
    *,
    pool_id: int | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    page: int = 1,
    per_page: int = 100,
) -> tuple[list[dict], int]:
    """Return a paginated list of reported samples, newest first."""
    where = ["h.type = 'reported'"]
    params: list = []
    if pool_id is not None:
        where.append("h.pool_id = ?")
        params.append(pool_id)
    if date_from is not None:
        where.append("h.hashrate_timestamp >= ?")
        params.append(date_from)
    if date_to is not None:
        where.append("h.hashrate_timestamp <= ?")
        params.append(date_to)
    where_sql = " AND ".join(where)
    offset = (page - 1) * per_page

    with get_readonly_connection(database_path) as conn:
        total = conn.execute(
            f"SELECT COUNT(*) FROM hashrates h WHERE {where_sql}", params
        ).fetchone()[0]

        rows = conn.execute(
            "SELECT h.hashrate_timestamp, h.pool_id, p.name AS pool_name, h.avg_hashrate "
            "FROM hashrates h LEFT JOIN pools p ON p.unique_id = h.pool_id "
            f"WHERE {where_sql} "
            "ORDER BY h.hashrate_timestamp DESC, h.pool_id ASC LIMIT ? OFFSET ?",
            [*params, per_page, offset],
        ).fetchall()

    return [dict(r) for r in rows], total


# ---------------------------------------------------------------------------
# list_pipeline_runs
# ---------------------------------------------------------------------------
def list_pipeline_runs(
    database_path: str,
    *,
    run_type: str | None = None,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[dict], int]:
    """Return a paginated list of poller runs, newest first."""
    where_sql = ""
    params: list = []
    if run_type is not None:
        where_sql = "WHERE run_type = ?"
        params.append(run_type)
    offset = (page - 1) * per_page

    with get_readonly_connection(database_path) as conn:
        total = conn.execute(
            f"SELECT COUNT(*) FROM pipeline_runs {where_sql}", params
        ).fetchone()[0]
        rows = conn.execute(
            "SELECT id, run_type, started_at, finished_at, status, result, error "
            f"FROM pipeline_runs {where_sql} "
            "ORDER BY started_at DESC LIMIT ? OFFSET ?",
            [*params, per_page, offset],
        ).fetchall()

    runs = []
    for r in rows:
        runs.append({
            "id": r["id"],
            "run_type": r["run_type"],
            "started_at": r["started_at"],
            "finished_at": r["finished_at"],
            "status": r["status"],
            "result": json.loads(r["result"]),
            "error": r["error"],
        })
    return runs, total
