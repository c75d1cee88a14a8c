"""Hashrate repository: durable upsert of canonical samples."""

from __future__ import annotations

from poolrate.sources.normalize import HashrateSample
from poolrate.storage.connection import get_connection


def save_hashrate(database_path: str, sample: HashrateSample) -> None:
    """Upsert one sample keyed by (hashrate_timestamp, pool_id, type).

    Saving the same key again overwrites the previous values.
    """
    with get_connection(database_path) as conn:
        conn.execute(
            "INSERT INTO hashrates "
            "(hashrate_timestamp, pool_id, avg_hashrate, share, type) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(hashrate_timestamp, pool_id, type) DO UPDATE SET "
            "avg_hashrate = excluded.avg_hashrate, share = excluded.share",
            (
                sample.hashrate_timestamp.isoformat(),
                sample.pool_id,
                sample.avg_hashrate,
                sample.share,
                sample.type,
            ),
        )
