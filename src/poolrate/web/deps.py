"""Read-only SQLite access for API queries."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Generator

from poolrate.storage.connection import BUSY_TIMEOUT_MS


@contextmanager
def get_readonly_connection(database_path: str) -> Generator[sqlite3.Connection, None, None]:
    """Open the poller's database read-only.

    The poller may be mid-upsert when a request arrives, so reads wait on
    the same busy timeout the writer uses.
    """
    conn = sqlite3.connect(f"file:{database_path}?mode=ro", uri=True)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
    conn.execute("PRAGMA query_only=ON")
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()
