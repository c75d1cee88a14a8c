"""Mining pool registry: lookup by stable unique id, seeded from a JSON file."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from poolrate.storage.connection import get_connection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pool:
    """A registered mining pool."""

    unique_id: int
    name: str
    slug: str
    link: str | None = None


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", name.lower())


def _row_to_pool(row) -> Pool:
    return Pool(
        unique_id=row["unique_id"],
        name=row["name"],
        slug=row["slug"],
        link=row["link"],
    )


def save_pool(database_path: str, pool: Pool) -> None:
    """Insert or update a pool keyed by its unique id."""
    now = datetime.now(timezone.utc).isoformat()
    with get_connection(database_path) as conn:
        conn.execute(
            "INSERT INTO pools (unique_id, name, slug, link, updated_at) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(unique_id) DO UPDATE SET "
            "name = excluded.name, slug = excluded.slug, "
            "link = excluded.link, updated_at = excluded.updated_at",
            (pool.unique_id, pool.name, pool.slug, pool.link, now),
        )


def get_pool_by_unique_id(database_path: str, unique_id: int) -> Pool | None:
    """Return the pool with the given unique id, or None if it is not registered."""
    with get_connection(database_path) as conn:
        row = conn.execute(
            "SELECT unique_id, name, slug, link FROM pools WHERE unique_id = ?",
            (unique_id,),
        ).fetchone()
    if row is None:
        return None
    return _row_to_pool(row)


def import_pools(database_path: str, pools_path: str | Path) -> int:
    """Upsert pools from a JSON list of ``{"id", "name", "link"}`` objects.

    A missing file is not an error: the registry simply stays as it is.
    Entries without an integer id or a name are skipped. Returns the number
    of pools written.
    """
    path = Path(pools_path)
    if not path.is_file():
        logger.warning("Pools file %s not found, registry left unchanged", path)
        return 0

    with open(path) as f:
        entries = json.load(f)

    imported = 0
    for entry in entries:
        unique_id = entry.get("id")
        name = (entry.get("name") or "").strip()
        if not isinstance(unique_id, int) or isinstance(unique_id, bool) or not name:
            logger.warning("Skipping invalid pool entry: %r", entry)
            continue
        save_pool(
            database_path,
            Pool(unique_id=unique_id, name=name, slug=slugify(name), link=entry.get("link")),
        )
        imported += 1

    logger.info("Imported %d pools from %s", imported, path)
    return imported
