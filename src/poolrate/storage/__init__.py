"""Storage layer: SQLite pool registry and hashrate repository."""

from poolrate.storage.connection import get_connection
from poolrate.storage.hashrates import save_hashrate
from poolrate.storage.pools import Pool, get_pool_by_unique_id
from poolrate.storage.schema import init_db

__all__ = ["Pool", "get_connection", "get_pool_by_unique_id", "init_db", "save_hashrate"]
