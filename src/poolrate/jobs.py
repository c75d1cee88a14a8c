"""Scheduled job: poll pool APIs for self-reported hashrate once per hour."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Iterable

from poolrate.config import Config
from poolrate.sources.adapter import PoolSource, SourceFetchError
from poolrate.sources.normalize import ExtractionError, HashrateSample, bucket_timestamp
from poolrate.storage.connection import get_connection
from poolrate.storage.hashrates import save_hashrate
from poolrate.storage.pools import get_pool_by_unique_id

logger = logging.getLogger(__name__)


def _record_run(
    database_path: str,
    run_type: str,
    started_at: str,
    result: dict,
    error: str | None = None,
) -> None:
    """Insert a run record into the pipeline_runs table."""
    finished_at = datetime.now(timezone.utc).isoformat()
    status = "error" if error else "success"
    with get_connection(database_path) as conn:
        conn.execute(
            "INSERT INTO pipeline_runs "
            "(id, run_type, started_at, finished_at, status, result, error) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                str(uuid.uuid4()),
                run_type,
                started_at,
                finished_at,
                status,
                json.dumps(result),
                error,
            ),
        )


def _record_source_failure(database_path: str, source_name: str, error_msg: str) -> int:
    """Record a source failure. Returns updated consecutive_failures count."""
    now = datetime.now(timezone.utc).isoformat()
    with get_connection(database_path) as conn:
        conn.execute(
            "INSERT INTO source_errors "
            "(source_name, consecutive_failures, last_error, last_failed_at) "
            "VALUES (?, 1, ?, ?) "
            "ON CONFLICT(source_name) DO UPDATE SET "
            "consecutive_failures = consecutive_failures + 1, "
            "last_error = ?, last_failed_at = ?",
            (source_name, error_msg, now, error_msg, now),
        )
        row = conn.execute(
            "SELECT consecutive_failures FROM source_errors WHERE source_name = ?",
            (source_name,),
        ).fetchone()
    return row["consecutive_failures"] if row else 1


def _record_source_success(database_path: str, source_name: str) -> None:
    """Reset consecutive failure count for a source after a saved sample."""
    now = datetime.now(timezone.utc).isoformat()
    with get_connection(database_path) as conn:
        conn.execute(
            "INSERT INTO source_errors "
            "(source_name, consecutive_failures, last_succeeded_at) "
            "VALUES (?, 0, ?) "
            "ON CONFLICT(source_name) DO UPDATE SET "
            "consecutive_failures = 0, last_succeeded_at = ?",
            (source_name, now, now),
        )


class RunGuard:
    """In-memory single-flight and cadence gate for the poller.

    ``try_acquire`` checks both gates and marks the guard running in one
    step under a lock. ``last_run`` holds the wall-clock time a successful
    cycle finished, in epoch seconds.
    """

    def __init__(self, interval_seconds: float, clock: Callable[[], float] = time.time) -> None:
        self.interval_seconds = interval_seconds
        self.running = False
        self.last_run: float | None = None
        self._clock = clock
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        with self._lock:
            if self.running:
                return False
            if (
                self.last_run is not None
                and self._clock() - self.last_run < self.interval_seconds
            ):
                return False
            self.running = True
            return True

    def release(self, success: bool) -> None:
        with self._lock:
            if success:
                self.last_run = self._clock()
            self.running = False


class ReportedHashratePoller:
    """Fetch self-reported hashrate from every configured pool and store it.

    ``sources`` is fixed for the lifetime of the poller. ``tick`` is meant
    to be called by a timer more often than the cadence; the guard decides
    whether a cycle actually runs.
    """

    def __init__(
        self,
        config: Config,
        sources: Iterable[PoolSource],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._sources = tuple(sources)
        self.guard = RunGuard(config.run_interval_seconds, clock=clock)

    @property
    def sources(self) -> tuple[PoolSource, ...]:
        return self._sources

    def tick(self) -> bool:
        """Run one cycle if this process is eligible, idle, and due.

        Returns True only when a cycle ran to completion.
        """
        if not self._config.is_primary_network:
            return False
        if not self.guard.try_acquire():
            return False

        started_at = datetime.now(timezone.utc).isoformat()
        success = False
        try:
            self.fetch_all()
            success = True
        except Exception:
            logger.exception("Cannot fetch reported hashrates")
            self._record_failed_run(started_at)
        finally:
            self.guard.release(success)
        return success

    def fetch_all(self) -> dict:
        """Query every source and save one sample each.

        Failures are isolated per source: each is logged and the loop moves
        on. Returns counts of saved and skipped sources.
        """
        started_at = datetime.now(timezone.utc).isoformat()
        saved = 0
        skipped = 0

        for source in self._sources:
            if self._fetch_source(source):
                saved += 1
            else:
                skipped += 1

        result = {"saved": saved, "skipped": skipped}
        logger.info("Reported hashrate cycle complete: %d saved, %d skipped", saved, skipped)
        _record_run(self._config.database_path, "reported_hashrate", started_at, result)
        return result

    def _record_failed_run(self, started_at: str) -> None:
        """Record a failed cycle in pipeline_runs. Never raises."""
        try:
            _record_run(
                self._config.database_path, "reported_hashrate", started_at, {},
                error="Reported hashrate cycle failed (see logs)",
            )
        except Exception:
            logger.exception("Failed to record failed reported hashrate cycle")

    def _fetch_source(self, source: PoolSource) -> bool:
        database_path = self._config.database_path
        try:
            pool = get_pool_by_unique_id(database_path, source.pool_unique_id)
            if pool is None:
                logger.error(
                    "Cannot fetch reported hashrate for pool with unique id %d "
                    "because it is not in the pool registry, ignoring",
                    source.pool_unique_id,
                )
                return False

            logger.debug(
                "Querying reported hashrate for mining pool '%s' on url '%s'",
                pool.name, source.url,
            )
            try:
                payload = source.fetch(
                    timeout=self._config.http_timeout_seconds,
                    user_agent=self._config.http_user_agent,
                )
                draft = HashrateSample(
                    hashrate_timestamp=bucket_timestamp(),
                    pool_id=source.pool_unique_id,
                )
                sample = replace(draft, avg_hashrate=source.normalize(payload))
            except SourceFetchError as exc:
                logger.error(
                    "Unable to fetch reported hashrate from mining pool '%s': %s",
                    pool.name, exc,
                )
                self._note_failure(source, str(exc))
                return False
            except ExtractionError as exc:
                logger.error(
                    "Unexpected response shape from mining pool '%s' (source '%s'): %s",
                    pool.name, source.name, exc,
                )
                self._note_failure(source, str(exc))
                return False

            try:
                save_hashrate(database_path, sample)
            except sqlite3.Error as exc:
                logger.error(
                    "Cannot save reported hashrate for mining pool '%s': %s",
                    pool.name, exc,
                )
                self._note_failure(source, str(exc))
                return False

            _record_source_success(database_path, source.name)
            logger.debug(
                "Successfully saved reported hashrate for mining pool '%s'", pool.name
            )
            return True
        except Exception:
            logger.exception(
                "Cannot fetch reported hashrate for pool with unique id %d",
                source.pool_unique_id,
            )
            return False

    def _note_failure(self, source: PoolSource, error_msg: str) -> None:
        consecutive = _record_source_failure(
            self._config.database_path, source.name, error_msg
        )
        if consecutive >= self._config.source_failure_warn_threshold:
            logger.warning(
                "Source '%s' has failed %d consecutive cycle(s)", source.name, consecutive
            )
