"""Tests for poolrate.jobs: the reported hashrate poller and its run guard."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

import httpx
import pytest

from poolrate.config import Config
from poolrate.jobs import (
    ReportedHashratePoller,
    RunGuard,
    _record_source_failure,
    _record_source_success,
)
from poolrate.sources.adapter import PoolSource
from poolrate.sources.registry import build_sources
from poolrate.storage.connection import get_connection
from poolrate.storage.hashrates import save_hashrate as real_save_hashrate
from poolrate.storage.pools import Pool, save_pool
from poolrate.storage.schema import init_db

_PAYLOADS = {
    "https://api.foundryusapool.com/pool_stats": {"hashrate1hrAvg": 180000000000000000000},
    "https://www.antpool.com/auth/v3/index/poolcoins": {
        "data": {"items": [{"poolHashrate": "12345.6 GH/s"}]}
    },
    "https://www.viabtc.com/res/pool/BTC/state/usd/chart": {
        "data": {"viabtc_hash": [1000000000, 5000000000]}
    },
    "https://pool.binance.com/mining-api/v1/public/pool/index": {
        "data": {"algoList": [{"poolHash": "74500000000"}]}
    },
    "https://luxor.tech/_next/data/meXMczO-GZZ-V3Xj2m2Kd/en/mining.json": {
        "pageProps": {"coinData": {"BTC": {"poolHashrate": "2000000000"}}}
    },
}

_POOLS = [
    Pool(unique_id=4, name="Luxor", slug="luxor"),
    Pool(unique_id=44, name="AntPool", slug="antpool"),
    Pool(unique_id=73, name="ViaBTC", slug="viabtc"),
    Pool(unique_id=105, name="Binance Pool", slug="binancepool"),
    Pool(unique_id=111, name="Foundry USA", slug="foundryusa"),
]


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _make_config(tmp_path, **overrides) -> Config:
    defaults = {
        "database_path": str(tmp_path / "test.db"),
        "network": "mainnet",
        "http_timeout_seconds": 5,
        "source_failure_warn_threshold": 3,
    }
    defaults.update(overrides)
    return Config(**defaults)


def _seed(config: Config, pools=_POOLS) -> None:
    init_db(config.database_path)
    for pool in pools:
        save_pool(config.database_path, pool)


def _mock_get(failures: dict | None = None):
    """Build a side_effect for httpx.get. ``failures`` maps URL to an exception or status."""
    failures = failures or {}

    def side_effect(url, **kwargs):
        request = httpx.Request("GET", url)
        failure = failures.get(url)
        if isinstance(failure, Exception):
            raise failure
        if isinstance(failure, int):
            return httpx.Response(failure, request=request)
        if isinstance(failure, bytes):
            return httpx.Response(200, content=failure, request=request)
        return httpx.Response(200, json=_PAYLOADS[url], request=request)

    return side_effect


def _saved_rows(database_path: str) -> dict[int, float]:
    with get_connection(database_path) as conn:
        rows = conn.execute(
            "SELECT pool_id, avg_hashrate, share, type FROM hashrates"
        ).fetchall()
    assert all(r["type"] == "reported" and r["share"] == -1 for r in rows)
    return {r["pool_id"]: r["avg_hashrate"] for r in rows}


# --- fetch_all ---


class TestFetchAll:
    def test_saves_one_sample_per_source(self, tmp_path):
        config = _make_config(tmp_path)
        _seed(config)
        poller = ReportedHashratePoller(config, build_sources(None))

        with patch("poolrate.sources.adapter.httpx.get", side_effect=_mock_get()):
            result = poller.fetch_all()

        assert result == {"saved": 5, "skipped": 0}
        assert _saved_rows(config.database_path) == {
            111: 180000000000000000000,
            44: 12345600000000,
            73: 5,
            105: 75,
            4: 2,
        }

    def test_samples_share_minute_bucket(self, tmp_path):
        config = _make_config(tmp_path)
        _seed(config)
        poller = ReportedHashratePoller(config, build_sources(None))

        with patch("poolrate.sources.adapter.httpx.get", side_effect=_mock_get()):
            poller.fetch_all()

        with get_connection(config.database_path) as conn:
            stamps = [r[0] for r in conn.execute("SELECT hashrate_timestamp FROM hashrates")]
        assert all(s.endswith(":00+00:00") for s in stamps)

    def test_transport_failure_does_not_block_other_sources(self, tmp_path):
        config = _make_config(tmp_path)
        _seed(config)
        poller = ReportedHashratePoller(config, build_sources(None))
        failures = {
            "https://api.foundryusapool.com/pool_stats": httpx.ConnectTimeout("timed out"),
            "https://www.viabtc.com/res/pool/BTC/state/usd/chart": 502,
        }

        with patch("poolrate.sources.adapter.httpx.get", side_effect=_mock_get(failures)):
            result = poller.fetch_all()

        assert result == {"saved": 3, "skipped": 2}
        assert set(_saved_rows(config.database_path)) == {4, 44, 105}

    def test_empty_body_skips_source(self, tmp_path):
        config = _make_config(tmp_path)
        _seed(config)
        poller = ReportedHashratePoller(config, build_sources(None))
        failures = {"https://pool.binance.com/mining-api/v1/public/pool/index": b""}

        with patch("poolrate.sources.adapter.httpx.get", side_effect=_mock_get(failures)):
            result = poller.fetch_all()

        assert result["skipped"] == 1
        assert 105 not in _saved_rows(config.database_path)

    def test_schema_change_is_logged_and_isolated(self, tmp_path, caplog):
        config = _make_config(tmp_path)
        _seed(config)
        poller = ReportedHashratePoller(config, build_sources(None))
        drifted = dict(_PAYLOADS)
        drifted["https://www.antpool.com/auth/v3/index/poolcoins"] = {"data": {"list": []}}

        with patch.dict(_PAYLOADS, drifted), \
                patch("poolrate.sources.adapter.httpx.get", side_effect=_mock_get()), \
                caplog.at_level(logging.ERROR, logger="poolrate.jobs"):
            result = poller.fetch_all()

        assert result == {"saved": 4, "skipped": 1}
        assert 44 not in _saved_rows(config.database_path)
        assert any(
            "AntPool" in r.getMessage() and "data.items" in r.getMessage()
            for r in caplog.records
        )

    def test_unresolvable_pool_is_skipped_without_persistence(self, tmp_path, caplog):
        config = _make_config(tmp_path)
        _seed(config, pools=[p for p in _POOLS if p.unique_id != 44])
        poller = ReportedHashratePoller(config, build_sources(None))
        saved_ids = []

        def _tracking_save(database_path, sample):
            saved_ids.append(sample.pool_id)
            real_save_hashrate(database_path, sample)

        with patch("poolrate.sources.adapter.httpx.get", side_effect=_mock_get()) as mock_get, \
                patch("poolrate.jobs.save_hashrate", side_effect=_tracking_save), \
                caplog.at_level(logging.ERROR, logger="poolrate.jobs"):
            result = poller.fetch_all()

        assert result == {"saved": 4, "skipped": 1}
        assert 44 not in saved_ids
        assert sorted(saved_ids) == [4, 73, 105, 111]
        requested = [c.args[0] for c in mock_get.call_args_list]
        assert "https://www.antpool.com/auth/v3/index/poolcoins" not in requested
        assert any("unique id 44" in r.getMessage() for r in caplog.records)

    def test_persistence_failure_is_isolated(self, tmp_path):
        config = _make_config(tmp_path)
        _seed(config)
        poller = ReportedHashratePoller(config, build_sources(None))

        def _flaky_save(database_path, sample):
            if sample.pool_id == 111:
                raise sqlite3.OperationalError("database is locked")
            real_save_hashrate(database_path, sample)

        with patch("poolrate.sources.adapter.httpx.get", side_effect=_mock_get()), \
                patch("poolrate.jobs.save_hashrate", side_effect=_flaky_save):
            result = poller.fetch_all()

        assert result == {"saved": 4, "skipped": 1}
        assert set(_saved_rows(config.database_path)) == {4, 44, 73, 105}

    def test_unexpected_error_in_one_source_is_isolated(self, tmp_path, caplog):
        class _BrokenSource(PoolSource):
            name = "broken"
            pool_unique_id = 111
            default_url = "https://api.foundryusapool.com/pool_stats"

            def extract(self, payload):
                raise RuntimeError("boom")

        class _GoodSource(PoolSource):
            name = "good"
            pool_unique_id = 4
            default_url = "https://luxor.tech/_next/data/meXMczO-GZZ-V3Xj2m2Kd/en/mining.json"

            def extract(self, payload):
                return Decimal(7)

        config = _make_config(tmp_path)
        _seed(config)
        poller = ReportedHashratePoller(config, [_BrokenSource(), _GoodSource()])

        with patch("poolrate.sources.adapter.httpx.get", side_effect=_mock_get()), \
                caplog.at_level(logging.ERROR, logger="poolrate.jobs"):
            result = poller.fetch_all()

        assert result == {"saved": 1, "skipped": 1}
        assert _saved_rows(config.database_path) == {4: 7}
        assert any(r.exc_info for r in caplog.records)

    def test_records_pipeline_run(self, tmp_path):
        config = _make_config(tmp_path)
        _seed(config)
        poller = ReportedHashratePoller(config, build_sources(None))

        with patch("poolrate.sources.adapter.httpx.get", side_effect=_mock_get()):
            poller.fetch_all()

        with get_connection(config.database_path) as conn:
            row = conn.execute("SELECT run_type, status, result FROM pipeline_runs").fetchone()
        assert row["run_type"] == "reported_hashrate"
        assert row["status"] == "success"
        assert '"saved": 5' in row["result"]

    def test_same_bucket_twice_keeps_one_row(self, tmp_path):
        config = _make_config(tmp_path)
        _seed(config)
        poller = ReportedHashratePoller(config, build_sources(None))

        with patch("poolrate.sources.adapter.httpx.get", side_effect=_mock_get()), \
                patch("poolrate.jobs.bucket_timestamp") as mock_bucket:
            mock_bucket.return_value = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
            poller.fetch_all()
            poller.fetch_all()

        with get_connection(config.database_path) as conn:
            count = conn.execute("SELECT COUNT(*) FROM hashrates").fetchone()[0]
        assert count == 5

    def test_warns_after_consecutive_failures(self, tmp_path, caplog):
        config = _make_config(tmp_path, source_failure_warn_threshold=2)
        _seed(config)
        poller = ReportedHashratePoller(config, build_sources(None))
        failures = {"https://api.foundryusapool.com/pool_stats": 500}

        with patch("poolrate.sources.adapter.httpx.get", side_effect=_mock_get(failures)), \
                caplog.at_level(logging.WARNING, logger="poolrate.jobs"):
            poller.fetch_all()
            assert not any("consecutive" in r.getMessage() for r in caplog.records)
            poller.fetch_all()

        assert any(
            "'foundry' has failed 2 consecutive" in r.getMessage() for r in caplog.records
        )

    def test_persistence_failures_count_toward_warning(self, tmp_path, caplog):
        config = _make_config(tmp_path, source_failure_warn_threshold=2)
        _seed(config)
        poller = ReportedHashratePoller(config, build_sources(None))

        def _locked_for_foundry(database_path, sample):
            if sample.pool_id == 111:
                raise sqlite3.OperationalError("database is locked")
            real_save_hashrate(database_path, sample)

        with patch("poolrate.sources.adapter.httpx.get", side_effect=_mock_get()), \
                patch("poolrate.jobs.save_hashrate", side_effect=_locked_for_foundry), \
                caplog.at_level(logging.WARNING, logger="poolrate.jobs"):
            poller.fetch_all()
            poller.fetch_all()

        with get_connection(config.database_path) as conn:
            row = conn.execute(
                "SELECT consecutive_failures, last_error FROM source_errors "
                "WHERE source_name = 'foundry'"
            ).fetchone()
        assert row["consecutive_failures"] == 2
        assert "locked" in row["last_error"]
        assert any(
            "'foundry' has failed 2 consecutive" in r.getMessage() for r in caplog.records
        )


class TestSourceErrorTracking:
    def test_failure_count_increments_and_resets(self, tmp_path):
        db_path = str(tmp_path / "test.db")
        init_db(db_path)

        assert _record_source_failure(db_path, "foundry", "timeout") == 1
        assert _record_source_failure(db_path, "foundry", "timeout") == 2
        _record_source_success(db_path, "foundry")
        assert _record_source_failure(db_path, "foundry", "timeout") == 1


# --- tick / RunGuard ---


class TestTick:
    def _poller(self, tmp_path, clock, **overrides):
        config = _make_config(tmp_path, **overrides)
        _seed(config)
        return ReportedHashratePoller(config, build_sources(None), clock=clock)

    def test_non_primary_network_is_noop(self, tmp_path):
        poller = self._poller(tmp_path, FakeClock(), network="testnet")

        with patch.object(poller, "fetch_all") as mock_fetch:
            assert poller.tick() is False

        mock_fetch.assert_not_called()
        assert poller.guard.running is False
        assert poller.guard.last_run is None

    def test_first_tick_runs(self, tmp_path):
        clock = FakeClock()
        poller = self._poller(tmp_path, clock)

        with patch.object(poller, "fetch_all", return_value={}) as mock_fetch:
            assert poller.tick() is True

        mock_fetch.assert_called_once()
        assert poller.guard.last_run == clock.now

    def test_cadence_gate(self, tmp_path):
        clock = FakeClock()
        poller = self._poller(tmp_path, clock)

        with patch.object(poller, "fetch_all", return_value={}) as mock_fetch:
            assert poller.tick() is True
            clock.now += 3599
            assert poller.tick() is False
            clock.now += 1
            assert poller.tick() is True

        assert mock_fetch.call_count == 2

    def test_last_run_is_completion_time(self, tmp_path):
        clock = FakeClock(1000.0)
        poller = self._poller(tmp_path, clock)

        def _slow_cycle():
            clock.now += 120
            return {}

        with patch.object(poller, "fetch_all", side_effect=_slow_cycle):
            poller.tick()

        assert poller.guard.last_run == 1120.0

    def test_failed_cycle_does_not_consume_window(self, tmp_path, caplog):
        clock = FakeClock()
        poller = self._poller(tmp_path, clock)

        with patch.object(poller, "fetch_all", side_effect=[RuntimeError("db gone"), {}]) as mock_fetch, \
                caplog.at_level(logging.ERROR, logger="poolrate.jobs"):
            assert poller.tick() is False
            assert poller.guard.last_run is None
            assert poller.guard.running is False
            assert poller.tick() is True

        assert mock_fetch.call_count == 2
        assert any("Cannot fetch reported hashrates" in r.getMessage() for r in caplog.records)

    def test_failed_cycle_keeps_previous_last_run(self, tmp_path):
        clock = FakeClock()
        poller = self._poller(tmp_path, clock)

        with patch.object(poller, "fetch_all", side_effect=[{}, RuntimeError("boom")]):
            poller.tick()
            first = poller.guard.last_run
            clock.now += 3600
            assert poller.tick() is False

        assert poller.guard.last_run == first

    def test_failed_cycle_is_recorded_as_error_run(self, tmp_path):
        poller = self._poller(tmp_path, FakeClock())

        with patch.object(poller, "fetch_all", side_effect=RuntimeError("db gone")):
            assert poller.tick() is False

        with get_connection(poller._config.database_path) as conn:
            rows = conn.execute(
                "SELECT run_type, status, result, error FROM pipeline_runs"
            ).fetchall()
        assert len(rows) == 1
        assert rows[0]["run_type"] == "reported_hashrate"
        assert rows[0]["status"] == "error"
        assert rows[0]["result"] == "{}"
        assert "failed" in rows[0]["error"]

    def test_run_record_failure_does_not_escape_tick(self, tmp_path, caplog):
        poller = self._poller(tmp_path, FakeClock())

        with patch(
            "poolrate.jobs._record_run", side_effect=sqlite3.OperationalError("locked")
        ), patch("poolrate.sources.adapter.httpx.get", side_effect=_mock_get()), \
                caplog.at_level(logging.ERROR, logger="poolrate.jobs"):
            assert poller.tick() is False

        assert poller.guard.running is False
        assert poller.guard.last_run is None
        assert any(
            "Failed to record failed reported hashrate cycle" in r.getMessage()
            for r in caplog.records
        )

    def test_reentrant_tick_rejected(self, tmp_path):
        poller = self._poller(tmp_path, FakeClock())
        nested_results = []

        def _cycle():
            assert poller.guard.running is True
            nested_results.append(poller.tick())
            return {}

        with patch.object(poller, "fetch_all", side_effect=_cycle) as mock_fetch:
            assert poller.tick() is True

        assert nested_results == [False]
        mock_fetch.assert_called_once()
        assert poller.guard.running is False

    def test_full_cycle_through_tick(self, tmp_path):
        poller = self._poller(tmp_path, FakeClock())

        with patch("poolrate.sources.adapter.httpx.get", side_effect=_mock_get()):
            assert poller.tick() is True

        assert len(_saved_rows(poller._config.database_path)) == 5


class TestRunGuard:
    def test_acquire_and_release(self):
        guard = RunGuard(3600, clock=FakeClock())
        assert guard.try_acquire() is True
        assert guard.try_acquire() is False
        guard.release(success=False)
        assert guard.try_acquire() is True

    def test_success_starts_window(self):
        clock = FakeClock(0.0)
        guard = RunGuard(60, clock=clock)
        guard.try_acquire()
        guard.release(success=True)

        clock.now = 59.9
        assert guard.try_acquire() is False
        clock.now = 60.0
        assert guard.try_acquire() is True

    @pytest.mark.parametrize("success", [True, False])
    def test_release_always_clears_running(self, success):
        guard = RunGuard(3600, clock=FakeClock())
        guard.try_acquire()
        guard.release(success=success)
        assert guard.running is False
