"""Application entry point: runs the poller scheduler + web server in a single process."""

from __future__ import annotations

import json
import logging
import sys
import threading
from contextlib import asynccontextmanager

import uvicorn
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

import poolrate.sources  # noqa: F401 triggers source registration
from poolrate.config import Config, load_config
from poolrate.jobs import ReportedHashratePoller
from poolrate.sources.registry import build_sources
from poolrate.storage import init_db
from poolrate.storage.pools import import_pools
from poolrate.web.app import create_app
from poolrate.web.config import load_web_config

logger = logging.getLogger("poolrate")


def _setup_logging(log_level: str, log_format: str) -> None:
    """Configure root logger based on config."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps(
                {
                    "time": "%(asctime)s",
                    "level": "%(levelname)s",
                    "logger": "%(name)s",
                    "message": "%(message)s",
                }
            )
        )
    else:
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)


def _build_scheduler(config: Config, poller: ReportedHashratePoller) -> BackgroundScheduler:
    """Create a BackgroundScheduler that ticks the poller on a fixed interval."""
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        poller.tick,
        trigger=IntervalTrigger(minutes=config.tick_interval_minutes),
        id="reported_hashrate",
        name="Pool reported hashrate",
        max_instances=1,
        coalesce=True,
    )
    return scheduler


def main() -> None:
    """Load config, set up logging, and start scheduler + web server."""
    config = load_config()
    web_config = load_web_config()

    _setup_logging(config.log_level, config.log_format)

    logger.info(
        "poolrate starting (env=%s, network=%s, db=%s)",
        config.app_env,
        config.network,
        config.database_path,
    )

    init_db(config.database_path)
    import_pools(config.database_path, config.pools_config_path)

    sources = build_sources(config.sources_config_path)
    logger.info("Configured sources: %s", ", ".join(s.name for s in sources) or "none")
    if not config.is_primary_network:
        logger.info("Network '%s' is not mainnet; reported hashrate polling disabled", config.network)

    poller = ReportedHashratePoller(config, sources)
    scheduler = _build_scheduler(config, poller)

    def _initial_tick():
        """Run one tick at startup in a background thread."""
        logger.info("Running initial reported hashrate tick")
        poller.tick()

    @asynccontextmanager
    async def lifespan(app):
        logger.info("Scheduler starting")
        scheduler.start()
        # Tick in background so web server is available immediately
        threading.Thread(target=_initial_tick, daemon=True).start()
        yield
        logger.info("Scheduler shutting down")
        scheduler.shutdown(wait=False)

    app = create_app(web_config, lifespan=lifespan)

    uvicorn.run(app, host=web_config.web_host, port=web_config.web_port)


if __name__ == "__main__":
    main()
