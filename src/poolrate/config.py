"""Configuration loading and validation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

PRIMARY_NETWORK = "mainnet"


@dataclass(frozen=True)
class Config:
    """Application configuration. All values sourced from environment variables."""

    # Required
    database_path: str

    # Optional: Network
    network: str = PRIMARY_NETWORK

    # Optional: Polling
    tick_interval_minutes: int = 5
    run_interval_seconds: int = 3600
    http_timeout_seconds: float = 30.0
    http_user_agent: str = "poolrate/0.1"
    sources_config_path: str = "./config/sources.json"
    pools_config_path: str = "./config/pools.json"
    source_failure_warn_threshold: int = 3

    # Optional: Application
    log_level: str = "INFO"
    log_format: str = "json"
    app_env: str = "production"

    @property
    def is_primary_network(self) -> bool:
        return self.network == PRIMARY_NETWORK


_REQUIRED_VARS = [
    "DATABASE_PATH",
]


def load_config(env_path: str | Path | None = None) -> Config:
    """Load configuration from environment variables.

    Loads a .env file if present (for local development), then validates
    that all required variables are set. Raises ValueError listing any
    missing variables.
    """
    load_dotenv(dotenv_path=env_path)

    missing = [var for var in _REQUIRED_VARS if not os.environ.get(var)]
    if missing:
        raise ValueError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    return Config(
        # Required
        database_path=os.environ["DATABASE_PATH"],
        # Optional: Network
        network=os.environ.get("NETWORK", PRIMARY_NETWORK),
        # Optional: Polling
        tick_interval_minutes=int(os.environ.get("TICK_INTERVAL_MINUTES", "5")),
        run_interval_seconds=int(os.environ.get("RUN_INTERVAL_SECONDS", "3600")),
        http_timeout_seconds=float(os.environ.get("HTTP_TIMEOUT_SECONDS", "30")),
        http_user_agent=os.environ.get("HTTP_USER_AGENT", "poolrate/0.1"),
        sources_config_path=os.environ.get("SOURCES_CONFIG_PATH", "./config/sources.json"),
        pools_config_path=os.environ.get("POOLS_CONFIG_PATH", "./config/pools.json"),
        source_failure_warn_threshold=int(
            os.environ.get("SOURCE_FAILURE_WARN_THRESHOLD", "3")
        ),
        # Optional: Application
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        log_format=os.environ.get("LOG_FORMAT", "json"),
        app_env=os.environ.get("APP_ENV", "production"),
    )
