"""Web API configuration: bind address and database path for the read-only API."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True)
class WebConfig:
    """Settings for the uvicorn server that serves pools, samples and runs."""

    # Required
    database_path: str

    # Optional
    web_host: str = "0.0.0.0"
    web_port: int = 8080
    log_level: str = "INFO"


def _parse_port(raw: str) -> int:
    try:
        port = int(raw)
    except ValueError:
        raise ValueError(f"WEB_PORT must be an integer, got {raw!r}") from None
    if not 0 < port < 65536:
        raise ValueError(f"WEB_PORT out of range: {port}")
    return port


def load_web_config(env_path: str | Path | None = None) -> WebConfig:
    """Load web configuration from environment variables.

    Shares DATABASE_PATH with the poller config; WEB_HOST and WEB_PORT
    choose where uvicorn binds. Raises ValueError if DATABASE_PATH is
    missing or WEB_PORT is not a valid port.
    """
    load_dotenv(dotenv_path=env_path)

    if not os.environ.get("DATABASE_PATH"):
        raise ValueError("Missing required environment variable: DATABASE_PATH")

    return WebConfig(
        database_path=os.environ["DATABASE_PATH"],
        web_host=os.environ.get("WEB_HOST", "0.0.0.0"),
        web_port=_parse_port(os.environ.get("WEB_PORT", "8080")),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )
