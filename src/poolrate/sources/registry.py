"""Source registry: maps type strings to pool source classes."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from poolrate.sources.adapter import PoolSource

logger = logging.getLogger(__name__)

_REGISTRY: dict[str, type[PoolSource]] = {}


def register_source(type_name: str, cls: type[PoolSource]) -> None:
    """Register a source class for a given type name."""
    _REGISTRY[type_name] = cls


def get_source_class(type_name: str) -> type[PoolSource] | None:
    """Look up a source class by type name. Returns None if not found."""
    return _REGISTRY.get(type_name)


def registered_types() -> list[str]:
    """Return a sorted list of all registered source type names."""
    return sorted(_REGISTRY)


def _load_overrides(config_path: str | Path | None) -> dict[str, dict]:
    if config_path is None:
        return {}
    path = Path(config_path)
    if not path.is_file():
        logger.info("Sources file %s not found, using built-in defaults", path)
        return {}

    with open(path) as f:
        data = json.load(f)

    overrides: dict[str, dict] = {}
    for entry in data.get("sources", []):
        type_name = entry.get("type", "")
        if type_name not in _REGISTRY:
            logger.warning("Unknown source type '%s', skipping", type_name)
            continue
        overrides[type_name] = entry
    return overrides


def build_sources(config_path: str | Path | None = None) -> tuple[PoolSource, ...]:
    """Instantiate every enabled source, applying the optional sources file.

    Entries in the file may disable a type or override its URL. Registered
    types that the file does not mention are enabled with their defaults.
    Raises ValueError when two enabled sources share a pool id.
    """
    overrides = _load_overrides(config_path)

    sources: list[PoolSource] = []
    seen_pool_ids: dict[int, str] = {}
    for type_name, cls in _REGISTRY.items():
        entry = overrides.get(type_name, {})
        if not entry.get("enabled", True):
            logger.info("Source '%s' disabled by configuration", type_name)
            continue

        source = cls(url=entry.get("url"))
        if source.pool_unique_id in seen_pool_ids:
            raise ValueError(
                f"Sources '{seen_pool_ids[source.pool_unique_id]}' and '{type_name}' "
                f"both report pool {source.pool_unique_id}"
            )
        seen_pool_ids[source.pool_unique_id] = type_name
        sources.append(source)

    return tuple(sources)
