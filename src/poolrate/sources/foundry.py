"""Foundry USA source: hashrate is a top-level number already in H/s."""

from __future__ import annotations

from decimal import Decimal

from poolrate.sources.adapter import PoolSource, dig
from poolrate.sources.normalize import to_decimal


class FoundrySource(PoolSource):
    name = "foundry"
    pool_unique_id = 111
    default_url = "https://api.foundryusapool.com/pool_stats"

    def extract(self, payload: object) -> Decimal:
        return to_decimal(dig(payload, "hashrate1hrAvg"))
