"""Binance Pool source."""

from __future__ import annotations

from decimal import Decimal

from poolrate.sources.adapter import PoolSource, dig
from poolrate.sources.normalize import to_decimal


class BinancePoolSource(PoolSource):
    name = "binance"
    pool_unique_id = 105
    default_url = "https://pool.binance.com/mining-api/v1/public/pool/index"
    unit_scale = Decimal(10) ** -9
    round_result = True

    def extract(self, payload: object) -> Decimal:
        # poolHash is a numeric string
        return to_decimal(dig(payload, "data", "algoList", 0, "poolHash"))
