"""ViaBTC source: a chart time series; the newest point is the last element."""

from __future__ import annotations

from decimal import Decimal

from poolrate.sources.adapter import PoolSource, dig
from poolrate.sources.normalize import to_decimal


class ViaBTCSource(PoolSource):
    name = "viabtc"
    pool_unique_id = 73
    default_url = "https://www.viabtc.com/res/pool/BTC/state/usd/chart"
    unit_scale = Decimal(10) ** -9
    round_result = True

    def extract(self, payload: object) -> Decimal:
        return to_decimal(dig(payload, "data", "viabtc_hash", -1))
