"""Luxor source: scraped from the Next.js data route of the mining page.

The default URL embeds a site build id which changes on every Luxor
deploy; override it through the sources file when it starts returning 404.
"""

from __future__ import annotations

from decimal import Decimal

from poolrate.sources.adapter import PoolSource, dig
from poolrate.sources.normalize import to_decimal


class LuxorSource(PoolSource):
    name = "luxor"
    pool_unique_id = 4
    default_url = "https://luxor.tech/_next/data/meXMczO-GZZ-V3Xj2m2Kd/en/mining.json"
    unit_scale = Decimal(10) ** -9
    round_result = True
    coin = "BTC"

    def extract(self, payload: object) -> Decimal:
        return to_decimal(dig(payload, "pageProps", "coinData", self.coin, "poolHashrate"))
