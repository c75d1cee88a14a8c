"""AntPool source: hashrate is a display string such as ``"612.34 EH/s"``.

Only the numeric prefix is used; the figure is treated as GH/s regardless
of the suffix.
"""

from __future__ import annotations

from decimal import Decimal

from poolrate.sources.adapter import PoolSource, dig
from poolrate.sources.normalize import parse_numeric_prefix


class AntPoolSource(PoolSource):
    name = "antpool"
    pool_unique_id = 44
    default_url = "https://www.antpool.com/auth/v3/index/poolcoins"
    unit_scale = Decimal(10) ** 9

    def extract(self, payload: object) -> Decimal:
        return parse_numeric_prefix(dig(payload, "data", "items", 0, "poolHashrate"))
