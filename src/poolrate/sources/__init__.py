"""Pool hashrate sources: one adapter per pool statistics API."""

from poolrate.sources.antpool import AntPoolSource
from poolrate.sources.binance import BinancePoolSource
from poolrate.sources.foundry import FoundrySource
from poolrate.sources.luxor import LuxorSource
from poolrate.sources.registry import register_source
from poolrate.sources.viabtc import ViaBTCSource

register_source("foundry", FoundrySource)
register_source("antpool", AntPoolSource)
register_source("viabtc", ViaBTCSource)
register_source("binance", BinancePoolSource)
register_source("luxor", LuxorSource)
