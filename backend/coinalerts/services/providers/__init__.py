# Market Data Provider Clients

from .base import (
    BaseProviderClient,
    MarketDataUnavailableException,
    ProviderConfig,
    ProviderStatus,
    ProviderUnavailableException,
    RawQuoteMap,
    to_datetime,
    to_float,
)
from .coinmarketcap import CoinMarketCapClient
from .polygon import PolygonGroupedClient, pct_change
from .coingecko import (
    Ambiguous,
    CoinGeckoClient,
    Found,
    LookupResult,
    NotFound,
    match_symbol,
)

__all__ = [
    "BaseProviderClient",
    "MarketDataUnavailableException",
    "ProviderConfig",
    "ProviderStatus",
    "ProviderUnavailableException",
    "RawQuoteMap",
    "to_datetime",
    "to_float",
    "CoinMarketCapClient",
    "PolygonGroupedClient",
    "pct_change",
    "CoinGeckoClient",
    "Found",
    "Ambiguous",
    "NotFound",
    "LookupResult",
    "match_symbol",
]
