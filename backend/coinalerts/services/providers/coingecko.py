"""CoinGecko spot-price client (fallback provider).

Used only for symbols the primary provider could not price. CoinGecko keys
coins by slug, and many coins share a ticker, so ids are resolved in two
tiers:
1. the registry's curated table
2. a search over the (cached) full coin list

The lookup returns a tagged result instead of a bare id or None.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Tuple, Union

from ...models import MarketItem, RawQuote, SourceProvider, normalize_symbol
from ..cache import BaseCache
from ..symbols import COINGECKO, COINGECKO_IDS, SymbolRegistry
from .base import BaseProviderClient, ProviderConfig, ProviderUnavailableException, to_datetime, to_float

logger = logging.getLogger(__name__)

COIN_LIST_CACHE_KEY = f"{COINGECKO}:coins:list"


@dataclass(frozen=True)
class Found:
    coin_id: str


@dataclass(frozen=True)
class Ambiguous:
    candidates: Tuple[str, ...]


@dataclass(frozen=True)
class NotFound:
    pass


LookupResult = Union[Found, Ambiguous, NotFound]


def match_symbol(
    symbol: str,
    coins: List[Dict[str, Any]],
    well_known: Optional[Dict[str, str]] = None,
) -> LookupResult:
    """Pick a coin id for a ticker from the CoinGecko coin list.

    Exact ticker matches beat fuzzy ones (slug or name equal to the ticker).
    Among several exact matches the well-known id wins; without one the
    result is Ambiguous rather than an arbitrary first match.
    """
    symbol = normalize_symbol(symbol)
    well_known = COINGECKO_IDS if well_known is None else well_known

    exact = [c["id"] for c in coins if str(c.get("symbol", "")).upper() == symbol and c.get("id")]
    if len(exact) == 1:
        return Found(exact[0])
    if exact:
        preferred = well_known.get(symbol)
        if preferred in exact:
            return Found(preferred)
        return Ambiguous(tuple(exact))

    lowered = symbol.lower()
    fuzzy = [
        c["id"] for c in coins
        if c.get("id") and (c["id"].lower() == lowered or str(c.get("name", "")).lower() == lowered)
    ]
    if len(fuzzy) == 1:
        return Found(fuzzy[0])
    if fuzzy:
        return Ambiguous(tuple(fuzzy))
    return NotFound()


class CoinGeckoClient(BaseProviderClient):
    """Spot price, 24h change, 24h volume and market cap per coin."""

    name = COINGECKO
    display_name = "CoinGecko"
    default_base_url = "https://api.coingecko.com/api/v3"

    def __init__(
        self,
        config: ProviderConfig,
        registry: SymbolRegistry,
        cache: Optional[BaseCache] = None,
        coin_list_ttl_seconds: int = 6 * 3600,
        price_ttl_seconds: int = 60,
    ):
        super().__init__(config, registry)
        self.cache = cache
        self.coin_list_ttl_seconds = coin_list_ttl_seconds
        self.price_ttl_seconds = price_ttl_seconds

    def _headers(self) -> Dict[str, str]:
        if self.config.api_key:
            return {"x-cg-demo-api-key": self.config.api_key}
        return {}

    def cache_key(self, native_ids: List[str], as_of: Optional[date]) -> str:
        ids = ",".join(sorted(native_ids))
        return f"{self.name}:simple:{self.config.currency.lower()}:{ids}"

    async def coin_list(self) -> List[Dict[str, Any]]:
        """Full coin list ({id, symbol, name}), cached because it is large."""
        if self.cache is not None:
            cached = self.cache.get(COIN_LIST_CACHE_KEY)
            if cached is not None:
                return cached

        data = await self._get_json(f"{self.base_url}/coins/list", headers=self._headers())
        coins = [c for c in data if isinstance(c, dict)] if isinstance(data, list) else []
        logger.info(f"Fetched {len(coins)} coins from CoinGecko")

        if self.cache is not None:
            self.cache.set(COIN_LIST_CACHE_KEY, coins, self.coin_list_ttl_seconds)
        return coins

    async def lookup(self, symbol: str) -> LookupResult:
        """Resolve a symbol to a coin id: curated table first, then search."""
        curated = self.registry.resolve(self.name, symbol)
        if curated:
            return Found(curated)
        return match_symbol(symbol, await self.coin_list())

    async def fetch_batch(self, symbols: List[str], as_of: Optional[date] = None) -> Dict[str, RawQuote]:
        """Fetch prices for symbols in one /simple/price call.

        A failing coin list only costs the symbols that needed a search;
        curated symbols in the same batch are still priced.
        """
        ids: Dict[str, str] = {}
        search_down = False
        for symbol in symbols:
            if search_down and not self.registry.resolve(self.name, symbol):
                continue
            try:
                result = await self.lookup(symbol)
            except ProviderUnavailableException as e:
                search_down = True
                logger.warning(f"CoinGecko coin search unavailable, skipping uncurated symbols: {e}")
                continue

            if isinstance(result, Found):
                ids[symbol] = result.coin_id
            elif isinstance(result, Ambiguous):
                logger.info(
                    f"{symbol} is ambiguous on CoinGecko ({len(result.candidates)} coins), skipping"
                )
            else:
                logger.debug(f"{symbol} not listed on CoinGecko")

        if not ids:
            return {}

        native = await self.fetch_native(list(dict.fromkeys(ids.values())), as_of)
        return {
            symbol: native[coin_id]
            for symbol, coin_id in ids.items()
            if coin_id in native
        }

    async def fetch_native(self, native_ids: List[str], as_of: Optional[date]) -> Dict[str, RawQuote]:
        """Spot prices by coin id, cached for price_ttl_seconds."""
        key = self.cache_key(native_ids, as_of)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Cache hit: {key}")
                return cached

        currency = self.config.currency.lower()
        params = {
            "ids": ",".join(native_ids),
            "vs_currencies": currency,
            "include_24hr_change": "true",
            "include_24hr_vol": "true",
            "include_market_cap": "true",
            "include_last_updated_at": "true",
        }
        data = await self._get_json(f"{self.base_url}/simple/price", params=params, headers=self._headers())
        quotes = self.parse_prices(data, currency)

        if self.cache is not None:
            self.cache.set(key, quotes, self.price_ttl_seconds)
        return quotes

    @staticmethod
    def parse_prices(payload: Any, currency: str = "usd") -> Dict[str, RawQuote]:
        """Index a /simple/price response ({coin_id: {usd: ..., ...}}) by coin id."""
        if not isinstance(payload, dict):
            return {}

        quotes: Dict[str, RawQuote] = {}
        for coin_id, data in payload.items():
            if not isinstance(data, dict):
                continue
            quotes[coin_id] = RawQuote(
                native_id=coin_id,
                price=to_float(data.get(currency)),
                change_24h_pct=to_float(data.get(f"{currency}_24h_change")),
                volume=to_float(data.get(f"{currency}_24h_vol")),
                market_cap=to_float(data.get(f"{currency}_market_cap")),
                timestamp=to_datetime(data.get("last_updated_at")),
            )
        return quotes

    def normalize(self, symbol: str, raw: RawQuote, source: SourceProvider) -> MarketItem:
        return MarketItem(
            token=symbol,
            last_price=raw.price,
            day_change_pct=raw.change_24h_pct,
            intra_change_pct=None,
            volume_24h=raw.volume,
            market_cap=raw.market_cap,
            source_provider=source,
            provider=self.name,
        )
