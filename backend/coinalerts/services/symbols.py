"""Symbol registry.

Maps a token symbol (e.g. "BTC") to each provider's native identifier:
- CoinMarketCap: numeric id
- Polygon: crypto ticker (e.g. "X:BTCUSD")
- CoinGecko: coin slug (e.g. "bitcoin")

A symbol without a mapping for a provider is unsupported by that provider.
Callers treat that as a skip signal, never as a failure.
"""

import logging
from threading import Lock
from typing import Dict, List, Optional

from ..models import is_valid_symbol, normalize_symbol

logger = logging.getLogger(__name__)

COINMARKETCAP = "coinmarketcap"
POLYGON = "polygon"
COINGECKO = "coingecko"

PROVIDERS = (COINMARKETCAP, POLYGON, COINGECKO)

COINMARKETCAP_IDS: Dict[str, str] = {
    "BTC": "1",
    "LTC": "2",
    "XRP": "52",
    "DOGE": "74",
    "XLM": "512",
    "USDT": "825",
    "ETH": "1027",
    "BCH": "1831",
    "BNB": "1839",
    "LINK": "1975",
    "ADA": "2010",
    "TRX": "1958",
    "ATOM": "3794",
    "MATIC": "3890",
    "USDC": "3408",
    "SOL": "5426",
    "DOT": "6636",
    "UNI": "7083",
    "AVAX": "5805",
    "SHIB": "5994",
    "FLOKI": "10804",
    "PEPE": "24478",
    "BONK": "23095",
    "TAO": "22974",
    "WIF": "28752",
    "POL": "28321",
}

POLYGON_TICKERS: Dict[str, str] = {
    "BTC": "X:BTCUSD",
    "ETH": "X:ETHUSD",
    "USDC": "X:USDCUSD",
    "MATIC": "X:MATICUSD",
    "DOGE": "X:DOGEUSD",
    "ADA": "X:ADAUSD",
    "SOL": "X:SOLUSD",
    "POL": "X:POLUSD",
    "UNI": "X:UNIUSD",
    "LINK": "X:LINKUSD",
    "LTC": "X:LTCUSD",
    "XRP": "X:XRPUSD",
    "DOT": "X:DOTUSD",
    "AVAX": "X:AVAXUSD",
}

# Curated CoinGecko ids. Several coins share popular tickers, so these win
# over whatever a symbol search returns first.
COINGECKO_IDS: Dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "USDT": "tether",
    "BNB": "binancecoin",
    "SOL": "solana",
    "XRP": "ripple",
    "USDC": "usd-coin",
    "ADA": "cardano",
    "DOGE": "dogecoin",
    "TRX": "tron",
    "AVAX": "avalanche-2",
    "SHIB": "shiba-inu",
    "DOT": "polkadot",
    "MATIC": "matic-network",
    "LTC": "litecoin",
    "UNI": "uniswap",
    "LINK": "chainlink",
    "ATOM": "cosmos",
    "XLM": "stellar",
    "BCH": "bitcoin-cash",
    "PEPE": "pepe",
    "WIF": "dogwifcoin",
    "BONK": "bonk",
    "FLOKI": "floki",
    "TAO": "bittensor",
    "POL": "polygon-ecosystem-token",
}

DEFAULT_SYMBOLS = ["BTC", "ETH", "SOL", "USDC", "DOGE", "ADA", "POL", "UNI", "LINK", "TAO"]


class SymbolRegistry:
    """Static symbol → provider id tables plus user-registered symbols."""

    def __init__(
        self,
        mappings: Optional[Dict[str, Dict[str, str]]] = None,
        default_symbols: Optional[List[str]] = None,
    ):
        if mappings is None:
            mappings = {
                COINMARKETCAP: COINMARKETCAP_IDS,
                POLYGON: POLYGON_TICKERS,
                COINGECKO: COINGECKO_IDS,
            }
        self._mappings: Dict[str, Dict[str, str]] = {
            provider: dict(table) for provider, table in mappings.items()
        }
        self._symbols: Dict[str, None] = {}
        for table in self._mappings.values():
            for symbol in table:
                self._symbols.setdefault(symbol, None)
        self._default_symbols = list(default_symbols or DEFAULT_SYMBOLS)
        self._lock = Lock()

    def resolve(self, provider: str, symbol: str) -> Optional[str]:
        """Return the provider-native id for a symbol, or None if unsupported."""
        return self._mappings.get(provider, {}).get(normalize_symbol(symbol))

    def resolve_many(self, provider: str, symbols: List[str]) -> Dict[str, str]:
        """Map the supported subset of symbols to native ids, keeping order."""
        resolved = {}
        for symbol in symbols:
            native_id = self.resolve(provider, symbol)
            if native_id is None:
                logger.debug(f"{symbol} is unsupported by {provider}, skipping")
                continue
            resolved[symbol] = native_id
        return resolved

    def is_known(self, symbol: str) -> bool:
        return normalize_symbol(symbol) in self._symbols

    def register(self, symbol: str, mappings: Optional[Dict[str, str]] = None) -> str:
        """Register a symbol, optionally with provider ids.

        Args:
            symbol: Token symbol; must match [A-Z0-9]{2,10} after uppercasing
            mappings: Optional provider name → native id, for providers
                that have no id for this symbol yet

        Returns:
            The normalized symbol

        Raises:
            ValueError: If the symbol or a provider name is invalid, or a
                provider already has an id for the symbol
        """
        symbol = normalize_symbol(symbol)
        if not is_valid_symbol(symbol):
            raise ValueError(f"Invalid token symbol: {symbol!r}")

        mappings = mappings or {}
        unknown = [p for p in mappings if p not in PROVIDERS]
        if unknown:
            raise ValueError(f"Unknown provider(s): {', '.join(unknown)}")

        with self._lock:
            # Existing ids are never replaced
            taken = [
                f"{provider}={self._mappings[provider][symbol]}"
                for provider in mappings
                if symbol in self._mappings.get(provider, {})
            ]
            if taken:
                raise ValueError(f"{symbol} is already mapped ({', '.join(taken)})")

            for provider, native_id in mappings.items():
                if native_id:
                    self._mappings.setdefault(provider, {})[symbol] = str(native_id)
            self._symbols.setdefault(symbol, None)

        logger.info(f"Registered symbol {symbol} (providers: {sorted(mappings) or 'dynamic lookup only'})")
        return symbol

    def symbols(self) -> List[str]:
        return list(self._symbols)

    def supported_by(self, provider: str) -> List[str]:
        return list(self._mappings.get(provider, {}))

    def mappings_for(self, symbol: str) -> Dict[str, str]:
        symbol = normalize_symbol(symbol)
        return {
            provider: table[symbol]
            for provider, table in self._mappings.items()
            if symbol in table
        }

    def default_symbols(self) -> List[str]:
        return list(self._default_symbols)

    def set_default_symbols(self, symbols: List[str]) -> None:
        self._default_symbols = [normalize_symbol(s) for s in symbols]


# Global instance
symbol_registry = SymbolRegistry()
