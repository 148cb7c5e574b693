"""CoinMarketCap latest-quotes client (primary live provider)."""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from ...models import MarketItem, RawQuote, SourceProvider
from ..symbols import COINMARKETCAP
from .base import BaseProviderClient, to_float

logger = logging.getLogger(__name__)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class CoinMarketCapClient(BaseProviderClient):
    """Batched quotes: every requested id goes out in a single call.

    CMC keeps a record for a coin it cannot price and nulls its numbers.
    Such a record is a per-symbol absence, the rest of the batch is fine.
    """

    name = COINMARKETCAP
    display_name = "CoinMarketCap"
    default_base_url = "https://pro-api.coinmarketcap.com"
    requires_api_key = True

    def cache_key(self, native_ids: List[str], as_of: Optional[date]) -> str:
        ids = ",".join(sorted(native_ids))
        return f"{self.name}:quotes:{self.config.currency}:{ids}"

    async def fetch_native(self, native_ids: List[str], as_of: Optional[date]) -> Dict[str, RawQuote]:
        url = f"{self.base_url}/v2/cryptocurrency/quotes/latest"
        params = {"id": ",".join(native_ids), "convert": self.config.currency}
        headers = {
            "X-CMC_PRO_API_KEY": self.config.api_key or "",
            "Accept": "application/json",
        }
        data = await self._get_json(url, params=params, headers=headers)
        return self.parse_quotes(data, self.config.currency)

    @staticmethod
    def parse_quotes(payload: Any, currency: str = "USD") -> Dict[str, RawQuote]:
        """Index a quotes response by CMC id.

        The `data` object is keyed by id. Symbol lookups return a list per
        key instead, so both shapes are accepted.
        """
        if not isinstance(payload, dict):
            return {}
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            return {}

        quotes: Dict[str, RawQuote] = {}
        for key, records in data.items():
            if not isinstance(records, list):
                records = [records]
            for record in records:
                if not isinstance(record, dict):
                    continue
                native_id = str(record.get("id", key))
                quote = (record.get("quote") or {}).get(currency) or {}
                quotes[native_id] = RawQuote(
                    native_id=native_id,
                    price=to_float(quote.get("price")),
                    change_24h_pct=to_float(quote.get("percent_change_24h")),
                    change_1h_pct=to_float(quote.get("percent_change_1h")),
                    volume=to_float(quote.get("volume_24h")),
                    market_cap=to_float(quote.get("market_cap")),
                    timestamp=_parse_timestamp(quote.get("last_updated")),
                    extra={"symbol": record.get("symbol"), "name": record.get("name")},
                )
        return quotes

    def normalize(self, symbol: str, raw: RawQuote, source: SourceProvider) -> MarketItem:
        return MarketItem(
            token=symbol,
            last_price=raw.price,
            day_change_pct=raw.change_24h_pct,
            intra_change_pct=raw.change_1h_pct,
            volume_24h=raw.volume,
            market_cap=raw.market_cap,
            source_provider=source,
            provider=self.name,
        )
