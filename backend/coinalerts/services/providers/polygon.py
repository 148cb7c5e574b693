"""Polygon grouped end-of-day client.

One call per calendar date returns open/close for every crypto ticker, so
the result is indexed by Polygon ticker ("X:BTCUSD") and cached per date.
The free tier only serves completed days; the default window is the
previous UTC calendar day.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from ...models import MarketItem, RawQuote, SourceProvider
from ..symbols import POLYGON
from .base import BaseProviderClient, to_datetime, to_float

logger = logging.getLogger(__name__)


def pct_change(open_price: Optional[float], close_price: Optional[float]) -> Optional[float]:
    """Percentage change from open to close; None unless open > 0."""
    if open_price is None or close_price is None or open_price <= 0:
        return None
    return (close_price - open_price) / open_price * 100


class PolygonGroupedClient(BaseProviderClient):
    """Grouped daily aggregates for the global crypto market."""

    name = POLYGON
    display_name = "Polygon"
    default_base_url = "https://api.polygon.io"
    requires_api_key = True

    def resolve_window(self, as_of: Optional[date]) -> date:
        if as_of is not None:
            return as_of
        return datetime.now(timezone.utc).date() - timedelta(days=1)

    def describe(self, window: Optional[date]) -> str:
        return f"End-of-day aggregates for {window.isoformat()} via Polygon (free tier)."

    def cache_key(self, native_ids: List[str], as_of: Optional[date]) -> str:
        # The grouped call returns every ticker, so ids don't discriminate
        return f"{self.name}:grouped:{self.resolve_window(as_of).isoformat()}"

    async def fetch_native(self, native_ids: List[str], as_of: Optional[date]) -> Dict[str, RawQuote]:
        window = self.resolve_window(as_of)
        url = f"{self.base_url}/v2/aggs/grouped/locale/global/market/crypto/{window.isoformat()}"
        params = {"adjusted": "true", "apiKey": self.config.api_key or ""}
        data = await self._get_json(url, params=params)
        quotes = self.parse_grouped(data)
        logger.debug(f"Polygon grouped {window}: {len(quotes)} tickers")
        return quotes

    @staticmethod
    def parse_grouped(payload: Any) -> Dict[str, RawQuote]:
        """Index a grouped-daily response by ticker."""
        if not isinstance(payload, dict):
            return {}

        quotes: Dict[str, RawQuote] = {}
        for record in payload.get("results") or []:
            ticker = record.get("T")
            if not ticker:
                continue
            close = to_float(record.get("c"))
            vwap = to_float(record.get("vw"))
            base_volume = to_float(record.get("v"))
            ref_price = vwap if vwap is not None else close

            quotes[ticker] = RawQuote(
                native_id=ticker,
                price=close,
                open=to_float(record.get("o")),
                close=close,
                # Polygon reports base-asset volume; convert to quote currency
                volume=base_volume * ref_price if base_volume is not None and ref_price is not None else None,
                timestamp=to_datetime(record.get("t"), scale=1000),
                extra={"high": to_float(record.get("h")), "low": to_float(record.get("l")), "vwap": vwap},
            )
        return quotes

    def normalize(self, symbol: str, raw: RawQuote, source: SourceProvider) -> MarketItem:
        return MarketItem(
            token=symbol,
            last_price=raw.close,
            day_change_pct=pct_change(raw.open, raw.close),
            intra_change_pct=None,
            volume_24h=raw.volume,
            market_cap=None,
            source_provider=source,
            provider=self.name,
        )
