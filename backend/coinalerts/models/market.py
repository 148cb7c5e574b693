"""Market data models shared by providers, the aggregator and the API."""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

SYMBOL_PATTERN = re.compile(r"^[A-Z0-9]{2,10}$")


def is_valid_symbol(symbol: str) -> bool:
    """Check a token symbol against the registry format."""
    return bool(SYMBOL_PATTERN.match(symbol or ""))


def normalize_symbol(symbol: str) -> str:
    """Uppercase and strip a user supplied symbol."""
    return (symbol or "").strip().upper()


class SourceProvider(str, Enum):
    """Which tier resolved a market item."""
    PRIMARY = "primary"
    FALLBACK = "fallback"
    UNAVAILABLE = "unavailable"


@dataclass
class RawQuote:
    """Provider-native quote before normalization.

    Every numeric field is optional because providers commonly return a
    record for a symbol with null values instead of omitting it.
    """
    native_id: str
    price: Optional[float] = None
    open: Optional[float] = None
    close: Optional[float] = None
    change_24h_pct: Optional[float] = None
    change_1h_pct: Optional[float] = None
    volume: Optional[float] = None
    market_cap: Optional[float] = None
    timestamp: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MarketItem:
    """One token's resolved market facts."""
    token: str
    last_price: Optional[float] = None
    day_change_pct: Optional[float] = None
    intra_change_pct: Optional[float] = None
    volume_24h: Optional[float] = None
    market_cap: Optional[float] = None
    source_provider: SourceProvider = SourceProvider.UNAVAILABLE
    provider: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.last_price is not None

    @classmethod
    def unavailable(cls, token: str, error: str) -> "MarketItem":
        """Build a degraded item. Numeric fields stay absent."""
        return cls(token=token, source_provider=SourceProvider.UNAVAILABLE, error=error)


@dataclass(frozen=True)
class MarketSnapshot:
    """Ordered market items for one aggregation call."""
    items: Tuple[MarketItem, ...]
    retrieved_at: datetime
    note: str
    as_of: Optional[date] = None

    def get(self, token: str) -> Optional[MarketItem]:
        for item in self.items:
            if item.token == token:
                return item
        return None

    @property
    def resolved_count(self) -> int:
        return sum(1 for item in self.items if item.is_resolved)
