# Domain Models

from .market import (
    SYMBOL_PATTERN,
    MarketItem,
    MarketSnapshot,
    RawQuote,
    SourceProvider,
    is_valid_symbol,
    normalize_symbol,
)
from .alert import AlertSeverity, AutoAlert

__all__ = [
    "SYMBOL_PATTERN",
    "MarketItem",
    "MarketSnapshot",
    "RawQuote",
    "SourceProvider",
    "is_valid_symbol",
    "normalize_symbol",
    "AlertSeverity",
    "AutoAlert",
]
