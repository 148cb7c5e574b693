# Business Logic Services

from .config import (
    ConfigService,
    config_service,
    ConfigValidationException,
    ConfigValidationError,
)
from .logging_service import configure_logging
from .symbols import (
    SymbolRegistry,
    symbol_registry,
)
from .cache import (
    BaseCache,
    TTLCache,
    CacheStats,
    market_cache,
)
from .auto_alerts import (
    AutoAlertGenerator,
    AlertThresholds,
    classify_move,
)
from .market_data import (
    MarketAggregator,
    MarketDataService,
    MarketSettings,
    market_data_service,
)

__all__ = [
    # Config
    "ConfigService",
    "config_service",
    "ConfigValidationException",
    "ConfigValidationError",
    # Logging
    "configure_logging",
    # Symbols
    "SymbolRegistry",
    "symbol_registry",
    # Cache
    "BaseCache",
    "TTLCache",
    "CacheStats",
    "market_cache",
    # Alerts
    "AutoAlertGenerator",
    "AlertThresholds",
    "classify_move",
    # Market data
    "MarketAggregator",
    "MarketDataService",
    "MarketSettings",
    "market_data_service",
]
