"""Market data aggregation service.

Builds a MarketSnapshot for a set of token symbols from several providers:
- Primary: one batched call per window (Polygon grouped EOD or CoinMarketCap
  quotes), cached with a TTL chosen per data class
- Fallback: CoinGecko spot prices, only for symbols the primary left
  without a price

Fallback calls start only after the primary result has been merged. Per
symbol failures end up in MarketItem.error; only a batch where every
attempted provider call failed raises MarketDataUnavailableException.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple, Union

from ..models import AutoAlert, MarketItem, MarketSnapshot, SourceProvider, normalize_symbol
from .auto_alerts import AlertThresholds, AutoAlertGenerator
from .cache import BaseCache, market_cache
from .config import ConfigService, config_service
from .providers import (
    BaseProviderClient,
    CoinGeckoClient,
    CoinMarketCapClient,
    MarketDataUnavailableException,
    PolygonGroupedClient,
    ProviderConfig,
    ProviderStatus,
    ProviderUnavailableException,
    RawQuoteMap,
)
from .symbols import COINGECKO, COINMARKETCAP, POLYGON, SymbolRegistry, symbol_registry

logger = logging.getLogger(__name__)

ERROR_UNSUPPORTED = "unsupported"
ERROR_EOD_ONLY = "unavailable (EOD only)"
ERROR_NO_PRICE = "no price from primary provider"
ERROR_PRIMARY_DOWN = "primary provider unavailable"
ERROR_FALLBACK_DOWN = "fallback provider unavailable"
ERROR_TIMED_OUT = "timed out"

FallbackOutcome = Union[RawQuoteMap, ProviderUnavailableException, asyncio.TimeoutError]


@dataclass
class MarketSettings:
    """Market engine settings, read from the `market`, `providers` and `alerts` sections."""
    primary_provider: str = POLYGON
    currency: str = "USD"
    default_symbols: List[str] = field(default_factory=list)
    request_timeout_seconds: float = 12.0
    snapshot_timeout_seconds: float = 20.0
    grouped_cache_ttl_seconds: int = 300
    quotes_cache_ttl_seconds: int = 60
    coin_list_cache_ttl_seconds: int = 6 * 3600
    fallback_batch_size: int = 25
    providers: Dict[str, ProviderConfig] = field(default_factory=dict)
    thresholds: AlertThresholds = field(default_factory=AlertThresholds)

    @classmethod
    def from_config(cls, config: ConfigService) -> "MarketSettings":
        """Build settings from a loaded config service, applying defaults."""
        timeout = float(config.get("market.request_timeout_seconds", 12.0))
        currency = config.get("market.currency", "USD")

        providers = {}
        for name in (COINMARKETCAP, POLYGON, COINGECKO):
            providers[name] = ProviderConfig(
                enabled=config.get(f"providers.{name}.enabled", True),
                api_key=config.get_api_key(name),
                base_url=config.get(f"providers.{name}.base_url"),
                timeout_seconds=timeout,
                currency=currency,
            )

        return cls(
            primary_provider=config.get("market.primary_provider", POLYGON),
            currency=currency,
            default_symbols=[normalize_symbol(s) for s in config.get("market.default_symbols", [])],
            request_timeout_seconds=timeout,
            snapshot_timeout_seconds=float(config.get("market.snapshot_timeout_seconds", 20.0)),
            grouped_cache_ttl_seconds=config.get("market.grouped_cache_ttl_seconds", 300),
            quotes_cache_ttl_seconds=config.get("market.quotes_cache_ttl_seconds", 60),
            coin_list_cache_ttl_seconds=config.get("market.coin_list_cache_ttl_seconds", 6 * 3600),
            fallback_batch_size=config.get("market.fallback_batch_size", 25),
            providers=providers,
            thresholds=AlertThresholds(
                critical_pct=float(config.get("alerts.critical_threshold_pct", -10.0)),
                warning_pct=float(config.get("alerts.warning_threshold_pct", -5.0)),
                deadline_hours=float(config.get("alerts.deadline_hours", 12.0)),
            ),
        )


class MarketAggregator:
    """Primary-then-fallback orchestration for snapshot calls."""

    def __init__(
        self,
        primary: BaseProviderClient,
        fallback: Optional[BaseProviderClient],
        cache: BaseCache,
        registry: SymbolRegistry,
        primary_ttl_seconds: float,
        fallback_batch_size: int = 25,
        snapshot_timeout_seconds: float = 20.0,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.primary = primary
        self.fallback = fallback
        self.cache = cache
        self.registry = registry
        self.primary_ttl_seconds = primary_ttl_seconds
        self.fallback_batch_size = max(1, fallback_batch_size)
        self.snapshot_timeout_seconds = snapshot_timeout_seconds
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._inflight: Dict[str, asyncio.Lock] = {}

    async def snapshot(self, symbols: List[str], as_of: Optional[date] = None) -> MarketSnapshot:
        """Build a snapshot with one item per requested symbol, in request order.

        Raises:
            MarketDataUnavailableException: If provider calls were attempted
                and none of them succeeded.
        """
        started = time.monotonic()
        retrieved_at = self._now()
        symbols = list(dict.fromkeys(normalize_symbol(s) for s in symbols))
        window = self.primary.resolve_window(as_of)

        attempted = 0
        succeeded = 0
        failures: Dict[str, str] = {}
        resolved: Dict[str, MarketItem] = {}
        reasons: Dict[str, str] = {}

        # Phase 1: primary, one batched call through the cache
        ids = self.registry.resolve_many(self.primary.name, symbols) if self.primary.enabled else {}
        native: RawQuoteMap = {}
        primary_failed = False
        if ids:
            attempted += 1
            try:
                native = await self._fetch_primary(list(dict.fromkeys(ids.values())), window)
                succeeded += 1
            except ProviderUnavailableException as e:
                primary_failed = True
                failures[self.primary.name] = str(e)

        for symbol in symbols:
            native_id = ids.get(symbol)
            if native_id is None:
                reasons[symbol] = ERROR_UNSUPPORTED
                continue
            raw = native.get(native_id)
            if raw is not None:
                item = self.primary.normalize(symbol, raw, SourceProvider.PRIMARY)
                if item.is_resolved:
                    resolved[symbol] = item
                    continue
            if primary_failed:
                reasons[symbol] = ERROR_PRIMARY_DOWN
            elif window is not None:
                reasons[symbol] = ERROR_EOD_ONLY
            else:
                reasons[symbol] = ERROR_NO_PRICE

        # Phase 2: fallback for exactly the unresolved subset
        unresolved = [s for s in symbols if s not in resolved]
        fallback_count = 0
        if unresolved and self.fallback is not None and self.fallback.enabled:
            remaining = self.snapshot_timeout_seconds - (time.monotonic() - started)
            for chunk, outcome in await self._fetch_fallback(unresolved, remaining):
                attempted += 1
                if isinstance(outcome, asyncio.TimeoutError):
                    failures.setdefault(self.fallback.name, ERROR_TIMED_OUT)
                    reasons.update({symbol: ERROR_TIMED_OUT for symbol in chunk})
                    continue
                if isinstance(outcome, ProviderUnavailableException):
                    failures.setdefault(self.fallback.name, str(outcome))
                    reasons.update({symbol: ERROR_FALLBACK_DOWN for symbol in chunk})
                    continue
                succeeded += 1
                for symbol in chunk:
                    raw = outcome.get(symbol)
                    if raw is None:
                        continue
                    item = self.fallback.normalize(symbol, raw, SourceProvider.FALLBACK)
                    if item.is_resolved:
                        resolved[symbol] = item
                        fallback_count += 1

        if attempted and not succeeded:
            logger.error(f"No market data provider reachable for window {window or 'live'}: {failures}")
            raise MarketDataUnavailableException(failures)

        items = tuple(
            resolved.get(symbol) or MarketItem.unavailable(symbol, reasons[symbol])
            for symbol in symbols
        )
        logger.debug(f"Snapshot: {len(resolved)}/{len(symbols)} resolved, {fallback_count} via fallback")
        return MarketSnapshot(
            items=items,
            retrieved_at=retrieved_at,
            note=self._note(window, fallback_count),
            as_of=window,
        )

    async def _fetch_primary(self, native_ids: List[str], window: Optional[date]) -> RawQuoteMap:
        """Primary call through the cache; concurrent misses share one request."""
        key = self.primary.cache_key(native_ids, window)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return cached

        lock = self._inflight.setdefault(key, asyncio.Lock())
        try:
            async with lock:
                cached = self.cache.get(key)
                if cached is not None:
                    return cached
                logger.debug(f"Cache miss: {key}")
                native = await self.primary.fetch_native(native_ids, window)
                self.cache.set(key, native, self.primary_ttl_seconds)
                return native
        finally:
            self._inflight.pop(key, None)

    async def _fetch_fallback(
        self,
        symbols: List[str],
        timeout: float,
    ) -> List[Tuple[List[str], FallbackOutcome]]:
        """Fan out fallback chunks and collect one outcome per chunk.

        Chunks still running when the snapshot deadline passes are cancelled
        and reported as asyncio.TimeoutError.
        """
        size = self.fallback_batch_size
        chunks = [symbols[i:i + size] for i in range(0, len(symbols), size)]
        tasks = [asyncio.ensure_future(self.fallback.fetch_batch(chunk)) for chunk in chunks]

        try:
            _, pending = await asyncio.wait(tasks, timeout=max(timeout, 0))
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        if pending:
            logger.warning(f"{len(pending)} fallback call(s) to {self.fallback.name} timed out")

        results: List[Tuple[List[str], FallbackOutcome]] = []
        for chunk, task in zip(chunks, tasks):
            if task in pending:
                results.append((chunk, asyncio.TimeoutError()))
                continue
            error = task.exception()
            if error is None:
                results.append((chunk, task.result()))
            elif isinstance(error, ProviderUnavailableException):
                results.append((chunk, error))
            else:
                raise error
        return results

    def _note(self, window: Optional[date], fallback_count: int) -> str:
        if self.primary.enabled:
            note = self.primary.describe(window)
        else:
            note = f"No API key set for {self.primary.display_name}."
        if fallback_count:
            note += f" {fallback_count} symbol(s) filled from {self.fallback.display_name} spot prices."
        return note


class MarketDataService:
    """Service facade used by the API routers.

    Owns the provider clients and two aggregators:
    - the configured primary (live quotes or grouped EOD) for snapshots
    - a grouped-EOD aggregator for explicit end-of-day requests
    """

    def __init__(
        self,
        settings: Optional[MarketSettings] = None,
        cache: Optional[BaseCache] = None,
        registry: Optional[SymbolRegistry] = None,
        clients: Optional[Dict[str, BaseProviderClient]] = None,
    ):
        self.settings = settings or MarketSettings.from_config(config_service)
        self.cache = cache if cache is not None else market_cache
        self.registry = registry or symbol_registry
        self._init_clients(clients)

    def _init_clients(self, clients: Optional[Dict[str, BaseProviderClient]] = None) -> None:
        """Initialize provider clients and aggregators from settings."""
        settings = self.settings
        if settings.default_symbols:
            self.registry.set_default_symbols(settings.default_symbols)

        def provider_cfg(name: str) -> ProviderConfig:
            return settings.providers.get(name) or ProviderConfig(
                timeout_seconds=settings.request_timeout_seconds,
                currency=settings.currency,
            )

        if clients is None:
            clients = {
                COINMARKETCAP: CoinMarketCapClient(provider_cfg(COINMARKETCAP), self.registry),
                POLYGON: PolygonGroupedClient(provider_cfg(POLYGON), self.registry),
                COINGECKO: CoinGeckoClient(
                    provider_cfg(COINGECKO),
                    self.registry,
                    cache=self.cache,
                    coin_list_ttl_seconds=settings.coin_list_cache_ttl_seconds,
                    price_ttl_seconds=settings.quotes_cache_ttl_seconds,
                ),
            }
        self.clients = clients

        fallback = clients.get(COINGECKO)
        self.eod_aggregator = self._aggregator(clients[POLYGON], fallback, settings.grouped_cache_ttl_seconds)
        if settings.primary_provider == COINMARKETCAP:
            self.aggregator = self._aggregator(clients[COINMARKETCAP], fallback, settings.quotes_cache_ttl_seconds)
        else:
            self.aggregator = self.eod_aggregator

        self.alert_generator = AutoAlertGenerator(settings.thresholds)
        logger.info(
            f"Market data service ready: primary={self.aggregator.primary.name} "
            f"(enabled={self.aggregator.primary.enabled}), fallback={fallback.name if fallback else None}"
        )

    def _aggregator(
        self,
        primary: BaseProviderClient,
        fallback: Optional[BaseProviderClient],
        ttl: float,
    ) -> MarketAggregator:
        return MarketAggregator(
            primary=primary,
            fallback=fallback,
            cache=self.cache,
            registry=self.registry,
            primary_ttl_seconds=ttl,
            fallback_batch_size=self.settings.fallback_batch_size,
            snapshot_timeout_seconds=self.settings.snapshot_timeout_seconds,
        )

    def reload(self, config: Optional[ConfigService] = None) -> None:
        """Re-read settings (e.g. after startup config validation) and rebuild clients."""
        self.settings = MarketSettings.from_config(config or config_service)
        self._init_clients()

    def resolve_symbols(self, symbols: Optional[List[str]] = None) -> List[str]:
        """Requested symbols, or the default set when none were given."""
        cleaned = [normalize_symbol(s) for s in (symbols or []) if normalize_symbol(s)]
        return cleaned or self.registry.default_symbols()

    async def get_snapshot(self, symbols: Optional[List[str]] = None) -> MarketSnapshot:
        """Snapshot from the configured primary provider with fallback."""
        return await self.aggregator.snapshot(self.resolve_symbols(symbols))

    async def get_eod_snapshot(
        self,
        symbols: Optional[List[str]] = None,
        as_of: Optional[date] = None,
    ) -> MarketSnapshot:
        """Snapshot with grouped end-of-day data as primary, for a given date."""
        return await self.eod_aggregator.snapshot(self.resolve_symbols(symbols), as_of=as_of)

    async def get_auto_alerts(self, symbols: Optional[List[str]] = None) -> List[AutoAlert]:
        """Auto-alerts derived from a fresh snapshot."""
        snapshot = await self.get_snapshot(symbols)
        return self.alert_generator.generate(snapshot)

    def get_provider_statuses(self) -> List[ProviderStatus]:
        """Get status of all provider clients."""
        return [client.get_status() for client in self.clients.values()]


# Global instance
market_data_service = MarketDataService()
