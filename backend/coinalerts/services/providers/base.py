"""Base class and error types for market data provider clients.

Each client wraps one external HTTP API:
- fetch_native(): one raw provider call, keyed by provider-native id
- fetch_batch(): resolve symbols through the registry, fetch, re-key by symbol
- normalize(): turn a provider RawQuote into a MarketItem

Non-2xx responses, network errors and timeouts raise
ProviderUnavailableException. That fails the call, never the whole snapshot.
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp

from ...models import MarketItem, RawQuote, SourceProvider
from ..symbols import SymbolRegistry

logger = logging.getLogger(__name__)


RawQuoteMap = Dict[str, RawQuote]


class ProviderUnavailableException(Exception):
    """A provider call failed (HTTP error, network error or timeout)."""

    def __init__(self, provider: str, message: str, status: Optional[int] = None):
        self.provider = provider
        self.status = status
        super().__init__(message)


class MarketDataUnavailableException(Exception):
    """No provider could be reached for the requested batch window."""

    def __init__(self, errors: Dict[str, str]):
        self.errors = errors
        details = "; ".join(f"{name}: {msg}" for name, msg in errors.items())
        super().__init__(f"All market data providers failed ({details})")


@dataclass
class ProviderConfig:
    """Configuration for a single provider client."""
    enabled: bool = True
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout_seconds: float = 12.0
    currency: str = "USD"


@dataclass
class ProviderStatus:
    """Health of a provider client."""
    name: str
    enabled: bool
    healthy: bool
    has_api_key: bool
    call_count: int
    last_fetch: Optional[datetime] = None
    last_error: Optional[str] = None


def to_float(value: Any) -> Optional[float]:
    """Coerce a provider number to float; null, junk, NaN and inf become None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def to_datetime(value: Any, scale: float = 1.0) -> Optional[datetime]:
    """Convert an epoch number to a UTC datetime; null or junk becomes None.

    Args:
        value: Epoch value as sent by the provider
        scale: Units per second (1000 for epoch milliseconds)
    """
    number = to_float(value)
    if number is None:
        return None
    try:
        return datetime.fromtimestamp(number / scale, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


class BaseProviderClient(ABC):
    """Base class for provider clients."""

    name: str = ""
    display_name: str = ""
    default_base_url: str = ""
    requires_api_key: bool = False

    def __init__(self, config: ProviderConfig, registry: SymbolRegistry):
        self.config = config
        self.registry = registry
        self.base_url = (config.base_url or self.default_base_url).rstrip("/")
        self._healthy = True
        self._last_fetch: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._call_count = 0

    @property
    def enabled(self) -> bool:
        """Disabled by config, or by a missing API key where one is required."""
        if not self.config.enabled:
            return False
        return bool(self.config.api_key) or not self.requires_api_key

    def resolve_window(self, as_of: Optional[date]) -> Optional[date]:
        """Batch window date for a request. Live providers have none."""
        return as_of

    def describe(self, window: Optional[date]) -> str:
        """Human readable freshness note for data from this provider."""
        return f"Latest quotes via {self.display_name}."

    @abstractmethod
    def cache_key(self, native_ids: List[str], as_of: Optional[date]) -> str:
        """Cache key for one raw call: provider name plus batch discriminator."""
        pass

    @abstractmethod
    async def fetch_native(self, native_ids: List[str], as_of: Optional[date]) -> Dict[str, RawQuote]:
        """Perform the provider call and index results by native id."""
        pass

    @abstractmethod
    def normalize(self, symbol: str, raw: RawQuote, source: SourceProvider) -> MarketItem:
        """Translate a provider quote into the common market item shape."""
        pass

    async def fetch_batch(self, symbols: List[str], as_of: Optional[date] = None) -> Dict[str, RawQuote]:
        """Fetch quotes for symbols. Unsupported symbols are skipped."""
        ids = self.registry.resolve_many(self.name, symbols)
        if not ids:
            return {}
        native = await self.fetch_native(list(dict.fromkeys(ids.values())), self.resolve_window(as_of))
        return {
            symbol: native[native_id]
            for symbol, native_id in ids.items()
            if native_id in native
        }

    async def _get_json(
        self,
        url: str,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """GET a JSON document with the per-call timeout enforced."""
        self._call_count += 1
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, params=params, headers=headers) as resp:
                    if not 200 <= resp.status < 300:
                        raise ProviderUnavailableException(
                            self.name,
                            f"{self.display_name} returned HTTP {resp.status}",
                            status=resp.status,
                        )
                    data = await resp.json(content_type=None)
        except ProviderUnavailableException as e:
            self._record_failure(str(e))
            raise
        except asyncio.TimeoutError as e:
            message = f"{self.display_name} timed out after {self.config.timeout_seconds}s"
            self._record_failure(message)
            raise ProviderUnavailableException(self.name, message) from e
        except (aiohttp.ClientError, ValueError) as e:
            message = f"{self.display_name} request failed: {e}"
            self._record_failure(message)
            raise ProviderUnavailableException(self.name, message) from e

        self._record_success()
        return data

    def _record_success(self) -> None:
        self._healthy = True
        self._last_error = None
        self._last_fetch = datetime.utcnow()

    def _record_failure(self, message: str) -> None:
        self._healthy = False
        self._last_error = message
        logger.warning(f"Error fetching from {self.name}: {message}")

    def get_status(self) -> ProviderStatus:
        """Get the status of this provider."""
        return ProviderStatus(
            name=self.name,
            enabled=self.enabled,
            healthy=self._healthy,
            has_api_key=bool(self.config.api_key),
            call_count=self._call_count,
            last_fetch=self._last_fetch,
            last_error=self._last_error,
        )
