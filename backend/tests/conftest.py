"""Pytest configuration and fixtures."""

import pytest
from httpx import AsyncClient, ASGITransport

from coinalerts.main import app
from coinalerts.models import RawQuote
from coinalerts.routers.market import get_market_service
from coinalerts.services.cache import TTLCache
from coinalerts.services.market_data import MarketAggregator, MarketDataService, MarketSettings
from coinalerts.services.symbols import COINGECKO, POLYGON, SymbolRegistry
from tests.helpers.fake_providers import EOD_DATE, FIXED_NOW, FakeClock, FakeProvider


@pytest.fixture
def registry():
    """Small registry: TAO is only listed on the fallback provider."""
    return SymbolRegistry(
        mappings={
            POLYGON: {"BTC": "X:BTCUSD", "ETH": "X:ETHUSD", "DOGE": "X:DOGEUSD"},
            COINGECKO: {"BTC": "bitcoin", "ETH": "ethereum", "DOGE": "dogecoin", "TAO": "bittensor"},
        },
        default_symbols=["BTC", "ETH", "TAO"],
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    """Fresh cache per test, driven by the fake clock."""
    return TTLCache(clock=clock)


@pytest.fixture
def primary(registry):
    """Grouped EOD style primary: BTC down 12.3%, ETH down 3%, DOGE with a null close."""
    return FakeProvider(
        POLYGON,
        registry,
        quotes={
            "X:BTCUSD": RawQuote(native_id="X:BTCUSD", price=61000.0, change_24h_pct=-12.3, volume=2.5e9),
            "X:ETHUSD": RawQuote(native_id="X:ETHUSD", price=2400.0, change_24h_pct=-3.0, volume=1.1e9),
            "X:DOGEUSD": RawQuote(native_id="X:DOGEUSD", price=None),
        },
        window=EOD_DATE,
    )


@pytest.fixture
def fallback(registry):
    """Spot fallback: knows TAO and DOGE, down 6% and up 4%."""
    return FakeProvider(
        COINGECKO,
        registry,
        quotes={
            "bittensor": RawQuote(native_id="bittensor", price=410.0, change_24h_pct=-6.0, market_cap=3.0e9),
            "dogecoin": RawQuote(native_id="dogecoin", price=0.12, change_24h_pct=4.0),
            "bitcoin": RawQuote(native_id="bitcoin", price=61100.0, change_24h_pct=-12.0),
        },
    )


@pytest.fixture
def aggregator(primary, fallback, cache, registry):
    return MarketAggregator(
        primary=primary,
        fallback=fallback,
        cache=cache,
        registry=registry,
        primary_ttl_seconds=300,
        fallback_batch_size=25,
        snapshot_timeout_seconds=5.0,
        now=lambda: FIXED_NOW,
    )


@pytest.fixture
def market_service(primary, fallback, cache, registry):
    """Market data service wired to the fake providers."""
    settings = MarketSettings(primary_provider=POLYGON, default_symbols=["BTC", "ETH", "TAO"])
    return MarketDataService(
        settings=settings,
        cache=cache,
        registry=registry,
        clients={POLYGON: primary, COINGECKO: fallback},
    )


@pytest.fixture(scope="function")
async def client(market_service):
    """Create test client backed by the fake market data service."""
    app.dependency_overrides[get_market_service] = lambda: market_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
