"""Market data API router.

Provides endpoints for:
- Market snapshots (primary provider with fallback)
- End-of-day snapshots for an explicit date
- Auto-alerts derived from snapshot movement
- Symbol registry listing and registration
- Provider health and cache statistics

Partial provider failures still answer 200 with degraded items. A 503 is
only returned when no provider could be reached at all.
"""

from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..models import AutoAlert, MarketItem, MarketSnapshot, is_valid_symbol, normalize_symbol
from ..services.cache import TTLCache
from ..services.market_data import MarketDataService, market_data_service
from ..services.providers import MarketDataUnavailableException

router = APIRouter()


def get_market_service() -> MarketDataService:
    """Dependency for the market data service."""
    return market_data_service


class CamelModel(BaseModel):
    """Response model serialized with camelCase keys for the web client."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MarketItemResponse(CamelModel):
    """One token's market data."""
    token: str
    last_price: Optional[float]
    day_change_pct: Optional[float]
    intra_change_pct: Optional[float]
    volume_24h: Optional[float] = Field(alias="volume24h")
    market_cap: Optional[float]
    source_provider: str
    provider: Optional[str]
    error: Optional[str]


class SnapshotResponse(CamelModel):
    """Market snapshot response."""
    items: List[MarketItemResponse]
    retrieved_at: datetime
    note: str
    as_of: Optional[date]


class AutoAlertResponse(CamelModel):
    """Auto-generated alert response."""
    id: str
    token: str
    severity: str
    title: str
    description: str
    deadline: datetime
    tags: List[str]
    generated: bool


class SymbolRegisterRequest(BaseModel):
    """Request to register a token symbol."""
    symbol: str
    mappings: Optional[Dict[str, str]] = None


class SymbolResponse(BaseModel):
    """A registered symbol and its provider ids."""
    symbol: str
    mappings: Dict[str, str]
    is_default: bool


class ProviderStatusResponse(BaseModel):
    """Provider health."""
    name: str
    enabled: bool
    healthy: bool
    has_api_key: bool
    call_count: int
    last_fetch: Optional[str]
    last_error: Optional[str]


class CacheStatsResponse(BaseModel):
    """Cache counters."""
    hits: int
    misses: int
    evictions: int
    size: int


class ProvidersResponse(BaseModel):
    """Provider statuses plus cache statistics."""
    primary_provider: str
    providers: List[ProviderStatusResponse]
    cache: Optional[CacheStatsResponse]


def parse_symbols(symbols: Optional[str]) -> List[str]:
    """Split a comma separated symbol list, rejecting malformed symbols."""
    parsed = [normalize_symbol(s) for s in (symbols or "").split(",")]
    parsed = [s for s in parsed if s]
    invalid = [s for s in parsed if not is_valid_symbol(s)]
    if invalid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid token symbol(s): {', '.join(invalid)}. Symbols must match [A-Z0-9]{{2,10}}"
        )
    return parsed


def _item_response(item: MarketItem) -> MarketItemResponse:
    return MarketItemResponse(
        token=item.token,
        last_price=item.last_price,
        day_change_pct=item.day_change_pct,
        intra_change_pct=item.intra_change_pct,
        volume_24h=item.volume_24h,
        market_cap=item.market_cap,
        source_provider=item.source_provider.value,
        provider=item.provider,
        error=item.error,
    )


def _snapshot_response(snapshot: MarketSnapshot) -> SnapshotResponse:
    return SnapshotResponse(
        items=[_item_response(item) for item in snapshot.items],
        retrieved_at=snapshot.retrieved_at,
        note=snapshot.note,
        as_of=snapshot.as_of,
    )


def _alert_response(alert: AutoAlert) -> AutoAlertResponse:
    return AutoAlertResponse(
        id=alert.id,
        token=alert.token,
        severity=alert.severity.value,
        title=alert.title,
        description=alert.description,
        deadline=alert.deadline,
        tags=alert.tags,
        generated=alert.generated,
    )


def _unavailable(e: MarketDataUnavailableException) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"error": "market_data_unavailable", "providers": e.errors},
    )


@router.get("/snapshot", response_model=SnapshotResponse)
async def get_snapshot(
    symbols: Optional[str] = Query(None, description="Comma separated token symbols"),
    service: MarketDataService = Depends(get_market_service),
):
    """Get a market snapshot. Without symbols the default set is used."""
    try:
        snapshot = await service.get_snapshot(parse_symbols(symbols))
    except MarketDataUnavailableException as e:
        raise _unavailable(e)
    return _snapshot_response(snapshot)


@router.get("/eod-snapshot", response_model=SnapshotResponse)
async def get_eod_snapshot(
    symbols: Optional[str] = Query(None, description="Comma separated token symbols"),
    as_of: Optional[date] = Query(None, alias="date", description="Calendar date (YYYY-MM-DD)"),
    service: MarketDataService = Depends(get_market_service),
):
    """Get an end-of-day snapshot for a calendar date (default: yesterday, UTC)."""
    if as_of is not None and as_of >= datetime.utcnow().date():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"End-of-day data is only available for completed days, got {as_of.isoformat()}"
        )
    try:
        snapshot = await service.get_eod_snapshot(parse_symbols(symbols), as_of=as_of)
    except MarketDataUnavailableException as e:
        raise _unavailable(e)
    return _snapshot_response(snapshot)


@router.get("/auto-alerts", response_model=List[AutoAlertResponse])
async def get_auto_alerts(
    symbols: Optional[str] = Query(None, description="Comma separated token symbols"),
    service: MarketDataService = Depends(get_market_service),
):
    """Get alerts generated from current market movement."""
    try:
        alerts = await service.get_auto_alerts(parse_symbols(symbols))
    except MarketDataUnavailableException as e:
        raise _unavailable(e)
    return [_alert_response(a) for a in alerts]


@router.get("/symbols", response_model=List[SymbolResponse])
async def list_symbols(service: MarketDataService = Depends(get_market_service)):
    """List registered symbols with their provider ids."""
    defaults = set(service.registry.default_symbols())
    return [
        SymbolResponse(
            symbol=symbol,
            mappings=service.registry.mappings_for(symbol),
            is_default=symbol in defaults,
        )
        for symbol in service.registry.symbols()
    ]


@router.post("/symbols", response_model=SymbolResponse, status_code=status.HTTP_201_CREATED)
async def register_symbol(
    request: SymbolRegisterRequest,
    service: MarketDataService = Depends(get_market_service),
):
    """Register a user-supplied token symbol."""
    try:
        symbol = service.registry.register(request.symbol, request.mappings)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    return SymbolResponse(
        symbol=symbol,
        mappings=service.registry.mappings_for(symbol),
        is_default=symbol in service.registry.default_symbols(),
    )


@router.get("/providers", response_model=ProvidersResponse)
async def get_providers(service: MarketDataService = Depends(get_market_service)):
    """Get provider health and cache statistics."""
    cache_stats = None
    if isinstance(service.cache, TTLCache):
        stats = service.cache.stats()
        cache_stats = CacheStatsResponse(
            hits=stats.hits,
            misses=stats.misses,
            evictions=stats.evictions,
            size=stats.size,
        )

    return ProvidersResponse(
        primary_provider=service.aggregator.primary.name,
        providers=[
            ProviderStatusResponse(
                name=s.name,
                enabled=s.enabled,
                healthy=s.healthy,
                has_api_key=s.has_api_key,
                call_count=s.call_count,
                last_fetch=s.last_fetch.isoformat() if s.last_fetch else None,
                last_error=s.last_error,
            )
            for s in service.get_provider_statuses()
        ],
        cache=cache_stats,
    )
