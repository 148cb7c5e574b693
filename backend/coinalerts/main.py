"""Coin Alerts market engine FastAPI application.

Serves market snapshots and auto-generated price alerts to the alert
front end and other collaborators.
"""

import sys
import logging
from contextlib import asynccontextmanager
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import health, market
from .services.config import config_service, ConfigValidationException
from .services.logging_service import configure_logging
from .services.market_data import market_data_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup: Validate configuration
    try:
        config_service.load_and_validate()
    except ConfigValidationException as e:
        print(f"FATAL: {e}")
        print("Server cannot start with invalid configuration.")
        sys.exit(1)

    configure_logging(config_service)
    logger.info("Configuration validated successfully")

    market_data_service.reload(config_service)
    logger.info(f"Default symbols: {', '.join(market_data_service.resolve_symbols())}")

    yield

    market_data_service.cache.clear()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Coin Alerts Market API",
    description="Market data aggregation and threshold alerts for crypto holders",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, prefix="/api", tags=["Health"])
app.include_router(market.router, prefix="/api/market", tags=["Market"])


@app.get("/")
async def root():
    """Root endpoint redirect to docs."""
    return {"message": "Coin Alerts Market API", "docs": "/docs"}


def run():
    """Serve the API with uvicorn, using the `server` config section."""
    try:
        config_service.load_and_validate()
    except ConfigValidationException as e:
        print(f"FATAL: {e}")
        sys.exit(1)

    uvicorn.run(
        "coinalerts.main:app",
        host=config_service.get("server.host", "127.0.0.1"),
        port=config_service.get("server.port", 8000),
        reload=config_service.get("server.debug", False),
    )


if __name__ == "__main__":
    run()
