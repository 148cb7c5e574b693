# API Routers

from . import health, market

__all__ = ["health", "market"]
