from .client import (
    PolymarketClient,
    select_admissible_markets,
)
from .config import PolymarketConfig
from .exceptions import (
    PolymarketAPIError,
    PolymarketNotFoundError,
    PolymarketRateLimitError,
)
from .models import GammaMarket, Resolution

__all__ = [
    "PolymarketClient",
    "select_admissible_markets",
    "PolymarketConfig",
    "PolymarketAPIError",
    "PolymarketNotFoundError",
    "PolymarketRateLimitError",
    "GammaMarket",
    "Resolution",
]
