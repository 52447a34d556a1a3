from .client import OpenRouterClient
from .config import OpenRouterConfig
from .exceptions import (
    OpenRouterAPIError,
    OpenRouterAuthError,
    OpenRouterBadRequestError,
    OpenRouterRateLimitError,
    OpenRouterServerError,
)
from .models import GatewayResponse, TokenUsage

__all__ = [
    "OpenRouterClient",
    "OpenRouterConfig",
    "OpenRouterAPIError",
    "OpenRouterAuthError",
    "OpenRouterBadRequestError",
    "OpenRouterRateLimitError",
    "OpenRouterServerError",
    "GatewayResponse",
    "TokenUsage",
]
