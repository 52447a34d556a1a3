"""Collaborator protocols the engine depends on."""

from __future__ import annotations

from typing import Any, Protocol

from arena.services.openrouter.models import GatewayResponse
from arena.services.polymarket.models import GammaMarket, Resolution


class MarketFeed(Protocol):
    async def list_admissible_markets(self) -> list[GammaMarket]: ...

    async def check_resolution(self, market_id: str) -> Resolution: ...


class LLMGateway(Protocol):
    async def complete(
        self,
        model: str,
        messages: list[dict[str, str]],
        response_format: dict[str, Any] | None = None,
        temperature: float = 0.0,
        max_tokens: int = 1024,
        plugins: list[dict[str, Any]] | None = None,
    ) -> GatewayResponse: ...
