"""Test doubles for the LLM gateway and the market feed."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any

from arena.services.openrouter.models import GatewayResponse
from arena.services.polymarket.models import GammaMarket, Resolution


def prediction_json(
    action: str = "bet_yes",
    probability: float = 0.7,
    confidence: float = 0.8,
    bet_size_pct: float = 10.0,
    reasoning: str = "Polling trend favours YES",
) -> str:
    return json.dumps(
        {
            "action": action,
            "confidence": confidence,
            "bet_size_pct": bet_size_pct,
            "estimated_probability": probability,
            "reasoning": reasoning,
            "key_factors": ["polls", "momentum"],
        }
    )


def make_market(
    market_id: str,
    question: str | None = None,
    yes_price: float = 0.40,
    volume_24h: float = 50_000.0,
    days_to_close: int = 10,
) -> GammaMarket:
    return GammaMarket(
        id=market_id,
        question=question or f"Will event {market_id} happen?",
        description=f"Resolves YES if event {market_id} happens.",
        slug=f"event-{market_id}",
        yes_price=yes_price,
        no_price=round(1 - yes_price, 4),
        volume_24h=volume_24h,
        end_date=datetime.now(timezone.utc) + timedelta(days=days_to_close),
    )


class FakeGateway:
    """
    Scripted LLM gateway.

    `script` maps a model id to a queue of replies. A reply is raw text, a
    GatewayResponse, or an exception to raise. Once a queue is empty the
    `default` reply is used.
    """

    def __init__(self, script: dict[str, list[Any]] | None = None, default: Any = None, cost: float = 0.01):
        self.script = {model: list(replies) for model, replies in (script or {}).items()}
        self.default = default if default is not None else prediction_json()
        self.cost = cost
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        model: str,
        messages: list[dict[str, str]],
        response_format: dict[str, Any] | None = None,
        temperature: float = 0.0,
        max_tokens: int = 1024,
        plugins: list[dict[str, Any]] | None = None,
    ) -> GatewayResponse:
        self.calls.append(
            {
                "model": model,
                "messages": messages,
                "response_format": response_format,
                "temperature": temperature,
                "plugins": plugins,
            }
        )
        queue = self.script.get(model)
        reply = queue.pop(0) if queue else self.default
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, GatewayResponse):
            return reply
        return GatewayResponse(model=model, raw_text=reply, cost=self.cost, latency_ms=12)

    def calls_for(self, model: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["model"] == model]


class BarrierGateway(FakeGateway):
    """
    Gateway whose calls wait until `parties` of them are in flight.

    Calls that never see the others give up after `timeout` seconds, so a
    sequential caller still finishes but leaves `max_in_flight` at 1.
    """

    def __init__(self, parties: int, timeout: float = 1.0, **kwargs):
        super().__init__(**kwargs)
        self.parties = parties
        self.timeout = timeout
        self.in_flight = 0
        self.max_in_flight = 0
        self._all_started = asyncio.Event()

    async def complete(self, model: str, messages: list[dict[str, str]], **kwargs) -> GatewayResponse:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        if self.in_flight >= self.parties:
            self._all_started.set()
        try:
            await asyncio.wait_for(self._all_started.wait(), timeout=self.timeout)
        except asyncio.TimeoutError:
            pass
        finally:
            self.in_flight -= 1
        return await super().complete(model, messages, **kwargs)


class FakeFeed:
    """Market feed with fixed markets and scripted resolutions."""

    def __init__(self, markets: list[GammaMarket] | None = None):
        self.markets = list(markets or [])
        self.resolutions: dict[str, Any] = {}
        self.resolution_calls: list[str] = []

    async def list_admissible_markets(self) -> list[GammaMarket]:
        return list(self.markets)

    async def check_resolution(self, market_id: str) -> Resolution:
        self.resolution_calls.append(market_id)
        outcome = self.resolutions.get(market_id)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return Resolution(resolved=False)
        return Resolution(resolved=True, outcome=outcome)


async def no_sleep(delay: float) -> None:
    return None
