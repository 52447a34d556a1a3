"""
Forecast client: one agent, one market, one validated prediction (or none).

Retry ladder
------------
Attempts 1..N run in STRICT mode: the gateway is asked for output matching a
JSON schema and the reply is validated without type coercion. The final
attempt runs in RELAXED mode: plain JSON-object output, validated leniently
after stripping code fences and surrounding prose.

Rate limits and transient gateway failures move to the next attempt after the
configured backoff (1s, 2s, 4s by default). Non-retryable failures and
replies that fail validation end the ladder with no prediction, which the
round orchestrator records as a forced pass. Cost and latency accumulate over
every attempt actually made.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Literal, Sequence

from pydantic import BaseModel, Field

from arena.config import ForecastConfig
from arena.services.openrouter.exceptions import OpenRouterAPIError
from arena.tournament.interfaces import LLMGateway
from arena.tournament.prompts import SYSTEM_PROMPT, build_prompt

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class OutputMode(str, Enum):
    STRICT = "strict"
    RELAXED = "relaxed"


class Prediction(BaseModel):
    """A validated forecast decision."""

    action: Literal["bet_yes", "bet_no", "pass"]
    confidence: float = Field(ge=0.0, le=1.0)
    bet_size_pct: float = Field(ge=1.0, le=25.0, description="Percent of bankroll")
    estimated_probability: float = Field(ge=0.0, le=1.0)
    reasoning: str
    key_factors: list[str] = Field(default_factory=list)


class ForecastResult(BaseModel):
    """Outcome of the whole retry ladder for one (agent, market) pair."""

    prediction: Prediction | None = None
    prompt_text: str
    raw_response: str | None = None
    cost: float = 0.0
    latency_ms: int = 0
    attempts: int = 0
    mode: OutputMode | None = None
    error: str | None = None

    @property
    def is_forced_pass(self) -> bool:
        return self.prediction is None


PREDICTION_JSON_SCHEMA: dict[str, Any] = {
    "name": "prediction",
    "strict": True,
    "schema": {
        "type": "object",
        "properties": {
            "action": {
                "type": "string",
                "enum": ["bet_yes", "bet_no", "pass"],
            },
            "confidence": {
                "type": "number",
                "description": "Confidence in your estimate, 0 to 1",
            },
            "bet_size_pct": {
                "type": "number",
                "description": "Percent of bankroll to stake, 1 to 25",
            },
            "estimated_probability": {
                "type": "number",
                "description": "Probability the market resolves YES, 0 to 1",
            },
            "reasoning": {"type": "string"},
            "key_factors": {"type": "array", "items": {"type": "string"}},
        },
        "required": [
            "action",
            "confidence",
            "bet_size_pct",
            "estimated_probability",
            "reasoning",
            "key_factors",
        ],
        "additionalProperties": False,
    },
}


def response_format_for(mode: OutputMode) -> dict[str, Any]:
    if mode is OutputMode.STRICT:
        return {"type": "json_schema", "json_schema": PREDICTION_JSON_SCHEMA}
    return {"type": "json_object"}


def _extract_json_object(raw: str) -> Any:
    text = _CODE_FENCE.sub("", raw.strip())
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("no JSON object in response")
    return json.loads(text[start : end + 1])


def parse_prediction(raw: str, mode: OutputMode) -> Prediction:
    """Validate a raw model reply. Raises ValueError (incl. ValidationError)."""
    if mode is OutputMode.STRICT:
        return Prediction.model_validate_json(raw, strict=True)
    return Prediction.model_validate(_extract_json_object(raw))


class ForecastClient:
    def __init__(
        self,
        gateway: LLMGateway,
        config: ForecastConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.gateway = gateway
        self.config = config or ForecastConfig()
        self._sleep = sleep

    def _messages(self, prompt: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    async def forecast(
        self,
        model: str,
        market: Any,
        previous_bets: Sequence[Any] = (),
    ) -> ForecastResult:
        """Run the retry ladder for `model` on `market`. Never raises gateway errors."""
        prompt = build_prompt(market, previous_bets)
        messages = self._messages(prompt)
        plugins = [{"id": "web", "max_results": self.config.web_search_max_results}]
        max_retries = self.config.max_retries

        total_cost = 0.0
        total_latency_ms = 0
        raw_response: str | None = None
        error: str | None = None
        mode = OutputMode.STRICT
        attempts = 0

        for attempt in range(max_retries + 1):
            mode = OutputMode.RELAXED if attempt == max_retries else OutputMode.STRICT
            attempts = attempt + 1
            started = time.perf_counter()

            try:
                response = await self.gateway.complete(
                    model=model,
                    messages=messages,
                    response_format=response_format_for(mode),
                    temperature=self.config.temperature,
                    max_tokens=self.config.max_tokens,
                    plugins=plugins,
                )
            except OpenRouterAPIError as e:
                total_latency_ms += int((time.perf_counter() - started) * 1000)
                error = str(e)
                if not e.retryable:
                    logger.warning(f"{model}: non-retryable gateway error: {e}")
                    break
                if attempt < max_retries:
                    delay = self.config.retry_delays_seconds[attempt]
                    logger.warning(
                        f"{model}: attempt {attempts} failed ({e}), retrying in {delay}s"
                    )
                    await self._sleep(delay)
                continue

            total_cost += response.cost
            total_latency_ms += response.latency_ms
            raw_response = response.raw_text

            try:
                prediction = parse_prediction(response.raw_text, mode)
            except ValueError as e:
                error = f"Unparseable {mode.value} response: {e}"
                logger.warning(f"{model}: {error}")
                break

            return ForecastResult(
                prediction=prediction,
                prompt_text=prompt,
                raw_response=raw_response,
                cost=total_cost,
                latency_ms=total_latency_ms,
                attempts=attempts,
                mode=mode,
            )
        else:
            logger.warning(f"{model}: retries exhausted after {attempts} attempts")

        return ForecastResult(
            prediction=None,
            prompt_text=prompt,
            raw_response=raw_response,
            cost=total_cost,
            latency_ms=total_latency_ms,
            attempts=attempts,
            mode=mode,
            error=error,
        )
