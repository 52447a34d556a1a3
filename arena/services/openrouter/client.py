from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from .config import OpenRouterConfig
from .exceptions import (
    OpenRouterAPIError,
    OpenRouterAuthError,
    OpenRouterBadRequestError,
    OpenRouterRateLimitError,
    OpenRouterServerError,
)
from .models import GatewayResponse, TokenUsage

logger = logging.getLogger(__name__)


class OpenRouterClient:
    """
    Thin chat-completions client.

    Each `complete` call is exactly one HTTP attempt. Retry policy belongs to
    the caller, which inspects `OpenRouterAPIError.retryable`.
    """

    def __init__(
        self,
        api_key: str,
        config: OpenRouterConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or OpenRouterConfig()
        self.api_key = api_key
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> OpenRouterClient:
        limits = httpx.Limits(
            max_connections=self.config.max_connections,
            max_keepalive_connections=self.config.max_keepalive_connections,
        )
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            limits=limits,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "HTTP-Referer": self.config.referer,
                "X-Title": self.config.app_title,
            },
        )
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Closed OpenRouterClient")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "OpenRouterClient must be used as async context manager"
            )
        return self._client

    def _estimate_cost(self, usage: TokenUsage) -> float:
        if usage.cost is not None:
            return usage.cost
        return (
            usage.prompt_tokens * self.config.fallback_prompt_token_cost
            + usage.completion_tokens * self.config.fallback_completion_token_cost
        )

    @staticmethod
    def _raise_for_status(status_code: int, detail: str) -> None:
        if status_code in (401, 402, 403):
            raise OpenRouterAuthError(
                f"OpenRouter rejected credentials: {detail}", status_code=status_code
            )
        if status_code == 429:
            raise OpenRouterRateLimitError(f"Rate limited: {detail}")
        if status_code == 408 or status_code >= 500:
            raise OpenRouterServerError(
                f"Server error {status_code}: {detail}", status_code=status_code
            )
        if status_code >= 400:
            raise OpenRouterBadRequestError(
                f"Request rejected ({status_code}): {detail}", status_code=status_code
            )

    async def complete(
        self,
        model: str,
        messages: list[dict[str, str]],
        response_format: dict[str, Any] | None = None,
        temperature: float = 0.0,
        max_tokens: int = 1024,
        plugins: list[dict[str, Any]] | None = None,
    ) -> GatewayResponse:
        """Send one chat completion request and return the raw text and cost."""
        body: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "usage": {"include": True},
        }
        if response_format is not None:
            body["response_format"] = response_format
        if plugins:
            body["plugins"] = plugins

        start = time.perf_counter()
        try:
            response = await self.client.post("/chat/completions", json=body)
        except httpx.TimeoutException as e:
            raise OpenRouterAPIError(
                f"Timeout calling {model}: {e}", retryable=True
            ) from e
        except httpx.RequestError as e:
            raise OpenRouterAPIError(
                f"Network error calling {model}: {e}", retryable=True
            ) from e
        latency_ms = int((time.perf_counter() - start) * 1000)

        self._raise_for_status(response.status_code, response.text[:500])

        try:
            data = response.json()
        except ValueError as e:
            raise OpenRouterServerError(
                f"Non-JSON response from gateway: {response.text[:200]}",
                status_code=response.status_code,
            ) from e

        # Upstream provider errors can arrive inside a 200 body
        error = data.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message") if isinstance(error, dict) else str(error)
            self._raise_for_status(code if isinstance(code, int) else 502, str(message))

        choices = data.get("choices") or []
        if not choices:
            raise OpenRouterServerError(f"Empty choices from {model}")

        usage = TokenUsage.from_api(data.get("usage"))
        raw_text = (choices[0].get("message") or {}).get("content") or ""

        logger.debug(
            f"{model} responded in {latency_ms}ms "
            f"({usage.prompt_tokens}+{usage.completion_tokens} tokens)"
        )

        return GatewayResponse(
            model=model,
            raw_text=raw_text,
            cost=self._estimate_cost(usage),
            latency_ms=latency_ms,
            usage=usage,
        )
