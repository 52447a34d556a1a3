"""Unit tests for the OpenRouter client against a mocked transport."""

import json

import httpx
import pytest

from arena.services.openrouter import (
    OpenRouterAPIError,
    OpenRouterAuthError,
    OpenRouterBadRequestError,
    OpenRouterClient,
    OpenRouterRateLimitError,
    OpenRouterServerError,
)


def completion_body(content: str, usage: dict | None = None) -> dict:
    return {
        "id": "gen-1",
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": usage or {"prompt_tokens": 1000, "completion_tokens": 200},
    }


async def call(handler, **kwargs):
    async with OpenRouterClient("sk-test", transport=httpx.MockTransport(handler)) as client:
        return await client.complete(
            model="openai/gpt-5.2-chat",
            messages=[{"role": "user", "content": "hi"}],
            **kwargs,
        )


class TestComplete:
    @pytest.mark.asyncio
    async def test_returns_text_and_reported_cost(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["title"] = request.headers["X-Title"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json=completion_body('{"action": "pass"}', {"prompt_tokens": 10, "completion_tokens": 5, "cost": 0.0042}),
            )

        response = await call(
            handler,
            response_format={"type": "json_object"},
            plugins=[{"id": "web", "max_results": 5}],
        )

        assert response.raw_text == '{"action": "pass"}'
        assert response.cost == pytest.approx(0.0042)
        assert response.latency_ms >= 0
        assert seen["url"] == "https://openrouter.ai/api/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["title"] == "LLM Prediction Arena"
        assert seen["body"]["temperature"] == 0.0
        assert seen["body"]["response_format"] == {"type": "json_object"}
        assert seen["body"]["plugins"] == [{"id": "web", "max_results": 5}]

    @pytest.mark.asyncio
    async def test_estimates_cost_from_tokens_when_unreported(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=completion_body("{}"))

        response = await call(handler)

        assert response.cost == pytest.approx(1000 * 0.000001 + 200 * 0.000002)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, error_type, retryable",
        [
            (429, OpenRouterRateLimitError, True),
            (502, OpenRouterServerError, True),
            (401, OpenRouterAuthError, False),
            (400, OpenRouterBadRequestError, False),
        ],
    )
    async def test_status_codes_map_to_errors(self, status, error_type, retryable):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json={"error": {"message": "nope"}})

        with pytest.raises(error_type) as exc_info:
            await call(handler)

        assert exc_info.value.retryable is retryable
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_error_inside_success_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"error": {"code": 429, "message": "upstream busy"}})

        with pytest.raises(OpenRouterRateLimitError):
            await call(handler)

    @pytest.mark.asyncio
    async def test_network_failure_is_retryable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(OpenRouterAPIError) as exc_info:
            await call(handler)

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_client_requires_context_manager(self):
        client = OpenRouterClient("sk-test")
        with pytest.raises(RuntimeError):
            await client.complete(model="x", messages=[])
