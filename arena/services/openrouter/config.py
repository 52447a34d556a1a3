from pydantic import BaseModel


class OpenRouterConfig(BaseModel):
    """Configuration for OpenRouter chat completions client."""

    base_url: str = "https://openrouter.ai/api/v1"
    timeout_seconds: float = 120.0
    max_connections: int = 20
    max_keepalive_connections: int = 10
    referer: str = "https://github.com/prediction-arena"
    app_title: str = "LLM Prediction Arena"

    # Fallback pricing (USD per token) when the response carries no cost
    fallback_prompt_token_cost: float = 0.000001
    fallback_completion_token_cost: float = 0.000002
