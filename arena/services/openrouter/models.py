from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost: float | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any] | None) -> TokenUsage:
        data = data or {}
        cost = data.get("total_cost", data.get("cost"))
        return cls(
            prompt_tokens=data.get("prompt_tokens") or 0,
            completion_tokens=data.get("completion_tokens") or 0,
            cost=float(cost) if cost is not None else None,
        )


class GatewayResponse(BaseModel):
    """One completed chat call: raw text plus what it cost."""

    model: str
    raw_text: str
    cost: float
    latency_ms: int
    usage: TokenUsage = TokenUsage()
