from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)


def _parse_outcome_prices(raw: Any) -> tuple[float | None, float | None]:
    """Gamma encodes outcomePrices as a JSON string: '["0.62", "0.38"]'."""
    if raw is None or raw == "":
        return None, None
    try:
        prices = json.loads(raw) if isinstance(raw, str) else list(raw)
        yes = float(prices[0]) if len(prices) > 0 else None
        no = float(prices[1]) if len(prices) > 1 else None
        return yes, no
    except (ValueError, TypeError, IndexError) as e:
        logger.debug(f"Unparseable outcomePrices {raw!r}: {e}")
        return None, None


class GammaMarket(BaseModel):
    """Market snapshot as reported by the Gamma API."""

    id: str
    question: str
    description: str | None = None
    slug: str | None = None
    condition_id: str | None = None
    yes_price: float | None = None
    no_price: float | None = None
    volume_24h: float = 0.0
    end_date: datetime | None = None
    active: bool = True
    closed: bool = False

    @field_validator("end_date", mode="before")
    @classmethod
    def parse_end_date(cls, v: Any) -> datetime | None:
        if v is None or v == "":
            return None
        if isinstance(v, datetime):
            return v
        try:
            return datetime.fromisoformat(v.replace("Z", "+00:00"))
        except (ValueError, AttributeError):
            return None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> GammaMarket:
        yes_price, no_price = _parse_outcome_prices(data.get("outcomePrices"))
        return cls(
            id=str(data.get("id", "")),
            question=data.get("question") or "",
            description=data.get("description"),
            slug=data.get("slug"),
            condition_id=data.get("conditionId"),
            yes_price=yes_price,
            no_price=no_price,
            volume_24h=float(data.get("volume24hr") or 0.0),
            end_date=data.get("endDate"),
            active=bool(data.get("active", True)),
            closed=bool(data.get("closed", False)),
        )


class Resolution(BaseModel):
    """Oracle answer for one market."""

    resolved: bool
    outcome: Literal["yes", "no", "voided"] | None = None
