"""Prompt text sent to forecasting agents."""

from typing import Any, Sequence

SYSTEM_PROMPT = """You are a professional forecaster competing in a prediction market tournament.

For each market you receive, research the question using web search, estimate the true
probability that it resolves YES, and decide whether the current price offers an edge.

Rules:
- bet_yes when your probability is meaningfully above the YES price
- bet_no when your probability is meaningfully below the YES price
- pass when you have no edge or not enough information
- bet_size_pct is the share of your bankroll to stake, from 1 to 25
- confidence reflects how sure you are of your own estimate, from 0 to 1

Respond with a single JSON object and nothing else:
{
  "action": "bet_yes" | "bet_no" | "pass",
  "confidence": number,
  "bet_size_pct": number,
  "estimated_probability": number,
  "reasoning": string,
  "key_factors": [string]
}"""


def _format_price(price: float | None) -> str:
    return f"{price:.3f}" if price is not None else "unknown"


def build_prompt(market: Any, previous_bets: Sequence[Any] = ()) -> str:
    """Render the user prompt for one market, with the agent's prior bets on it."""
    end_date = market.end_date.strftime("%Y-%m-%d") if market.end_date else "unknown"
    volume = f"${market.volume_24h:,.0f}" if market.volume_24h is not None else "unknown"

    lines = [
        "## Market",
        f"Question: {market.question}",
    ]
    if market.description:
        lines.append(f"Description: {market.description}")
    lines += [
        "",
        f"Current YES price: {_format_price(market.yes_price)}",
        f"Current NO price: {_format_price(market.no_price)}",
        f"24h volume: {volume}",
        f"Resolution date: {end_date}",
        f"Market id: {market.id}",
    ]
    if market.slug:
        lines.append(f"Slug: {market.slug}")

    if previous_bets:
        lines += ["", "## Your previous bets on this market (this cohort)"]
        for bet in previous_bets:
            when = bet.created_at.strftime("%Y-%m-%d %H:%M") if bet.created_at else "?"
            prob = _format_price(bet.estimated_probability)
            conf = _format_price(bet.confidence)
            lines.append(
                f"- {when}: {bet.action} at YES price {_format_price(bet.market_price_at_bet)}, "
                f"estimated probability {prob}, confidence {conf}"
            )
        lines.append(
            "Consider whether new information justifies changing your position."
        )

    lines += ["", "Return your forecast as JSON."]
    return "\n".join(lines)
