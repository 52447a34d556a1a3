"""The fixed agent roster and its idempotent seeding."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arena.models import ENSEMBLE_AGENT_ID, Agent

logger = logging.getLogger(__name__)

AGENT_ROSTER = [
    {
        "id": "gemini-3-flash",
        "display_name": "Gemini 3 Flash",
        "provider": "Google",
        "openrouter_id": "google/gemini-3-flash-preview",
        "avatar_emoji": "💎",
        "color": "#4285F4",
    },
    {
        "id": "grok-4.1-fast",
        "display_name": "Grok 4.1 Fast",
        "provider": "xAI",
        "openrouter_id": "x-ai/grok-4.1-fast",
        "avatar_emoji": "⚡",
        "color": "#8B5CF6",
    },
    {
        "id": "gpt-5.2-chat",
        "display_name": "GPT-5.2 Chat",
        "provider": "OpenAI",
        "openrouter_id": "openai/gpt-5.2-chat",
        "avatar_emoji": "🧠",
        "color": "#10A37F",
    },
    {
        "id": "deepseek-v3.2",
        "display_name": "DeepSeek V3.2",
        "provider": "DeepSeek",
        "openrouter_id": "deepseek/deepseek-v3.2",
        "avatar_emoji": "🔮",
        "color": "#FF6B35",
    },
    {
        "id": "kimi-k2.5",
        "display_name": "Kimi K2.5",
        "provider": "Moonshot AI",
        "openrouter_id": "moonshotai/kimi-k2.5",
        "avatar_emoji": "🌙",
        "color": "#EC4899",
    },
    {
        "id": "qwen-3",
        "display_name": "Qwen 3",
        "provider": "Alibaba",
        "openrouter_id": "qwen/qwen3-235b-a22b",
        "avatar_emoji": "🐲",
        "color": "#06B6D4",
    },
    {
        "id": ENSEMBLE_AGENT_ID,
        "display_name": "Ensemble (Avg)",
        "provider": "Aggregate",
        "openrouter_id": ENSEMBLE_AGENT_ID,
        "avatar_emoji": "🎯",
        "color": "#F59E0B",
    },
]


async def seed_agents(session: AsyncSession) -> list[Agent]:
    """Insert any roster agent that is missing. Existing rows are left untouched."""
    result = await session.execute(select(Agent.id))
    existing = set(result.scalars().all())

    created = []
    for config in AGENT_ROSTER:
        if config["id"] in existing:
            continue
        agent = Agent(**config)
        session.add(agent)
        created.append(agent)

    await session.flush()
    if created:
        logger.info(f"Seeded {len(created)} agents: {[a.id for a in created]}")
    return created


async def list_agents(session: AsyncSession, include_ensemble: bool = True) -> list[Agent]:
    stmt = select(Agent).order_by(Agent.id)
    if not include_ensemble:
        stmt = stmt.where(Agent.id != ENSEMBLE_AGENT_ID)
    result = await session.execute(stmt)
    return list(result.scalars().all())
