"""Pre-flight spending cap over recorded API costs."""

import logging
from collections import defaultdict
from datetime import date, datetime

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import BudgetConfig
from arena.database import Database
from arena.models import Agent, Bet, Round

logger = logging.getLogger(__name__)


class AgentCost(BaseModel):
    agent_id: str
    display_name: str
    total_cost: float
    calls: int


class RoundCost(BaseModel):
    round_id: str
    created_at: datetime
    total_cost: float


class DailyCost(BaseModel):
    day: date
    cost: float
    cumulative: float


class CostSummary(BaseModel):
    total_spent: float
    budget_cap: float
    budget_remaining: float
    budget_pct_used: float
    is_over_budget: bool
    per_agent: list[AgentCost]
    per_round: list[RoundCost]
    daily: list[DailyCost]


class SkipResult(BaseModel):
    """Returned instead of raising when an operation is declined up front."""

    skipped: bool = True
    reason: str


class BudgetGuard:
    """
    Sums recorded API cost against a fixed cap.

    Only consulted before a round starts; a round already running is never
    interrupted, so the cap can be overshot by at most one round's cost.
    """

    def __init__(self, db: Database, config: BudgetConfig | None = None):
        self.db = db
        self.config = config or BudgetConfig()

    @staticmethod
    async def _total_spent(session: AsyncSession) -> float:
        result = await session.execute(select(func.coalesce(func.sum(Bet.api_cost), 0.0)))
        return float(result.scalar_one())

    async def total_spent(self) -> float:
        async with self.db.session() as session:
            return await self._total_spent(session)

    async def can_afford_round(self, estimated_cost: float | None = None) -> bool:
        if estimated_cost is None:
            estimated_cost = self.config.round_cost_estimate_usd
        spent = await self.total_spent()
        affordable = spent + estimated_cost <= self.config.cap_usd
        if not affordable:
            logger.warning(
                f"Budget check failed: spent ${spent:.2f} + estimate "
                f"${estimated_cost:.2f} exceeds cap ${self.config.cap_usd:.2f}"
            )
        return affordable

    async def check_round(self, estimated_cost: float | None = None) -> SkipResult | None:
        """None when the round may proceed, otherwise the skip signal."""
        if await self.can_afford_round(estimated_cost):
            return None
        spent = await self.total_spent()
        return SkipResult(
            reason=f"Budget exhausted. Spent ${spent:.2f} of ${self.config.cap_usd:.2f} cap."
        )

    async def cost_summary(self) -> CostSummary:
        cap = self.config.cap_usd

        async with self.db.session() as session:
            spent = await self._total_spent(session)

            agent_rows = await session.execute(
                select(
                    Agent.id,
                    Agent.display_name,
                    func.coalesce(func.sum(Bet.api_cost), 0.0),
                    func.count(Bet.id),
                )
                .outerjoin(Bet, Bet.agent_id == Agent.id)
                .group_by(Agent.id, Agent.display_name)
                .order_by(Agent.id)
            )
            per_agent = [
                AgentCost(
                    agent_id=agent_id,
                    display_name=display_name,
                    total_cost=float(cost),
                    calls=calls,
                )
                for agent_id, display_name, cost, calls in agent_rows.all()
            ]

            round_rows = await session.execute(
                select(Round.id, Round.created_at, func.coalesce(func.sum(Bet.api_cost), 0.0))
                .outerjoin(Bet, Bet.round_id == Round.id)
                .group_by(Round.id, Round.created_at)
                .order_by(Round.created_at)
            )
            per_round = [
                RoundCost(round_id=round_id, created_at=created_at, total_cost=float(cost))
                for round_id, created_at, cost in round_rows.all()
            ]

            bet_rows = await session.execute(
                select(Bet.created_at, Bet.api_cost).order_by(Bet.created_at)
            )
            by_day: dict[date, float] = defaultdict(float)
            for created_at, cost in bet_rows.all():
                by_day[created_at.date()] += cost or 0.0

        daily = []
        cumulative = 0.0
        for day in sorted(by_day):
            cumulative += by_day[day]
            daily.append(DailyCost(day=day, cost=by_day[day], cumulative=cumulative))

        return CostSummary(
            total_spent=spent,
            budget_cap=cap,
            budget_remaining=max(0.0, cap - spent),
            budget_pct_used=(spent / cap * 100) if cap > 0 else 100.0,
            is_over_budget=spent >= cap,
            per_agent=per_agent,
            per_round=per_round,
            daily=daily,
        )
