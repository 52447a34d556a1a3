"""Caller-facing tournament operations."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable

from pydantic import BaseModel, ConfigDict
from sqlalchemy import func, select

from arena.config import Settings
from arena.database import Database, create_database
from arena.models import RESOLUTION_OPEN, Bet, Cohort, Market, Round
from arena.services.openrouter import OpenRouterClient
from arena.services.polymarket import PolymarketClient
from arena.tournament.budget import BudgetGuard, CostSummary, SkipResult
from arena.tournament.cohorts import CohortManager, CohortResult
from arena.tournament.forecast import ForecastClient
from arena.tournament.interfaces import LLMGateway, MarketFeed
from arena.tournament.markets import sync_markets
from arena.tournament.roster import seed_agents
from arena.tournament.exceptions import RoundNotFoundError
from arena.tournament.rounds import RoundOrchestrator, RoundResult
from arena.tournament.scoring import AgentProfile, AgentStats, BetSummary, Leaderboard
from arena.tournament.settlement import SettlementEngine, SettlementResult

logger = logging.getLogger(__name__)


class CohortSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    start_date: datetime
    end_date: datetime
    status: str
    market_count: int


class RoundSummary(BaseModel):
    round_id: str
    cohort_id: str
    status: str
    market_count: int
    bet_count: int
    total_cost: float
    created_at: datetime
    completed_at: datetime | None = None


class RoundDetail(RoundSummary):
    market_ids: list[str]
    bets: list[BetSummary]


class MarketSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    question: str
    yes_price: float | None
    volume_24h: float | None
    end_date: datetime | None
    resolution: str
    resolved_at: datetime | None


class TournamentService:
    """Wires the engine components around one database, gateway and feed."""

    def __init__(
        self,
        settings: Settings,
        db: Database,
        gateway: LLMGateway,
        feed: MarketFeed,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings
        self.db = db
        self.feed = feed
        self.budget = BudgetGuard(db, settings.budget)
        self.cohorts = CohortManager(db, settings.tournament, self.budget)
        self.forecaster = ForecastClient(gateway, settings.forecast, sleep=sleep)
        self.rounds = RoundOrchestrator(db, self.forecaster, settings.tournament)
        self.settlement = SettlementEngine(db, feed)
        self.leaderboard = Leaderboard(db, settings.tournament)

    async def initialize(self) -> None:
        """Create tables and seed the agent roster. Idempotent."""
        await self.db.create_all()
        async with self.db.session() as session:
            await seed_agents(session)
            await session.commit()

    async def create_cohort_if_due(self, now: datetime | None = None) -> CohortResult:
        return await self.cohorts.create_cohort_if_due(now)

    async def sync_markets(self) -> int:
        return await sync_markets(self.db, self.feed)

    async def run_round(
        self,
        cohort_id: str,
        timeout_seconds: float | None = None,
    ) -> RoundResult | SkipResult:
        """Run one round over the cohort's markets unless the budget is spent."""
        skip = await self.budget.check_round()
        if skip is not None:
            logger.warning(skip.reason)
            return skip

        return await self.rounds.run_round(cohort_id, timeout_seconds)

    async def resume_round(
        self,
        round_id: str,
        timeout_seconds: float | None = None,
    ) -> RoundResult:
        return await self.rounds.resume_round(round_id, timeout_seconds)

    async def run_scheduled_round(
        self,
        now: datetime | None = None,
        timeout_seconds: float | None = None,
    ) -> RoundResult | SkipResult:
        """Budget check, ensure an active cohort, refresh markets, run a round."""
        skip = await self.budget.check_round()
        if skip is not None:
            logger.warning(skip.reason)
            return skip

        cohort_id = await self.cohorts.ensure_active_cohort(now)
        await self.sync_markets()
        return await self.run_round(cohort_id, timeout_seconds)

    async def settle_markets(self) -> SettlementResult:
        return await self.settlement.settle_markets()

    async def get_leaderboard(self, cohort_id: str | None = None) -> list[AgentStats]:
        return await self.leaderboard.get_leaderboard(cohort_id)

    async def get_adjusted_leaderboard(self, cohort_id: str | None = None) -> list[AgentStats]:
        return await self.leaderboard.get_adjusted_leaderboard(cohort_id)

    async def get_agent_profile(
        self,
        agent_id: str,
        cohort_id: str | None = None,
    ) -> AgentProfile:
        return await self.leaderboard.get_agent_profile(agent_id, cohort_id)

    async def get_cost_summary(self) -> CostSummary:
        return await self.budget.cost_summary()

    async def list_cohorts(self) -> list[CohortSummary]:
        async with self.db.session() as session:
            rows = await session.execute(select(Cohort).order_by(Cohort.start_date.desc()))
            return [CohortSummary.model_validate(c) for c in rows.scalars().all()]

    async def list_rounds(self, cohort_id: str | None = None) -> list[RoundSummary]:
        stmt = (
            select(
                Round,
                func.count(Bet.id),
                func.coalesce(func.sum(Bet.api_cost), 0.0),
            )
            .outerjoin(Bet, Bet.round_id == Round.id)
            .group_by(Round.id)
            .order_by(Round.created_at.desc())
        )
        if cohort_id is not None:
            stmt = stmt.where(Round.cohort_id == cohort_id)

        async with self.db.session() as session:
            rows = await session.execute(stmt)
            return [
                RoundSummary(
                    round_id=round_.id,
                    cohort_id=round_.cohort_id,
                    status=round_.status,
                    market_count=len(round_.market_ids),
                    bet_count=bet_count,
                    total_cost=float(cost),
                    created_at=round_.created_at,
                    completed_at=round_.completed_at,
                )
                for round_, bet_count, cost in rows.all()
            ]

    async def get_round(self, round_id: str) -> RoundDetail:
        async with self.db.session() as session:
            round_ = await session.get(Round, round_id)
            if round_ is None:
                raise RoundNotFoundError(f"Round not found: {round_id}")

            rows = await session.execute(
                select(Bet)
                .where(Bet.round_id == round_id)
                .order_by(Bet.market_id, Bet.agent_id)
            )
            bets = [BetSummary.model_validate(b) for b in rows.scalars().all()]

        return RoundDetail(
            round_id=round_.id,
            cohort_id=round_.cohort_id,
            status=round_.status,
            market_count=len(round_.market_ids),
            bet_count=len(bets),
            total_cost=sum(b.api_cost for b in bets),
            created_at=round_.created_at,
            completed_at=round_.completed_at,
            market_ids=list(round_.market_ids),
            bets=bets,
        )

    async def list_markets(self, active_only: bool = True) -> list[MarketSummary]:
        """Cached markets by 24h volume, only unresolved ones unless asked otherwise."""
        stmt = select(Market).order_by(Market.volume_24h.desc(), Market.id)
        if active_only:
            stmt = stmt.where(Market.resolution == RESOLUTION_OPEN)

        async with self.db.session() as session:
            rows = await session.execute(stmt)
            return [MarketSummary.model_validate(m) for m in rows.scalars().all()]


@asynccontextmanager
async def open_tournament(settings: Settings) -> AsyncIterator[TournamentService]:
    """Build a TournamentService over the real OpenRouter and Polymarket clients."""
    db = create_database(settings.database_url)
    try:
        async with OpenRouterClient(api_key=settings.openrouter_api_key) as gateway:
            async with PolymarketClient(feed_config=settings.market_feed) as feed:
                yield TournamentService(settings, db, gateway, feed)
    finally:
        await db.dispose()
