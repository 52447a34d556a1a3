"""
Leaderboards and calibration metrics.

Brier decomposition follows Murphy (1973): with forecasts grouped into
probability buckets,

    BS = reliability - resolution + uncertainty

which holds exactly when forecasts are constant within each bucket.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import datetime
from typing import Sequence

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import TournamentConfig
from arena.database import Database
from arena.models import (
    ACTION_PASS,
    COHORT_ACTIVE,
    RESOLUTION_NO,
    RESOLUTION_VOIDED,
    RESOLUTION_YES,
    Agent,
    AgentLedger,
    Bet,
    Cohort,
    Market,
)
from arena.tournament.correlation import (
    DEFAULT_THRESHOLD,
    adjusted_pnl,
    detect_correlation,
)
from arena.tournament.exceptions import AgentNotFoundError
from arena.tournament.roster import list_agents

logger = logging.getLogger(__name__)


def market_difficulty(price: float) -> float:
    """Binary entropy of the price in bits: 1.0 at 0.5, 0.0 at the extremes."""
    if price <= 0 or price >= 1:
        return 0.0
    return -(price * math.log2(price) + (1 - price) * math.log2(1 - price))


def _bucket(probability: float, n_buckets: int) -> int:
    return min(int(probability * n_buckets), n_buckets - 1)


class BrierDecomposition(BaseModel):
    """
    Murphy decomposition of a Brier score over probability buckets.

    brier_score = reliability - resolution + uncertainty
    + within_bin_variance - 2 * within_bin_covariance. The last two terms
    vanish when every forecast in a bucket is the same.
    """

    brier_score: float
    reliability: float
    resolution: float
    uncertainty: float
    within_bin_variance: float = 0.0
    within_bin_covariance: float = 0.0
    n: int


class CalibrationBucket(BaseModel):
    bucket_lower: float
    bucket_upper: float
    mean_forecast: float
    observed_frequency: float
    count: int


def decompose_brier(
    predictions: Sequence[tuple[float, int]],
    n_buckets: int = 10,
) -> BrierDecomposition:
    """Murphy decomposition of (forecast, outcome) pairs, outcome in {0, 1}."""
    n = len(predictions)
    if n == 0:
        return BrierDecomposition(
            brier_score=0.0, reliability=0.0, resolution=0.0, uncertainty=0.0, n=0
        )

    base_rate = sum(o for _, o in predictions) / n
    buckets: dict[int, list[tuple[float, int]]] = defaultdict(list)
    for forecast, outcome in predictions:
        buckets[_bucket(forecast, n_buckets)].append((forecast, outcome))

    reliability = 0.0
    resolution = 0.0
    variance = 0.0
    covariance = 0.0
    for members in buckets.values():
        weight = len(members) / n
        mean_forecast = sum(f for f, _ in members) / len(members)
        frequency = sum(o for _, o in members) / len(members)
        reliability += weight * (mean_forecast - frequency) ** 2
        resolution += weight * (frequency - base_rate) ** 2
        variance += sum((f - mean_forecast) ** 2 for f, _ in members) / n
        covariance += sum((f - mean_forecast) * (o - frequency) for f, o in members) / n

    return BrierDecomposition(
        brier_score=sum((f - o) ** 2 for f, o in predictions) / n,
        reliability=reliability,
        resolution=resolution,
        uncertainty=base_rate * (1 - base_rate),
        within_bin_variance=variance,
        within_bin_covariance=covariance,
        n=n,
    )


def calibration_curve(
    predictions: Sequence[tuple[float, int]],
    n_buckets: int = 10,
) -> list[CalibrationBucket]:
    """Mean forecast vs observed frequency for each non-empty bucket."""
    buckets: dict[int, list[tuple[float, int]]] = defaultdict(list)
    for forecast, outcome in predictions:
        buckets[_bucket(forecast, n_buckets)].append((forecast, outcome))

    curve = []
    for index in sorted(buckets):
        members = buckets[index]
        curve.append(
            CalibrationBucket(
                bucket_lower=index / n_buckets,
                bucket_upper=(index + 1) / n_buckets,
                mean_forecast=sum(f for f, _ in members) / len(members),
                observed_frequency=sum(o for _, o in members) / len(members),
                count=len(members),
            )
        )
    return curve


class AgentStats(BaseModel):
    agent_id: str
    display_name: str
    provider: str
    avatar_emoji: str | None = None
    color: str | None = None
    bankroll: float
    total_pnl: float
    roi_pct: float
    brier_score: float | None
    total_bets: int
    resolved_bets: int
    win_rate: float
    pass_rate: float
    avg_confidence: float | None
    avg_bet_size: float | None
    total_api_cost: float
    avg_difficulty: float | None
    adjusted_pnl: float | None = None


class BetSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    agent_id: str
    market_id: str
    round_id: str
    cohort_id: str
    action: str
    confidence: float | None
    bet_size_pct: float | None
    bet_amount: float
    estimated_probability: float | None
    market_price_at_bet: float | None
    reasoning: str | None
    settled: bool
    pnl: float
    brier_score: float | None
    api_cost: float
    created_at: datetime


class AgentProfile(BaseModel):
    stats: AgentStats
    brier_decomposition: BrierDecomposition
    calibration: list[CalibrationBucket]
    recent_bets: list[BetSummary]


def _mean(values: Sequence[float]) -> float | None:
    return sum(values) / len(values) if values else None


def compute_agent_stats(
    agent: Agent,
    bets: Sequence[Bet],
    resolutions: dict[str, str],
    bankroll: float,
    initial_bankroll: float,
) -> AgentStats:
    """Aggregate one agent's bets. `resolutions` maps market id to resolution."""
    directional = [b for b in bets if b.action != ACTION_PASS]
    settled = [b for b in directional if b.settled]
    resolved = [b for b in settled if resolutions.get(b.market_id) != RESOLUTION_VOIDED]
    briers = [b.brier_score for b in settled if b.brier_score is not None]
    priced = [
        b.market_price_at_bet
        for b in directional
        if b.market_price_at_bet is not None and 0 < b.market_price_at_bet < 1
    ]
    total_pnl = sum(b.pnl or 0.0 for b in bets if b.settled)

    return AgentStats(
        agent_id=agent.id,
        display_name=agent.display_name,
        provider=agent.provider,
        avatar_emoji=agent.avatar_emoji,
        color=agent.color,
        bankroll=bankroll,
        total_pnl=total_pnl,
        roi_pct=total_pnl / initial_bankroll * 100 if initial_bankroll else 0.0,
        brier_score=_mean(briers),
        total_bets=len(directional),
        resolved_bets=len(resolved),
        win_rate=(sum(1 for b in resolved if b.pnl > 0) / len(resolved)) if resolved else 0.0,
        pass_rate=((len(bets) - len(directional)) / len(bets)) if bets else 0.0,
        avg_confidence=_mean([b.confidence for b in directional if b.confidence is not None]),
        avg_bet_size=_mean([b.bet_size_pct for b in directional if b.bet_size_pct is not None]),
        total_api_cost=sum(b.api_cost or 0.0 for b in bets),
        avg_difficulty=_mean([market_difficulty(p) for p in priced]),
    )


def _outcome_pairs(bets: Sequence[Bet], resolutions: dict[str, str]) -> list[tuple[float, int]]:
    pairs = []
    for bet in bets:
        outcome = resolutions.get(bet.market_id)
        if (
            bet.settled
            and bet.action != ACTION_PASS
            and bet.estimated_probability is not None
            and outcome in (RESOLUTION_YES, RESOLUTION_NO)
        ):
            pairs.append((bet.estimated_probability, 1 if outcome == RESOLUTION_YES else 0))
    return pairs


class Leaderboard:
    """Read-only scoring queries over bets, markets and ledgers."""

    def __init__(self, db: Database, config: TournamentConfig | None = None):
        self.db = db
        self.config = config or TournamentConfig()

    async def _bankrolls(self, session: AsyncSession, cohort_id: str | None) -> dict[str, float]:
        if cohort_id is None:
            active = await session.execute(
                select(Cohort.id).where(Cohort.status == COHORT_ACTIVE)
            )
            cohort_id = active.scalar_one_or_none()
        if cohort_id is None:
            latest = await session.execute(
                select(Cohort.id).order_by(Cohort.start_date.desc()).limit(1)
            )
            cohort_id = latest.scalar_one_or_none()
        if cohort_id is None:
            return {}

        rows = await session.execute(
            select(AgentLedger.agent_id, AgentLedger.bankroll).where(
                AgentLedger.cohort_id == cohort_id
            )
        )
        return dict(rows.all())

    async def _load(
        self,
        session: AsyncSession,
        cohort_id: str | None,
    ) -> tuple[list[Agent], dict[str, list[Bet]], dict[str, Market]]:
        agents = await list_agents(session)

        stmt = select(Bet).order_by(Bet.created_at, Bet.id)
        if cohort_id is not None:
            stmt = stmt.where(Bet.cohort_id == cohort_id)
        bets_by_agent: dict[str, list[Bet]] = defaultdict(list)
        for bet in (await session.execute(stmt)).scalars().all():
            bets_by_agent[bet.agent_id].append(bet)

        market_ids = {b.market_id for bets in bets_by_agent.values() for b in bets}
        markets: dict[str, Market] = {}
        if market_ids:
            rows = await session.execute(select(Market).where(Market.id.in_(market_ids)))
            markets = {m.id: m for m in rows.scalars().all()}
        return agents, bets_by_agent, markets

    async def get_leaderboard(self, cohort_id: str | None = None) -> list[AgentStats]:
        """Per-agent stats, best realized P&L first."""
        async with self.db.session() as session:
            agents, bets_by_agent, markets = await self._load(session, cohort_id)
            bankrolls = await self._bankrolls(session, cohort_id)

        resolutions = {m.id: m.resolution for m in markets.values()}
        initial = self.config.initial_bankroll
        board = [
            compute_agent_stats(
                agent,
                bets_by_agent.get(agent.id, []),
                resolutions,
                bankrolls.get(agent.id, initial),
                initial,
            )
            for agent in agents
        ]
        board.sort(key=lambda s: s.total_pnl, reverse=True)
        return board

    async def get_adjusted_leaderboard(
        self,
        cohort_id: str | None = None,
        threshold: float | None = None,
    ) -> list[AgentStats]:
        """Leaderboard where correlated markets count once per agent."""
        async with self.db.session() as session:
            agents, bets_by_agent, markets = await self._load(session, cohort_id)
            bankrolls = await self._bankrolls(session, cohort_id)

        pairs = [(m.id, m.question) for m in sorted(markets.values(), key=lambda m: m.id)]
        clusters = detect_correlation(
            pairs, DEFAULT_THRESHOLD if threshold is None else threshold
        )
        logger.debug(
            f"Adjusted leaderboard: {len(pairs)} markets in "
            f"{len(set(clusters.values()))} clusters"
        )

        resolutions = {m.id: m.resolution for m in markets.values()}
        initial = self.config.initial_bankroll
        board = []
        for agent in agents:
            bets = bets_by_agent.get(agent.id, [])
            stats = compute_agent_stats(
                agent, bets, resolutions, bankrolls.get(agent.id, initial), initial
            )
            stats.adjusted_pnl = adjusted_pnl(bets, clusters)
            board.append(stats)

        board.sort(key=lambda s: s.adjusted_pnl, reverse=True)
        return board

    async def get_agent_profile(
        self,
        agent_id: str,
        cohort_id: str | None = None,
        recent_limit: int = 20,
    ) -> AgentProfile:
        async with self.db.session() as session:
            agent = await session.get(Agent, agent_id)
            if agent is None:
                raise AgentNotFoundError(f"Agent not found: {agent_id}")

            stmt = select(Bet).where(Bet.agent_id == agent_id).order_by(Bet.created_at, Bet.id)
            if cohort_id is not None:
                stmt = stmt.where(Bet.cohort_id == cohort_id)
            bets = list((await session.execute(stmt)).scalars().all())

            market_ids = {b.market_id for b in bets}
            resolutions: dict[str, str] = {}
            if market_ids:
                rows = await session.execute(
                    select(Market.id, Market.resolution).where(Market.id.in_(market_ids))
                )
                resolutions = dict(rows.all())
            bankrolls = await self._bankrolls(session, cohort_id)

        initial = self.config.initial_bankroll
        pairs = _outcome_pairs(bets, resolutions)
        return AgentProfile(
            stats=compute_agent_stats(
                agent, bets, resolutions, bankrolls.get(agent_id, initial), initial
            ),
            brier_decomposition=decompose_brier(pairs),
            calibration=calibration_curve(pairs),
            recent_bets=[BetSummary.model_validate(b) for b in reversed(bets[-recent_limit:])],
        )
