"""Round orchestration: fan out forecasts per market, record bets, debit ledgers."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Sequence
from uuid import uuid4

import logfire
from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import TournamentConfig
from arena.database import Database
from arena.models import (
    ACTION_BET_NO,
    ACTION_BET_YES,
    ACTION_PASS,
    COHORT_ACTIVE,
    RESOLUTION_OPEN,
    ROUND_COMPLETED,
    ROUND_IN_PROGRESS,
    Agent,
    AgentLedger,
    Bet,
    Cohort,
    Market,
    Round,
)
from arena.models.base import utcnow
from arena.tournament.exceptions import (
    CohortNotActiveError,
    CohortNotFoundError,
    NoAdmissibleMarketsError,
    RoundNotFoundError,
)
from arena.tournament.forecast import ForecastClient, ForecastResult
from arena.tournament.roster import list_agents
from arena.tournament.scoring import BetSummary

logger = logging.getLogger(__name__)


class EnsembleDecision(BaseModel):
    action: str
    estimated_probability: float | None
    confidence: float | None
    bet_size_pct: float | None
    yes_votes: int
    no_votes: int
    passes: int
    reasoning: str


class MarketOutcome(BaseModel):
    market_id: str
    forced_passes: int
    cost: float
    bets: list[BetSummary]


class RoundResult(BaseModel):
    """
    Outcome of one run_round or resume_round call.

    Counts and `bets` cover the bets written by this call only; a resumed
    round does not repeat what an earlier call already recorded.
    """

    round_id: str
    cohort_id: str
    status: str
    market_ids: list[str]
    markets_processed: int
    bets_created: int
    forced_passes: int
    total_cost: float
    bets: list[BetSummary] = []

    @property
    def completed(self) -> bool:
        return self.status == ROUND_COMPLETED

    @classmethod
    def from_outcomes(
        cls,
        round_: Round,
        status: str,
        outcomes: Sequence[MarketOutcome],
    ) -> RoundResult:
        bets = [bet for outcome in outcomes for bet in outcome.bets]
        return cls(
            round_id=round_.id,
            cohort_id=round_.cohort_id,
            status=status,
            market_ids=list(round_.market_ids),
            markets_processed=len(outcomes),
            bets_created=len(bets),
            forced_passes=sum(o.forced_passes for o in outcomes),
            total_cost=sum(o.cost for o in outcomes),
            bets=bets,
        )


def _mean(values: Sequence[float | None]) -> float | None:
    present = [v for v in values if v is not None]
    return sum(present) / len(present) if present else None


def compute_ensemble(bets: Sequence[Bet]) -> EnsembleDecision:
    """
    Majority vote over directional bets; ties (including no votes) pass.

    Probability, confidence and bet size are averaged over non-pass bets only.
    """
    yes_votes = sum(1 for b in bets if b.action == ACTION_BET_YES)
    no_votes = sum(1 for b in bets if b.action == ACTION_BET_NO)
    passes = len(bets) - yes_votes - no_votes
    directional = [b for b in bets if b.action != ACTION_PASS]

    if yes_votes > no_votes:
        action = ACTION_BET_YES
    elif no_votes > yes_votes:
        action = ACTION_BET_NO
    else:
        action = ACTION_PASS

    probability = _mean([b.estimated_probability for b in directional])
    prob_text = f"{probability:.3f}" if probability is not None else "n/a"

    return EnsembleDecision(
        action=action,
        estimated_probability=probability,
        confidence=_mean([b.confidence for b in directional]),
        bet_size_pct=_mean([b.bet_size_pct for b in directional]),
        yes_votes=yes_votes,
        no_votes=no_votes,
        passes=passes,
        reasoning=(
            f"Ensemble of {len(bets)} models: {yes_votes} bet YES, "
            f"{no_votes} bet NO, {passes} passed. Avg probability: {prob_text}"
        ),
    )


def select_round_markets(
    markets: Sequence[Market],
    config: TournamentConfig,
) -> list[Market]:
    """Open markets with a known, non-extreme YES price, highest 24h volume first."""
    admissible = [
        m
        for m in markets
        if m.resolution == RESOLUTION_OPEN
        and m.yes_price is not None
        and config.min_yes_price <= m.yes_price <= config.max_yes_price
    ]
    admissible.sort(key=lambda m: m.volume_24h or 0.0, reverse=True)
    return admissible[: config.markets_per_round]


def stake_for(bankroll: float, bet_size_pct: float | None) -> float:
    if bet_size_pct is None or bankroll <= 0:
        return 0.0
    return bankroll * bet_size_pct / 100


class RoundOrchestrator:
    """
    Runs one round for the active cohort.

    Markets are processed one at a time. Within a market every agent is
    forecast concurrently, and nothing is written until all of them have
    returned; the market's bets, ledger debits and ensemble bet then commit
    in a single transaction.
    """

    def __init__(
        self,
        db: Database,
        forecaster: ForecastClient,
        config: TournamentConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.forecaster = forecaster
        self.config = config or TournamentConfig()
        self._clock = clock

    async def run_round(
        self,
        cohort_id: str,
        timeout_seconds: float | None = None,
    ) -> RoundResult:
        if timeout_seconds is None:
            timeout_seconds = self.config.round_timeout_seconds
        deadline = self._clock() + timeout_seconds if timeout_seconds else None

        async with self.db.session() as session:
            await self._require_active_cohort(session, cohort_id)

            result = await session.execute(
                select(Market).where(Market.resolution == RESOLUTION_OPEN)
            )
            markets = select_round_markets(list(result.scalars().all()), self.config)
            if not markets:
                raise NoAdmissibleMarketsError("No markets available")

            round_ = Round(
                id=uuid4().hex,
                cohort_id=cohort_id,
                market_ids=[m.id for m in markets],
                status=ROUND_IN_PROGRESS,
            )
            session.add(round_)
            await session.commit()

        logger.info(
            f"Started round {round_.id} for cohort {cohort_id} on {len(markets)} markets"
        )
        return await self._run_markets(round_, markets, deadline)

    async def resume_round(
        self,
        round_id: str,
        timeout_seconds: float | None = None,
    ) -> RoundResult:
        """Continue an in-progress round. Pairs that already have a bet are skipped."""
        if timeout_seconds is None:
            timeout_seconds = self.config.round_timeout_seconds
        deadline = self._clock() + timeout_seconds if timeout_seconds else None

        async with self.db.session() as session:
            round_ = await session.get(Round, round_id)
            if round_ is None:
                raise RoundNotFoundError(f"Round not found: {round_id}")
            if round_.status == ROUND_COMPLETED:
                logger.info(f"Round {round_id} already completed")
                return RoundResult.from_outcomes(round_, ROUND_COMPLETED, [])

            await self._require_active_cohort(session, round_.cohort_id)

            result = await session.execute(
                select(Market).where(Market.id.in_(round_.market_ids))
            )
            by_id = {m.id: m for m in result.scalars().all()}

        markets = [by_id[mid] for mid in round_.market_ids if mid in by_id]
        if len(markets) < len(round_.market_ids):
            missing = [mid for mid in round_.market_ids if mid not in by_id]
            logger.warning(f"Round {round_id}: markets no longer cached, skipping {missing}")
        logger.info(f"Resuming round {round_id} ({len(markets)} markets)")
        return await self._run_markets(round_, markets, deadline)

    async def _require_active_cohort(self, session: AsyncSession, cohort_id: str) -> Cohort:
        cohort = await session.get(Cohort, cohort_id)
        if cohort is None:
            raise CohortNotFoundError(f"Cohort not found: {cohort_id}")
        if cohort.status != COHORT_ACTIVE:
            raise CohortNotActiveError(
                f"Cohort {cohort_id} is {cohort.status}, not active"
            )
        return cohort

    async def _run_markets(
        self,
        round_: Round,
        markets: Sequence[Market],
        deadline: float | None,
    ) -> RoundResult:
        async with self.db.session() as session:
            agents = await list_agents(session)

        forecasters = [a for a in agents if not a.is_ensemble]
        ensemble = next((a for a in agents if a.is_ensemble), None)

        outcomes: list[MarketOutcome] = []
        status = ROUND_IN_PROGRESS
        with logfire.span(
            "round {round_id}", round_id=round_.id, cohort_id=round_.cohort_id
        ):
            for market in markets:
                if deadline is not None and self._clock() >= deadline:
                    logger.warning(
                        f"Round {round_.id} hit its deadline after {len(outcomes)} of "
                        f"{len(markets)} markets; leaving it in progress"
                    )
                    break
                outcomes.append(
                    await self._process_market(round_, market, forecasters, ensemble)
                )
            else:
                await self._complete_round(round_, len(markets))
                status = ROUND_COMPLETED

        return RoundResult.from_outcomes(round_, status, outcomes)

    async def _previous_bets(
        self,
        session: AsyncSession,
        agent_id: str,
        market_id: str,
        cohort_id: str,
    ) -> list[Bet]:
        result = await session.execute(
            select(Bet)
            .where(
                Bet.agent_id == agent_id,
                Bet.market_id == market_id,
                Bet.cohort_id == cohort_id,
            )
            .order_by(Bet.created_at.desc(), Bet.id.desc())
            .limit(self.config.previous_bets_context)
        )
        return list(result.scalars().all())

    async def _debit(
        self,
        session: AsyncSession,
        cohort_id: str,
        agent_id: str,
        amount: float,
    ) -> None:
        await session.execute(
            update(AgentLedger)
            .where(AgentLedger.cohort_id == cohort_id, AgentLedger.agent_id == agent_id)
            .values(bankroll=AgentLedger.bankroll - amount)
        )

    def _bet_from_forecast(
        self,
        agent: Agent,
        round_: Round,
        market: Market,
        bankroll: float,
        result: ForecastResult,
    ) -> Bet:
        bet = Bet(
            agent_id=agent.id,
            market_id=market.id,
            cohort_id=round_.cohort_id,
            round_id=round_.id,
            confidence=None,
            bet_size_pct=None,
            estimated_probability=None,
            market_price_at_bet=market.yes_price,
            prompt_text=result.prompt_text,
            raw_response=result.raw_response,
            api_cost=result.cost,
            api_latency_ms=result.latency_ms,
            settled=False,
            pnl=0.0,
            brier_score=None,
        )

        prediction = result.prediction
        if prediction is None:
            bet.action = ACTION_PASS
            bet.bet_amount = 0.0
            bet.reasoning = f"Forced pass: {result.error or 'no valid prediction'}"
            bet.key_factors = []
            return bet

        bet.action = prediction.action
        bet.confidence = prediction.confidence
        bet.bet_size_pct = prediction.bet_size_pct
        bet.estimated_probability = prediction.estimated_probability
        bet.reasoning = prediction.reasoning
        bet.key_factors = prediction.key_factors
        bet.bet_amount = (
            stake_for(bankroll, prediction.bet_size_pct)
            if prediction.action != ACTION_PASS
            else 0.0
        )
        return bet

    def _failed_forecast(self, agent: Agent, round_: Round, market: Market, error: Exception) -> Bet:
        return Bet(
            agent_id=agent.id,
            market_id=market.id,
            cohort_id=round_.cohort_id,
            round_id=round_.id,
            action=ACTION_PASS,
            confidence=None,
            bet_size_pct=None,
            bet_amount=0.0,
            estimated_probability=None,
            market_price_at_bet=market.yes_price,
            reasoning=f"Forced pass: {type(error).__name__}: {error}",
            key_factors=[],
            api_cost=0.0,
            settled=False,
            pnl=0.0,
            brier_score=None,
        )

    async def _process_market(
        self,
        round_: Round,
        market: Market,
        agents: Sequence[Agent],
        ensemble: Agent | None,
    ) -> MarketOutcome:
        cohort_id = round_.cohort_id

        with logfire.span("market {market_id}", market_id=market.id, round_id=round_.id):
            async with self.db.session() as session:
                ledger_rows = await session.execute(
                    select(AgentLedger).where(AgentLedger.cohort_id == cohort_id)
                )
                bankrolls = {
                    ledger.agent_id: ledger.bankroll
                    for ledger in ledger_rows.scalars().all()
                }

                existing_rows = await session.execute(
                    select(Bet).where(Bet.round_id == round_.id, Bet.market_id == market.id)
                )
                existing = {b.agent_id: b for b in existing_rows.scalars().all()}

                pending = [a for a in agents if a.id not in existing]
                previous = {
                    a.id: await self._previous_bets(session, a.id, market.id, cohort_id)
                    for a in pending
                }

            # Join barrier: all forecasts finish before anything is written
            results = await asyncio.gather(
                *(
                    self.forecaster.forecast(a.openrouter_id, market, previous[a.id])
                    for a in pending
                ),
                return_exceptions=True,
            )

            new_bets: list[Bet] = []
            forced_passes = 0
            for agent, result in zip(pending, results):
                if isinstance(result, BaseException):
                    if not isinstance(result, Exception):
                        raise result
                    logfire.error(
                        "Forecast failed for {agent_id}",
                        agent_id=agent.id,
                        market_id=market.id,
                        error=str(result),
                    )
                    new_bets.append(self._failed_forecast(agent, round_, market, result))
                    forced_passes += 1
                    continue

                bankroll = bankrolls.get(agent.id, self.config.initial_bankroll)
                new_bets.append(
                    self._bet_from_forecast(agent, round_, market, bankroll, result)
                )
                if result.is_forced_pass:
                    forced_passes += 1

            async with self.db.session() as session:
                for agent_id in {b.agent_id for b in new_bets} - set(bankrolls):
                    session.add(
                        AgentLedger(
                            cohort_id=cohort_id,
                            agent_id=agent_id,
                            bankroll=self.config.initial_bankroll,
                        )
                    )
                session.add_all(new_bets)
                await session.flush()

                for bet in new_bets:
                    if bet.bet_amount > 0:
                        await self._debit(session, cohort_id, bet.agent_id, bet.bet_amount)

                if ensemble is not None and ensemble.id not in existing:
                    member_bets = [b for b in existing.values() if b.agent_id != ensemble.id]
                    ensemble_bet = self._ensemble_bet(
                        ensemble,
                        round_,
                        market,
                        bankrolls.get(ensemble.id, self.config.initial_bankroll),
                        member_bets + new_bets,
                    )
                    if ensemble.id not in bankrolls:
                        session.add(
                            AgentLedger(
                                cohort_id=cohort_id,
                                agent_id=ensemble.id,
                                bankroll=self.config.initial_bankroll,
                            )
                        )
                        await session.flush()
                    session.add(ensemble_bet)
                    if ensemble_bet.bet_amount > 0:
                        await self._debit(
                            session, cohort_id, ensemble.id, ensemble_bet.bet_amount
                        )
                    new_bets.append(ensemble_bet)

                await session.commit()

        cost = sum(b.api_cost or 0.0 for b in new_bets)
        logfire.info(
            "Market {market_id} recorded {count} bets",
            market_id=market.id,
            count=len(new_bets),
            forced_passes=forced_passes,
            cost=cost,
        )
        return MarketOutcome(
            market_id=market.id,
            forced_passes=forced_passes,
            cost=cost,
            bets=[BetSummary.model_validate(b) for b in new_bets],
        )

    def _ensemble_bet(
        self,
        ensemble: Agent,
        round_: Round,
        market: Market,
        bankroll: float,
        member_bets: Sequence[Bet],
    ) -> Bet:
        decision = compute_ensemble(member_bets)
        amount = (
            stake_for(bankroll, decision.bet_size_pct)
            if decision.action != ACTION_PASS
            else 0.0
        )
        return Bet(
            agent_id=ensemble.id,
            market_id=market.id,
            cohort_id=round_.cohort_id,
            round_id=round_.id,
            action=decision.action,
            confidence=decision.confidence,
            bet_size_pct=decision.bet_size_pct,
            bet_amount=amount,
            estimated_probability=decision.estimated_probability,
            market_price_at_bet=market.yes_price,
            reasoning=decision.reasoning,
            key_factors=[],
            api_cost=0.0,
            api_latency_ms=0,
            settled=False,
            pnl=0.0,
            brier_score=None,
        )

    async def _complete_round(self, round_: Round, market_count: int) -> None:
        """Close the round and credit the cohort with the markets it actually covered."""
        async with self.db.session() as session:
            await session.execute(
                update(Round)
                .where(Round.id == round_.id)
                .values(status=ROUND_COMPLETED, completed_at=utcnow())
            )
            await session.execute(
                update(Cohort)
                .where(Cohort.id == round_.cohort_id)
                .values(market_count=Cohort.market_count + market_count)
            )
            await session.commit()
        round_.status = ROUND_COMPLETED
        logger.info(f"Completed round {round_.id} ({market_count} markets)")
