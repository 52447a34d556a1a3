"""Market resolution, P&L, Brier scores and ledger credits."""

import logging

import logfire
from pydantic import BaseModel
from sqlalchemy import select, update

from arena.database import Database
from arena.models import (
    ACTION_BET_NO,
    ACTION_BET_YES,
    ACTION_PASS,
    COHORT_COMPLETED,
    COHORT_SETTLING,
    RESOLUTION_NO,
    RESOLUTION_VOIDED,
    RESOLUTION_YES,
    AgentLedger,
    Bet,
    Cohort,
    Market,
)
from arena.models.base import utcnow
from arena.services.polymarket.exceptions import PolymarketAPIError
from arena.tournament.interfaces import MarketFeed

logger = logging.getLogger(__name__)


def calculate_pnl(
    action: str,
    bet_amount: float,
    price_at_bet: float,
    outcome: str,
) -> float:
    """
    Realized P&L of one bet.

    `price_at_bet` is the YES price when the bet was placed. A NO bet buys
    the other side at 1 - price. Winners receive amount * (1/price - 1),
    losers forfeit the amount; voided markets and passes realize nothing.
    """
    if action == ACTION_PASS or outcome == RESOLUTION_VOIDED:
        return 0.0
    if not 0 < price_at_bet < 1:
        raise ValueError(f"Price at bet must be strictly between 0 and 1, got {price_at_bet}")

    if action == ACTION_BET_YES:
        won, side_price = outcome == RESOLUTION_YES, price_at_bet
    elif action == ACTION_BET_NO:
        won, side_price = outcome == RESOLUTION_NO, 1 - price_at_bet
    else:
        raise ValueError(f"Unknown bet action: {action}")

    if won:
        return bet_amount * (1 / side_price - 1)
    return -bet_amount


def calculate_brier_score(estimated_probability: float, outcome: str) -> float:
    """Squared error of the YES probability against the 0/1 outcome."""
    actual = 1.0 if outcome == RESOLUTION_YES else 0.0
    return (estimated_probability - actual) ** 2


class SettlementResult(BaseModel):
    settled_count: int = 0
    resolved_markets: list[str] = []
    voided_markets: list[str] = []
    pending_markets: list[str] = []
    completed_cohorts: list[str] = []


class SettlementEngine:
    """
    Reconciles resolved markets into bets and ledgers.

    Safe to run repeatedly and alongside rounds: each bet flips from
    unsettled to settled exactly once, and ledgers only move through
    relative updates.
    """

    def __init__(self, db: Database, feed: MarketFeed):
        self.db = db
        self.feed = feed

    async def settle_markets(self) -> SettlementResult:
        result = SettlementResult()

        with logfire.span("settlement"):
            async with self.db.session() as session:
                rows = await session.execute(
                    select(Bet.market_id).where(Bet.settled.is_(False)).distinct()
                )
                market_ids = sorted(rows.scalars().all())

            logger.info(f"Checking {len(market_ids)} markets with unsettled bets")

            for market_id in market_ids:
                outcome = await self._resolve(market_id)
                if outcome is None:
                    result.pending_markets.append(market_id)
                    continue

                result.settled_count += await self._settle_market(market_id, outcome)
                if outcome == RESOLUTION_VOIDED:
                    result.voided_markets.append(market_id)
                else:
                    result.resolved_markets.append(market_id)

            result.completed_cohorts = await self._complete_cohorts()

        logfire.info(
            "Settlement finished: {settled} bets settled",
            settled=result.settled_count,
            resolved=len(result.resolved_markets),
            voided=len(result.voided_markets),
            pending=len(result.pending_markets),
        )
        return result

    async def _resolve(self, market_id: str) -> str | None:
        """Terminal outcome for a market, or None while it is still open."""
        async with self.db.session() as session:
            market = await session.get(Market, market_id)

        if market is None:
            logger.warning(f"Market {market_id} missing from cache, skipping")
            return None
        if not market.is_open:
            return market.resolution

        try:
            resolution = await self.feed.check_resolution(market_id)
        except PolymarketAPIError as e:
            logger.warning(f"Resolution check failed for {market_id}, will retry: {e}")
            return None

        if not resolution.resolved:
            return None
        return resolution.outcome

    async def _settle_market(self, market_id: str, outcome: str) -> int:
        settled_count = 0
        now = utcnow()

        async with self.db.session() as session:
            market = await session.get(Market, market_id)
            if market.is_open:
                market.resolution = outcome
                market.resolved_at = now

            rows = await session.execute(
                select(Bet).where(Bet.market_id == market_id, Bet.settled.is_(False))
            )
            bets = list(rows.scalars().all())

            for bet in bets:
                if outcome == RESOLUTION_VOIDED or bet.action == ACTION_PASS:
                    pnl, brier = 0.0, None
                else:
                    pnl = calculate_pnl(
                        bet.action, bet.bet_amount, bet.market_price_at_bet, outcome
                    )
                    brier = (
                        calculate_brier_score(bet.estimated_probability, outcome)
                        if bet.estimated_probability is not None
                        else None
                    )

                flipped = await session.execute(
                    update(Bet)
                    .where(Bet.id == bet.id, Bet.settled.is_(False))
                    .values(settled=True, pnl=pnl, brier_score=brier, settled_at=now)
                    .execution_options(synchronize_session=False)
                )
                if flipped.rowcount != 1:
                    # Settled by a concurrent run
                    continue

                # Stake comes back on wins and voids, nothing on losses
                credit = bet.bet_amount + pnl
                if credit:
                    await session.execute(
                        update(AgentLedger)
                        .where(
                            AgentLedger.cohort_id == bet.cohort_id,
                            AgentLedger.agent_id == bet.agent_id,
                        )
                        .values(bankroll=AgentLedger.bankroll + credit)
                    )

                if bet.action != ACTION_PASS:
                    settled_count += 1

            await session.commit()

        logger.info(
            f"Settled market {market_id} as {outcome}: {settled_count} bets "
            f"({len(bets)} rows incl. passes)"
        )
        return settled_count

    async def _complete_cohorts(self) -> list[str]:
        async with self.db.session() as session:
            unsettled = (
                select(Bet.id)
                .where(Bet.cohort_id == Cohort.id, Bet.settled.is_(False))
                .exists()
            )
            rows = await session.execute(
                select(Cohort.id).where(Cohort.status == COHORT_SETTLING, ~unsettled)
            )
            cohort_ids = list(rows.scalars().all())
            if cohort_ids:
                await session.execute(
                    update(Cohort)
                    .where(Cohort.id.in_(cohort_ids))
                    .values(status=COHORT_COMPLETED)
                )
                await session.commit()
                logger.info(f"Completed cohorts: {cohort_ids}")
            return cohort_ids
