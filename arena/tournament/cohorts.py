"""Weekly cohort rollover and ledger seeding."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Literal

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import TournamentConfig
from arena.database import Database
from arena.models import COHORT_ACTIVE, COHORT_SETTLING, AgentLedger, Cohort
from arena.tournament.budget import BudgetGuard
from arena.tournament.roster import list_agents

logger = logging.getLogger(__name__)


class CohortResult(BaseModel):
    status: Literal["created", "skipped"]
    cohort_id: str | None = None
    previous_cohort_ids: list[str] = []
    reason: str | None = None

    @property
    def created(self) -> bool:
        return self.status == "created"


def cohort_id_for(moment: datetime) -> str:
    """ISO week label, e.g. 2026-W42."""
    iso_year, iso_week, _ = moment.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def week_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """Monday 00:00:00 through Sunday 23:59:59 (UTC) of the ISO week."""
    iso_year, iso_week, _ = moment.isocalendar()
    monday = date.fromisocalendar(iso_year, iso_week, 1)
    start = datetime.combine(monday, time.min, tzinfo=timezone.utc)
    end = start + timedelta(days=7) - timedelta(seconds=1)
    return start, end


async def get_active_cohort(session: AsyncSession) -> Cohort | None:
    result = await session.execute(select(Cohort).where(Cohort.status == COHORT_ACTIVE))
    return result.scalar_one_or_none()


class CohortManager:
    def __init__(
        self,
        db: Database,
        config: TournamentConfig | None = None,
        budget: BudgetGuard | None = None,
    ):
        self.db = db
        self.config = config or TournamentConfig()
        self.budget = budget

    async def create_cohort_if_due(
        self,
        now: datetime | None = None,
        check_budget: bool = True,
    ) -> CohortResult:
        """
        Open the cohort for the current ISO week.

        In one transaction: every active cohort moves to settling, the new
        cohort is inserted as active, and each agent (ensemble included) gets
        a ledger at the initial bankroll. A second call in the same week is a
        no-op that reports the skip.
        """
        now = now or datetime.now(timezone.utc)
        cohort_id = cohort_id_for(now)

        if check_budget and self.budget is not None:
            skip = await self.budget.check_round()
            if skip is not None:
                return CohortResult(status="skipped", reason=skip.reason)

        start, end = week_bounds(now)

        try:
            async with self.db.session() as session:
                async with session.begin():
                    if await session.get(Cohort, cohort_id) is not None:
                        return CohortResult(
                            status="skipped",
                            cohort_id=cohort_id,
                            reason=f"Cohort {cohort_id} already exists",
                        )

                    previous = await session.execute(
                        select(Cohort.id).where(Cohort.status == COHORT_ACTIVE)
                    )
                    previous_ids = list(previous.scalars().all())
                    await session.execute(
                        update(Cohort)
                        .where(Cohort.status == COHORT_ACTIVE)
                        .values(status=COHORT_SETTLING)
                    )

                    session.add(
                        Cohort(
                            id=cohort_id,
                            start_date=start,
                            end_date=end,
                            status=COHORT_ACTIVE,
                            market_count=0,
                        )
                    )
                    await session.flush()

                    agents = await list_agents(session)
                    for agent in agents:
                        session.add(
                            AgentLedger(
                                cohort_id=cohort_id,
                                agent_id=agent.id,
                                bankroll=self.config.initial_bankroll,
                            )
                        )
        except IntegrityError:
            # A concurrent invocation created the same week first
            logger.info(f"Cohort {cohort_id} created concurrently, skipping")
            return CohortResult(
                status="skipped",
                cohort_id=cohort_id,
                reason=f"Cohort {cohort_id} already exists",
            )

        logger.info(
            f"Created cohort {cohort_id} with {len(agents)} ledgers "
            f"(moved to settling: {previous_ids or 'none'})"
        )
        return CohortResult(
            status="created",
            cohort_id=cohort_id,
            previous_cohort_ids=previous_ids,
        )

    async def ensure_active_cohort(self, now: datetime | None = None) -> str:
        """Return the active cohort id, creating this week's cohort when none is active."""
        async with self.db.session() as session:
            active = await get_active_cohort(session)
            if active is not None:
                return active.id

        result = await self.create_cohort_if_due(now, check_budget=False)
        if result.cohort_id is None:
            raise RuntimeError(f"Could not open a cohort: {result.reason}")
        return result.cohort_id
