"""Integration tests for round execution against SQLite."""

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from arena.models import AgentLedger, Bet, Cohort, Market, Round
from arena.services.openrouter import OpenRouterAuthError
from arena.tournament import (
    CohortNotActiveError,
    CohortNotFoundError,
    NoAdmissibleMarketsError,
    RoundNotFoundError,
    RoundOrchestrator,
    SkipResult,
    TournamentService,
)
from tests.helpers import BarrierGateway, make_market, no_sleep, prediction_json

WEEK_42 = datetime(2026, 10, 14, 9, 0, tzinfo=timezone.utc)
COHORT = "2026-W42"

QWEN = "qwen/qwen3-235b-a22b"
GEMINI = "google/gemini-3-flash-preview"
GROK = "x-ai/grok-4.1-fast"
DEEPSEEK = "deepseek/deepseek-v3.2"


async def open_cohort(tournament, feed, markets) -> None:
    feed.markets = markets
    await tournament.create_cohort_if_due(WEEK_42)
    await tournament.sync_markets()


async def ledgers(db, cohort_id: str = COHORT) -> dict[str, float]:
    async with db.session() as session:
        rows = await session.execute(
            select(AgentLedger.agent_id, AgentLedger.bankroll).where(
                AgentLedger.cohort_id == cohort_id
            )
        )
        return dict(rows.all())


async def bets_by_agent(db, market_id: str | None = None) -> dict[str, list[Bet]]:
    stmt = select(Bet).order_by(Bet.id)
    if market_id is not None:
        stmt = stmt.where(Bet.market_id == market_id)
    grouped: dict[str, list[Bet]] = {}
    async with db.session() as session:
        for bet in (await session.execute(stmt)).scalars().all():
            grouped.setdefault(bet.agent_id, []).append(bet)
    return grouped


class TestRunRound:
    @pytest.mark.asyncio
    async def test_single_market_round_records_bets_and_debits(self, tournament, db, feed, gateway):
        """Five agents bet YES at 0.40 with 10% of bankroll, one passes."""
        gateway.script = {QWEN: [prediction_json(action="pass")]}
        await open_cohort(tournament, feed, [make_market("m1", yes_price=0.40)])

        result = await tournament.run_round(COHORT)

        assert result.completed
        assert result.markets_processed == 1
        assert result.bets_created == 7
        assert result.forced_passes == 0
        assert result.total_cost == pytest.approx(0.06)

        grouped = await bets_by_agent(db)
        assert len(grouped) == 7
        for agent_id, (bet,) in grouped.items():
            assert bet.round_id == result.round_id
            assert bet.settled is False
            assert bet.pnl == 0.0
            assert bet.brier_score is None
            assert bet.market_price_at_bet == pytest.approx(0.40)
            if agent_id == "qwen-3":
                assert bet.action == "pass"
                assert bet.bet_amount == 0.0
            else:
                assert bet.action == "bet_yes"
                assert bet.bet_amount == pytest.approx(1000.0)

        ensemble = grouped["ensemble"][0]
        assert ensemble.api_cost == 0.0
        assert ensemble.estimated_probability == pytest.approx(0.7)
        assert ensemble.reasoning.startswith("Ensemble of 6 models: 5 bet YES, 0 bet NO, 1 passed.")

        bankrolls = await ledgers(db)
        assert bankrolls["qwen-3"] == 10_000.0
        assert bankrolls["gpt-5.2-chat"] == pytest.approx(9_000.0)
        assert bankrolls["ensemble"] == pytest.approx(9_000.0)

        async with db.session() as session:
            cohort = await session.get(Cohort, COHORT)
            round_ = await session.get(Round, result.round_id)
        assert cohort.market_count == 1
        assert round_.status == "completed"
        assert round_.completed_at is not None

    @pytest.mark.asyncio
    async def test_result_carries_the_new_bets(self, tournament, feed, gateway):
        gateway.script = {GEMINI: [RuntimeError("worker crashed")]}
        await open_cohort(tournament, feed, [make_market("m1")])

        result = await tournament.run_round(COHORT)

        assert len(result.bets) == result.bets_created == 7
        assert {b.round_id for b in result.bets} == {result.round_id}
        by_agent = {b.agent_id: b for b in result.bets}
        assert by_agent["gemini-3-flash"].action == "pass"
        assert by_agent["gemini-3-flash"].reasoning.startswith("Forced pass")
        assert by_agent["gpt-5.2-chat"].bet_amount == pytest.approx(1000.0)
        assert result.forced_passes == 1

    @pytest.mark.asyncio
    async def test_get_round_returns_round_and_bets(self, tournament, feed):
        await open_cohort(tournament, feed, [make_market("m1")])
        result = await tournament.run_round(COHORT)

        detail = await tournament.get_round(result.round_id)

        assert detail.round_id == result.round_id
        assert detail.status == "completed"
        assert detail.market_ids == ["m1"]
        assert detail.bet_count == 7
        assert detail.total_cost == pytest.approx(0.06)
        assert sorted(b.id for b in detail.bets) == sorted(b.id for b in result.bets)

        with pytest.raises(RoundNotFoundError):
            await tournament.get_round("missing")

    @pytest.mark.asyncio
    async def test_agents_are_forecast_concurrently(self, settings, db, feed):
        gateway = BarrierGateway(parties=6)
        tournament = TournamentService(settings, db, gateway, feed, sleep=no_sleep)
        await open_cohort(tournament, feed, [make_market("m1")])

        result = await tournament.run_round(COHORT)

        assert gateway.max_in_flight == 6
        assert result.forced_passes == 0
        assert len(gateway.calls) == 6

    @pytest.mark.asyncio
    async def test_budget_exhausted_skips_without_new_round(self, tournament, db, feed, settings):
        await open_cohort(tournament, feed, [make_market("m1")])
        await tournament.run_round(COHORT)
        settings.budget.cap_usd = 0.01

        result = await tournament.run_round(COHORT)

        assert isinstance(result, SkipResult)
        assert result.reason.startswith("Budget exhausted.")
        async with db.session() as session:
            assert (await session.execute(select(func.count(Round.id)))).scalar_one() == 1
            assert (await session.execute(select(func.count(Bet.id)))).scalar_one() == 7

    @pytest.mark.asyncio
    async def test_stake_uses_bankroll_at_market_start(self, tournament, db, feed):
        await open_cohort(
            tournament,
            feed,
            [make_market("m1", volume_24h=90_000), make_market("m2", volume_24h=10_000)],
        )

        result = await tournament.run_round(COHORT)

        assert result.market_ids == ["m1", "m2"]
        second = (await bets_by_agent(db, "m2"))["gpt-5.2-chat"][0]
        assert second.bet_amount == pytest.approx(900.0)
        assert (await ledgers(db))["gpt-5.2-chat"] == pytest.approx(8_100.0)

    @pytest.mark.asyncio
    async def test_failures_become_forced_passes(self, tournament, db, feed, gateway):
        gateway.script = {
            GEMINI: [OpenRouterAuthError("bad key", status_code=401)],
            GROK: [RuntimeError("worker crashed")],
            DEEPSEEK: ["not json at all"],
        }
        await open_cohort(tournament, feed, [make_market("m1")])

        result = await tournament.run_round(COHORT)

        assert result.completed
        assert result.forced_passes == 3
        grouped = await bets_by_agent(db)
        for agent_id in ("gemini-3-flash", "grok-4.1-fast", "deepseek-v3.2"):
            bet = grouped[agent_id][0]
            assert bet.action == "pass"
            assert bet.bet_amount == 0.0
            assert bet.reasoning.startswith("Forced pass")
        assert grouped["deepseek-v3.2"][0].api_cost == pytest.approx(0.01)
        assert grouped["deepseek-v3.2"][0].raw_response == "not json at all"
        assert grouped["grok-4.1-fast"][0].api_cost == 0.0

        bankrolls = await ledgers(db)
        assert bankrolls["gemini-3-flash"] == 10_000.0
        assert bankrolls["kimi-k2.5"] == pytest.approx(9_000.0)

    @pytest.mark.asyncio
    async def test_ensemble_tie_passes(self, tournament, db, feed, gateway):
        gateway.script = {
            GEMINI: [prediction_json(action="bet_no", probability=0.2)],
            GROK: [prediction_json(action="bet_no", probability=0.2)],
            DEEPSEEK: [prediction_json(action="bet_no", probability=0.2)],
        }
        await open_cohort(tournament, feed, [make_market("m1")])

        await tournament.run_round(COHORT)

        ensemble = (await bets_by_agent(db))["ensemble"][0]
        assert ensemble.action == "pass"
        assert ensemble.bet_amount == 0.0
        assert (await ledgers(db))["ensemble"] == 10_000.0

    @pytest.mark.asyncio
    async def test_previous_bets_are_shown_in_later_rounds(self, tournament, db, feed, gateway):
        await open_cohort(tournament, feed, [make_market("m1")])

        await tournament.run_round(COHORT)
        first_prompt = gateway.calls_for(QWEN)[0]["messages"][1]["content"]
        await tournament.run_round(COHORT)
        second_prompt = gateway.calls_for(QWEN)[1]["messages"][1]["content"]

        assert "Your previous bets on this market" not in first_prompt
        assert "Your previous bets on this market" in second_prompt
        assert (await bets_by_agent(db))["qwen-3"][1].bet_amount == pytest.approx(900.0)

    @pytest.mark.asyncio
    async def test_no_admissible_markets_writes_nothing(self, tournament, db, feed):
        await open_cohort(tournament, feed, [make_market("m1", yes_price=0.98)])

        with pytest.raises(NoAdmissibleMarketsError):
            await tournament.run_round(COHORT)

        async with db.session() as session:
            assert (await session.execute(select(func.count(Round.id)))).scalar_one() == 0
            assert (await session.execute(select(func.count(Bet.id)))).scalar_one() == 0

    @pytest.mark.asyncio
    async def test_requires_active_cohort(self, tournament, feed):
        await open_cohort(tournament, feed, [make_market("m1")])
        await tournament.create_cohort_if_due(datetime(2026, 10, 21, tzinfo=timezone.utc))

        with pytest.raises(CohortNotActiveError):
            await tournament.run_round(COHORT)
        with pytest.raises(CohortNotFoundError):
            await tournament.run_round("1999-W01")


class TestInterruptedRounds:
    @pytest.mark.asyncio
    async def test_storage_failure_rolls_back_market(self, tournament, db, feed, monkeypatch):
        await open_cohort(tournament, feed, [make_market("m1")])

        async def failing_debit(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(tournament.rounds, "_debit", failing_debit)

        with pytest.raises(RuntimeError, match="disk full"):
            await tournament.run_round(COHORT)

        async with db.session() as session:
            round_ = (await session.execute(select(Round))).scalar_one()
            bet_count = (await session.execute(select(func.count(Bet.id)))).scalar_one()
        assert round_.status == "in_progress"
        assert bet_count == 0
        assert set((await ledgers(db)).values()) == {10_000.0}

        monkeypatch.undo()
        result = await tournament.resume_round(round_.id)

        assert result.completed
        assert result.bets_created == 7

    @pytest.mark.asyncio
    async def test_deadline_leaves_round_resumable(self, tournament, db, feed, gateway, settings):
        await open_cohort(
            tournament,
            feed,
            [make_market(f"m{i}", volume_24h=10_000 * (3 - i)) for i in range(3)],
        )
        ticks = iter([0.0, 0.0, 100.0])
        orchestrator = RoundOrchestrator(
            db,
            tournament.forecaster,
            settings.tournament,
            clock=lambda: next(ticks, 100.0),
        )

        partial = await orchestrator.run_round(COHORT, timeout_seconds=10)

        assert partial.status == "in_progress"
        assert not partial.completed
        assert partial.markets_processed == 1
        assert partial.bets_created == 7

        resumed = await tournament.resume_round(partial.round_id)

        assert resumed.completed
        assert resumed.bets_created == 14
        assert {b.market_id for b in resumed.bets} == {"m1", "m2"}
        assert len(gateway.calls) == 18

        async with db.session() as session:
            pairs = (
                await session.execute(
                    select(Bet.agent_id, Bet.market_id, func.count(Bet.id))
                    .group_by(Bet.agent_id, Bet.market_id)
                )
            ).all()
            cohort = await session.get(Cohort, COHORT)
        assert len(pairs) == 21
        assert all(count == 1 for _, _, count in pairs)
        assert cohort.market_count == 3

    @pytest.mark.asyncio
    async def test_resume_counts_only_markets_still_cached(self, tournament, db, feed, settings):
        await open_cohort(
            tournament,
            feed,
            [make_market("m1", volume_24h=90_000), make_market("m2", volume_24h=10_000)],
        )
        ticks = iter([0.0, 0.0, 100.0])
        orchestrator = RoundOrchestrator(
            db,
            tournament.forecaster,
            settings.tournament,
            clock=lambda: next(ticks, 100.0),
        )
        partial = await orchestrator.run_round(COHORT, timeout_seconds=10)
        assert partial.markets_processed == 1

        async with db.session() as session:
            await session.delete(await session.get(Market, "m2"))
            await session.commit()

        resumed = await tournament.resume_round(partial.round_id)

        assert resumed.completed
        assert resumed.bets_created == 0
        async with db.session() as session:
            cohort = await session.get(Cohort, COHORT)
        assert cohort.market_count == 1


class TestScheduledRound:
    @pytest.mark.asyncio
    async def test_opens_cohort_syncs_and_runs(self, tournament, feed):
        feed.markets = [make_market("m1")]

        result = await tournament.run_scheduled_round(now=WEEK_42)

        assert not isinstance(result, SkipResult)
        assert result.cohort_id == COHORT
        assert result.completed

    @pytest.mark.asyncio
    async def test_budget_exhausted_is_a_skip_not_an_error(self, tournament, db, feed, settings):
        feed.markets = [make_market("m1")]
        settings.budget.cap_usd = 1.0

        result = await tournament.run_scheduled_round(now=WEEK_42)

        assert isinstance(result, SkipResult)
        assert result.reason.startswith("Budget exhausted.")
        async with db.session() as session:
            assert (await session.execute(select(func.count(Round.id)))).scalar_one() == 0
