"""Arena CLI entry point."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

env_file = Path.cwd() / ".env"
load_dotenv(env_file)

from arena import __version__
from arena.config import get_settings
from arena.tournament import ArenaError, SkipResult, open_tournament

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = """# Arena Configuration
# Operational parameters for the forecasting tournament.
# API keys and secrets belong in .env, not here.

tournament:
  initial_bankroll: 10000
  markets_per_round: 15
  min_yes_price: 0.05
  max_yes_price: 0.95
  previous_bets_context: 3

budget:
  cap_usd: 100.0
  round_cost_estimate_usd: 3.0

forecast:
  temperature: 0.0
  max_tokens: 1024
  retry_delays_seconds: [1, 2, 4]
  web_search_max_results: 5

market_feed:
  min_volume_24h: 1000
  min_horizon_days: 1
  max_horizon_days: 60
  cohort_market_count: 20
"""


def _init_logfire() -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from arena.observability import initialize_logfire

        initialize_logfire(get_settings())
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def _run(coro_factory) -> int:
    """Open the tournament, run one operation, map engine errors to exit codes."""

    async def runner() -> int:
        async with open_tournament(get_settings()) as tournament:
            return await coro_factory(tournament)

    try:
        return asyncio.run(runner())
    except ArenaError as e:
        print(f"\n❌ {e}\n")
        return 1


def cmd_init(args: argparse.Namespace) -> int:
    """Create the data directory, config template, schema and agent roster."""
    settings = get_settings()
    data_dir = settings.data_dir

    data_dir.mkdir(parents=True, exist_ok=True)
    config_path = data_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text(CONFIG_TEMPLATE)
        logger.info(f"Created config template: {config_path}")
    else:
        logger.info(f"Config file already exists: {config_path}")

    async def init(tournament) -> int:
        await tournament.initialize()
        return 0

    code = _run(init)
    if code == 0:
        print(f"\n✓ Arena initialized at {data_dir}")
        print("\nNext steps:")
        print("1. Copy .env.example to .env and add your OpenRouter key")
        print("2. Review data/config.yaml")
        print("3. Run 'python -m arena round' to play a round\n")
    return code


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    settings = get_settings()

    print("\n=== Arena Configuration ===\n")
    print(f"Data Directory: {settings.data_dir}")
    print(f"Database: {settings.database_url}\n")

    print("Tournament:")
    print(f"  Initial Bankroll: ${settings.tournament.initial_bankroll:,.2f}")
    print(f"  Markets per Round: {settings.tournament.markets_per_round}")
    print(
        f"  YES Price Window: {settings.tournament.min_yes_price:.2f}"
        f"-{settings.tournament.max_yes_price:.2f}\n"
    )

    print("Budget:")
    print(f"  Cap: ${settings.budget.cap_usd:,.2f}")
    print(f"  Round Estimate: ${settings.budget.round_cost_estimate_usd:,.2f}\n")

    print("Forecast:")
    print(f"  Temperature: {settings.forecast.temperature}")
    print(f"  Max Tokens: {settings.forecast.max_tokens}")
    print(f"  Retry Delays: {settings.forecast.retry_delays_seconds}\n")

    print("API Keys:")
    print(f"  OpenRouter: {'✓ Set' if settings.openrouter_api_key else '✗ Not set'}")
    print(f"  Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")
    return 0


def cmd_sync_markets(args: argparse.Namespace) -> int:
    async def sync(tournament) -> int:
        count = await tournament.sync_markets()
        print(f"\n✓ Synced {count} markets\n")
        return 0

    return _run(sync)


def cmd_cohort(args: argparse.Namespace) -> int:
    async def create(tournament) -> int:
        result = await tournament.create_cohort_if_due()
        if result.created:
            print(f"\n✓ Created cohort {result.cohort_id}\n")
        else:
            print(f"\nSkipped: {result.reason}\n")
        return 0

    return _run(create)


def cmd_round(args: argparse.Namespace) -> int:
    async def play(tournament) -> int:
        if args.cohort:
            result = await tournament.run_round(args.cohort, args.timeout)
        else:
            result = await tournament.run_scheduled_round(timeout_seconds=args.timeout)

        if isinstance(result, SkipResult):
            print(f"\nSkipped: {result.reason}\n")
            return 0

        summary = await tournament.get_cost_summary()
        marker = "✓" if result.completed else "…"
        print(f"\n{marker} Round {result.round_id} ({result.status})")
        print(f"  Markets: {result.markets_processed}/{len(result.market_ids)}")
        print(f"  Bets: {result.bets_created} ({result.forced_passes} forced passes)")
        print(f"  Round Cost: ${result.total_cost:.4f}")
        print(f"  Total Spent: ${summary.total_spent:.2f} / ${summary.budget_cap:.2f}\n")
        return 0

    return _run(play)


def cmd_resume_round(args: argparse.Namespace) -> int:
    async def resume(tournament) -> int:
        result = await tournament.resume_round(args.round_id, args.timeout)
        print(f"\nRound {result.round_id}: {result.status}, {result.bets_created} bets\n")
        return 0

    return _run(resume)


def cmd_settle(args: argparse.Namespace) -> int:
    async def settle(tournament) -> int:
        result = await tournament.settle_markets()
        print(f"\n✓ Settled {result.settled_count} bets")
        print(f"  Resolved markets: {len(result.resolved_markets)}")
        print(f"  Voided markets: {len(result.voided_markets)}")
        print(f"  Still open: {len(result.pending_markets)}")
        if result.completed_cohorts:
            print(f"  Completed cohorts: {', '.join(result.completed_cohorts)}")
        print()
        return 0

    return _run(settle)


def cmd_leaderboard(args: argparse.Namespace) -> int:
    async def show(tournament) -> int:
        if args.adjusted:
            board = await tournament.get_adjusted_leaderboard(args.cohort)
        else:
            board = await tournament.get_leaderboard(args.cohort)

        title = "Adjusted Leaderboard" if args.adjusted else "Leaderboard"
        print(f"\n=== {title}{f' ({args.cohort})' if args.cohort else ''} ===\n")
        print(f"{'#':<3} {'Agent':<18} {'Bankroll':>11} {'P&L':>10} {'Brier':>7} {'Bets':>5} {'Win%':>6}")
        for rank, stats in enumerate(board, start=1):
            brier = f"{stats.brier_score:.3f}" if stats.brier_score is not None else "-"
            pnl = stats.adjusted_pnl if args.adjusted else stats.total_pnl
            print(
                f"{rank:<3} {stats.avatar_emoji or ''}{stats.display_name:<17} "
                f"{stats.bankroll:>11,.2f} {pnl:>10,.2f} {brier:>7} "
                f"{stats.total_bets:>5} {stats.win_rate:>6.0%}"
            )
        print()
        return 0

    return _run(show)


def cmd_profile(args: argparse.Namespace) -> int:
    async def show(tournament) -> int:
        profile = await tournament.get_agent_profile(args.agent_id, args.cohort)
        stats = profile.stats
        decomposition = profile.brier_decomposition
        print(f"\n=== {stats.display_name} ===\n")
        print(f"  Bankroll: ${stats.bankroll:,.2f}  P&L: ${stats.total_pnl:,.2f}")
        print(f"  Bets: {stats.total_bets}  Pass Rate: {stats.pass_rate:.0%}")
        print(
            f"  Brier: {decomposition.brier_score:.4f} = "
            f"{decomposition.reliability:.4f} - {decomposition.resolution:.4f} "
            f"+ {decomposition.uncertainty:.4f}"
        )
        print("\n  Calibration:")
        for bucket in profile.calibration:
            print(
                f"    [{bucket.bucket_lower:.1f}, {bucket.bucket_upper:.1f}) "
                f"forecast {bucket.mean_forecast:.2f} observed "
                f"{bucket.observed_frequency:.2f} (n={bucket.count})"
            )
        print()
        return 0

    return _run(show)


def cmd_costs(args: argparse.Namespace) -> int:
    async def show(tournament) -> int:
        summary = await tournament.get_cost_summary()
        print("\n=== API Costs ===\n")
        print(f"  Spent: ${summary.total_spent:.2f} of ${summary.budget_cap:.2f}")
        print(f"  Remaining: ${summary.budget_remaining:.2f} ({summary.budget_pct_used:.1f}% used)")
        if summary.is_over_budget:
            print("  ❌ Budget exhausted")
        print("\n  Per agent:")
        for item in summary.per_agent:
            print(f"    {item.display_name:<18} ${item.total_cost:.4f} ({item.calls} calls)")
        print("\n  Daily:")
        for day in summary.daily:
            print(f"    {day.day}  ${day.cost:.4f}  (cumulative ${day.cumulative:.2f})")
        print()
        return 0

    return _run(show)


def cmd_rounds(args: argparse.Namespace) -> int:
    async def show(tournament) -> int:
        for item in await tournament.list_rounds(args.cohort):
            print(
                f"{item.round_id}  {item.cohort_id}  {item.status:<12} "
                f"{item.market_count} markets  {item.bet_count} bets  ${item.total_cost:.4f}"
            )
        return 0

    return _run(show)


def cmd_show_round(args: argparse.Namespace) -> int:
    async def show(tournament) -> int:
        detail = await tournament.get_round(args.round_id)
        print(f"\n=== Round {detail.round_id} ({detail.status}) ===\n")
        for bet in detail.bets:
            amount = f"${bet.bet_amount:,.2f}" if bet.bet_amount else "-"
            print(f"  {bet.market_id:<14} {bet.agent_id:<18} {bet.action:<7} {amount:>11}")
        print(f"\n  Bets: {detail.bet_count}  Cost: ${detail.total_cost:.4f}\n")
        return 0

    return _run(show)


def cmd_markets(args: argparse.Namespace) -> int:
    async def show(tournament) -> int:
        for market in await tournament.list_markets(active_only=not args.all):
            price = f"{market.yes_price:.2f}" if market.yes_price is not None else "-"
            print(f"{market.id:<14} {market.resolution:<7} {price:>5}  {market.question[:70]}")
        return 0

    return _run(show)


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="arena",
        description="LLM forecasting tournament on Polymarket markets",
    )
    parser.add_argument("--version", action="version", version=f"arena {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init", help="Create config, schema and agent roster").set_defaults(
        func=cmd_init
    )
    subparsers.add_parser("config", help="Show merged configuration").set_defaults(
        func=cmd_config
    )
    subparsers.add_parser("sync-markets", help="Refresh the market cache").set_defaults(
        func=cmd_sync_markets
    )
    subparsers.add_parser("cohort", help="Open this week's cohort if due").set_defaults(
        func=cmd_cohort
    )

    round_parser = subparsers.add_parser("round", help="Run a forecasting round")
    round_parser.add_argument("--cohort", help="Cohort id (default: scheduled round)")
    round_parser.add_argument("--timeout", type=float, help="Soft deadline in seconds")
    round_parser.set_defaults(func=cmd_round)

    resume_parser = subparsers.add_parser("resume-round", help="Continue an unfinished round")
    resume_parser.add_argument("round_id")
    resume_parser.add_argument("--timeout", type=float, help="Soft deadline in seconds")
    resume_parser.set_defaults(func=cmd_resume_round)

    subparsers.add_parser("settle", help="Settle resolved markets").set_defaults(
        func=cmd_settle
    )

    board_parser = subparsers.add_parser("leaderboard", help="Show the leaderboard")
    board_parser.add_argument("--cohort", help="Restrict to one cohort")
    board_parser.add_argument(
        "--adjusted", action="store_true", help="Count correlated markets once"
    )
    board_parser.set_defaults(func=cmd_leaderboard)

    profile_parser = subparsers.add_parser("profile", help="Show one agent's calibration")
    profile_parser.add_argument("agent_id")
    profile_parser.add_argument("--cohort", help="Restrict to one cohort")
    profile_parser.set_defaults(func=cmd_profile)

    rounds_parser = subparsers.add_parser("rounds", help="List rounds")
    rounds_parser.add_argument("--cohort", help="Restrict to one cohort")
    rounds_parser.set_defaults(func=cmd_rounds)

    show_parser = subparsers.add_parser("show-round", help="Show one round and its bets")
    show_parser.add_argument("round_id")
    show_parser.set_defaults(func=cmd_show_round)

    markets_parser = subparsers.add_parser("markets", help="List cached markets")
    markets_parser.add_argument("--all", action="store_true", help="Include resolved markets")
    markets_parser.set_defaults(func=cmd_markets)

    subparsers.add_parser("costs", help="Show API spend against the cap").set_defaults(
        func=cmd_costs
    )

    args = parser.parse_args()

    logging.getLogger().setLevel(
        logging.DEBUG if args.verbose else get_settings().log_level.upper()
    )

    if not args.command:
        parser.print_help()
        return 1

    _init_logfire()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
