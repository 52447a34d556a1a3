"""Tournament engine: forecasting rounds, settlement and scoring."""

from arena.tournament.budget import BudgetGuard, CostSummary, SkipResult
from arena.tournament.cohorts import CohortManager, CohortResult
from arena.tournament.exceptions import (
    AgentNotFoundError,
    ArenaError,
    CohortNotActiveError,
    CohortNotFoundError,
    NoAdmissibleMarketsError,
    RoundNotFoundError,
)
from arena.tournament.forecast import ForecastClient, ForecastResult, Prediction
from arena.tournament.rounds import RoundOrchestrator, RoundResult
from arena.tournament.scoring import AgentStats, Leaderboard
from arena.tournament.service import TournamentService, open_tournament
from arena.tournament.settlement import SettlementEngine, SettlementResult

__all__ = [
    "AgentNotFoundError",
    "AgentStats",
    "ArenaError",
    "BudgetGuard",
    "CohortManager",
    "CohortNotActiveError",
    "CohortNotFoundError",
    "CohortResult",
    "CostSummary",
    "ForecastClient",
    "ForecastResult",
    "Leaderboard",
    "NoAdmissibleMarketsError",
    "Prediction",
    "RoundNotFoundError",
    "RoundOrchestrator",
    "RoundResult",
    "SettlementEngine",
    "SettlementResult",
    "SkipResult",
    "TournamentService",
    "open_tournament",
]
