"""SQLAlchemy models for the tournament."""

from arena.models.agent import ENSEMBLE_AGENT_ID, Agent
from arena.models.bet import ACTION_BET_NO, ACTION_BET_YES, ACTION_PASS, Bet
from arena.models.cohort import (
    COHORT_ACTIVE,
    COHORT_COMPLETED,
    COHORT_SETTLING,
    AgentLedger,
    Cohort,
)
from arena.models.market import (
    RESOLUTION_NO,
    RESOLUTION_OPEN,
    RESOLUTION_VOIDED,
    RESOLUTION_YES,
    Market,
)
from arena.models.round import (
    ROUND_COMPLETED,
    ROUND_IN_PROGRESS,
    Round,
)

__all__ = [
    "Agent",
    "AgentLedger",
    "Bet",
    "Cohort",
    "Market",
    "Round",
    "ENSEMBLE_AGENT_ID",
    "ACTION_BET_YES",
    "ACTION_BET_NO",
    "ACTION_PASS",
    "COHORT_ACTIVE",
    "COHORT_SETTLING",
    "COHORT_COMPLETED",
    "RESOLUTION_OPEN",
    "RESOLUTION_YES",
    "RESOLUTION_NO",
    "RESOLUTION_VOIDED",
    "ROUND_IN_PROGRESS",
    "ROUND_COMPLETED",
]
