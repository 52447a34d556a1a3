"""Bet database model."""

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from arena.database.base import Base
from arena.models.base import TimestampMixin

ACTION_BET_YES = "bet_yes"
ACTION_BET_NO = "bet_no"
ACTION_PASS = "pass"


class Bet(Base, TimestampMixin):
    """
    One agent's decision on one market in one round.

    Written once by the round orchestrator. The only later mutation is the
    settlement update that flips `settled` and fills `pnl`/`brier_score`.
    """

    __tablename__ = "bets"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Foreign keys
    agent_id = Column(
        String(64), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False
    )
    market_id = Column(
        String(100), ForeignKey("markets.id", ondelete="CASCADE"), nullable=False
    )
    cohort_id = Column(
        String(16), ForeignKey("cohorts.id", ondelete="CASCADE"), nullable=False
    )
    round_id = Column(
        String(32), ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False
    )

    # Decision
    action = Column(String(8), nullable=False)
    confidence = Column(Float, nullable=True)
    bet_size_pct = Column(Float, nullable=True)
    bet_amount = Column(Float, nullable=False, default=0.0)
    estimated_probability = Column(Float, nullable=True)
    market_price_at_bet = Column(Float, nullable=True)
    reasoning = Column(Text, nullable=True)
    key_factors = Column(JSON, nullable=True)

    # Audit trail
    prompt_text = Column(Text, nullable=True)
    raw_response = Column(Text, nullable=True)
    api_cost = Column(Float, nullable=False, default=0.0)
    api_latency_ms = Column(Integer, nullable=True)

    # Settlement
    settled = Column(Boolean, nullable=False, default=False)
    pnl = Column(Float, nullable=False, default=0.0)
    brier_score = Column(Float, nullable=True)
    settled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "action IN ('bet_yes', 'bet_no', 'pass')",
            name="valid_bet_action",
        ),
        CheckConstraint("bet_amount >= 0", name="non_negative_bet_amount"),
        UniqueConstraint("agent_id", "market_id", "round_id", name="uq_bet_agent_market_round"),
        Index("idx_bets_agent_cohort", "agent_id", "cohort_id"),
        Index("idx_bets_market", "market_id"),
        Index("idx_bets_round", "round_id"),
        Index("idx_bets_settled", "settled"),
    )

    def __repr__(self) -> str:
        return (
            f"<Bet(id={self.id}, agent={self.agent_id}, market={self.market_id}, "
            f"action={self.action}, amount={self.bet_amount})>"
        )
