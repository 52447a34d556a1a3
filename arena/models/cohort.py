"""Cohort and per-cohort ledger models."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import relationship

from arena.database.base import Base
from arena.models.base import TimestampMixin

COHORT_ACTIVE = "active"
COHORT_SETTLING = "settling"
COHORT_COMPLETED = "completed"


class Cohort(Base, TimestampMixin):
    """One tournament week. Status moves active -> settling -> completed."""

    __tablename__ = "cohorts"

    id = Column(String(16), primary_key=True, comment="ISO week, e.g. 2026-W42")
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(16), nullable=False, default=COHORT_ACTIVE)
    market_count = Column(Integer, nullable=False, default=0)

    ledgers = relationship(
        "AgentLedger", back_populates="cohort", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'settling', 'completed')",
            name="valid_cohort_status",
        ),
        # At most one active cohort
        Index(
            "uq_cohorts_single_active",
            "status",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Cohort(id={self.id}, status={self.status})>"


class AgentLedger(Base):
    """Bankroll of one agent within one cohort."""

    __tablename__ = "cohort_agents"

    cohort_id = Column(
        String(16), ForeignKey("cohorts.id", ondelete="CASCADE"), primary_key=True
    )
    agent_id = Column(
        String(64), ForeignKey("agents.id", ondelete="CASCADE"), primary_key=True
    )
    bankroll = Column(Float, nullable=False)

    cohort = relationship("Cohort", back_populates="ledgers")
    agent = relationship("Agent", back_populates="ledgers")

    def __repr__(self) -> str:
        return (
            f"<AgentLedger(cohort={self.cohort_id}, agent={self.agent_id}, "
            f"bankroll={self.bankroll:.2f})>"
        )
