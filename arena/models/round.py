"""Round database model."""

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, ForeignKey, String

from arena.database.base import Base
from arena.models.base import TimestampMixin

ROUND_IN_PROGRESS = "in_progress"
ROUND_COMPLETED = "completed"


class Round(Base, TimestampMixin):
    """One pass of every agent over a fixed list of markets."""

    __tablename__ = "rounds"

    id = Column(String(32), primary_key=True)
    cohort_id = Column(
        String(16), ForeignKey("cohorts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    market_ids = Column(JSON, nullable=False, default=list)
    status = Column(String(16), nullable=False, default=ROUND_IN_PROGRESS)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('in_progress', 'completed')",
            name="valid_round_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<Round(id={self.id}, status={self.status})>"
