"""Cached market model."""

from sqlalchemy import CheckConstraint, Column, DateTime, Float, Index, String, Text

from arena.database.base import Base
from arena.models.base import utcnow

RESOLUTION_OPEN = "open"
RESOLUTION_YES = "yes"
RESOLUTION_NO = "no"
RESOLUTION_VOIDED = "voided"


class Market(Base):
    """Local snapshot of a binary market. Terminal once resolved."""

    __tablename__ = "markets"

    id = Column(String(100), primary_key=True)
    question = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    slug = Column(String(300), nullable=True)
    condition_id = Column(String(100), nullable=True)
    yes_price = Column(Float, nullable=True)
    no_price = Column(Float, nullable=True)
    volume_24h = Column(Float, nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    resolution = Column(String(8), nullable=False, default=RESOLUTION_OPEN)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    fetched_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "resolution IN ('open', 'yes', 'no', 'voided')",
            name="valid_market_resolution",
        ),
        Index("idx_markets_resolution_volume", "resolution", "volume_24h"),
    )

    @property
    def is_open(self) -> bool:
        return self.resolution == RESOLUTION_OPEN

    def __repr__(self) -> str:
        return f"<Market(id={self.id}, resolution={self.resolution})>"
