"""Agent database model."""

from sqlalchemy import Column, String
from sqlalchemy.orm import relationship

from arena.database.base import Base
from arena.models.base import TimestampMixin

ENSEMBLE_AGENT_ID = "ensemble"


class Agent(Base, TimestampMixin):
    """A forecasting agent, or the synthetic ensemble."""

    __tablename__ = "agents"

    id = Column(String(64), primary_key=True)
    display_name = Column(String(100), nullable=False)
    provider = Column(String(100), nullable=False)
    openrouter_id = Column(String(200), nullable=False)
    avatar_emoji = Column(String(16), nullable=True)
    color = Column(String(16), nullable=True)

    ledgers = relationship("AgentLedger", back_populates="agent")

    @property
    def is_ensemble(self) -> bool:
        return self.id == ENSEMBLE_AGENT_ID

    def __repr__(self) -> str:
        return f"<Agent(id={self.id}, model={self.openrouter_id})>"
