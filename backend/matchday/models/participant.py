from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from matchday.models.competition import Competition


class Participant(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("competition_id", "name", name="uq_competition_participant_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    competition_id: int = Field(foreign_key="competition.id", index=True)
    name: str
    seed: Optional[float] = Field(default=None)  # Seed/rating value, higher = stronger
    group_name: Optional[str] = Field(default=None)  # Set when a mixed-format draw places the participant
    registered_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    competition: "Competition" = Relationship(back_populates="participants")
