from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

from matchday.config import (
    DEFAULT_BUFFER_MINUTES,
    DEFAULT_GROUP_SIZE,
    DEFAULT_MATCH_DURATION_MINUTES,
    DEFAULT_QUALIFIERS_PER_GROUP,
    DEFAULT_REST_PERIOD_MINUTES,
    DEFAULT_TIMEZONE,
)

if TYPE_CHECKING:
    from matchday.models.fixture import Fixture
    from matchday.models.participant import Participant

COMPETITION_DRAFT = "draft"
COMPETITION_IN_PROGRESS = "in_progress"
COMPETITION_COMPLETED = "completed"


class Competition(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    format: str  # "single_elimination" | "round_robin" | "mixed"
    status: str = Field(default=COMPETITION_DRAFT)  # "draft" | "in_progress" | "completed"
    timezone: str = Field(default=DEFAULT_TIMEZONE)

    # Bracket options
    seeding_method: str = Field(default="registration")  # "registration" | "random" | "rating"
    has_third_place: bool = Field(default=False)
    double_round_robin: bool = Field(default=False)
    group_size: int = Field(default=DEFAULT_GROUP_SIZE)
    qualifiers_per_group: int = Field(default=DEFAULT_QUALIFIERS_PER_GROUP)

    # Scheduling options (minutes)
    match_duration_minutes: int = Field(default=DEFAULT_MATCH_DURATION_MINUTES)
    buffer_minutes: int = Field(default=DEFAULT_BUFFER_MINUTES)
    rest_period_minutes: int = Field(default=DEFAULT_REST_PERIOD_MINUTES)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})
    completed_at: Optional[datetime] = Field(default=None)

    # Relationships
    participants: List["Participant"] = Relationship(back_populates="competition")
    fixtures: List["Fixture"] = Relationship(back_populates="competition")
