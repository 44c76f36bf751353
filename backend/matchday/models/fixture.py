from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from matchday.models.competition import Competition
    from matchday.models.participant import Participant

# Lifecycle status
STATUS_PENDING = "pending"
STATUS_SCHEDULED = "scheduled"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

# Scheduling status
SCHEDULING_UNSCHEDULED = "unscheduled"
SCHEDULING_CONFIRMED = "confirmed"
SCHEDULING_RESCHEDULED = "rescheduled"
SCHEDULING_CONFLICTED = "conflicted"

SCHEDULING_STATUSES = (
    SCHEDULING_UNSCHEDULED,
    SCHEDULING_CONFIRMED,
    SCHEDULING_RESCHEDULED,
    SCHEDULING_CONFLICTED,
)

# Fixtures in these scheduling states hold their venue/time
BOOKED_SCHEDULING_STATUSES = (SCHEDULING_CONFIRMED, SCHEDULING_RESCHEDULED)

# Stages
STAGE_KNOCKOUT = "knockout"
STAGE_CONSOLATION = "consolation"
STAGE_LEAGUE = "league"
STAGE_GROUP = "group"

ELIMINATION_STAGES = (STAGE_KNOCKOUT, STAGE_CONSOLATION)

SLOT_HOME = "home"
SLOT_AWAY = "away"


class Fixture(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    competition_id: int = Field(foreign_key="competition.id", index=True)
    stage: str  # "knockout" | "consolation" | "league" | "group"
    round_number: int  # Knockout: 1 = final, increasing away from it. League/group: flat round counter
    round_index: int  # Play order, 1 = first round played
    round_name: str
    bracket_position: int  # 0-based position within the round
    group_name: Optional[str] = Field(default=None, index=True)
    priority: int = Field(default=0)

    # Participant slots (null = to be decided)
    home_participant_id: Optional[int] = Field(default=None, foreign_key="participant.id")
    away_participant_id: Optional[int] = Field(default=None, foreign_key="participant.id")

    # Forward link (elimination stages only)
    next_fixture_id: Optional[int] = Field(default=None, foreign_key="fixture.id")
    next_slot: Optional[str] = Field(default=None)  # "home" | "away"

    status: str = Field(default=STATUS_PENDING, index=True)
    scheduling_status: str = Field(default=SCHEDULING_UNSCHEDULED, index=True)

    # Scheduling (start_time stored as naive UTC)
    start_time: Optional[datetime] = Field(default=None, index=True)
    venue: Optional[str] = Field(default=None, index=True)
    duration_minutes: Optional[int] = Field(default=None)
    auto_scheduled: bool = Field(default=False)
    conflict_reason: Optional[str] = Field(default=None)
    previous_start_time: Optional[datetime] = Field(default=None)
    schedule_note: Optional[str] = Field(default=None)

    # Result
    home_score: Optional[int] = Field(default=None)
    away_score: Optional[int] = Field(default=None)
    winner_participant_id: Optional[int] = Field(default=None, foreign_key="participant.id")

    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)

    # Relationships
    competition: "Competition" = Relationship(back_populates="fixtures")
    home_participant: Optional["Participant"] = Relationship(
        sa_relationship_kwargs={"foreign_keys": "Fixture.home_participant_id"}
    )
    away_participant: Optional["Participant"] = Relationship(
        sa_relationship_kwargs={"foreign_keys": "Fixture.away_participant_id"}
    )

    def participant_ids(self) -> List[int]:
        """Known participant ids (TBD sides skipped)"""
        return [pid for pid in (self.home_participant_id, self.away_participant_id) if pid is not None]

    @property
    def is_elimination(self) -> bool:
        return self.stage in ELIMINATION_STAGES
