from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from matchday.config import (
    DEFAULT_BUFFER_MINUTES,
    DEFAULT_GROUP_SIZE,
    DEFAULT_MATCH_DURATION_MINUTES,
    DEFAULT_QUALIFIERS_PER_GROUP,
    DEFAULT_REST_PERIOD_MINUTES,
    DEFAULT_TIMEZONE,
    MAX_MATCH_DURATION_MINUTES,
)
from matchday.database import get_session
from matchday.errors import ConflictError, StateError, ValidationError
from matchday.models.competition import COMPETITION_DRAFT, Competition
from matchday.models.participant import Participant
from matchday.services.bracket_rules import SEEDING_REGISTRATION, SUPPORTED_SEEDING_METHODS, normalize_format
from matchday.utils.persistence import commit_or_raise, get_competition_or_raise, load_participants
from matchday.utils.timeutil import get_timezone

router = APIRouter()


class CompetitionCreate(BaseModel):
    name: str
    format: str
    timezone: str = DEFAULT_TIMEZONE
    seeding_method: str = SEEDING_REGISTRATION
    has_third_place: bool = False
    double_round_robin: bool = False
    group_size: int = DEFAULT_GROUP_SIZE
    qualifiers_per_group: int = DEFAULT_QUALIFIERS_PER_GROUP
    match_duration_minutes: int = DEFAULT_MATCH_DURATION_MINUTES
    buffer_minutes: int = DEFAULT_BUFFER_MINUTES
    rest_period_minutes: int = DEFAULT_REST_PERIOD_MINUTES

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @field_validator("match_duration_minutes")
    @classmethod
    def validate_duration(cls, v):
        if v <= 0 or v > MAX_MATCH_DURATION_MINUTES:
            raise ValueError(f"match_duration_minutes must be between 1 and {MAX_MATCH_DURATION_MINUTES}")
        return v

    @field_validator("buffer_minutes", "rest_period_minutes")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("must be >= 0")
        return v


class CompetitionResponse(BaseModel):
    id: int
    name: str
    format: str
    status: str
    timezone: str
    seeding_method: str
    has_third_place: bool
    double_round_robin: bool
    group_size: int
    qualifiers_per_group: int
    match_duration_minutes: int
    buffer_minutes: int
    rest_period_minutes: int
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ParticipantCreate(BaseModel):
    name: str
    seed: Optional[float] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()


class ParticipantResponse(BaseModel):
    id: int
    competition_id: int
    name: str
    seed: Optional[float] = None
    group_name: Optional[str] = None
    registered_at: datetime

    class Config:
        from_attributes = True


@router.post("/competitions", response_model=CompetitionResponse, status_code=201)
def create_competition(data: CompetitionCreate, session: Session = Depends(get_session)):
    """Create a competition in draft status"""
    fmt = normalize_format(data.format)
    if fmt is None:
        raise ValidationError(f"Unsupported competition format: {data.format}")
    if data.seeding_method not in SUPPORTED_SEEDING_METHODS:
        raise ValidationError(f"Unsupported seeding method: {data.seeding_method}")
    get_timezone(data.timezone)

    competition = Competition(**data.model_dump(exclude={"format"}), format=fmt, status=COMPETITION_DRAFT)
    session.add(competition)
    commit_or_raise(session, "create competition")
    session.refresh(competition)
    return competition


@router.get("/competitions/{competition_id}", response_model=CompetitionResponse)
def get_competition(competition_id: int, session: Session = Depends(get_session)):
    return get_competition_or_raise(session, competition_id)


@router.post(
    "/competitions/{competition_id}/participants",
    response_model=ParticipantResponse,
    status_code=201,
)
def register_participant(
    competition_id: int,
    data: ParticipantCreate,
    session: Session = Depends(get_session),
):
    """Register a participant. Closed once the bracket exists."""
    competition = get_competition_or_raise(session, competition_id)
    if competition.status != COMPETITION_DRAFT:
        raise StateError(f"Competition {competition_id} is {competition.status}; registration is closed")

    participant = Participant(competition_id=competition_id, name=data.name, seed=data.seed)
    session.add(participant)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError(f"Participant '{data.name}' is already registered")
    session.refresh(participant)
    return participant


@router.get("/competitions/{competition_id}/participants", response_model=List[ParticipantResponse])
def list_participants(competition_id: int, session: Session = Depends(get_session)):
    get_competition_or_raise(session, competition_id)
    return load_participants(session, competition_id)
