"""
Scheduling endpoints: automatic batch run, manual placement, reschedule, stats,
and the read-only conflict check, free-slot and schedule listing queries.
A manual conflict is a normal response (ok=false with the reason), not an error.
"""
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, model_validator
from sqlmodel import Session

from matchday.config import DEFAULT_TIME_OFFSETS
from matchday.database import get_session
from matchday.routes.brackets import FixtureResponse
from matchday.services.notifier import Notifier, get_notifier
from matchday.services.schedule_engine import (
    ScheduleOutcome,
    ScheduleWindow,
    auto_schedule,
    available_slots,
    check_conflict,
    list_conflicts,
    list_schedule,
    reschedule_fixture,
    schedule_fixture,
    scheduling_stats,
)

router = APIRouter()


class AutoScheduleRequest(BaseModel):
    start_date: date
    end_date: date
    time_offsets: List[str] = Field(default_factory=lambda: list(DEFAULT_TIME_OFFSETS))
    excluded_weekdays: List[int] = Field(default_factory=list)
    venues: List[str] = Field(default_factory=list)
    timezone: Optional[str] = None  # defaults to the competition's timezone
    buffer_minutes: Optional[int] = None
    rest_period_minutes: Optional[int] = None

    @model_validator(mode="after")
    def validate_date_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        return self


class SlotAssignmentResponse(BaseModel):
    fixture_id: int
    start_time: datetime
    venue: str


class ConflictResponse(BaseModel):
    fixture_id: int
    reason: str


class AutoScheduleResponse(BaseModel):
    assigned: List[SlotAssignmentResponse]
    conflicted: List[ConflictResponse]
    total_processed: int
    cancelled: bool = False


class ScheduleRequest(BaseModel):
    start_time: datetime
    venue: Optional[str] = None
    duration_minutes: Optional[int] = None


class RescheduleRequest(ScheduleRequest):
    reason: str


class ScheduleResponse(BaseModel):
    ok: bool
    reason: Optional[str] = None
    fixture: FixtureResponse


class SchedulingStatsResponse(BaseModel):
    competition_id: int
    total: int
    by_status: Dict[str, int]
    scheduled_percentage: float


class ConflictCheckResponse(BaseModel):
    fixture_id: int
    start_time: datetime
    venue: str
    duration_minutes: int
    has_conflict: bool
    reason: Optional[str] = None


class FreeSlotResponse(BaseModel):
    start_time: datetime
    venue: str


def _outcome_response(outcome: ScheduleOutcome) -> ScheduleResponse:
    return ScheduleResponse(
        ok=outcome.ok,
        reason=outcome.reason,
        fixture=FixtureResponse.model_validate(outcome.fixture),
    )


@router.post("/competitions/{competition_id}/schedule/auto", response_model=AutoScheduleResponse)
def run_auto_schedule(
    competition_id: int,
    request: AutoScheduleRequest,
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    """Assign every unscheduled fixture to the first conflict-free slot in the window"""
    window = ScheduleWindow(**request.model_dump())
    result = auto_schedule(session, competition_id, window, notifier=notifier)
    return AutoScheduleResponse(
        assigned=[
            SlotAssignmentResponse(fixture_id=a.fixture_id, start_time=a.start_time, venue=a.venue)
            for a in result.assigned
        ],
        conflicted=[ConflictResponse(fixture_id=c.fixture_id, reason=c.reason) for c in result.conflicted],
        total_processed=result.total_processed,
        cancelled=result.cancelled,
    )


@router.put("/fixtures/{fixture_id}/schedule", response_model=ScheduleResponse)
def put_fixture_schedule(
    fixture_id: int,
    request: ScheduleRequest,
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    outcome = schedule_fixture(
        session,
        fixture_id,
        request.start_time,
        venue=request.venue,
        duration_minutes=request.duration_minutes,
        notifier=notifier,
    )
    return _outcome_response(outcome)


@router.post("/fixtures/{fixture_id}/reschedule", response_model=ScheduleResponse)
def post_fixture_reschedule(
    fixture_id: int,
    request: RescheduleRequest,
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    outcome = reschedule_fixture(
        session,
        fixture_id,
        request.start_time,
        new_venue=request.venue,
        new_duration_minutes=request.duration_minutes,
        reason=request.reason,
        notifier=notifier,
    )
    return _outcome_response(outcome)


@router.get("/competitions/{competition_id}/schedule/stats", response_model=SchedulingStatsResponse)
def get_scheduling_stats(competition_id: int, session: Session = Depends(get_session)):
    stats = scheduling_stats(session, competition_id)
    return SchedulingStatsResponse(
        competition_id=stats.competition_id,
        total=stats.total,
        by_status=stats.by_status,
        scheduled_percentage=stats.scheduled_percentage,
    )


@router.get("/competitions/{competition_id}/schedule/conflicts", response_model=List[FixtureResponse])
def get_schedule_conflicts(competition_id: int, session: Session = Depends(get_session)):
    return list_conflicts(session, competition_id)


@router.post("/fixtures/{fixture_id}/schedule/check", response_model=ConflictCheckResponse)
def post_schedule_check(fixture_id: int, request: ScheduleRequest, session: Session = Depends(get_session)):
    """Dry run of a manual placement; nothing is written"""
    check = check_conflict(
        session,
        fixture_id,
        request.start_time,
        venue=request.venue,
        duration_minutes=request.duration_minutes,
    )
    return ConflictCheckResponse(
        fixture_id=check.fixture_id,
        start_time=check.start_time,
        venue=check.venue,
        duration_minutes=check.duration_minutes,
        has_conflict=check.has_conflict,
        reason=check.reason,
    )


@router.get("/competitions/{competition_id}/schedule/available", response_model=List[FreeSlotResponse])
def get_available_slots(
    competition_id: int,
    day: date = Query(...),
    venue: Optional[str] = Query(None),
    duration_minutes: Optional[int] = Query(None),
    session: Session = Depends(get_session),
):
    slots = available_slots(session, competition_id, day, venue=venue, duration_minutes=duration_minutes)
    return [FreeSlotResponse(start_time=s.start_time, venue=s.venue) for s in slots]


@router.get("/competitions/{competition_id}/schedule", response_model=List[FixtureResponse])
def get_competition_schedule(
    competition_id: int,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    scheduling_status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: Session = Depends(get_session),
):
    return list_schedule(
        session,
        competition_id,
        start_date=start_date,
        end_date=end_date,
        scheduling_status=scheduling_status,
        limit=limit,
        offset=offset,
    )
