"""
Fixture runtime: lifecycle status and results.
Recording a result propagates the winner into the next fixture.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from matchday.database import get_session
from matchday.errors import StateError, ValidationError
from matchday.models.fixture import STATUS_CANCELLED, STATUS_COMPLETED, STATUS_IN_PROGRESS, STATUS_SCHEDULED
from matchday.routes.brackets import FixtureResponse
from matchday.services.advancement_service import cancel_fixture, record_result, start_fixture
from matchday.services.notifier import Notifier, get_notifier
from matchday.utils.persistence import get_fixture_or_raise

router = APIRouter()


class FixtureStatusUpdate(BaseModel):
    status: str


class ResultSubmit(BaseModel):
    home_score: int = Field(ge=0)
    away_score: int = Field(ge=0)


class ResultResponse(BaseModel):
    fixture: FixtureResponse
    winner_participant_id: Optional[int] = None
    next_fixture_id: Optional[int] = None
    advanced: bool = False
    competition_completed: bool = False


@router.get("/fixtures/{fixture_id}", response_model=FixtureResponse)
def get_fixture(fixture_id: int, session: Session = Depends(get_session)):
    return get_fixture_or_raise(session, fixture_id)


@router.patch("/fixtures/{fixture_id}/status", response_model=FixtureResponse)
def update_fixture_status(
    fixture_id: int,
    payload: FixtureStatusUpdate,
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    """Start or cancel a fixture. Scheduling and results have their own endpoints."""
    if payload.status == STATUS_IN_PROGRESS:
        return start_fixture(session, fixture_id)
    if payload.status == STATUS_CANCELLED:
        return cancel_fixture(session, fixture_id, notifier)
    if payload.status == STATUS_SCHEDULED:
        raise StateError("Fixtures become scheduled when a time is confirmed; use the schedule endpoints")
    if payload.status == STATUS_COMPLETED:
        raise StateError("Fixtures complete by recording a result; use the result endpoint")
    raise ValidationError(f"Invalid fixture status: {payload.status}")


@router.post("/fixtures/{fixture_id}/result", response_model=ResultResponse)
def submit_result(
    fixture_id: int,
    payload: ResultSubmit,
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    """Record the final score. Level elimination fixtures need a tiebreak score (409)."""
    result = record_result(session, fixture_id, payload.home_score, payload.away_score, notifier)
    fixture = get_fixture_or_raise(session, fixture_id)
    return ResultResponse(
        fixture=FixtureResponse.model_validate(fixture),
        winner_participant_id=result.winner_participant_id,
        next_fixture_id=result.next_fixture_id,
        advanced=result.advanced,
        competition_completed=result.competition_completed,
    )
