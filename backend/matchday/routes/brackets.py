"""
Bracket generation, bracket view, standings and knockout qualification.
"""
import random
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlmodel import Session, select

from matchday.database import get_session
from matchday.models.bracket_entry import BracketEntry
from matchday.models.fixture import Fixture
from matchday.services.bracket_builder import GeneratedBracket, generate_bracket
from matchday.services.standings import build_knockout_stage, compute_standings
from matchday.utils.persistence import get_competition_or_raise

router = APIRouter()


class FixtureResponse(BaseModel):
    id: int
    competition_id: int
    stage: str
    round_number: int
    round_index: int
    round_name: str
    bracket_position: int
    group_name: Optional[str] = None
    priority: int
    home_participant_id: Optional[int] = None
    away_participant_id: Optional[int] = None
    next_fixture_id: Optional[int] = None
    next_slot: Optional[str] = None
    status: str
    scheduling_status: str
    start_time: Optional[datetime] = None
    venue: Optional[str] = None
    duration_minutes: Optional[int] = None
    auto_scheduled: bool
    conflict_reason: Optional[str] = None
    previous_start_time: Optional[datetime] = None
    schedule_note: Optional[str] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    winner_participant_id: Optional[int] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BracketEntryResponse(BaseModel):
    id: int
    fixture_id: int
    round_number: int
    bracket_position: int
    home_seed: Optional[float] = None
    away_seed: Optional[float] = None
    next_fixture_id: Optional[int] = None
    is_consolation: bool

    class Config:
        from_attributes = True


class ByeResponse(BaseModel):
    participant_id: int
    first_round_position: int
    fixture_id: int
    slot: str


class GroupResponse(BaseModel):
    name: str
    participant_ids: List[int]


class GenerateBracketResponse(BaseModel):
    competition_id: int
    format: str
    participant_count: int
    rounds: int
    bracket_size: Optional[int] = None
    fixtures: List[FixtureResponse]
    byes: List[ByeResponse]
    groups: List[GroupResponse]


class BracketView(BaseModel):
    competition_id: int
    format: str
    status: str
    fixtures: List[FixtureResponse]
    entries: List[BracketEntryResponse]


class StandingRowResponse(BaseModel):
    rank: int
    participant_id: int
    name: str
    played: int
    won: int
    drawn: int
    lost: int
    goals_for: int
    goals_against: int
    goal_difference: int
    points: int


class StandingsResponse(BaseModel):
    group_name: Optional[str] = None
    rows: List[StandingRowResponse]


def _generated_response(competition_id: int, generated: GeneratedBracket) -> GenerateBracketResponse:
    plan = generated.plan
    by_key = generated.fixtures_by_key
    return GenerateBracketResponse(
        competition_id=competition_id,
        format=plan.format,
        participant_count=plan.participant_count,
        rounds=plan.rounds,
        bracket_size=plan.bracket_size,
        fixtures=[FixtureResponse.model_validate(f) for f in generated.fixtures],
        byes=[
            ByeResponse(
                participant_id=b.participant_id,
                first_round_position=b.first_round_position,
                fixture_id=by_key[b.fixture_key].id,
                slot=b.slot,
            )
            for b in plan.byes
        ],
        groups=[GroupResponse(name=g.name, participant_ids=g.participant_ids) for g in plan.groups],
    )


@router.post(
    "/competitions/{competition_id}/bracket",
    response_model=GenerateBracketResponse,
    status_code=201,
)
def create_bracket(
    competition_id: int,
    draw_seed: Optional[int] = Query(None, description="Seed for a reproducible random draw"),
    session: Session = Depends(get_session),
):
    """Generate all fixtures for the competition from its registered participants"""
    rng = random.Random(draw_seed) if draw_seed is not None else None
    generated = generate_bracket(session, competition_id, rng=rng)
    return _generated_response(competition_id, generated)


@router.get("/competitions/{competition_id}/bracket", response_model=BracketView)
def get_bracket(competition_id: int, session: Session = Depends(get_session)):
    """Fixtures (stage, play order, position) and bracket entries"""
    competition = get_competition_or_raise(session, competition_id)
    fixtures = session.exec(
        select(Fixture)
        .where(Fixture.competition_id == competition_id)
        .order_by(Fixture.stage, Fixture.round_index, Fixture.group_name, Fixture.bracket_position, Fixture.id)
    ).all()
    entries = session.exec(
        select(BracketEntry)
        .where(BracketEntry.competition_id == competition_id)
        .order_by(BracketEntry.round_number.desc(), BracketEntry.bracket_position)
    ).all()
    return BracketView(
        competition_id=competition_id,
        format=competition.format,
        status=competition.status,
        fixtures=[FixtureResponse.model_validate(f) for f in fixtures],
        entries=[BracketEntryResponse.model_validate(e) for e in entries],
    )


@router.get("/competitions/{competition_id}/standings", response_model=List[StandingsResponse])
def get_standings(competition_id: int, session: Session = Depends(get_session)):
    tables = compute_standings(session, competition_id)
    return [
        StandingsResponse(
            group_name=table.group_name,
            rows=[
                StandingRowResponse(
                    rank=rank,
                    participant_id=row.participant_id,
                    name=row.name,
                    played=row.played,
                    won=row.won,
                    drawn=row.drawn,
                    lost=row.lost,
                    goals_for=row.goals_for,
                    goals_against=row.goals_against,
                    goal_difference=row.goal_difference,
                    points=row.points,
                )
                for rank, row in enumerate(table.rows, start=1)
            ],
        )
        for table in tables
    ]


@router.post(
    "/competitions/{competition_id}/knockout",
    response_model=GenerateBracketResponse,
    status_code=201,
)
def create_knockout_stage(competition_id: int, session: Session = Depends(get_session)):
    """Build the knockout stage of a mixed competition once every group fixture is over"""
    generated = build_knockout_stage(session, competition_id)
    return _generated_response(competition_id, generated)
