"""
Persistence helpers shared by the services.

Commits and flushes go through these so a database failure is rolled back and
surfaces as an UpstreamError instead of a raw SQLAlchemy exception. Nothing is
retried here; retries are a caller policy.
"""
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from matchday.errors import NotFoundError, UpstreamError
from matchday.models.competition import Competition
from matchday.models.fixture import Fixture
from matchday.models.participant import Participant


def commit_or_raise(session: Session, action: str) -> None:
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise UpstreamError(f"Failed to {action}", cause=exc) from exc


def flush_or_raise(session: Session, action: str) -> None:
    try:
        session.flush()
    except SQLAlchemyError as exc:
        session.rollback()
        raise UpstreamError(f"Failed to {action}", cause=exc) from exc


def get_competition_or_raise(session: Session, competition_id: int) -> Competition:
    competition = session.get(Competition, competition_id)
    if not competition:
        raise NotFoundError("Competition", competition_id)
    return competition


def get_fixture_or_raise(session: Session, fixture_id: int, for_update: bool = False) -> Fixture:
    """Load a fixture, optionally row-locked (SELECT ... FOR UPDATE where supported)."""
    query = select(Fixture).where(Fixture.id == fixture_id)
    if for_update:
        query = query.with_for_update()
    fixture: Optional[Fixture] = session.exec(query).first()
    if not fixture:
        raise NotFoundError("Fixture", fixture_id)
    return fixture


def load_participants(session: Session, competition_id: int) -> List[Participant]:
    """Registered participants in registration order (stable by id)."""
    return list(
        session.exec(
            select(Participant)
            .where(Participant.competition_id == competition_id)
            .order_by(Participant.registered_at, Participant.id)
        ).all()
    )
