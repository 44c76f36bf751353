"""
Advancement: fixture lifecycle transitions and result-driven bracket propagation.

When a result is recorded, the winner is written into the linked next fixture
(even bracket position -> home slot, odd -> away). Semi-final losers feed the
third-place fixture when one exists. The result, the propagation and the
completion check commit together, with the fixture row locked where the
database supports it, so a winner is propagated exactly once.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Set

from sqlmodel import Session, func, select

from matchday.errors import ConflictError, EngineError, StateError, TiebreakRequiredError, ValidationError
from matchday.models.competition import COMPETITION_COMPLETED, Competition
from matchday.models.fixture import (
    SLOT_AWAY,
    SLOT_HOME,
    STAGE_CONSOLATION,
    STAGE_KNOCKOUT,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    STATUS_SCHEDULED,
    TERMINAL_STATUSES,
    Fixture,
)
from matchday.services.bracket_rules import FORMAT_MIXED, next_position
from matchday.services.notifier import (
    EVENT_BRACKET_ADVANCED,
    EVENT_COMPETITION_COMPLETED,
    EVENT_FIXTURE_COMPLETED,
    Notifier,
    emit,
)
from matchday.utils.persistence import commit_or_raise, flush_or_raise, get_fixture_or_raise

logger = logging.getLogger(__name__)

# Allowed lifecycle transitions (completed/cancelled are terminal)
ALLOWED_TRANSITIONS: Dict[str, Set[str]] = {
    STATUS_PENDING: {STATUS_SCHEDULED, STATUS_CANCELLED},
    STATUS_SCHEDULED: {STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_IN_PROGRESS: {STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_COMPLETED: set(),
    STATUS_CANCELLED: set(),
}

# Round number of the semi-finals (1 = final)
SEMI_FINAL_ROUND = 2


@dataclass
class AdvancementResult:
    fixture_id: int
    winner_participant_id: Optional[int]
    next_fixture_id: Optional[int]
    advanced: bool = False
    competition_completed: bool = False


def validate_transition(fixture: Fixture, new_status: str) -> None:
    if new_status not in ALLOWED_TRANSITIONS:
        raise StateError(f"Unknown fixture status: {new_status}")
    if fixture.status in TERMINAL_STATUSES:
        raise StateError(f"Fixture {fixture.id} is {fixture.status}; status is terminal")
    if new_status not in ALLOWED_TRANSITIONS.get(fixture.status, set()):
        raise StateError(f"Fixture {fixture.id} cannot move from {fixture.status} to {new_status}")


def start_fixture(session: Session, fixture_id: int) -> Fixture:
    """scheduled -> in_progress. Both participants must be known."""
    fixture = get_fixture_or_raise(session, fixture_id, for_update=True)
    validate_transition(fixture, STATUS_IN_PROGRESS)
    if fixture.home_participant_id is None or fixture.away_participant_id is None:
        raise StateError(f"Fixture {fixture_id} cannot start before both participants are known")

    fixture.status = STATUS_IN_PROGRESS
    if fixture.started_at is None:
        fixture.started_at = datetime.utcnow()
    session.add(fixture)
    commit_or_raise(session, "start fixture")
    session.refresh(fixture)
    return fixture


def cancel_fixture(session: Session, fixture_id: int, notifier: Optional[Notifier] = None) -> Fixture:
    """Any non-terminal status -> cancelled. May complete the competition."""
    fixture = get_fixture_or_raise(session, fixture_id, for_update=True)
    validate_transition(fixture, STATUS_CANCELLED)

    fixture.status = STATUS_CANCELLED
    session.add(fixture)
    flush_or_raise(session, "cancel fixture")
    completed = _complete_competition_if_done(session, fixture.competition_id)
    commit_or_raise(session, "cancel fixture")
    session.refresh(fixture)

    if completed:
        emit(notifier, EVENT_COMPETITION_COMPLETED, fixture.id, competition_id=fixture.competition_id)
    return fixture


def record_result(
    session: Session,
    fixture_id: int,
    home_score: int,
    away_score: int,
    notifier: Optional[Notifier] = None,
) -> AdvancementResult:
    """
    Record a fixture result and propagate the winner.

    Raises:
        NotFoundError: fixture does not exist
        ValidationError: negative score
        StateError: fixture not scheduled/in_progress, or a side still to be decided
        TiebreakRequiredError: level score in an elimination stage
        ConflictError: the destination slot already holds another participant
    """
    if home_score is None or away_score is None or home_score < 0 or away_score < 0:
        raise ValidationError("Scores must be non-negative integers")

    fixture = get_fixture_or_raise(session, fixture_id, for_update=True)
    validate_transition(fixture, STATUS_COMPLETED)
    if fixture.home_participant_id is None or fixture.away_participant_id is None:
        raise StateError(f"Fixture {fixture_id} still has a participant to be decided")

    if home_score > away_score:
        winner_id, loser_id = fixture.home_participant_id, fixture.away_participant_id
    elif away_score > home_score:
        winner_id, loser_id = fixture.away_participant_id, fixture.home_participant_id
    elif fixture.is_elimination:
        raise TiebreakRequiredError(f"Fixture {fixture_id} ended level; a tiebreak result is required")
    else:
        winner_id, loser_id = None, None

    fixture.home_score = home_score
    fixture.away_score = away_score
    fixture.winner_participant_id = winner_id
    fixture.status = STATUS_COMPLETED
    fixture.completed_at = datetime.utcnow()
    session.add(fixture)

    advanced = False
    try:
        if winner_id is not None and fixture.next_fixture_id is not None:
            _, slot = next_position(fixture.bracket_position)
            advanced = _write_slot(session, fixture, fixture.next_fixture_id, slot, winner_id)

        if loser_id is not None and fixture.is_elimination and fixture.round_number == SEMI_FINAL_ROUND:
            _feed_third_place(session, fixture, loser_id)

        flush_or_raise(session, "record result")
        competition_completed = _complete_competition_if_done(session, fixture.competition_id)
    except EngineError:
        session.rollback()
        raise
    commit_or_raise(session, "record result")

    logger.info(
        "Fixture %d completed %d-%d, winner=%s next=%s",
        fixture_id,
        home_score,
        away_score,
        winner_id,
        fixture.next_fixture_id,
    )

    emit(
        notifier,
        EVENT_FIXTURE_COMPLETED,
        fixture_id,
        competition_id=fixture.competition_id,
        home_score=home_score,
        away_score=away_score,
        winner_participant_id=winner_id,
    )
    if advanced:
        emit(
            notifier,
            EVENT_BRACKET_ADVANCED,
            fixture_id,
            participant_id=winner_id,
            next_fixture_id=fixture.next_fixture_id,
            slot=fixture.next_slot,
        )
    if competition_completed:
        emit(notifier, EVENT_COMPETITION_COMPLETED, fixture_id, competition_id=fixture.competition_id)

    return AdvancementResult(
        fixture_id=fixture_id,
        winner_participant_id=winner_id,
        next_fixture_id=fixture.next_fixture_id,
        advanced=advanced,
        competition_completed=competition_completed,
    )


def _write_slot(session: Session, source: Fixture, target_id: int, slot: str, participant_id: int) -> bool:
    """
    Write participant_id into a slot of the target fixture, touching nothing else.
    Returns True if the slot changed. An occupied slot is never overwritten.
    """
    target = get_fixture_or_raise(session, target_id, for_update=True)
    field = "home_participant_id" if slot == SLOT_HOME else "away_participant_id"
    current = getattr(target, field)

    if current == participant_id:
        return False
    if current is not None:
        raise ConflictError(
            f"Fixture {target_id} {slot} slot already holds participant {current}; "
            f"cannot advance participant {participant_id} from fixture {source.id}"
        )
    if target.status in TERMINAL_STATUSES:
        raise StateError(f"Fixture {target_id} is {target.status}; cannot advance into it")

    setattr(target, field, participant_id)
    session.add(target)
    return True


def _feed_third_place(session: Session, semi_final: Fixture, loser_id: int) -> None:
    third_place = session.exec(
        select(Fixture).where(
            Fixture.competition_id == semi_final.competition_id,
            Fixture.stage == STAGE_CONSOLATION,
        )
    ).first()
    if third_place is None:
        return
    slot = SLOT_HOME if semi_final.bracket_position % 2 == 0 else SLOT_AWAY
    _write_slot(session, semi_final, third_place.id, slot, loser_id)


def _complete_competition_if_done(session: Session, competition_id: int) -> bool:
    """Mark the competition completed once no fixture is left open. Returns True on transition."""
    remaining = session.exec(
        select(func.count())
        .select_from(Fixture)
        .where(
            Fixture.competition_id == competition_id,
            Fixture.status.not_in(TERMINAL_STATUSES),
        )
    ).one()
    if remaining:
        return False

    competition = session.get(Competition, competition_id)
    if competition is None or competition.status == COMPETITION_COMPLETED:
        return False
    # A mixed competition is not over until its knockout stage exists and is played
    if competition.format == FORMAT_MIXED and not _has_knockout_stage(session, competition_id):
        return False

    competition.status = COMPETITION_COMPLETED
    competition.completed_at = datetime.utcnow()
    session.add(competition)
    logger.info("Competition %d completed", competition_id)
    return True


def _has_knockout_stage(session: Session, competition_id: int) -> bool:
    return (
        session.exec(
            select(Fixture.id).where(
                Fixture.competition_id == competition_id,
                Fixture.stage == STAGE_KNOCKOUT,
            )
        ).first()
        is not None
    )
