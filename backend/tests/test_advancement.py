"""Fixture lifecycle and result propagation through the bracket."""
import pytest
from sqlmodel import Session, select

from matchday.errors import ConflictError, StateError, TiebreakRequiredError, ValidationError
from matchday.models.competition import Competition
from matchday.models.fixture import STAGE_CONSOLATION, Fixture
from matchday.models.participant import Participant
from matchday.services.advancement_service import (
    cancel_fixture,
    record_result,
    start_fixture,
)
from matchday.services.bracket_builder import generate_bracket
from matchday.services.notifier import (
    EVENT_BRACKET_ADVANCED,
    EVENT_COMPETITION_COMPLETED,
    EVENT_FIXTURE_COMPLETED,
    Notifier,
    RecordingNotifier,
)


def _mark_all_scheduled(session: Session, competition_id: int) -> None:
    for fixture in session.exec(select(Fixture).where(Fixture.competition_id == competition_id)).all():
        fixture.status = "scheduled"
        session.add(fixture)
    session.commit()


def _round(session: Session, competition_id: int, round_number: int, stage: str = "knockout"):
    return session.exec(
        select(Fixture)
        .where(
            Fixture.competition_id == competition_id,
            Fixture.stage == stage,
            Fixture.round_number == round_number,
        )
        .order_by(Fixture.bracket_position)
    ).all()


def _names(session: Session):
    return {p.id: p.name for p in session.exec(select(Participant)).all()}


@pytest.fixture
def eight_player_cup(session: Session, make_competition):
    competition = make_competition("single_elimination", 8)
    generate_bracket(session, competition.id)
    _mark_all_scheduled(session, competition.id)
    return competition


def test_full_bracket_resolves_to_single_champion(session: Session, eight_player_cup):
    notifier = RecordingNotifier()
    cid = eight_player_cup.id

    for round_number in (3, 2, 1):
        for fixture in _round(session, cid, round_number):
            result = record_result(session, fixture.id, 2, 1, notifier)
            assert result.winner_participant_id == fixture.home_participant_id

    fixtures = session.exec(select(Fixture).where(Fixture.competition_id == cid)).all()
    finals = [f for f in fixtures if f.winner_participant_id is not None and f.next_fixture_id is None]
    assert len(finals) == 1
    assert _names(session)[finals[0].winner_participant_id] == "P01"
    assert all(f.status == "completed" for f in fixtures)

    competition = session.get(Competition, cid)
    session.refresh(competition)
    assert competition.status == "completed"
    assert competition.completed_at is not None

    assert len(notifier.of_type(EVENT_FIXTURE_COMPLETED)) == 7
    assert len(notifier.of_type(EVENT_BRACKET_ADVANCED)) == 6
    assert len(notifier.of_type(EVENT_COMPETITION_COMPLETED)) == 1


def test_winner_lands_in_slot_by_position_parity(session: Session, eight_player_cup):
    cid = eight_player_cup.id
    quarters = _round(session, cid, 3)

    record_result(session, quarters[1].id, 0, 3)
    record_result(session, quarters[2].id, 4, 2)

    semis = _round(session, cid, 2)
    assert semis[0].home_participant_id is None
    assert semis[0].away_participant_id == quarters[1].away_participant_id
    assert semis[1].home_participant_id == quarters[2].home_participant_id
    assert semis[1].away_participant_id is None


def test_second_result_is_rejected(session: Session, eight_player_cup):
    fixture = _round(session, eight_player_cup.id, 3)[0]
    record_result(session, fixture.id, 1, 0)

    with pytest.raises(StateError):
        record_result(session, fixture.id, 1, 0)

    semi = _round(session, eight_player_cup.id, 2)[0]
    assert semi.home_participant_id == fixture.home_participant_id
    assert semi.away_participant_id is None


def test_level_score_in_knockout_needs_tiebreak(session: Session, eight_player_cup):
    fixture = _round(session, eight_player_cup.id, 3)[0]

    with pytest.raises(TiebreakRequiredError):
        record_result(session, fixture.id, 1, 1)

    session.refresh(fixture)
    assert fixture.status == "scheduled"
    assert fixture.winner_participant_id is None


def test_tiebreak_is_a_conflict():
    assert issubclass(TiebreakRequiredError, ConflictError)


def test_negative_score_rejected(session: Session, eight_player_cup):
    fixture = _round(session, eight_player_cup.id, 3)[0]
    with pytest.raises(ValidationError):
        record_result(session, fixture.id, -1, 2)


def test_result_needs_both_participants(session: Session, eight_player_cup):
    final = _round(session, eight_player_cup.id, 1)[0]
    with pytest.raises(StateError):
        record_result(session, final.id, 1, 0)


def test_pending_fixture_cannot_take_a_result(session: Session, make_competition):
    competition = make_competition("single_elimination", 2)
    generate_bracket(session, competition.id)
    final = _round(session, competition.id, 1)[0]

    with pytest.raises(StateError):
        record_result(session, final.id, 1, 0)


def test_occupied_slot_is_never_overwritten(session: Session, eight_player_cup):
    cid = eight_player_cup.id
    quarter = _round(session, cid, 3)[0]
    semi = _round(session, cid, 2)[0]
    intruder = quarter.away_participant_id
    semi.home_participant_id = intruder
    session.add(semi)
    session.commit()

    with pytest.raises(ConflictError):
        record_result(session, quarter.id, 3, 0)

    session.refresh(quarter)
    session.refresh(semi)
    assert quarter.status == "scheduled"
    assert quarter.home_score is None
    assert semi.home_participant_id == intruder


def test_round_robin_draw_has_no_winner(session: Session, make_competition):
    competition = make_competition("round_robin", 4)
    generate_bracket(session, competition.id)
    _mark_all_scheduled(session, competition.id)
    fixture = session.exec(select(Fixture).where(Fixture.competition_id == competition.id)).first()

    result = record_result(session, fixture.id, 2, 2)

    assert result.winner_participant_id is None
    assert result.next_fixture_id is None
    assert result.advanced is False
    session.refresh(fixture)
    assert fixture.status == "completed"


def test_semi_final_losers_feed_third_place(session: Session, make_competition):
    competition = make_competition("single_elimination", 4, has_third_place=True)
    generate_bracket(session, competition.id)
    _mark_all_scheduled(session, competition.id)
    cid = competition.id

    semis = _round(session, cid, 2)
    record_result(session, semis[0].id, 2, 0)
    record_result(session, semis[1].id, 0, 1)

    third = session.exec(
        select(Fixture).where(Fixture.competition_id == cid, Fixture.stage == STAGE_CONSOLATION)
    ).one()
    assert third.home_participant_id == semis[0].away_participant_id
    assert third.away_participant_id == semis[1].home_participant_id

    final = _round(session, cid, 1)[0]
    result = record_result(session, final.id, 1, 0)
    assert result.competition_completed is False

    result = record_result(session, third.id, 2, 1)
    assert result.competition_completed is True


def test_start_then_cancel(session: Session, eight_player_cup):
    fixture = _round(session, eight_player_cup.id, 3)[0]

    started = start_fixture(session, fixture.id)
    assert started.status == "in_progress"
    assert started.started_at is not None

    cancelled = cancel_fixture(session, fixture.id)
    assert cancelled.status == "cancelled"

    with pytest.raises(StateError):
        cancel_fixture(session, fixture.id)
    with pytest.raises(StateError):
        record_result(session, fixture.id, 1, 0)


def test_start_requires_known_participants(session: Session, eight_player_cup):
    final = _round(session, eight_player_cup.id, 1)[0]
    with pytest.raises(StateError):
        start_fixture(session, final.id)


def test_start_requires_scheduled(session: Session, make_competition):
    competition = make_competition("round_robin", 2)
    generate_bracket(session, competition.id)
    fixture = session.exec(select(Fixture).where(Fixture.competition_id == competition.id)).one()

    with pytest.raises(StateError):
        start_fixture(session, fixture.id)


def test_cancelling_every_fixture_completes_competition(session: Session, make_competition):
    competition = make_competition("round_robin", 3)
    generate_bracket(session, competition.id)
    notifier = RecordingNotifier()

    for fixture in session.exec(select(Fixture).where(Fixture.competition_id == competition.id)).all():
        cancel_fixture(session, fixture.id, notifier)

    session.refresh(competition)
    assert competition.status == "completed"
    assert len(notifier.of_type(EVENT_COMPETITION_COMPLETED)) == 1


def test_failing_notifier_does_not_fail_the_result(session: Session, eight_player_cup):
    class BrokenNotifier(Notifier):
        def notify(self, event_type, fixture_id, payload):
            raise RuntimeError("broadcast down")

    fixture = _round(session, eight_player_cup.id, 3)[0]
    result = record_result(session, fixture.id, 1, 0, BrokenNotifier())

    assert result.advanced is True
    session.refresh(fixture)
    assert fixture.status == "completed"
