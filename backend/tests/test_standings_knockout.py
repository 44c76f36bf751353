"""League/group standings and knockout qualification for mixed competitions."""
import pytest
from sqlmodel import Session, select

from matchday.errors import StateError
from matchday.models.competition import Competition
from matchday.models.fixture import Fixture
from matchday.models.participant import Participant
from matchday.services.advancement_service import record_result
from matchday.services.bracket_builder import generate_bracket
from matchday.services.standings import build_knockout_stage, compute_standings, standings_table


def _schedule_open_fixtures(session: Session, competition_id: int) -> None:
    for fixture in session.exec(
        select(Fixture).where(Fixture.competition_id == competition_id, Fixture.status == "pending")
    ).all():
        fixture.status = "scheduled"
        session.add(fixture)
    session.commit()


def _play_by_name(session: Session, competition_id: int, stage: str) -> None:
    """Lower name always wins 2-0 (P01 is the strongest)"""
    names = {p.id: p.name for p in session.exec(select(Participant)).all()}
    fixtures = session.exec(
        select(Fixture)
        .where(Fixture.competition_id == competition_id, Fixture.stage == stage)
        .order_by(Fixture.round_index, Fixture.bracket_position)
    ).all()
    for fixture in fixtures:
        session.refresh(fixture)
        if fixture.status == "completed":
            continue
        home_wins = names[fixture.home_participant_id] < names[fixture.away_participant_id]
        record_result(session, fixture.id, 2 if home_wins else 0, 0 if home_wins else 2)


def test_standings_table_tiebreaks():
    a = Participant(id=1, competition_id=1, name="Alpha")
    b = Participant(id=2, competition_id=1, name="Bravo")
    c = Participant(id=3, competition_id=1, name="Charlie")
    d = Participant(id=4, competition_id=1, name="Delta")

    def played(home, away, hs, as_):
        return Fixture(
            competition_id=1,
            stage="league",
            round_number=1,
            round_index=1,
            round_name="round_1",
            bracket_position=0,
            home_participant_id=home.id,
            away_participant_id=away.id,
            home_score=hs,
            away_score=as_,
            status="completed",
        )

    fixtures = [
        played(a, b, 1, 1),
        played(a, c, 3, 0),
        played(b, c, 1, 0),
    ]
    rows = standings_table([d, c, b, a], fixtures)

    assert [r.name for r in rows] == ["Alpha", "Bravo", "Delta", "Charlie"]
    assert (rows[0].points, rows[0].goal_difference) == (4, 3)
    assert (rows[1].points, rows[1].goal_difference) == (4, 1)
    # Delta has not played; a goal difference of 0 beats Charlie's -4
    assert rows[2].played == 0
    assert (rows[3].played, rows[3].lost, rows[3].goal_difference) == (2, 2, -4)


def test_league_standings_from_results(session: Session, make_competition):
    competition = make_competition("round_robin", 4)
    generate_bracket(session, competition.id)
    _schedule_open_fixtures(session, competition.id)
    _play_by_name(session, competition.id, "league")

    tables = compute_standings(session, competition.id)

    assert len(tables) == 1
    assert tables[0].group_name is None
    assert [r.name for r in tables[0].rows] == ["P01", "P02", "P03", "P04"]
    assert [r.points for r in tables[0].rows] == [9, 6, 3, 0]

    session.refresh(competition)
    assert competition.status == "completed"


def test_single_elimination_has_no_standings(session: Session, make_competition):
    competition = make_competition("single_elimination", 4)
    with pytest.raises(StateError):
        compute_standings(session, competition.id)


@pytest.fixture
def group_cup(session: Session, make_competition):
    competition = make_competition("mixed", 6, group_size=3, qualifiers_per_group=2)
    generate_bracket(session, competition.id)
    _schedule_open_fixtures(session, competition.id)
    return competition


def test_group_standings_per_group(session: Session, group_cup):
    _play_by_name(session, group_cup.id, "group")

    tables = compute_standings(session, group_cup.id)

    assert [t.group_name for t in tables] == ["Group A", "Group B"]
    assert [r.name for r in tables[0].rows] == ["P01", "P03", "P05"]
    assert [r.name for r in tables[1].rows] == ["P02", "P04", "P06"]


def test_knockout_waits_for_group_stage(session: Session, group_cup):
    with pytest.raises(StateError):
        build_knockout_stage(session, group_cup.id)


def test_knockout_seeds_group_winners_against_runners_up(session: Session, group_cup):
    cid = group_cup.id
    _play_by_name(session, cid, "group")

    competition = session.get(Competition, cid)
    session.refresh(competition)
    assert competition.status == "in_progress"

    generated = build_knockout_stage(session, cid)
    names = {p.id: p.name for p in session.exec(select(Participant)).all()}

    semis = sorted(
        (f for f in generated.fixtures if f.round_number == 2),
        key=lambda f: f.bracket_position,
    )
    assert len(generated.fixtures) == 3
    assert [(names[f.home_participant_id], names[f.away_participant_id]) for f in semis] == [
        ("P01", "P04"),
        ("P02", "P03"),
    ]

    with pytest.raises(StateError):
        build_knockout_stage(session, cid)

    _schedule_open_fixtures(session, cid)
    _play_by_name(session, cid, "knockout")

    session.refresh(competition)
    assert competition.status == "completed"


def test_knockout_requires_mixed_format(session: Session, make_competition):
    competition = make_competition("round_robin", 4)
    generate_bracket(session, competition.id)
    with pytest.raises(StateError):
        build_knockout_stage(session, competition.id)
