"""Bracket topology: planning (pure) and generation (persisted)."""
import random
from collections import Counter

import pytest
from sqlmodel import Session, select

from matchday.errors import NotFoundError, StateError, ValidationError
from matchday.models.bracket_entry import BracketEntry
from matchday.models.competition import COMPETITION_IN_PROGRESS
from matchday.models.fixture import STAGE_CONSOLATION, STAGE_GROUP, STAGE_KNOCKOUT, Fixture
from matchday.models.participant import Participant
from matchday.services.bracket_builder import BracketOptions, Entrant, build_bracket, generate_bracket


def entrants(n, seeds=None):
    return [
        Entrant(participant_id=i + 1, name=f"P{i + 1}", seed=seeds[i] if seeds else None)
        for i in range(n)
    ]


# ============================================================================
# Single elimination
# ============================================================================


@pytest.mark.parametrize("n", range(2, 18))
def test_single_elimination_fixture_and_bye_counts(n):
    plan = build_bracket(entrants(n), "single_elimination")

    size = 2 ** (n - 1).bit_length()
    assert plan.bracket_size == size
    assert len(plan.fixtures) == n - 1
    assert len(plan.byes) == size - n
    assert len([f for f in plan.fixtures if f.next_key is None]) == 1

    final = [f for f in plan.fixtures if f.next_key is None][0]
    assert final.round_name == "final"
    assert final.round_number == 1


@pytest.mark.parametrize("n", [3, 5, 6, 7, 12])
def test_bye_participants_skip_the_first_round(n):
    plan = build_bracket(entrants(n), "single_elimination")
    first_round = plan.round(plan.rounds)
    playing = {pid for f in first_round for pid in (f.home_participant_id, f.away_participant_id)}

    for bye in plan.byes:
        assert bye.participant_id not in playing
        target = plan.fixture(bye.fixture_key)
        assert target.round_number == plan.rounds - 1
        held = target.home_participant_id if bye.slot == "home" else target.away_participant_id
        assert held == bye.participant_id


def test_five_participants_layout():
    plan = build_bracket(entrants(5), "single_elimination")

    assert plan.bracket_size == 8
    assert len(plan.byes) == 3
    assert len(plan.fixtures) == 4

    first_round = plan.round(3)
    assert len(first_round) == 1
    assert {first_round[0].home_participant_id, first_round[0].away_participant_id} == {4, 5}

    semis = plan.round(2)
    assert len(semis) == 2
    assert (semis[0].home_participant_id, semis[0].away_participant_id) == (1, 2)
    assert semis[1].home_participant_id == 3
    assert semis[1].away_participant_id is None
    assert first_round[0].next_key == semis[1].key
    assert first_round[0].next_slot == "away"

    final = plan.round(1)
    assert len(final) == 1
    assert final[0].home_participant_id is None and final[0].away_participant_id is None


def test_every_fixture_links_to_position_half_in_next_round():
    plan = build_bracket(entrants(16), "single_elimination")
    for fixture in plan.fixtures:
        if fixture.round_number == 1:
            continue
        target = plan.fixture(fixture.next_key)
        assert target.round_number == fixture.round_number - 1
        assert target.bracket_position == fixture.bracket_position // 2
        assert fixture.next_slot == ("home" if fixture.bracket_position % 2 == 0 else "away")


def test_round_index_is_play_order():
    plan = build_bracket(entrants(8), "single_elimination")
    by_name = {f.round_name: f.round_index for f in plan.fixtures}
    assert by_name == {"quarter_final": 1, "semi_final": 2, "final": 3}


def test_rating_seeding_gives_byes_to_top_seeds():
    plan = build_bracket(
        entrants(6, seeds=[1200, 1900, None, 1500, 1700, 1000]),
        "single_elimination",
        BracketOptions(seeding_method="rating"),
    )
    assert {b.participant_id for b in plan.byes} == {2, 5}


def test_random_seeding_with_rng_is_reproducible():
    options_a = BracketOptions(seeding_method="random", rng=random.Random(7))
    options_b = BracketOptions(seeding_method="random", rng=random.Random(7))
    plan_a = build_bracket(entrants(8), "single_elimination", options_a)
    plan_b = build_bracket(entrants(8), "single_elimination", options_b)
    pairs_a = [(f.home_participant_id, f.away_participant_id) for f in plan_a.round(3)]
    pairs_b = [(f.home_participant_id, f.away_participant_id) for f in plan_b.round(3)]
    assert pairs_a == pairs_b


def test_third_place_fixture_added_for_four_or_more():
    plan = build_bracket(entrants(4), "single_elimination", BracketOptions(has_third_place=True))
    consolation = [f for f in plan.fixtures if f.stage == STAGE_CONSOLATION]

    assert len(plan.fixtures) == 4
    assert len(consolation) == 1
    assert consolation[0].round_name == "third_place"
    assert consolation[0].next_key is None
    # The final is still the only knockout fixture with no forward link
    assert len([f for f in plan.fixtures if f.stage == STAGE_KNOCKOUT and f.next_key is None]) == 1
    assert any(e.is_consolation for e in plan.entries)


def test_no_third_place_fixture_below_four():
    plan = build_bracket(entrants(3), "single_elimination", BracketOptions(has_third_place=True))
    assert not [f for f in plan.fixtures if f.stage == STAGE_CONSOLATION]


# ============================================================================
# Round robin and mixed
# ============================================================================


def test_four_participant_round_robin():
    plan = build_bracket(entrants(4), "round_robin")

    assert plan.rounds == 3
    per_round = Counter(f.round_number for f in plan.fixtures)
    assert per_round == {1: 2, 2: 2, 3: 2}
    pairs = [frozenset((f.home_participant_id, f.away_participant_id)) for f in plan.fixtures]
    assert len(pairs) == len(set(pairs)) == 6
    assert all(f.next_key is None for f in plan.fixtures)
    assert plan.entries == []


@pytest.mark.parametrize("n", [2, 3, 5, 6, 9])
def test_round_robin_every_participant_plays_everyone(n):
    plan = build_bracket(entrants(n), "round_robin")
    appearances = Counter(pid for f in plan.fixtures for pid in (f.home_participant_id, f.away_participant_id))

    assert len(plan.fixtures) == n * (n - 1) // 2
    assert all(appearances[pid] == n - 1 for pid in range(1, n + 1))


def test_double_round_robin_mirrors_home_and_away():
    plan = build_bracket(entrants(4), "round_robin", BracketOptions(double_round_robin=True))
    legs = Counter((f.home_participant_id, f.away_participant_id) for f in plan.fixtures)

    assert len(plan.fixtures) == 12
    assert plan.rounds == 6
    assert all(count == 1 for count in legs.values())
    assert all((away, home) in legs for home, away in legs)


def test_mixed_format_builds_group_round_robins():
    plan = build_bracket(entrants(10), "mixed", BracketOptions(group_size=4))

    assert [g.name for g in plan.groups] == ["Group A", "Group B", "Group C"]
    assert [len(g.participant_ids) for g in plan.groups] == [4, 3, 3]
    assert len(plan.fixtures) == 6 + 3 + 3
    assert all(f.stage == STAGE_GROUP for f in plan.fixtures)
    for group in plan.groups:
        members = set(group.participant_ids)
        for f in plan.fixtures:
            if f.group_name == group.name:
                assert {f.home_participant_id, f.away_participant_id} <= members


# ============================================================================
# Validation
# ============================================================================


@pytest.mark.parametrize(
    "participants,fmt,options",
    [
        (entrants(1), "single_elimination", None),
        (entrants(0), "round_robin", None),
        (entrants(4), "swiss", None),
        (entrants(4), "single_elimination", BracketOptions(seeding_method="alphabetical")),
        (entrants(6), "mixed", BracketOptions(group_size=1)),
        (entrants(6), "mixed", BracketOptions(qualifiers_per_group=0)),
    ],
)
def test_invalid_input_is_rejected(participants, fmt, options):
    with pytest.raises(ValidationError):
        build_bracket(participants, fmt, options)


def test_duplicate_participants_rejected():
    duplicated = entrants(3) + [Entrant(participant_id=1, name="P1 again")]
    with pytest.raises(ValidationError):
        build_bracket(duplicated, "single_elimination")


# ============================================================================
# Persisted generation
# ============================================================================


def test_generate_bracket_persists_fixtures_and_entries(session: Session, make_competition):
    competition = make_competition("single_elimination", 8)

    generated = generate_bracket(session, competition.id)

    fixtures = session.exec(select(Fixture).where(Fixture.competition_id == competition.id)).all()
    entries = session.exec(select(BracketEntry).where(BracketEntry.competition_id == competition.id)).all()
    assert len(fixtures) == 7
    assert len(entries) == 7
    assert len(generated.fixtures) == 7
    assert len([f for f in fixtures if f.next_fixture_id is None]) == 1
    assert all(f.status == "pending" and f.scheduling_status == "unscheduled" for f in fixtures)
    assert all(f.duration_minutes == competition.match_duration_minutes for f in fixtures)

    by_id = {f.id: f for f in fixtures}
    for entry in entries:
        assert entry.next_fixture_id == by_id[entry.fixture_id].next_fixture_id

    session.refresh(competition)
    assert competition.status == COMPETITION_IN_PROGRESS


def test_generate_bracket_places_bye_participants(session: Session, make_competition):
    competition = make_competition("single_elimination", 5)
    generate_bracket(session, competition.id)

    semis = session.exec(
        select(Fixture)
        .where(Fixture.competition_id == competition.id, Fixture.round_number == 2)
        .order_by(Fixture.bracket_position)
    ).all()
    names = {p.id: p.name for p in session.exec(select(Participant)).all()}

    assert names[semis[0].home_participant_id] == "P01"
    assert names[semis[0].away_participant_id] == "P02"
    assert names[semis[1].home_participant_id] == "P03"
    assert semis[1].away_participant_id is None


def test_generate_bracket_twice_is_a_state_error(session: Session, make_competition):
    competition = make_competition("round_robin", 4)
    generate_bracket(session, competition.id)

    with pytest.raises(StateError):
        generate_bracket(session, competition.id)


def test_generate_bracket_with_too_few_participants_writes_nothing(session: Session, make_competition):
    competition = make_competition("single_elimination", 1)

    with pytest.raises(ValidationError):
        generate_bracket(session, competition.id)

    assert session.exec(select(Fixture).where(Fixture.competition_id == competition.id)).first() is None


def test_generate_bracket_unknown_competition(session: Session):
    with pytest.raises(NotFoundError):
        generate_bracket(session, 9999)


def test_generate_mixed_bracket_assigns_groups(session: Session, make_competition):
    competition = make_competition("mixed", 6, group_size=3)
    generate_bracket(session, competition.id)

    groups = Counter(p.group_name for p in session.exec(select(Participant)).all())
    assert groups == {"Group A": 3, "Group B": 3}
