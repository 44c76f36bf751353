"""
Standings and knockout qualification.

Tables are derived from completed league/group fixtures on every read and are
never stored. Win = 3 points, draw = 1, loss = 0; ties on points are broken by
goal difference, then goals scored, then name.
"""
import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from sqlmodel import Session, select

from matchday.errors import StateError
from matchday.models.fixture import (
    STAGE_GROUP,
    STAGE_KNOCKOUT,
    STAGE_LEAGUE,
    STATUS_COMPLETED,
    TERMINAL_STATUSES,
    Fixture,
)
from matchday.models.participant import Participant
from matchday.services.bracket_builder import (
    BracketOptions,
    Entrant,
    GeneratedBracket,
    build_bracket,
    persist_plan,
)
from matchday.services.bracket_rules import (
    FORMAT_MIXED,
    FORMAT_ROUND_ROBIN,
    FORMAT_SINGLE_ELIMINATION,
    SEEDING_REGISTRATION,
    normalize_format,
)
from matchday.utils.persistence import commit_or_raise, get_competition_or_raise, load_participants

logger = logging.getLogger(__name__)

POINTS_WIN = 3
POINTS_DRAW = 1
POINTS_LOSS = 0


@dataclass
class StandingRow:
    participant_id: int
    name: str
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    points: int = 0

    @property
    def goal_difference(self) -> int:
        return self.goals_for - self.goals_against


@dataclass
class GroupStandings:
    group_name: Optional[str]  # None for a league table
    rows: List[StandingRow] = field(default_factory=list)

    def top(self, count: int) -> List[StandingRow]:
        return self.rows[:count]


def _apply(row: StandingRow, scored: int, conceded: int) -> None:
    row.played += 1
    row.goals_for += scored
    row.goals_against += conceded
    if scored > conceded:
        row.won += 1
        row.points += POINTS_WIN
    elif scored == conceded:
        row.drawn += 1
        row.points += POINTS_DRAW
    else:
        row.lost += 1
        row.points += POINTS_LOSS


def standings_table(participants: Sequence[Participant], fixtures: Sequence[Fixture]) -> List[StandingRow]:
    """Pure: rank participants by the completed fixtures among them."""
    rows: Dict[int, StandingRow] = {p.id: StandingRow(participant_id=p.id, name=p.name) for p in participants}
    for fixture in fixtures:
        if fixture.status != STATUS_COMPLETED or fixture.home_score is None or fixture.away_score is None:
            continue
        home = rows.get(fixture.home_participant_id)
        away = rows.get(fixture.away_participant_id)
        if home is None or away is None:
            continue
        _apply(home, fixture.home_score, fixture.away_score)
        _apply(away, fixture.away_score, fixture.home_score)

    return sorted(
        rows.values(),
        key=lambda r: (-r.points, -r.goal_difference, -r.goals_for, r.name),
    )


def compute_standings(session: Session, competition_id: int) -> List[GroupStandings]:
    """
    League table for a round-robin competition, or one table per group
    for a mixed competition.

    Raises:
        NotFoundError: competition does not exist
        StateError: single-elimination competitions have no standings
    """
    competition = get_competition_or_raise(session, competition_id)
    fmt = normalize_format(competition.format)
    participants = load_participants(session, competition_id)

    if fmt == FORMAT_ROUND_ROBIN:
        fixtures = session.exec(
            select(Fixture).where(Fixture.competition_id == competition_id, Fixture.stage == STAGE_LEAGUE)
        ).all()
        return [GroupStandings(group_name=None, rows=standings_table(participants, fixtures))]

    if fmt != FORMAT_MIXED:
        raise StateError(f"Competition {competition_id} ({competition.format}) has no standings table")

    fixtures = session.exec(
        select(Fixture).where(Fixture.competition_id == competition_id, Fixture.stage == STAGE_GROUP)
    ).all()
    members: Dict[str, List[Participant]] = {}
    for participant in participants:
        if participant.group_name:
            members.setdefault(participant.group_name, []).append(participant)

    tables = []
    for group_name in sorted(members, key=_group_sort_key):
        group_fixtures = [f for f in fixtures if f.group_name == group_name]
        tables.append(GroupStandings(group_name=group_name, rows=standings_table(members[group_name], group_fixtures)))
    return tables


def _group_sort_key(name: str):
    # "Group B" before "Group AA"; numbered fallbacks sort after letters
    suffix = name.replace("Group ", "", 1)
    return (len(suffix), suffix)


def qualifiers(tables: Sequence[GroupStandings], per_group: int) -> List[StandingRow]:
    """Group winners first, then runners-up: A1, B1, ..., A2, B2, ..."""
    ordered: List[StandingRow] = []
    for rank in range(per_group):
        for table in tables:
            if rank < len(table.rows):
                ordered.append(table.rows[rank])
    return ordered


def build_knockout_stage(
    session: Session,
    competition_id: int,
    rng: Optional[random.Random] = None,
) -> GeneratedBracket:
    """
    Generate the knockout stage of a mixed competition from final group standings.

    Raises:
        NotFoundError: competition does not exist
        StateError: not a mixed competition, groups still running, or knockout already built
        ValidationError: fewer than 2 qualifiers
    """
    competition = get_competition_or_raise(session, competition_id)
    if normalize_format(competition.format) != FORMAT_MIXED:
        raise StateError(f"Competition {competition_id} has no group stage")

    existing = session.exec(
        select(Fixture.id).where(Fixture.competition_id == competition_id, Fixture.stage == STAGE_KNOCKOUT)
    ).first()
    if existing is not None:
        raise StateError(f"Knockout stage already exists for competition {competition_id}")

    group_fixtures = session.exec(
        select(Fixture).where(Fixture.competition_id == competition_id, Fixture.stage == STAGE_GROUP)
    ).all()
    participants = load_participants(session, competition_id)
    if not any(p.group_name for p in participants):
        raise StateError(f"Group stage has not been generated for competition {competition_id}")
    open_fixtures = [f.id for f in group_fixtures if f.status not in TERMINAL_STATUSES]
    if open_fixtures:
        raise StateError(
            f"Group stage still has {len(open_fixtures)} open fixture(s) for competition {competition_id}"
        )

    tables = compute_standings(session, competition_id)
    seeds = {p.id: p.seed for p in participants}
    entrants = [
        Entrant(participant_id=row.participant_id, name=row.name, seed=seeds.get(row.participant_id))
        for row in qualifiers(tables, competition.qualifiers_per_group)
    ]

    options = BracketOptions(
        seeding_method=SEEDING_REGISTRATION,
        has_third_place=competition.has_third_place,
        rng=rng,
    )
    plan = build_bracket(entrants, FORMAT_SINGLE_ELIMINATION, options)
    by_key = persist_plan(session, competition, plan)
    commit_or_raise(session, "generate knockout stage")

    logger.info(
        "Generated knockout stage for competition %d: %d qualifiers from %d groups, %d fixtures",
        competition_id,
        len(entrants),
        len(tables),
        len(plan.fixtures),
    )
    return GeneratedBracket(plan=plan, fixtures_by_key=by_key)
