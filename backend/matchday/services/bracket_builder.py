"""
Bracket Topology Builder.

build_bracket() is pure: participants + format + options in, a BracketPlan out
(fixtures keyed by a stable plan key, bracket entries, bye advancements and
group partitions). generate_bracket() persists a plan for a competition in a
single transaction; a structural error raises before anything is written.

Round numbering for elimination stages counts from the final (1 = final);
round_index is play order (1 = first round played).
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from sqlmodel import Session, select

from matchday.config import DEFAULT_GROUP_SIZE, DEFAULT_QUALIFIERS_PER_GROUP
from matchday.errors import StateError, ValidationError
from matchday.models.bracket_entry import BracketEntry
from matchday.models.competition import COMPETITION_IN_PROGRESS, Competition
from matchday.models.fixture import (
    STAGE_CONSOLATION,
    STAGE_GROUP,
    STAGE_KNOCKOUT,
    STAGE_LEAGUE,
    Fixture,
)
from matchday.services.bracket_rules import (
    FORMAT_MIXED,
    FORMAT_ROUND_ROBIN,
    FORMAT_SINGLE_ELIMINATION,
    SEEDING_REGISTRATION,
    SUPPORTED_SEEDING_METHODS,
    THIRD_PLACE_ROUND_NAME,
    distribute_into_groups,
    elimination_round_count,
    first_round_pairings,
    group_count,
    group_label,
    league_round_name,
    next_position,
    normalize_format,
    round_name,
    rr_pairings_by_round,
    rr_round_count,
    seed_order,
)
from matchday.utils.persistence import (
    commit_or_raise,
    flush_or_raise,
    get_competition_or_raise,
    load_participants,
)

logger = logging.getLogger(__name__)

THIRD_PLACE_KEY = "KO-3RD"


@dataclass
class Entrant:
    """Lightweight struct for bracket input."""
    participant_id: int
    name: str = ""
    seed: Optional[float] = None


@dataclass
class BracketOptions:
    seeding_method: str = SEEDING_REGISTRATION
    has_third_place: bool = False
    double_round_robin: bool = False
    group_size: int = DEFAULT_GROUP_SIZE
    qualifiers_per_group: int = DEFAULT_QUALIFIERS_PER_GROUP
    rng: Optional[random.Random] = None


@dataclass
class PlannedFixture:
    key: str
    stage: str
    round_number: int
    round_index: int
    round_name: str
    bracket_position: int
    home_participant_id: Optional[int] = None
    away_participant_id: Optional[int] = None
    home_seed: Optional[float] = None
    away_seed: Optional[float] = None
    group_name: Optional[str] = None
    next_key: Optional[str] = None
    next_slot: Optional[str] = None
    priority: int = 0


@dataclass
class PlannedEntry:
    fixture_key: str
    round_number: int
    bracket_position: int
    home_seed: Optional[float] = None
    away_seed: Optional[float] = None
    next_key: Optional[str] = None
    is_consolation: bool = False


@dataclass
class ByeAdvance:
    """A first-round pairing with one empty side: the participant skips to fixture_key."""
    participant_id: int
    first_round_position: int
    fixture_key: str
    slot: str


@dataclass
class GroupPlan:
    name: str
    participant_ids: List[int]


@dataclass
class BracketPlan:
    format: str
    participant_count: int
    rounds: int = 0
    bracket_size: Optional[int] = None
    fixtures: List[PlannedFixture] = field(default_factory=list)
    entries: List[PlannedEntry] = field(default_factory=list)
    byes: List[ByeAdvance] = field(default_factory=list)
    groups: List[GroupPlan] = field(default_factory=list)

    def fixture(self, key: str) -> PlannedFixture:
        for planned in self.fixtures:
            if planned.key == key:
                return planned
        raise KeyError(key)

    def round(self, round_number: int, stage: str = STAGE_KNOCKOUT) -> List[PlannedFixture]:
        return [f for f in self.fixtures if f.stage == stage and f.round_number == round_number]


# =============================================================================
# Validation
# =============================================================================

def _validate(participants: Sequence[Entrant], fmt: str, options: BracketOptions) -> str:
    if len(participants) < 2:
        raise ValidationError(f"At least 2 participants required to generate a bracket, got {len(participants)}")

    ids = [p.participant_id for p in participants]
    if len(set(ids)) != len(ids):
        raise ValidationError("Participant list contains duplicates")

    canonical = normalize_format(fmt)
    if canonical is None:
        raise ValidationError(f"Unsupported competition format: {fmt}")

    if options.seeding_method not in SUPPORTED_SEEDING_METHODS:
        raise ValidationError(
            f"Unsupported seeding method: {options.seeding_method} "
            f"(expected one of {', '.join(SUPPORTED_SEEDING_METHODS)})"
        )

    if canonical == FORMAT_MIXED:
        if options.group_size < 2:
            raise ValidationError(f"group_size must be >= 2, got {options.group_size}")
        if options.qualifiers_per_group < 1:
            raise ValidationError(f"qualifiers_per_group must be >= 1, got {options.qualifiers_per_group}")

    return canonical


# =============================================================================
# Planning
# =============================================================================

def build_bracket(
    participants: Sequence[Entrant],
    fmt: str,
    options: Optional[BracketOptions] = None,
) -> BracketPlan:
    """
    Build the full fixture skeleton for a competition.

    Raises:
        ValidationError: fewer than 2 participants, unsupported format or
            seeding method, invalid group settings
    """
    options = options or BracketOptions()
    canonical = _validate(participants, fmt, options)
    seeded = seed_order(participants, options.seeding_method, rng=options.rng)

    if canonical == FORMAT_SINGLE_ELIMINATION:
        return _plan_single_elimination(seeded, options.has_third_place)
    if canonical == FORMAT_ROUND_ROBIN:
        plan = BracketPlan(format=canonical, participant_count=len(seeded))
        plan.fixtures = _plan_round_robin(seeded, options.double_round_robin, STAGE_LEAGUE, None, "RR")
        plan.rounds = max(f.round_number for f in plan.fixtures)
        return plan
    return _plan_mixed(seeded, options)


def _ko_key(round_number: int, position: int) -> str:
    return f"KO-R{round_number}-P{position}"


def _plan_single_elimination(seeded: List[Entrant], has_third_place: bool) -> BracketPlan:
    n = len(seeded)
    rounds = elimination_round_count(n)
    slots = 2 ** rounds
    padded: List[Optional[Entrant]] = list(seeded) + [None] * (slots - n)

    plan = BracketPlan(
        format=FORMAT_SINGLE_ELIMINATION,
        participant_count=n,
        rounds=rounds,
        bracket_size=slots,
    )

    def link(round_number: int, position: int):
        if round_number == 1:
            return None, None
        nxt, slot = next_position(position)
        return _ko_key(round_number - 1, nxt), slot

    # First round: only pairings with both sides present become fixtures
    for position, (home_slot, away_slot) in enumerate(first_round_pairings(slots)):
        home, away = padded[home_slot], padded[away_slot]
        next_key, next_slot = link(rounds, position)

        if home is None and away is None:
            raise ValidationError(f"Bracket position {position} has no participant on either side")

        if home is None or away is None:
            present = home if home is not None else away
            plan.byes.append(
                ByeAdvance(
                    participant_id=present.participant_id,
                    first_round_position=position,
                    fixture_key=next_key,
                    slot=next_slot,
                )
            )
            continue

        plan.fixtures.append(
            PlannedFixture(
                key=_ko_key(rounds, position),
                stage=STAGE_KNOCKOUT,
                round_number=rounds,
                round_index=1,
                round_name=round_name(rounds),
                bracket_position=position,
                home_participant_id=home.participant_id,
                away_participant_id=away.participant_id,
                home_seed=home.seed,
                away_seed=away.seed,
                next_key=next_key,
                next_slot=next_slot,
                priority=rounds,
            )
        )

    # Later rounds start empty and are filled by byes now and results later
    for round_number in range(rounds - 1, 0, -1):
        if round_number == 1 and has_third_place and n >= 4:
            plan.fixtures.append(
                PlannedFixture(
                    key=THIRD_PLACE_KEY,
                    stage=STAGE_CONSOLATION,
                    round_number=0,
                    round_index=rounds,
                    round_name=THIRD_PLACE_ROUND_NAME,
                    bracket_position=0,
                    priority=1,
                )
            )
        for position in range(2 ** (round_number - 1)):
            next_key, next_slot = link(round_number, position)
            plan.fixtures.append(
                PlannedFixture(
                    key=_ko_key(round_number, position),
                    stage=STAGE_KNOCKOUT,
                    round_number=round_number,
                    round_index=rounds - round_number + 1,
                    round_name=round_name(round_number),
                    bracket_position=position,
                    next_key=next_key,
                    next_slot=next_slot,
                    priority=round_number,
                )
            )

    seeds = {e.participant_id: e.seed for e in seeded}
    for bye in plan.byes:
        target = plan.fixture(bye.fixture_key)
        if bye.slot == "home":
            target.home_participant_id = bye.participant_id
            target.home_seed = seeds[bye.participant_id]
        else:
            target.away_participant_id = bye.participant_id
            target.away_seed = seeds[bye.participant_id]

    for planned in plan.fixtures:
        plan.entries.append(
            PlannedEntry(
                fixture_key=planned.key,
                round_number=planned.round_number,
                bracket_position=planned.bracket_position,
                home_seed=planned.home_seed,
                away_seed=planned.away_seed,
                next_key=planned.next_key,
                is_consolation=planned.stage == STAGE_CONSOLATION,
            )
        )

    return plan


def _plan_round_robin(
    seeded: List[Entrant],
    double: bool,
    stage: str,
    group_name: Optional[str],
    key_prefix: str,
) -> List[PlannedFixture]:
    pairings = rr_pairings_by_round(len(seeded))
    legs = [(0, False), (rr_round_count(len(seeded)), True)] if double else [(0, False)]

    fixtures: List[PlannedFixture] = []
    for round_offset, swap in legs:
        for round_num, seq, idx_home, idx_away in pairings:
            home, away = seeded[idx_home], seeded[idx_away]
            if swap:
                home, away = away, home
            round_number = round_num + round_offset
            fixtures.append(
                PlannedFixture(
                    key=f"{key_prefix}-R{round_number}-S{seq}",
                    stage=stage,
                    round_number=round_number,
                    round_index=round_number,
                    round_name=league_round_name(round_number),
                    bracket_position=seq - 1,
                    home_participant_id=home.participant_id,
                    away_participant_id=away.participant_id,
                    home_seed=home.seed,
                    away_seed=away.seed,
                    group_name=group_name,
                )
            )
    return fixtures


def _plan_mixed(seeded: List[Entrant], options: BracketOptions) -> BracketPlan:
    groups = group_count(len(seeded), options.group_size)
    plan = BracketPlan(format=FORMAT_MIXED, participant_count=len(seeded))

    for group_index, members in enumerate(distribute_into_groups(seeded, groups)):
        name = group_label(group_index)
        plan.groups.append(GroupPlan(name=name, participant_ids=[m.participant_id for m in members]))
        if len(members) < 2:
            # A lone participant tops its group without playing
            continue
        plan.fixtures.extend(
            _plan_round_robin(members, options.double_round_robin, STAGE_GROUP, name, f"G{group_index + 1}")
        )

    plan.rounds = max((f.round_number for f in plan.fixtures), default=0)
    return plan


# =============================================================================
# Persistence
# =============================================================================

@dataclass
class GeneratedBracket:
    plan: BracketPlan
    fixtures_by_key: Dict[str, Fixture]

    @property
    def fixtures(self) -> List[Fixture]:
        return list(self.fixtures_by_key.values())


def options_for(competition: Competition, rng: Optional[random.Random] = None) -> BracketOptions:
    return BracketOptions(
        seeding_method=competition.seeding_method,
        has_third_place=competition.has_third_place,
        double_round_robin=competition.double_round_robin,
        group_size=competition.group_size,
        qualifiers_per_group=competition.qualifiers_per_group,
        rng=rng,
    )


def persist_plan(session: Session, competition: Competition, plan: BracketPlan) -> Dict[str, Fixture]:
    """
    Add the plan's fixtures and bracket entries to the session and wire forward links.

    Flushes but does not commit; the caller owns the transaction.
    """
    by_key: Dict[str, Fixture] = {}
    for planned in plan.fixtures:
        fixture = Fixture(
            competition_id=competition.id,
            stage=planned.stage,
            round_number=planned.round_number,
            round_index=planned.round_index,
            round_name=planned.round_name,
            bracket_position=planned.bracket_position,
            group_name=planned.group_name,
            priority=planned.priority,
            home_participant_id=planned.home_participant_id,
            away_participant_id=planned.away_participant_id,
            duration_minutes=competition.match_duration_minutes,
        )
        session.add(fixture)
        by_key[planned.key] = fixture

    flush_or_raise(session, "create fixtures")

    if plan.groups:
        group_of = {pid: group.name for group in plan.groups for pid in group.participant_ids}
        for participant in load_participants(session, competition.id):
            if participant.id in group_of:
                participant.group_name = group_of[participant.id]
                session.add(participant)

    for planned in plan.fixtures:
        if planned.next_key:
            fixture = by_key[planned.key]
            fixture.next_fixture_id = by_key[planned.next_key].id
            fixture.next_slot = planned.next_slot
            session.add(fixture)

    for entry in plan.entries:
        session.add(
            BracketEntry(
                competition_id=competition.id,
                fixture_id=by_key[entry.fixture_key].id,
                round_number=entry.round_number,
                bracket_position=entry.bracket_position,
                home_seed=entry.home_seed,
                away_seed=entry.away_seed,
                next_fixture_id=by_key[entry.next_key].id if entry.next_key else None,
                is_consolation=entry.is_consolation,
            )
        )

    flush_or_raise(session, "create bracket entries")
    return by_key


def generate_bracket(
    session: Session,
    competition_id: int,
    rng: Optional[random.Random] = None,
) -> GeneratedBracket:
    """
    Generate and persist the bracket for a competition from its registered participants.

    All fixtures and bracket entries are written in one transaction and the
    competition moves to in_progress.

    Raises:
        NotFoundError: competition does not exist
        StateError: fixtures already exist for the competition
        ValidationError: see build_bracket
    """
    competition = get_competition_or_raise(session, competition_id)

    existing = session.exec(select(Fixture.id).where(Fixture.competition_id == competition_id)).first()
    if existing is not None:
        raise StateError(f"Bracket already exists for competition {competition_id}")

    entrants = [Entrant(participant_id=p.id, name=p.name, seed=p.seed) for p in load_participants(session, competition_id)]
    plan = build_bracket(entrants, competition.format, options_for(competition, rng))

    by_key = persist_plan(session, competition, plan)
    competition.status = COMPETITION_IN_PROGRESS
    session.add(competition)
    commit_or_raise(session, "generate bracket")

    logger.info(
        "Generated %s bracket for competition %d: %d participants, %d fixtures, %d byes",
        plan.format,
        competition_id,
        plan.participant_count,
        len(plan.fixtures),
        len(plan.byes),
    )
    return GeneratedBracket(plan=plan, fixtures_by_key=by_key)
