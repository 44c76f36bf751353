"""
Scheduling Conflict Engine.

Assigns start times and venues to fixtures without double-booking a venue or
breaking a participant's rest period.

  auto_schedule      : greedy batch run over a ScheduleWindow
  schedule_fixture   : manual placement, checked against persisted state
  reschedule_fixture : manual move of a fixture with an audit note
  scheduling_stats, list_conflicts : read-only reporting
  check_conflict, available_slots, list_schedule : read-only queries

Venue clash: an existing booking occupies [start - buffer, start + duration).
Rest clash: another booked fixture of either participant starts within the
rest period (inclusive) of the candidate start.
Bracket order: an elimination fixture with a side still to be decided must
follow its booked feeders, and must not be moved past a booked next-round
fixture. Until every open feeder has a slot, it cannot be placed.

Naive datetimes and window offsets are wall-clock times in the competition's
timezone; everything is stored as naive UTC.

Every write re-checks persisted state under a process-wide booking lock, so
two callers cannot confirm overlapping bookings between check and commit.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterator, List, Optional, Tuple

from sqlalchemy import or_
from sqlmodel import Session, func, select

from matchday.config import (
    AVAILABLE_SLOT_OFFSETS,
    DEFAULT_MATCH_DURATION_MINUTES,
    DEFAULT_TIME_OFFSETS,
    MAX_MATCH_DURATION_MINUTES,
    UNASSIGNED_VENUE,
)
from matchday.errors import ConflictError, StateError, ValidationError
from matchday.models.competition import Competition
from matchday.models.fixture import (
    BOOKED_SCHEDULING_STATUSES,
    SCHEDULING_CONFIRMED,
    SCHEDULING_CONFLICTED,
    SCHEDULING_RESCHEDULED,
    SCHEDULING_STATUSES,
    SCHEDULING_UNSCHEDULED,
    STAGE_CONSOLATION,
    STAGE_KNOCKOUT,
    STATUS_CANCELLED,
    STATUS_PENDING,
    STATUS_SCHEDULED,
    TERMINAL_STATUSES,
    Fixture,
)
from matchday.services.advancement_service import SEMI_FINAL_ROUND
from matchday.services.notifier import EVENT_FIXTURE_SCHEDULED, Notifier, emit
from matchday.utils.occupancy import (
    Booking,
    BracketOrder,
    OccupancyIndex,
    order_clash_reason,
    rest_clash_reason,
    venue_clash_reason,
    venue_overlaps,
    within_rest,
)
from matchday.utils.persistence import commit_or_raise, get_competition_or_raise, get_fixture_or_raise
from matchday.utils.timeutil import format_utc, get_timezone, local_to_utc, parse_offset, to_utc_naive

logger = logging.getLogger(__name__)

# Held around every persisted re-check + commit of a booking
_booking_lock = threading.Lock()

# One auto-schedule run per competition at a time
_competition_locks: Dict[int, threading.Lock] = {}
_competition_locks_guard = threading.Lock()

NO_SLOT_REASON = "No available slot in the schedule window"


def _competition_lock(competition_id: int) -> threading.Lock:
    with _competition_locks_guard:
        return _competition_locks.setdefault(competition_id, threading.Lock())


# =============================================================================
# Types
# =============================================================================

@dataclass
class ScheduleWindow:
    """Search space for an auto-schedule run or a free-slot query (not persisted)."""
    start_date: Optional[date] = None
    end_date: Optional[date] = None  # inclusive
    time_offsets: List[str] = field(default_factory=lambda: list(DEFAULT_TIME_OFFSETS))
    excluded_weekdays: List[int] = field(default_factory=list)  # 0 = Monday ... 6 = Sunday
    venues: List[str] = field(default_factory=list)
    timezone: Optional[str] = None  # None = the competition's timezone
    buffer_minutes: Optional[int] = None
    rest_period_minutes: Optional[int] = None

    def validate(self) -> List[time]:
        """Check the window's structure and return the parsed offsets."""
        if self.start_date is None or self.end_date is None:
            raise ValidationError("Schedule window requires start_date and end_date")
        if not self.timezone:
            raise ValidationError("Schedule window requires a timezone")
        if self.end_date < self.start_date:
            raise ValidationError(f"Schedule window end {self.end_date} is before start {self.start_date}")
        if not self.time_offsets:
            raise ValidationError("Schedule window requires at least one time offset")
        for weekday in self.excluded_weekdays:
            if not isinstance(weekday, int) or not 0 <= weekday <= 6:
                raise ValidationError(f"Invalid weekday {weekday} (expected 0=Monday .. 6=Sunday)")
        if self.buffer_minutes is not None and self.buffer_minutes < 0:
            raise ValidationError("buffer_minutes must be >= 0")
        if self.rest_period_minutes is not None and self.rest_period_minutes < 0:
            raise ValidationError("rest_period_minutes must be >= 0")
        get_timezone(self.timezone)
        return [parse_offset(value) for value in self.time_offsets]

    def days(self) -> Iterator[date]:
        day = self.start_date
        while day <= self.end_date:
            if day.weekday() not in self.excluded_weekdays:
                yield day
            day += timedelta(days=1)

    def candidate_venues(self) -> List[str]:
        venues = [v.strip() for v in self.venues if v and v.strip()]
        return venues or [UNASSIGNED_VENUE]

    def candidates(self, offsets: List[time]) -> Iterator[Tuple[datetime, str]]:
        """(utc_start, venue) in search order: day, then offset, then venue."""
        tz = get_timezone(self.timezone)
        venues = self.candidate_venues()
        for day in self.days():
            for offset in offsets:
                start = local_to_utc(day, offset, tz)
                for venue in venues:
                    yield start, venue


@dataclass
class SlotAssignment:
    fixture_id: int
    start_time: datetime
    venue: str


@dataclass
class ConflictedFixture:
    fixture_id: int
    reason: str


@dataclass
class AutoScheduleResult:
    assigned: List[SlotAssignment] = field(default_factory=list)
    conflicted: List[ConflictedFixture] = field(default_factory=list)
    total_processed: int = 0
    cancelled: bool = False


@dataclass
class ScheduleOutcome:
    ok: bool
    reason: Optional[str]
    fixture: Fixture


@dataclass
class SchedulingStats:
    competition_id: int
    total: int
    by_status: Dict[str, int]
    scheduled_percentage: float


@dataclass
class ConflictCheck:
    fixture_id: int
    start_time: datetime
    venue: str
    duration_minutes: int
    has_conflict: bool
    reason: Optional[str]


@dataclass
class FreeSlot:
    start_time: datetime
    venue: str


# =============================================================================
# Conflict predicate
# =============================================================================

def _duration_of(fixture: Fixture) -> int:
    return fixture.duration_minutes or DEFAULT_MATCH_DURATION_MINUTES


def _booked_filter():
    return (
        Fixture.scheduling_status.in_(BOOKED_SCHEDULING_STATUSES),
        Fixture.status != STATUS_CANCELLED,
        Fixture.start_time.is_not(None),
    )


def _is_booked(fixture: Fixture) -> bool:
    return (
        fixture.scheduling_status in BOOKED_SCHEDULING_STATUSES
        and fixture.status != STATUS_CANCELLED
        and fixture.start_time is not None
    )


def _booking_of(fixture: Fixture) -> Booking:
    return Booking(
        fixture_id=fixture.id,
        venue=fixture.venue or UNASSIGNED_VENUE,
        start=fixture.start_time,
        duration_minutes=_duration_of(fixture),
        participant_ids=fixture.participant_ids(),
    )


def _is_semi_final(fixture: Fixture) -> bool:
    return fixture.stage == STAGE_KNOCKOUT and fixture.round_number == SEMI_FINAL_ROUND


def bracket_order(session: Session, fixture: Fixture) -> BracketOrder:
    """Load the booked feeders and successors an elimination fixture is ordered against."""
    order = BracketOrder()
    if not fixture.is_elimination:
        return order

    # Feeders only matter while a side is still to be played for
    if len(fixture.participant_ids()) < 2:
        if fixture.stage == STAGE_CONSOLATION:
            feeders = session.exec(
                select(Fixture).where(
                    Fixture.competition_id == fixture.competition_id,
                    Fixture.stage == STAGE_KNOCKOUT,
                    Fixture.round_number == SEMI_FINAL_ROUND,
                )
                .order_by(Fixture.bracket_position)
            ).all()
        else:
            feeders = session.exec(
                select(Fixture).where(Fixture.next_fixture_id == fixture.id).order_by(Fixture.bracket_position)
            ).all()
        for feeder in feeders:
            if feeder.status in TERMINAL_STATUSES:
                continue
            if not _is_booked(feeder):
                order.blocked_reason = f"Feeder fixture {feeder.id} has no confirmed slot yet"
                return order
            order.feeders.append(_booking_of(feeder))

    successors = []
    if fixture.next_fixture_id is not None:
        successors.append(session.get(Fixture, fixture.next_fixture_id))
    if _is_semi_final(fixture):
        successors.extend(
            session.exec(
                select(Fixture).where(
                    Fixture.competition_id == fixture.competition_id,
                    Fixture.stage == STAGE_CONSOLATION,
                )
            ).all()
        )
    for successor in successors:
        if successor is not None and successor.status not in TERMINAL_STATUSES and _is_booked(successor):
            order.successors.append(_booking_of(successor))
    return order


def persisted_conflict(
    session: Session,
    fixture: Fixture,
    venue: str,
    start: datetime,
    duration_minutes: int,
    buffer_minutes: int,
    rest_minutes: int,
) -> Optional[str]:
    """Check a candidate slot against booked fixtures in the database."""
    # Any booking that can reach the candidate starts within this range
    lower = start - timedelta(minutes=MAX_MATCH_DURATION_MINUTES)
    upper = start + timedelta(minutes=duration_minutes + buffer_minutes)
    query = select(Fixture).where(
        Fixture.venue == venue,
        Fixture.start_time > lower,
        Fixture.start_time < upper,
        *_booked_filter(),
    )
    if fixture.id is not None:
        query = query.where(Fixture.id != fixture.id)
    for existing in session.exec(query.order_by(Fixture.start_time)).all():
        if venue_overlaps(start, duration_minutes, existing.start_time, _duration_of(existing), buffer_minutes):
            booking = Booking(existing.id, venue, existing.start_time, _duration_of(existing))
            return venue_clash_reason(venue, booking, buffer_minutes)

    reason = order_clash_reason(
        start, duration_minutes, bracket_order(session, fixture), buffer_minutes, rest_minutes
    )
    if reason is not None:
        return reason

    participant_ids = fixture.participant_ids()
    if not participant_ids:
        return None
    rest = timedelta(minutes=rest_minutes)
    query = select(Fixture).where(
        or_(
            Fixture.home_participant_id.in_(participant_ids),
            Fixture.away_participant_id.in_(participant_ids),
        ),
        Fixture.start_time >= start - rest,
        Fixture.start_time <= start + rest,
        *_booked_filter(),
    )
    if fixture.id is not None:
        query = query.where(Fixture.id != fixture.id)
    for existing in session.exec(query.order_by(Fixture.start_time)).all():
        if within_rest(start, existing.start_time, rest_minutes):
            shared = [pid for pid in participant_ids if pid in existing.participant_ids()]
            return rest_clash_reason(shared[0], existing.id, existing.start_time, rest_minutes)
    return None


def _validate_duration(duration_minutes: int) -> int:
    if duration_minutes is None or duration_minutes <= 0:
        raise ValidationError("duration_minutes must be positive")
    if duration_minutes > MAX_MATCH_DURATION_MINUTES:
        raise ValidationError(
            f"duration_minutes {duration_minutes} exceeds the maximum of {MAX_MATCH_DURATION_MINUTES}"
        )
    return duration_minutes


def _confirm(fixture: Fixture, start: datetime, venue: str, duration_minutes: int, auto: bool) -> None:
    fixture.start_time = start
    fixture.venue = venue
    fixture.duration_minutes = duration_minutes
    fixture.scheduling_status = SCHEDULING_CONFIRMED
    fixture.auto_scheduled = auto
    fixture.conflict_reason = None
    if fixture.status == STATUS_PENDING:
        fixture.status = STATUS_SCHEDULED


def _mark_conflicted(fixture: Fixture, reason: str) -> None:
    fixture.scheduling_status = SCHEDULING_CONFLICTED
    fixture.conflict_reason = reason


# =============================================================================
# Automatic scheduling
# =============================================================================

def _load_index(session: Session, window: ScheduleWindow, margin: timedelta) -> OccupancyIndex:
    """Pre-load booked fixtures (all competitions) around the window."""
    tz = get_timezone(window.timezone)
    lower = local_to_utc(window.start_date, time(0, 0), tz) - margin
    upper = local_to_utc(window.end_date + timedelta(days=1), time(0, 0), tz) + margin

    index = OccupancyIndex()
    booked = session.exec(
        select(Fixture).where(
            Fixture.start_time >= lower,
            Fixture.start_time <= upper,
            *_booked_filter(),
        )
    ).all()
    for fixture in booked:
        index.add(_booking_of(fixture))
    return index


def auto_schedule(
    session: Session,
    competition_id: int,
    window: ScheduleWindow,
    notifier: Optional[Notifier] = None,
    cancel_event: Optional[threading.Event] = None,
) -> AutoScheduleResult:
    """
    Greedily assign every unscheduled fixture of a competition to the first
    slot in the window that passes the conflict predicate.

    Fixtures are taken by priority (desc), then play order, then creation
    order, so elimination feeders are booked before the fixtures they feed.
    Slots are searched day by day, then by offset in the order given, then
    by venue. Offsets are read in the window's timezone, or the
    competition's when the window names none.
    A fixture with no passing slot is marked conflicted; the run continues.
    Each fixture commits on its own, so a cancelled run keeps what it
    already confirmed and leaves the rest unscheduled.

    Raises:
        NotFoundError: competition does not exist
        ValidationError: malformed window
        ConflictError: another auto-schedule run holds this competition
    """
    competition = get_competition_or_raise(session, competition_id)
    if window.timezone is None:
        window = replace(window, timezone=competition.timezone)
    offsets = window.validate()
    buffer_minutes = window.buffer_minutes if window.buffer_minutes is not None else competition.buffer_minutes
    rest_minutes = (
        window.rest_period_minutes if window.rest_period_minutes is not None else competition.rest_period_minutes
    )

    lock = _competition_lock(competition_id)
    if not lock.acquire(blocking=False):
        raise ConflictError(f"Auto-scheduling is already running for competition {competition_id}")
    try:
        return _run_auto_schedule(
            session, competition, window, offsets, buffer_minutes, rest_minutes, notifier, cancel_event
        )
    finally:
        lock.release()


def _run_auto_schedule(
    session: Session,
    competition: Competition,
    window: ScheduleWindow,
    offsets: List[time],
    buffer_minutes: int,
    rest_minutes: int,
    notifier: Optional[Notifier],
    cancel_event: Optional[threading.Event],
) -> AutoScheduleResult:
    fixtures = session.exec(
        select(Fixture)
        .where(
            Fixture.competition_id == competition.id,
            Fixture.scheduling_status == SCHEDULING_UNSCHEDULED,
            Fixture.status.not_in(TERMINAL_STATUSES),
        )
        .order_by(Fixture.priority.desc(), Fixture.round_index, Fixture.created_at, Fixture.id)
    ).all()

    margin = timedelta(minutes=max(MAX_MATCH_DURATION_MINUTES + buffer_minutes, rest_minutes))
    index = _load_index(session, window, margin)
    candidates = list(window.candidates(offsets))
    result = AutoScheduleResult()

    logger.info(
        "Auto-scheduling competition %d: %d fixtures, %d candidate slots, %d existing bookings",
        competition.id,
        len(fixtures),
        len(candidates),
        len(index),
    )

    for fixture in fixtures:
        if cancel_event is not None and cancel_event.is_set():
            result.cancelled = True
            logger.warning(
                "Auto-scheduling for competition %d cancelled after %d fixtures",
                competition.id,
                result.total_processed,
            )
            break

        result.total_processed += 1
        duration = _duration_of(fixture)
        order = bracket_order(session, fixture)
        last_reason: Optional[str] = None
        placed = False

        for start, venue in candidates:
            reason = order_clash_reason(start, duration, order, buffer_minutes, rest_minutes)
            if reason is None:
                reason = index.venue_conflict(venue, start, duration, buffer_minutes, exclude_fixture_id=fixture.id)
            if reason is None:
                reason = index.rest_conflict(
                    fixture.participant_ids(), start, rest_minutes, exclude_fixture_id=fixture.id
                )
            if reason is not None:
                last_reason = reason
                continue

            with _booking_lock:
                reason = persisted_conflict(
                    session, fixture, venue, start, duration, buffer_minutes, rest_minutes
                )
                if reason is not None:
                    last_reason = reason
                    continue
                _confirm(fixture, start, venue, duration, auto=True)
                session.add(fixture)
                commit_or_raise(session, "confirm fixture schedule")

            index.add(Booking(fixture.id, venue, start, duration, fixture.participant_ids()))
            result.assigned.append(SlotAssignment(fixture_id=fixture.id, start_time=start, venue=venue))
            emit(
                notifier,
                EVENT_FIXTURE_SCHEDULED,
                fixture.id,
                competition_id=competition.id,
                start_time=start.isoformat(),
                venue=venue,
                auto_scheduled=True,
            )
            placed = True
            break

        if not placed:
            reason = NO_SLOT_REASON if last_reason is None else f"{NO_SLOT_REASON}; last conflict: {last_reason}"
            _mark_conflicted(fixture, reason)
            session.add(fixture)
            commit_or_raise(session, "mark fixture conflicted")
            result.conflicted.append(ConflictedFixture(fixture_id=fixture.id, reason=reason))

    logger.info(
        "Auto-scheduling competition %d done: %d assigned, %d conflicted%s",
        competition.id,
        len(result.assigned),
        len(result.conflicted),
        " (cancelled)" if result.cancelled else "",
    )
    return result


# =============================================================================
# Manual scheduling
# =============================================================================

def _resolve_slot(
    session: Session,
    fixture: Fixture,
    start: datetime,
    venue: Optional[str],
    duration_minutes: Optional[int],
) -> Tuple[Competition, datetime, str, int]:
    """Competition, UTC start, venue label and validated duration of a manual placement."""
    competition = get_competition_or_raise(session, fixture.competition_id)
    if duration_minutes is None:
        duration_minutes = fixture.duration_minutes or competition.match_duration_minutes
    duration = _validate_duration(duration_minutes)
    start = to_utc_naive(start, get_timezone(competition.timezone))
    venue = (venue or "").strip() or UNASSIGNED_VENUE
    return competition, start, venue, duration


def _place(
    session: Session,
    fixture: Fixture,
    start: datetime,
    venue: Optional[str],
    duration_minutes: Optional[int],
    action: str,
    reschedule_reason: Optional[str] = None,
) -> Optional[str]:
    """Check and write one manual placement. Returns the conflict reason, if any."""
    previous_start = fixture.start_time
    competition, start, venue, duration = _resolve_slot(session, fixture, start, venue, duration_minutes)

    with _booking_lock:
        reason = persisted_conflict(
            session,
            fixture,
            venue,
            start,
            duration,
            competition.buffer_minutes,
            competition.rest_period_minutes,
        )
        if reason is not None:
            _mark_conflicted(fixture, reason)
        else:
            _confirm(fixture, start, venue, duration, auto=False)
            if reschedule_reason is not None:
                fixture.scheduling_status = SCHEDULING_RESCHEDULED
                fixture.previous_start_time = previous_start
                fixture.schedule_note = (
                    f"Rescheduled: {reschedule_reason} (previous start: {format_utc(previous_start) or 'none'})"
                )
        session.add(fixture)
        commit_or_raise(session, action)
    session.refresh(fixture)
    return reason


def schedule_fixture(
    session: Session,
    fixture_id: int,
    start: datetime,
    venue: Optional[str] = None,
    duration_minutes: Optional[int] = None,
    notifier: Optional[Notifier] = None,
) -> ScheduleOutcome:
    """
    Manually place a fixture. A naive start is read in the competition's
    timezone. A conflict is returned, not raised, and leaves the fixture
    conflicted with the reason.

    Raises:
        NotFoundError: fixture does not exist
        StateError: fixture is completed or cancelled
        ValidationError: duration out of range
    """
    fixture = get_fixture_or_raise(session, fixture_id, for_update=True)
    if fixture.status in TERMINAL_STATUSES:
        raise StateError(f"Fixture {fixture_id} is {fixture.status} and cannot be scheduled")

    reason = _place(session, fixture, start, venue, duration_minutes, "schedule fixture")
    if reason is not None:
        logger.info("Manual schedule of fixture %d rejected: %s", fixture_id, reason)
        return ScheduleOutcome(ok=False, reason=reason, fixture=fixture)

    logger.info("Fixture %d scheduled at %s on %s", fixture_id, format_utc(fixture.start_time), fixture.venue)
    emit(
        notifier,
        EVENT_FIXTURE_SCHEDULED,
        fixture_id,
        competition_id=fixture.competition_id,
        start_time=fixture.start_time.isoformat(),
        venue=fixture.venue,
        auto_scheduled=False,
    )
    return ScheduleOutcome(ok=True, reason=None, fixture=fixture)


def reschedule_fixture(
    session: Session,
    fixture_id: int,
    new_start: datetime,
    new_venue: Optional[str] = None,
    new_duration_minutes: Optional[int] = None,
    reason: str = "",
    notifier: Optional[Notifier] = None,
) -> ScheduleOutcome:
    """Move a fixture to a new slot, keeping the previous start and the reason in its schedule note."""
    if not reason or not reason.strip():
        raise ValidationError("A reason is required to reschedule a fixture")

    fixture = get_fixture_or_raise(session, fixture_id, for_update=True)
    if fixture.status in TERMINAL_STATUSES:
        raise StateError(f"Fixture {fixture_id} is {fixture.status} and cannot be rescheduled")

    previous_start = fixture.start_time
    conflict = _place(
        session,
        fixture,
        new_start,
        new_venue,
        new_duration_minutes,
        "reschedule fixture",
        reschedule_reason=reason.strip(),
    )
    if conflict is not None:
        logger.info("Reschedule of fixture %d rejected: %s", fixture_id, conflict)
        return ScheduleOutcome(ok=False, reason=conflict, fixture=fixture)

    logger.info(
        "Fixture %d rescheduled from %s to %s: %s",
        fixture_id,
        format_utc(previous_start),
        format_utc(fixture.start_time),
        reason,
    )
    emit(
        notifier,
        EVENT_FIXTURE_SCHEDULED,
        fixture_id,
        competition_id=fixture.competition_id,
        start_time=fixture.start_time.isoformat(),
        venue=fixture.venue,
        auto_scheduled=False,
        previous_start_time=previous_start.isoformat() if previous_start else None,
    )
    return ScheduleOutcome(ok=True, reason=None, fixture=fixture)


# =============================================================================
# Read-only queries
# =============================================================================

def check_conflict(
    session: Session,
    fixture_id: int,
    start: datetime,
    venue: Optional[str] = None,
    duration_minutes: Optional[int] = None,
) -> ConflictCheck:
    """Run the placement check for a candidate slot without writing anything."""
    fixture = get_fixture_or_raise(session, fixture_id)
    competition, start, venue, duration = _resolve_slot(session, fixture, start, venue, duration_minutes)
    reason = persisted_conflict(
        session,
        fixture,
        venue,
        start,
        duration,
        competition.buffer_minutes,
        competition.rest_period_minutes,
    )
    return ConflictCheck(
        fixture_id=fixture_id,
        start_time=start,
        venue=venue,
        duration_minutes=duration,
        has_conflict=reason is not None,
        reason=reason,
    )


def available_slots(
    session: Session,
    competition_id: int,
    day: date,
    venue: Optional[str] = None,
    duration_minutes: Optional[int] = None,
    time_offsets: Optional[List[str]] = None,
) -> List[FreeSlot]:
    """
    Starts on day (in the competition's timezone) where a fixture of the given
    duration would not clash with any booking at the venue.
    """
    competition = get_competition_or_raise(session, competition_id)
    if duration_minutes is None:
        duration_minutes = competition.match_duration_minutes
    duration = _validate_duration(duration_minutes)

    window = ScheduleWindow(
        start_date=day,
        end_date=day,
        time_offsets=list(time_offsets or AVAILABLE_SLOT_OFFSETS),
        venues=[venue] if venue else [],
        timezone=competition.timezone,
    )
    offsets = window.validate()
    margin = timedelta(minutes=MAX_MATCH_DURATION_MINUTES + competition.buffer_minutes)
    index = _load_index(session, window, margin)

    return [
        FreeSlot(start_time=start, venue=slot_venue)
        for start, slot_venue in window.candidates(offsets)
        if index.venue_conflict(slot_venue, start, duration, competition.buffer_minutes) is None
    ]


def list_schedule(
    session: Session,
    competition_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    scheduling_status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Fixture]:
    """
    Fixtures of a competition in start order (unscheduled last), optionally
    limited to a date range (inclusive, competition timezone) and one
    scheduling status.
    """
    competition = get_competition_or_raise(session, competition_id)
    if scheduling_status is not None and scheduling_status not in SCHEDULING_STATUSES:
        raise ValidationError(
            f"Invalid scheduling status: {scheduling_status} (expected one of {', '.join(SCHEDULING_STATUSES)})"
        )
    if start_date is not None and end_date is not None and end_date < start_date:
        raise ValidationError(f"end_date {end_date} is before start_date {start_date}")

    tz = get_timezone(competition.timezone)
    query = select(Fixture).where(Fixture.competition_id == competition_id)
    if start_date is not None:
        query = query.where(Fixture.start_time >= local_to_utc(start_date, time(0, 0), tz))
    if end_date is not None:
        query = query.where(Fixture.start_time < local_to_utc(end_date + timedelta(days=1), time(0, 0), tz))
    if scheduling_status is not None:
        query = query.where(Fixture.scheduling_status == scheduling_status)

    query = query.order_by(
        Fixture.start_time.is_(None),
        Fixture.start_time,
        Fixture.priority.desc(),
        Fixture.id,
    )
    return list(session.exec(query.offset(offset).limit(limit)).all())


# =============================================================================
# Reporting
# =============================================================================

def scheduling_stats(session: Session, competition_id: int) -> SchedulingStats:
    get_competition_or_raise(session, competition_id)
    rows = session.exec(
        select(Fixture.scheduling_status, func.count())
        .where(Fixture.competition_id == competition_id)
        .group_by(Fixture.scheduling_status)
    ).all()

    by_status = {status: 0 for status in SCHEDULING_STATUSES}
    for status, count in rows:
        by_status[status] = count
    total = sum(by_status.values())
    booked = sum(by_status[s] for s in BOOKED_SCHEDULING_STATUSES)
    percentage = round(booked * 100.0 / total, 1) if total else 0.0

    return SchedulingStats(
        competition_id=competition_id,
        total=total,
        by_status=by_status,
        scheduled_percentage=percentage,
    )


def list_conflicts(session: Session, competition_id: int) -> List[Fixture]:
    get_competition_or_raise(session, competition_id)
    return list(
        session.exec(
            select(Fixture)
            .where(
                Fixture.competition_id == competition_id,
                Fixture.scheduling_status == SCHEDULING_CONFLICTED,
            )
            .order_by(Fixture.priority.desc(), Fixture.id)
        ).all()
    )
