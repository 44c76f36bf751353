"""
Occupancy index for one scheduling run.

Booked fixtures are indexed per (venue, day) and per participant so each
candidate slot is checked against a handful of neighbours instead of the whole
schedule. The predicates here are the only definition of a venue clash, a
rest violation and bracket order; the scheduler applies the same ones to
persisted state.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from matchday.utils.timeutil import format_utc


@dataclass
class Booking:
    fixture_id: Optional[int]
    venue: str
    start: datetime
    duration_minutes: int
    participant_ids: List[int] = field(default_factory=list)

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)


def venue_overlaps(
    candidate_start: datetime,
    candidate_minutes: int,
    existing_start: datetime,
    existing_minutes: int,
    buffer_minutes: int,
) -> bool:
    """
    The existing booking occupies [start - buffer, start + duration).

    True when the candidate [start, start + duration) intersects that span.
    """
    existing_from = existing_start - timedelta(minutes=buffer_minutes)
    existing_to = existing_start + timedelta(minutes=existing_minutes)
    candidate_to = candidate_start + timedelta(minutes=candidate_minutes)
    return candidate_start < existing_to and existing_from < candidate_to


def within_rest(candidate_start: datetime, other_start: datetime, rest_minutes: int) -> bool:
    """Starts closer than or exactly rest_minutes apart."""
    return abs(candidate_start - other_start) <= timedelta(minutes=rest_minutes)


def follows(later_start: datetime, earlier: Booking, buffer_minutes: int, rest_minutes: int) -> bool:
    """
    True when later_start is clear of the earlier booking: after its end plus
    the buffer, and outside the rest period counted from its start.
    """
    if later_start < earlier.end + timedelta(minutes=buffer_minutes):
        return False
    return not within_rest(later_start, earlier.start, rest_minutes)


def venue_clash_reason(venue: str, booking: Booking, buffer_minutes: int) -> str:
    return (
        f"Venue {venue} is occupied by fixture {booking.fixture_id} "
        f"({format_utc(booking.start)}, {booking.duration_minutes} min, buffer {buffer_minutes} min)"
    )


def rest_clash_reason(participant_id: int, fixture_id: Optional[int], start: datetime, rest_minutes: int) -> str:
    return (
        f"Participant {participant_id} plays fixture {fixture_id} at {format_utc(start)}, "
        f"within the {rest_minutes} min rest period"
    )


class OccupancyIndex:
    """In-memory view of booked fixtures, updated as the run assigns slots."""

    def __init__(self):
        self.by_venue_day: Dict[Tuple[str, date], List[Booking]] = {}
        self.by_participant: Dict[int, List[Booking]] = {}

    def __len__(self) -> int:
        return sum(len(bookings) for bookings in self.by_venue_day.values())

    def add(self, booking: Booking) -> None:
        self.by_venue_day.setdefault((booking.venue, booking.start.date()), []).append(booking)
        for participant_id in booking.participant_ids:
            self.by_participant.setdefault(participant_id, []).append(booking)

    def venue_conflict(
        self,
        venue: str,
        start: datetime,
        duration_minutes: int,
        buffer_minutes: int,
        exclude_fixture_id: Optional[int] = None,
    ) -> Optional[str]:
        # Neighbouring days cover bookings that straddle midnight
        day = start.date()
        for offset in (-1, 0, 1):
            for booking in self.by_venue_day.get((venue, day + timedelta(days=offset)), []):
                if exclude_fixture_id is not None and booking.fixture_id == exclude_fixture_id:
                    continue
                if venue_overlaps(start, duration_minutes, booking.start, booking.duration_minutes, buffer_minutes):
                    return venue_clash_reason(venue, booking, buffer_minutes)
        return None

    def rest_conflict(
        self,
        participant_ids: Iterable[int],
        start: datetime,
        rest_minutes: int,
        exclude_fixture_id: Optional[int] = None,
    ) -> Optional[str]:
        for participant_id in participant_ids:
            for booking in self.by_participant.get(participant_id, []):
                if exclude_fixture_id is not None and booking.fixture_id == exclude_fixture_id:
                    continue
                if within_rest(start, booking.start, rest_minutes):
                    return rest_clash_reason(participant_id, booking.fixture_id, booking.start, rest_minutes)
        return None


@dataclass
class BracketOrder:
    """
    Booked neighbours of an elimination fixture in the bracket.

    Feeders decide a side still to be played for, so the fixture must follow
    them. Successors take this fixture's winner (or semi-final loser), so they
    must follow it. blocked_reason is set when a feeder has no slot yet.
    """
    feeders: List[Booking] = field(default_factory=list)
    successors: List[Booking] = field(default_factory=list)
    blocked_reason: Optional[str] = None


def order_clash_reason(
    start: datetime,
    duration_minutes: int,
    order: BracketOrder,
    buffer_minutes: int,
    rest_minutes: int,
) -> Optional[str]:
    if order.blocked_reason is not None:
        return order.blocked_reason
    for feeder in order.feeders:
        if not follows(start, feeder, buffer_minutes, rest_minutes):
            return (
                f"Fixture must follow feeder fixture {feeder.fixture_id} ({format_utc(feeder.start)}, "
                f"{feeder.duration_minutes} min) by its duration plus {buffer_minutes} min buffer "
                f"and the {rest_minutes} min rest period"
            )
    candidate = Booking(None, "", start, duration_minutes)
    for successor in order.successors:
        if not follows(successor.start, candidate, buffer_minutes, rest_minutes):
            return (
                f"Next-round fixture {successor.fixture_id} at {format_utc(successor.start)} "
                f"would no longer follow this fixture within the {rest_minutes} min rest period"
            )
    return None
