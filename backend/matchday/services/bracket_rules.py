"""
Bracket Rules: sizing, seeding, naming and pairing primitives (single source of truth).

Pure functions only. The bracket builder and the standings/knockout service
import from here; do NOT duplicate these rules elsewhere.
"""

import math
import random
from typing import List, Literal, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")

# =============================================================================
# Formats and seeding policies
# =============================================================================

CompetitionFormat = Literal["single_elimination", "round_robin", "mixed"]

FORMAT_SINGLE_ELIMINATION = "single_elimination"
FORMAT_ROUND_ROBIN = "round_robin"
FORMAT_MIXED = "mixed"

SUPPORTED_FORMATS = (FORMAT_SINGLE_ELIMINATION, FORMAT_ROUND_ROBIN, FORMAT_MIXED)

# Names the registration desk still sends
FORMAT_ALIASES = {
    "knockout": FORMAT_SINGLE_ELIMINATION,
    "league": FORMAT_ROUND_ROBIN,
    "group_knockout": FORMAT_MIXED,
}

SEEDING_REGISTRATION = "registration"
SEEDING_RANDOM = "random"
SEEDING_RATING = "rating"

SUPPORTED_SEEDING_METHODS = (SEEDING_REGISTRATION, SEEDING_RANDOM, SEEDING_RATING)

THIRD_PLACE_ROUND_NAME = "third_place"


def normalize_format(value: str) -> Optional[str]:
    """Return the canonical format key, or None if unsupported."""
    key = (value or "").strip().lower().replace("-", "_").replace(" ", "_")
    key = FORMAT_ALIASES.get(key, key)
    return key if key in SUPPORTED_FORMATS else None


# =============================================================================
# Sizing
# =============================================================================

def elimination_round_count(participant_count: int) -> int:
    """ceil(log2(n)); 2 participants -> 1 round (the final)."""
    if participant_count < 2:
        raise ValueError(f"participant_count must be >= 2, got {participant_count}")
    return math.ceil(math.log2(participant_count))


def bracket_size(participant_count: int) -> int:
    """Smallest power of two >= participant_count."""
    return 2 ** elimination_round_count(participant_count)


def bye_count(participant_count: int) -> int:
    return bracket_size(participant_count) - participant_count


def round_name(round_number: int) -> str:
    """
    Name of an elimination round counted from the final.

    1 = final, 2 = semi_final, 3 = quarter_final, 4 = round_of_16,
    5 = round_of_32, beyond that round_of_{2^k}.
    """
    if round_number == 1:
        return "final"
    if round_number == 2:
        return "semi_final"
    if round_number == 3:
        return "quarter_final"
    return f"round_of_{2 ** round_number}"


def league_round_name(round_number: int) -> str:
    return f"round_{round_number}"


def rr_round_count(participant_count: int) -> int:
    """Even n: n-1 rounds. Odd n: n rounds (one bye per round)."""
    if participant_count % 2 == 0:
        return participant_count - 1
    return participant_count


def rr_fixture_count(participant_count: int, double: bool = False) -> int:
    """C(n, 2) = n*(n-1)/2, doubled for a double round robin."""
    single = (participant_count * (participant_count - 1)) // 2
    return single * 2 if double else single


def group_count(participant_count: int, group_size: int) -> int:
    return math.ceil(participant_count / group_size)


def group_label(group_index: int) -> str:
    """0 -> 'Group A', 1 -> 'Group B', ... beyond Z falls back to numbers."""
    if group_index < 26:
        return f"Group {chr(ord('A') + group_index)}"
    return f"Group {group_index + 1}"


# =============================================================================
# Seeding
# =============================================================================

def seed_order(
    items: Sequence[T],
    method: str,
    seed_of=lambda item: getattr(item, "seed", None),
    rng: Optional[random.Random] = None,
) -> List[T]:
    """
    Order participants for slot placement.

    - registration: input order preserved
    - random: uniform shuffle (pass rng for a reproducible draw)
    - rating: descending seed value, missing values last; ties keep input order
    """
    ordered = list(items)
    if method == SEEDING_REGISTRATION:
        return ordered
    if method == SEEDING_RANDOM:
        (rng or random.Random()).shuffle(ordered)
        return ordered
    if method == SEEDING_RATING:
        # sorted() is stable, so equal values keep registration order
        return sorted(
            ordered,
            key=lambda item: (seed_of(item) is None, -(seed_of(item) or 0)),
        )
    raise ValueError(f"Unknown seeding method: {method}")


# =============================================================================
# Pairings
# =============================================================================

def first_round_pairings(slots: int) -> List[Tuple[int, int]]:
    """
    First-round slot pairings: slot i meets slot (slots-1-i).

    Returns (home_slot, away_slot) per bracket position 0..slots/2-1.
    With byes padded at the end, the top seeds draw the byes.
    """
    return [(i, slots - 1 - i) for i in range(slots // 2)]


def next_position(position: int) -> Tuple[int, str]:
    """Position in the following round and the slot the winner takes there."""
    return position // 2, ("home" if position % 2 == 0 else "away")


def rr_pairings_by_round(participant_count: int) -> List[Tuple[int, int, int, int]]:
    """
    Round-robin pairings by the circle method.

    Returns list of (round_number, sequence_in_round, idx_home, idx_away), 1-based
    round and sequence, 0-based participant indices.

    Index 0 stays fixed and the rest rotate clockwise each round. For odd n a
    placeholder (index n) is added; whoever meets it has a bye and no pairing
    is emitted.
    """
    n = participant_count
    n2 = n + 1 if n % 2 == 1 else n
    half = n2 // 2
    bye_idx = n if n % 2 == 1 else -1

    result: List[Tuple[int, int, int, int]] = []
    positions = list(range(n2))

    for round_num in range(1, rr_round_count(n) + 1):
        seq = 0
        for i in range(half):
            a, b = positions[i], positions[n2 - 1 - i]
            if a == bye_idx or b == bye_idx:
                continue
            seq += 1
            result.append((round_num, seq, a, b))
        # Rotate: keep 0, move last to second, shift others
        positions = [positions[0]] + [positions[-1]] + positions[1:-1]

    return result


def distribute_into_groups(items: Sequence[T], groups: int) -> List[List[T]]:
    """Round-robin distribution: item i -> group (i mod groups)."""
    buckets: List[List[T]] = [[] for _ in range(groups)]
    for index, item in enumerate(items):
        buckets[index % groups].append(item)
    return buckets
