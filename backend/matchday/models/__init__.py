from matchday.models.bracket_entry import BracketEntry
from matchday.models.competition import Competition
from matchday.models.fixture import Fixture
from matchday.models.participant import Participant

__all__ = [
    "Competition",
    "Participant",
    "Fixture",
    "BracketEntry",
]
