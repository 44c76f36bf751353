# Force SQLModel table registration at test discovery time
from matchday.models.bracket_entry import BracketEntry  # noqa: F401
from matchday.models.competition import Competition  # noqa: F401
from matchday.models.fixture import Fixture  # noqa: F401
from matchday.models.participant import Participant  # noqa: F401
