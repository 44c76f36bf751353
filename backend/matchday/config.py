"""
Engine configuration defaults.

Environment variables (loaded from .env via python-dotenv) override the
process-wide defaults. Per-competition values live on the Competition row and
per-run values on the ScheduleWindow; these constants are only the fallback.
"""

import os

from dotenv import load_dotenv

load_dotenv()

DEFAULT_TIMEZONE = os.getenv("MATCHDAY_TIMEZONE", "Asia/Seoul")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Persistence
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./data/matchday.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() in ("true", "1", "yes")

# Scheduling (minutes)
DEFAULT_MATCH_DURATION_MINUTES = int(os.getenv("MATCHDAY_MATCH_DURATION_MINUTES", "90"))
DEFAULT_BUFFER_MINUTES = int(os.getenv("MATCHDAY_BUFFER_MINUTES", "30"))
DEFAULT_REST_PERIOD_MINUTES = int(os.getenv("MATCHDAY_REST_PERIOD_MINUTES", "720"))
MAX_MATCH_DURATION_MINUTES = 240

DEFAULT_TIME_OFFSETS = ["14:00", "16:00", "18:00", "20:00"]

# Hourly starts offered by the free-slot query
AVAILABLE_SLOT_OFFSETS = [f"{hour:02d}:00" for hour in range(9, 22)]

# Venue label used when a window supplies no candidate venues
UNASSIGNED_VENUE = "unassigned"

# Bracket defaults
DEFAULT_GROUP_SIZE = 4
DEFAULT_QUALIFIERS_PER_GROUP = 2
