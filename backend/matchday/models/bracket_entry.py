from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel


class BracketEntry(SQLModel, table=True):
    """Round/position/seed context of an elimination fixture. Written once at generation time."""

    __tablename__ = "bracket_entry"
    __table_args__ = (SAUniqueConstraint("fixture_id", name="uq_bracket_entry_fixture"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    competition_id: int = Field(foreign_key="competition.id", index=True)
    fixture_id: int = Field(foreign_key="fixture.id")
    round_number: int  # 1 = final, 0 = consolation
    bracket_position: int
    home_seed: Optional[float] = Field(default=None)
    away_seed: Optional[float] = Field(default=None)
    next_fixture_id: Optional[int] = Field(default=None, foreign_key="fixture.id")
    is_consolation: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)
