"""Engine and session wiring for the configured database."""
from pathlib import Path
from typing import Generator

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from matchday.config import DATABASE_URL, SQL_ECHO

SQLITE_PREFIX = "sqlite:///"


def build_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for url. SQLite connections are shared across the
    request threads, and a file database gets its directory created.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo)

    if url.startswith(SQLITE_PREFIX):
        db_file = url[len(SQLITE_PREFIX):]
        if db_file and db_file != ":memory:":
            Path(db_file).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, echo=echo, connect_args={"check_same_thread": False})


engine: Engine = build_engine(DATABASE_URL, echo=SQL_ECHO)


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


def init_db() -> None:
    """Create any missing tables"""
    # Model modules register their tables on import
    import matchday.models  # noqa: F401

    SQLModel.metadata.create_all(engine)
