import os

# Keep app startup (init_db) off the on-disk default database
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from matchday.database import get_session  # noqa: E402
from matchday.main import app  # noqa: E402
from matchday.models.competition import Competition  # noqa: E402
from matchday.models.participant import Participant  # noqa: E402
from matchday.services.notifier import RecordingNotifier, get_notifier  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# sqlite:///:memory: with StaticPool so every session (test and app) shares one DB.
# Tables are created per test and dropped afterwards; venue bookings are global,
# so state must not leak between tests.
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a fresh schema"""
    from matchday.models.bracket_entry import BracketEntry  # noqa: F401
    from matchday.models.fixture import Fixture  # noqa: F401

    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="notifier")
def notifier_fixture() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(name="client")
def client_fixture(session: Session, notifier: RecordingNotifier):
    """Test client bound to the test engine and the recording notifier

    Overrides MUST be set before TestClient() and stay in place for its lifetime.
    """
    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_notifier] = lambda: notifier

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def make_competition(session: Session):
    """Factory: competition with N registered participants (seeds optional)"""

    def _make(fmt: str = "single_elimination", participants: int = 4, seeds=None, **options) -> Competition:
        # Naive test datetimes read as UTC unless a test picks another zone
        options.setdefault("timezone", "UTC")
        competition = Competition(name=f"Cup {fmt} {participants}", format=fmt, **options)
        session.add(competition)
        session.commit()
        session.refresh(competition)

        for i in range(participants):
            seed = seeds[i] if seeds is not None else None
            session.add(Participant(competition_id=competition.id, name=f"P{i + 1:02d}", seed=seed))
            # Commit one by one so registered_at/id order matches the loop
            session.commit()
        return competition

    return _make

