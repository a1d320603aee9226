"""Test configuration."""
import os
from datetime import UTC, datetime
from typing import Generator

import pytest
from faker import Faker
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite://")

# Import after environment setup
from questvault.clock import ManualClock
from questvault.models.base import Base, init_db, make_engine
from questvault.services.progress_service import ProgressService
from questvault.services.record_store import RecordStore
from questvault.services.review_scheduler import ReviewScheduler
from questvault.services.sequence_planner import SequencePlanner
from questvault.services.study_service import StudyService

fake = Faker()


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Create a fresh in-memory database for each test."""
    engine = make_engine("sqlite://")
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Create a database session for each test."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def store(db: Session) -> RecordStore:
    return RecordStore(db)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(datetime(2024, 3, 1, 9, 0, tzinfo=UTC))


@pytest.fixture
def scheduler(store: RecordStore, clock: ManualClock) -> ReviewScheduler:
    """Scheduler with a one minute base interval, doubling, mastered after 3 clears."""
    from datetime import timedelta

    return ReviewScheduler(
        store,
        clock=clock,
        base_interval=timedelta(minutes=1),
        growth_factor=2.0,
        mastery_threshold=3,
    )


@pytest.fixture
def planner(store: RecordStore, clock: ManualClock) -> SequencePlanner:
    return SequencePlanner(store, clock=clock)


@pytest.fixture
def progress(store: RecordStore, clock: ManualClock) -> ProgressService:
    return ProgressService(store, clock=clock)


@pytest.fixture
def study(scheduler: ReviewScheduler, planner: SequencePlanner, progress: ProgressService) -> StudyService:
    return StudyService(scheduler, planner, progress)


@pytest.fixture
def owner_id() -> str:
    return fake.user_name()


@pytest.fixture
def words() -> list[str]:
    """A pool of 65 distinct words."""
    return [f"{fake.word()}-{i}" for i in range(65)]
