"""
Pytest configuration and fixtures for all tests.
"""

from typing import Generator, List, Optional
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from resource_backend.model import Base
from resource_backend.permissions.principal import Principal, TeamMembership
from resource_backend.repositories.team import TeamRepository
from resource_backend.services.resource_service import ResourceService
from resource_backend.tests.fixtures import NOW, TEST_APP_ID, app_context, seed_database


@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """Create a test database session using SQLite in-memory."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def seeded_db(test_db) -> Session:
    seed_database(test_db)
    return test_db


@pytest.fixture
def service_factory(seeded_db):
    """Factory for ResourceService instances acting as a given principal at a given time.

    Team memberships are read from the seeded database unless given.
    """

    def _create(principal: Optional[Principal] = None, now=NOW, remapper=None,
                teams: Optional[List[TeamMembership]] = None) -> ResourceService:
        principal = principal or Principal()
        if teams is None:
            teams = TeamRepository(seeded_db).memberships(TEST_APP_ID, principal.user_id)
        return ResourceService(seeded_db, app_context(), principal, teams, now, remapper=remapper)

    return _create


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "unit: mark test as unit test"
    )
