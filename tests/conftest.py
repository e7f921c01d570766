"""
Shared fixtures: an in-memory database per test, row factories, a fixed
"today" and an API client with authentication and cleanup dispatch stubbed.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from speddy import models  # noqa: F401
from speddy.auth import get_current_user
from speddy.database import Base, get_db
from speddy.domain.scheduling.cleanup_service import get_orphan_cleanup_dispatcher
from speddy.domain.scheduling.router import get_clock
from speddy.main import app
from tests.factories import FIXED_TODAY, make_profile, make_session


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def today():
    return lambda: FIXED_TODAY


@pytest.fixture
def provider(db):
    return make_profile(db, id="provider-1", role="provider")


@pytest.fixture
def make_template(db):
    def _make(**overrides):
        return make_session(db, **overrides)

    return _make


@pytest.fixture
def make_instance(db):
    def _make(session_date, **overrides):
        return make_session(db, session_date=session_date, **overrides)

    return _make


@pytest.fixture
def client(db, provider):
    """API client logged in as the provider; call client.login(profile) to switch"""
    state = {"user": provider}
    dispatched = []

    async def record_cleanup(instance_ids):
        dispatched.append(list(instance_ids))

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_current_user] = lambda: state["user"]
    app.dependency_overrides[get_clock] = lambda: (lambda: FIXED_TODAY)
    app.dependency_overrides[get_orphan_cleanup_dispatcher] = lambda: record_cleanup

    test_client = TestClient(app)
    test_client.login = lambda profile: state.update(user=profile)
    test_client.dispatched = dispatched
    yield test_client

    app.dependency_overrides.clear()
