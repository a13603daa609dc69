"""
Shared fixtures: in-memory database session, fake clients, zero-delay batch runner.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from reconciler.database import Base
import reconciler.models  # noqa: F401
from reconciler.services.batch_runner import BatchRunner
from reconciler.services.errors import ConfigurationError
from tests.factories import FakeCarrier, FakeGateway


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def runner():
    """BatchRunner with no pause between items."""
    return BatchRunner(delay_seconds=0, fatal_exceptions=(ConfigurationError, OperationalError))


@pytest.fixture
def carrier():
    return FakeCarrier()


@pytest.fixture
def gateway():
    return FakeGateway()
