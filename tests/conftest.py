"""
Pytest configuration for testing
"""

import os
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set up environment variables for testing before any imports
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["FIREBASE_PROJECT_ID"] = "test-project"
os.environ["FIREBASE_CREDENTIALS_PATH"] = "/tmp/test-creds.json"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["REDIS_PASSWORD"] = ""
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_PRICE_START"] = "price_start_test"
os.environ["STRIPE_PRICE_PRO"] = "price_pro_test"

from factories import ControlledFetcher, StaticIdentityService  # noqa: E402


@pytest.fixture(autouse=True)
def mock_firebase_admin(monkeypatch):
    """Mock Firebase Admin initialization; token verification is patched per test"""
    mock_credentials = MagicMock()
    monkeypatch.setattr("firebase_admin.credentials.Certificate", mock_credentials.Certificate)

    mock_init = MagicMock()
    monkeypatch.setattr("firebase_admin.initialize_app", mock_init)

    yield mock_init


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared by every session of a test"""
    from tierguard.core.database import Base
    import tierguard.models  # noqa: F401

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
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def fetcher():
    return ControlledFetcher()


@pytest.fixture
def identity_service():
    return StaticIdentityService()
