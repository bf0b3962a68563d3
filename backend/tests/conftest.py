import os
import tempfile

# CRITICAL: Set environment variables BEFORE any tetherdesk imports
# These must be set before tetherdesk.config.settings is loaded
_TEST_DB_PATH = os.path.join(tempfile.gettempdir(), "test_tetherdesk.db")
os.environ["SECRET_KEY"] = "test-secret-key-1234567890"
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_TEST_DB_PATH}"
os.environ["ENVIRONMENT"] = "test"
os.environ["API_V1_STR"] = "/api"  # Ensure /api prefix is used in tests
os.environ["EXPIRY_SWEEP_ENABLED"] = "false"
os.environ["PUBLIC_BASE_URL"] = "http://testserver"

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from tetherdesk import models
from tetherdesk.api import deps
from tetherdesk.config import settings
from tetherdesk.database import Base, engine as app_engine, get_db
from tetherdesk.main import app
from tetherdesk.core.security import hash_password
from tetherdesk.services.price_feed import price_cache

# Use the same engine that the app (and the expiry sweep) uses
TEST_ENGINE = app_engine

TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=TEST_ENGINE, future=True
)

DEFAULT_BRACKETS = (
    (0.0, 50.0, 86.0, 85.5),
    (50.0, 100.0, 85.5, 85.0),
    (100.0, None, 84.0, 83.5),
)

# bcrypt is slow; hash the shared test password once.
TEST_PASSWORD = "secret123"
_TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


def override_get_db():
    """Test database session that uses the test engine."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="function", autouse=True)
def setup_test_database(tmp_path, monkeypatch):
    """
    Fresh schema, empty proof bucket and empty price cache for every test.
    Dependency overrides set by a test are dropped afterwards.
    """
    original_overrides = dict(app.dependency_overrides)
    monkeypatch.setattr(settings, "storage_dir", str(tmp_path / "storage"))
    price_cache.clear()

    Base.metadata.drop_all(bind=TEST_ENGINE)
    Base.metadata.create_all(bind=TEST_ENGINE)

    yield

    app.dependency_overrides.clear()
    app.dependency_overrides.update(original_overrides)
    price_cache.clear()

    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def second_db_session():
    """An independent session, standing in for a concurrent request."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_profile(db_session):
    def _make(email: str = "user@test.com", *, is_admin: bool = False, **fields) -> models.Profile:
        profile = models.Profile(
            email=email,
            hashed_password=_TEST_PASSWORD_HASH,
            is_admin=is_admin,
            active=fields.pop("active", True),
            **fields,
        )
        db_session.add(profile)
        db_session.commit()
        db_session.refresh(profile)
        return profile

    return _make


@pytest.fixture
def rate_table(db_session):
    brackets = [
        models.RateBracket(quantity_min=qmin, quantity_max=qmax, buy_rate=buy, sell_rate=sell)
        for qmin, qmax, buy, sell in DEFAULT_BRACKETS
    ]
    db_session.add_all(brackets)
    db_session.commit()
    for b in brackets:
        db_session.refresh(b)
    return brackets


@pytest.fixture
def login_as():
    """Route requests as the given profile, loaded in the request's own DB session."""

    def _login(profile_id: int) -> None:
        def _current_user(db: Session = Depends(deps.get_db)) -> models.Profile:
            return db.get(models.Profile, profile_id)

        app.dependency_overrides[deps.get_current_user] = _current_user

    return _login
