# Shared pytest configuration and fixtures
import os

# Settings are read at import time, so the environment is prepared before the app loads
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("SERVICE_DATABASE_URL", None)
os.environ["STRIPE_API_KEY"] = "sk_test_fake"
os.environ["STRIPE_WEBHOOK_SIGNING_SECRET"] = "whsec_test_secret"
os.environ["SCHEDULER_TRIGGER_TOKEN"] = "trigger-token"
os.environ["APP_URL"] = "https://app.invoicy.test"
os.environ["FIREBASE_PROJECT_ID"] = "invoicy-test"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from invoicy_billing.auth import CallerIdentity, get_current_user  # noqa: E402
from invoicy_billing.database import Base, get_db, get_service_db  # noqa: E402
from invoicy_billing.domain.payments.router import get_stripe_gateway  # noqa: E402
from invoicy_billing.main import app  # noqa: E402
from fakes import FakeStripeGateway  # noqa: E402


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of one test"""
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeStripeGateway()


@pytest.fixture
def caller():
    """Identity returned by the overridden auth dependency; tests may replace it"""
    return {"identity": CallerIdentity(uid="merchant-1", email="owner@acme.test")}


@pytest.fixture
def client(session_factory, gateway, caller):
    def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_service_db] = override_db
    app.dependency_overrides[get_stripe_gateway] = lambda: gateway
    app.dependency_overrides[get_current_user] = lambda: caller["identity"]
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
