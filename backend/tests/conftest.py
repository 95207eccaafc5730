"""Pytest configuration and fixtures."""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.helpers import get_price_service
from database import Base, get_db
from main import app
from services.price_service import PriceService
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import (  # noqa: F401
    holder,
    other_holder,
)
from tests.fixtures.mocks import FixedClock, MockPriceProvider


@pytest.fixture(name="db")
def db_fixture():
    """Create an in-memory SQLite database for testing."""
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


@pytest.fixture(name="mock_price_provider")
def mock_price_provider_fixture():
    """Price provider with a fixed STX / sBTC price sheet."""
    return MockPriceProvider(
        prices={
            "STX": Decimal("1.50"),
            "sBTC": Decimal("65000"),
        }
    )


@pytest.fixture(name="clock")
def clock_fixture():
    return FixedClock()


@pytest.fixture(name="price_service")
def price_service_fixture(mock_price_provider, clock):
    return PriceService(
        provider=mock_price_provider,
        ttl_seconds=60,
        max_stale_seconds=900,
        clock=clock,
    )


@pytest.fixture(name="client")
def client_fixture(db, price_service):
    """Create a test client with the test database and mock prices."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    def override_get_price_service():
        return price_service

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_price_service] = override_get_price_service
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
