"""
Pytest configuration and shared fixtures.
"""
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.core.database import Base, build_engine, get_db
from app.main import app
from app.schemas.capital import CapitalSetupRequest
from app.schemas.trading import TradeCreate
from app.services.capital_service import CapitalService
from app.services.trade_service import TradeService

ENTRY_DATE = datetime(2024, 1, 1, 9, 15)

@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    test_engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()

@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()

@pytest.fixture
def trade_service(db):
    return TradeService(db)

@pytest.fixture
def capital_service(db):
    return CapitalService(db)

@pytest.fixture
def pools(capital_service):
    """TOTAL 100000 / EQUITY 60000 / FNO 40000, keyed by pool type value."""
    created = capital_service.setup_pools(
        CapitalSetupRequest(total_amount=100000, equity_amount=60000, fno_amount=40000)
    )
    return {pool.pool_type.value: pool for pool in created}

@pytest.fixture
def make_trade(trade_service):
    """Create a trade with sensible defaults; keyword arguments override them."""
    def _make(**overrides):
        fields = {
            "symbol": "RELIANCE",
            "instrument": "EQUITY",
            "trade_type": "POSITIONAL",
            "position": "BUY",
            "quantity": 10,
            "entry_price": 100,
            "entry_date": ENTRY_DATE,
        }
        fields.update(overrides)
        return trade_service.create_trade(TradeCreate(**fields))
    return _make

@pytest.fixture
def client(session_factory):
    """HTTP client bound to the in-memory database (lifespan is not run)."""
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
