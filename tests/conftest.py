"""Pytest fixtures for testing"""

from typing import Generator, List
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from bourso_desk.api.dependencies import DeskContext, build_context, get_desk_context
from bourso_desk.api.main import create_app
from bourso_desk.domain.events import EventHub
from bourso_desk.domain.models import (
    Account,
    AccountKind,
    AccountSummaryItem,
    PerformancePosition,
    PositionsItem,
    SessionOptions,
    StartupState,
    SummaryValue,
)
from bourso_desk.infrastructure.database.models import Base
from bourso_desk.infrastructure.database.repositories import CredentialRepository, OrderHistoryRepository
from bourso_desk.services.session import SessionCoordinator


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def price_history(symbol: str, closes: List[float], name: str = "") -> dict:
    """Raw quote series in the brokerage wire shape"""
    return {
        "d": {
            "SymbolId": symbol,
            "Name": name or symbol,
            "QuoteTab": [
                {"d": 1_700_000_000_000 + i * 86_400_000, "o": c, "h": c, "l": c, "c": c, "v": 1000}
                for i, c in enumerate(closes)
            ],
        }
    }


@pytest.fixture
def make_history():
    return price_history


@pytest.fixture
def db_factory() -> Generator[sessionmaker, None, None]:
    """Create test database and hand out its session factory"""
    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def accounts() -> List[Account]:
    """One account of every kind, two Trading accounts (PEA and CTO)"""
    return [
        Account("chk-1", "Compte Courant", AccountKind.BANKING, 250_000, "BoursoBank"),
        Account("sav-1", "Livret A", AccountKind.SAVINGS, 1_000_000, "BoursoBank"),
        Account("pea-1", "PEA Dupont", AccountKind.TRADING, 1_500_000, "BoursoBank"),
        Account("cto-1", "CTO Dupont", AccountKind.TRADING, 800_000, "BoursoBank"),
        Account("loan-1", "Pret Immo", AccountKind.LOANS, -9_000_000, "BoursoBank"),
    ]


@pytest.fixture
def trading_summary() -> list:
    return [
        AccountSummaryItem(cash=SummaryValue(value=42_050, decimals=2, currency="EUR")),
        PositionsItem(
            positions=[
                PerformancePosition("1rTCW8", "MSCI WORLD", SummaryValue(10, 0), SummaryValue(9_500, 2)),
            ]
        ),
    ]


@pytest.fixture
def adapter(accounts, trading_summary) -> AsyncMock:
    """Brokerage double answering like a healthy, MFA-free backend"""
    mock = AsyncMock()
    mock.authenticate.return_value = None
    mock.list_mfa_challenges.return_value = []
    mock.get_accounts.return_value = list(accounts)
    mock.get_trading_summary.return_value = trading_summary
    mock.get_price_history.side_effect = lambda symbol, days: price_history(symbol, [100.0, 110.0])
    mock.get_startup_state.return_value = StartupState(dca_without_password=False, jobs_to_run=[])
    mock.list_scheduled_jobs.return_value = []
    mock.add_scheduled_job.return_value = None
    mock.delete_scheduled_job.return_value = None
    return mock


@pytest.fixture
def events() -> EventHub:
    return EventHub()


@pytest.fixture
def coordinator(adapter: AsyncMock, events: EventHub) -> SessionCoordinator:
    return SessionCoordinator(adapter, SessionOptions(), events=events, poll_interval=0.01)


@pytest.fixture
def context(adapter: AsyncMock, db_factory: sessionmaker) -> DeskContext:
    return build_context(
        adapter,
        SessionOptions(),
        credential_store=CredentialRepository(db_factory),
        order_history=OrderHistoryRepository(db_factory),
        poll_interval=0.01,
        saved_assets=["1rTCW8"],
    )


@pytest.fixture
def client(context: DeskContext) -> TestClient:
    """Create FastAPI test client bound to a desk context over the adapter double"""
    app = create_app()
    app.dependency_overrides[get_desk_context] = lambda: context
    return TestClient(app)

