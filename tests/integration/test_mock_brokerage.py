"""End-to-end tests of the HTTP brokerage client against the mock brokerage server"""

from decimal import Decimal

import httpx
import pytest
from brokerage_server.main import BAD_PASSWORD, MFA_CLIENT_ID, MFA_CODE, app

from bourso_desk.domain.events import EventHub
from bourso_desk.domain.exceptions import TransferRejectedError
from bourso_desk.domain.models import SessionOptions, SessionState
from bourso_desk.infrastructure.clients.brokerage import BrokerageClient
from bourso_desk.services.session import INVALID_CREDENTIALS_MESSAGE, SessionCoordinator
from bourso_desk.services.transfer import TransferExecutor

PASSWORD = "12345678"


@pytest.fixture
def brokerage() -> BrokerageClient:
    return BrokerageClient(base_url="http://mock", timeout=5.0, transport=httpx.ASGITransport(app=app))


@pytest.fixture
def session(brokerage: BrokerageClient) -> SessionCoordinator:
    return SessionCoordinator(brokerage, SessionOptions(), events=EventHub(), poll_interval=0.01)


async def test_direct_login(session: SessionCoordinator):
    """Test a client without MFA reaches Ready with demo accounts and cash"""
    await session.submit_credentials("7654321", PASSWORD)

    assert session.is_ready
    by_id = {a.id: a for a in session.accounts}
    assert len(by_id) == 5
    assert by_id["pea-123456"].cash_balance == Decimal("420.50")
    assert by_id["ext-555666"].is_external
    assert {p.symbol for p in session.positions} == {"1rTCW8", "1rTCW9", "1rTCW0"}


async def test_bad_password(session: SessionCoordinator):
    """Test rejected credentials surface as the invalid-credentials message"""
    await session.submit_credentials("7654321", BAD_PASSWORD)

    assert session.state == SessionState.UNINITIATED
    assert session.error == INVALID_CREDENTIALS_MESSAGE


async def test_chained_mfa_then_push(session: SessionCoordinator):
    """Test SMS code, then a chained push challenge confirmed by polling"""
    await session.submit_credentials(MFA_CLIENT_ID, PASSWORD)
    assert session.state == SessionState.MFA_PENDING
    assert session.current_challenge.type == "sms"

    await session.submit_mfa("000000")
    assert session.state == SessionState.MFA_PENDING
    assert session.error == "Invalid one-time password"

    await session.submit_mfa(MFA_CODE)
    assert session.state == SessionState.MFA_PENDING
    assert session.current_challenge.type == "push"

    await session.start_mfa_polling()
    assert session.is_ready


async def test_transfer_progress_and_rejection(session: SessionCoordinator, brokerage: BrokerageClient):
    """Test a streamed transfer and an oversized one rejected by the ledger"""
    await session.submit_credentials("7654321", PASSWORD)
    executor = TransferExecutor(brokerage, events=session.events, on_success=session.refresh)

    executor.open("liv-300400", "chk-100200")
    assert await executor.submit("10.00", "test") is True

    executor.open("chk-100200", "pea-123456")
    assert await executor.submit("999999", "") is False
    assert executor.error == "Transfer failed: Insufficient funds"

    with pytest.raises(TransferRejectedError):
        async for _ in brokerage.transfer_funds("chk-100200", "pea-123456", "999999", ""):
            pass
