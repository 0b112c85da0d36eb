"""Unit tests for the session coordinator"""

import asyncio
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from bourso_desk.domain.events import (
    DueJobConfirmationRequested,
    MfaChallengeReceived,
    MfaQrCodeReceived,
    SessionStateChanged,
)
from bourso_desk.domain.exceptions import (
    BrokerageAPIError,
    InvalidCredentialsError,
    MfaExhaustedError,
    MfaRequiredError,
    QrCodePayloadError,
    SessionStateError,
    ValidationFailure,
)
from bourso_desk.domain.jobs import create_job
from bourso_desk.domain.models import (
    Amount,
    MfaChallenge,
    MfaStatus,
    OrderArgs,
    Schedule,
    SessionOptions,
    SessionState,
    StartupState,
)
from bourso_desk.services.session import (
    GENERIC_FAILURE_MESSAGE,
    INVALID_CREDENTIALS_MESSAGE,
    MAX_NOTIFICATIONS,
    MFA_CANCELLED_MESSAGE,
    SessionCoordinator,
    validate_credentials,
)

CLIENT_ID = "1234567"
PASSWORD = "12345678"


def record_states(events):
    states = []
    events.subscribe(SessionStateChanged, lambda e: states.append(e.current))
    return states


@pytest.mark.parametrize(
    "client_id,password,message",
    [
        ("123456", PASSWORD, "Client ID must be either 7 or 8 digits"),
        ("12345a7", PASSWORD, "Client ID must be a number"),
        (CLIENT_ID, "1234", "Password must be 8 characters long"),
        (CLIENT_ID, "1234567x", "Password must be a number"),
    ],
)
def test_credential_validation(client_id, password, message):
    with pytest.raises(ValidationFailure, match=message):
        validate_credentials(client_id, password)


def test_valid_credentials():
    credentials = validate_credentials("87654321", PASSWORD)
    assert credentials.client_id == "87654321"
    assert PASSWORD not in repr(credentials)


class TestLogin:
    async def test_happy_path_reaches_ready(self, coordinator, events, adapter):
        states = record_states(events)

        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)

        assert states == [
            SessionState.AUTHENTICATING,
            SessionState.AUTHENTICATED,
            SessionState.DATA_FETCHED,
            SessionState.READY,
        ]
        assert coordinator.is_ready
        assert coordinator.progress == 100
        adapter.authenticate.assert_awaited_once_with(CLIENT_ID, PASSWORD)

    async def test_cash_is_merged_into_trading_accounts(self, coordinator):
        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)

        by_id = {a.id: a for a in coordinator.accounts}
        assert by_id["pea-1"].cash_balance == Decimal("420.50")
        assert by_id["cto-1"].cash_balance == Decimal("420.50")
        assert by_id["chk-1"].cash_balance is None
        assert {p.symbol for p in coordinator.positions} == {"1rTCW8"}

    async def test_invalid_credentials_prefill_client_id(self, coordinator, adapter):
        adapter.authenticate.side_effect = InvalidCredentialsError("bad password")

        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)

        assert coordinator.state == SessionState.UNINITIATED
        assert coordinator.error == INVALID_CREDENTIALS_MESSAGE
        assert coordinator.prefill_client_id == CLIENT_ID
        assert isinstance(coordinator.last_failure, InvalidCredentialsError)

    async def test_other_failure_shows_generic_message(self, coordinator, adapter):
        adapter.authenticate.side_effect = BrokerageAPIError("timeout")

        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)

        assert coordinator.state == SessionState.UNINITIATED
        assert coordinator.error == GENERIC_FAILURE_MESSAGE
        assert coordinator.prefill_client_id is None

    async def test_malformed_input_never_reaches_adapter(self, coordinator, adapter):
        with pytest.raises(ValidationFailure):
            await coordinator.submit_credentials("12", PASSWORD)

        adapter.authenticate.assert_not_called()
        assert coordinator.state == SessionState.UNINITIATED

    async def test_same_pair_is_not_attempted_twice(self, coordinator, adapter):
        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)
        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)

        assert adapter.authenticate.await_count == 1

    async def test_failed_pair_can_be_retried(self, coordinator, adapter):
        adapter.authenticate.side_effect = [InvalidCredentialsError("nope"), None]

        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)
        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)

        assert adapter.authenticate.await_count == 2
        assert coordinator.is_ready

    async def test_other_pair_refused_once_logged_in(self, coordinator):
        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)

        with pytest.raises(SessionStateError):
            await coordinator.submit_credentials("7654321", PASSWORD)

    async def test_account_fetch_failure_is_not_fatal(self, coordinator, adapter):
        adapter.get_accounts.side_effect = BrokerageAPIError("accounts down")

        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)

        assert coordinator.is_ready
        assert coordinator.accounts == []
        assert [n.title for n in coordinator.notifications] == ["Error fetching accounts"]

    async def test_bootstrap_logs_in_with_stored_password(self, adapter, events):
        store = MagicMock()
        store.load.return_value = (CLIENT_ID, PASSWORD)
        coordinator = SessionCoordinator(adapter, SessionOptions(), events=events, credential_store=store)

        await coordinator.bootstrap()

        assert coordinator.is_ready
        store.save.assert_called_once_with(CLIENT_ID, None)

    async def test_bootstrap_without_password_only_prefills(self, adapter, events):
        store = MagicMock()
        store.load.return_value = (CLIENT_ID, None)
        coordinator = SessionCoordinator(adapter, SessionOptions(), events=events, credential_store=store)

        await coordinator.bootstrap()

        assert coordinator.state == SessionState.UNINITIATED
        assert coordinator.prefill_client_id == CLIENT_ID
        adapter.authenticate.assert_not_called()

    async def test_reset_returns_to_credential_entry(self, coordinator, adapter):
        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)

        await coordinator.reset()

        assert coordinator.state == SessionState.UNINITIATED
        assert coordinator.accounts == []
        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)
        assert adapter.authenticate.await_count == 2


class TestMfa:
    async def test_last_challenge_is_selected(self, coordinator, adapter, events):
        received = []
        events.subscribe(MfaChallengeReceived, received.append)
        adapter.authenticate.side_effect = MfaRequiredError()
        adapter.list_mfa_challenges.return_value = [
            MfaChallenge("1", "email"),
            MfaChallenge("2", "sms"),
        ]

        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)

        assert coordinator.state == SessionState.MFA_PENDING
        assert coordinator.progress is None
        assert coordinator.current_challenge.id == "2"
        assert received[0].chained is False

    async def test_no_challenge_available(self, coordinator, adapter):
        adapter.authenticate.side_effect = MfaRequiredError()
        adapter.list_mfa_challenges.return_value = []

        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)

        assert coordinator.state == SessionState.UNINITIATED
        assert isinstance(coordinator.last_failure, MfaExhaustedError)

    async def test_code_completes_login(self, coordinator, adapter):
        adapter.authenticate.side_effect = MfaRequiredError("mfa required", [MfaChallenge("1", "sms")])

        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)
        await coordinator.submit_mfa("123456")

        assert coordinator.is_ready
        adapter.submit_mfa_response.assert_awaited_once()

    async def test_chained_challenge_replaces_current(self, coordinator, adapter, events):
        received = []
        events.subscribe(MfaChallengeReceived, received.append)
        adapter.authenticate.side_effect = MfaRequiredError("mfa required", [MfaChallenge("1", "sms")])
        adapter.submit_mfa_response.side_effect = MfaRequiredError("mfa required", [MfaChallenge("2", "email")])

        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)
        await coordinator.submit_mfa("123456")

        assert coordinator.state == SessionState.MFA_PENDING
        assert coordinator.current_challenge.id == "2"
        assert received[-1].chained is True
        assert "Another MFA request" in [n.title for n in coordinator.notifications]

    async def test_wrong_code_keeps_challenge(self, coordinator, adapter):
        adapter.authenticate.side_effect = MfaRequiredError("mfa required", [MfaChallenge("1", "sms")])
        adapter.submit_mfa_response.side_effect = InvalidCredentialsError("Wrong code")

        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)
        await coordinator.submit_mfa("000000")

        assert coordinator.state == SessionState.MFA_PENDING
        assert coordinator.error == "Wrong code"
        assert coordinator.current_challenge.id == "1"

    async def test_submit_without_challenge_is_refused(self, coordinator):
        with pytest.raises(SessionStateError):
            await coordinator.submit_mfa("123456")

    async def test_push_challenge_is_polled_until_confirmed(self, coordinator, adapter):
        adapter.authenticate.side_effect = MfaRequiredError("mfa required", [MfaChallenge("1", "push")])
        adapter.poll_mfa_status.side_effect = [MfaStatus.PENDING, MfaStatus.CONFIRMED]

        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)
        assert coordinator.state == SessionState.MFA_PENDING

        await asyncio.wait_for(coordinator.start_mfa_polling(), 1)

        assert coordinator.is_ready
        assert adapter.poll_mfa_status.await_count == 2

    async def test_qr_code_payload_is_published(self, coordinator, adapter, events):
        codes = []
        events.subscribe(MfaQrCodeReceived, lambda e: codes.append(e.data))
        adapter.authenticate.side_effect = MfaRequiredError("mfa required", [MfaChallenge("1", "app")])
        adapter.poll_mfa_status.side_effect = [QrCodePayloadError("qr-payload"), MfaStatus.CONFIRMED]

        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)
        await asyncio.wait_for(coordinator.start_mfa_polling(), 1)

        assert codes == ["qr-payload"]
        assert coordinator.is_ready

    async def test_cancel_stops_polling(self, coordinator, adapter):
        adapter.authenticate.side_effect = MfaRequiredError("mfa required", [MfaChallenge("1", "push")])
        adapter.poll_mfa_status.return_value = MfaStatus.PENDING

        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)
        poller = coordinator.start_mfa_polling()
        await coordinator.cancel_mfa()

        assert poller.done()
        assert coordinator.state == SessionState.UNINITIATED
        assert coordinator.error == MFA_CANCELLED_MESSAGE

    async def test_code_answer_stops_polling(self, coordinator, adapter, events):
        states = record_states(events)
        adapter.authenticate.side_effect = MfaRequiredError("mfa required", [MfaChallenge("1", "push")])
        adapter.poll_mfa_status.return_value = MfaStatus.CONFIRMED

        async def slow_answer(challenge, code):
            await asyncio.sleep(0.05)

        adapter.submit_mfa_response.side_effect = slow_answer

        await coordinator.submit_credentials(CLIENT_ID, PASSWORD)
        await asyncio.sleep(0.005)
        await coordinator.submit_mfa("123456")
        await asyncio.sleep(0.03)

        assert coordinator.is_ready
        assert states.count(SessionState.READY) == 1
        assert adapter.get_accounts.await_count == 1


class TestStartup:
    async def test_due_jobs_are_prompted(self, coordinator, adapter, events):
        prompts = []
        events.subscribe(DueJobConfirmationRequested, prompts.append)
        order = OrderArgs("pea-1", "1rTCW8", "buy", Amount(Decimal("50")))
        job = create_job(Schedule.monthly(1), order, 1_700_000_000)
        adapter.get_startup_state.return_value = StartupState(dca_without_password=True, jobs_to_run=[job])

        await coordinator.startup()

        assert coordinator.dca_without_password is True
        assert coordinator.notifications[0].title == "App opened for DCA"
        assert prompts[0].description == "Monthly: 1 - Order: buy 50€ of 1rTCW8"
        assert coordinator.take_due_job(job.id) is job
        assert coordinator.due_jobs == []

    async def test_startup_failure_is_a_notification(self, coordinator, adapter):
        adapter.get_startup_state.side_effect = BrokerageAPIError("down")

        await coordinator.startup()

        assert coordinator.notifications[0].level == "error"

    async def test_notifications_are_capped(self, coordinator):
        for n in range(MAX_NOTIFICATIONS + 10):
            coordinator.notify("info", f"note {n}")

        assert len(coordinator.notifications) == MAX_NOTIFICATIONS
        assert coordinator.notifications[0].title == "note 10"
        assert coordinator.notifications[-1].title == f"note {MAX_NOTIFICATIONS + 9}"
