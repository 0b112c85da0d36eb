"""Session coordinator - authentication, MFA cycle and account data bootstrap"""

import asyncio
import contextlib
import logging
import re
from collections import deque
from decimal import Decimal
from typing import Deque, Dict, List, Optional, Tuple

from bourso_desk.domain.accounts import display_name, merge_cash_balances, replace_accounts
from bourso_desk.domain.events import (
    DueJobConfirmationRequested,
    EventHub,
    MfaChallengeReceived,
    MfaQrCodeReceived,
    NotificationRaised,
    SessionStateChanged,
)
from bourso_desk.domain.exceptions import (
    DomainException,
    InvalidCredentialsError,
    MfaExhaustedError,
    MfaRequiredError,
    QrCodePayloadError,
    SessionStateError,
    ValidationFailure,
)
from bourso_desk.domain.jobs import job_to_string
from bourso_desk.domain.market import cash_balance_from, positions_from
from bourso_desk.domain.models import (
    Account,
    AccountKind,
    Credentials,
    Job,
    MfaChallenge,
    MfaStatus,
    Notification,
    PerformancePosition,
    SessionOptions,
    SessionState,
)
from bourso_desk.domain.ports import BrokerageAdapter, CredentialStore
from bourso_desk.infrastructure.observability.logging import log_session_transition
from bourso_desk.infrastructure.observability.metrics import (
    record_auth_failure,
    record_mfa_challenge,
    record_session_transition,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid client ID or password"
GENERIC_FAILURE_MESSAGE = "Error while initializing client"
MFA_EXHAUSTED_MESSAGE = "Error while initializing client, no MFA found while it was required"
MFA_CANCELLED_MESSAGE = "Multi-factor authentication cancelled"

# Oldest notifications are dropped past this many
MAX_NOTIFICATIONS = 50

# Challenges answered with a typed code; anything else is confirmed out of band and polled
CODE_CHALLENGE_TYPES = frozenset({"sms", "email"})

_DIGITS = re.compile(r"^\d+$")


def validate_credentials(client_id: str, password: str) -> Credentials:
    """
    Check the login form before anything reaches the brokerage.

    Requirements:
    - client id: 7 or 8 digits
    - password: exactly 8 digits
    """
    if len(client_id) not in (7, 8):
        raise ValidationFailure("Client ID must be either 7 or 8 digits", field="client_id")
    if not _DIGITS.match(client_id):
        raise ValidationFailure("Client ID must be a number", field="client_id")
    if len(password) != 8:
        raise ValidationFailure("Password must be 8 characters long", field="password")
    if not _DIGITS.match(password):
        raise ValidationFailure("Password must be a number", field="password")
    return Credentials(client_id=client_id, password=password)


class SessionCoordinator:
    """
    Drives a session from credential entry to a ready dashboard.

    Uninitiated -> Authenticating -> Authenticated -> DataFetched -> Ready, with
    MfaPending entered from Authenticating and re-entered as long as the
    brokerage keeps chaining challenges. Authentication failures reset to
    Uninitiated; data-fetch failures are notifications only.
    """

    def __init__(
        self,
        adapter: BrokerageAdapter,
        options: SessionOptions,
        events: EventHub | None = None,
        credential_store: CredentialStore | None = None,
        poll_interval: float = 5.0,
    ):
        self.adapter = adapter
        self.options = options
        self.events = events or EventHub()
        self.credential_store = credential_store
        self.poll_interval = poll_interval

        self.state = SessionState.UNINITIATED
        self.error: Optional[str] = None
        self.last_failure: Optional[DomainException] = None
        self.prefill_client_id: Optional[str] = None
        self.current_challenge: Optional[MfaChallenge] = None
        self.qr_code: Optional[str] = None

        self.accounts: List[Account] = []
        self.positions: List[PerformancePosition] = []
        self.notifications: Deque[Notification] = deque(maxlen=MAX_NOTIFICATIONS)

        self.dca_without_password = False
        self.due_jobs: List[Job] = []

        self._credentials: Optional[Credentials] = None
        self._attempted: Optional[Tuple[str, str]] = None
        self._accounts_lock = asyncio.Lock()
        self._poller: Optional[asyncio.Task] = None
        self._startup_task: Optional[asyncio.Task] = None

        self.events.subscribe(NotificationRaised, self._keep_notification)

    # -- state -----------------------------------------------------------

    def _keep_notification(self, event: NotificationRaised) -> None:
        self.notifications.append(event.notification)

    def notify(self, level: str, title: str, description: str = "") -> None:
        self.events.publish(NotificationRaised(Notification(level=level, title=title, description=description)))

    def _transition(self, state: SessionState, error: Optional[str] = None) -> None:
        previous = self.state
        self.state = state
        self.error = error
        record_session_transition(state.value)
        log_session_transition(previous.value, state.value, error)
        self.events.publish(SessionStateChanged(previous=previous, current=state, error=error))

    def _fail(self, failure: DomainException, message: str, kind: str, prefill: Optional[str] = None) -> None:
        self.last_failure = failure
        self.prefill_client_id = prefill
        self.current_challenge = None
        self._credentials = None
        self._attempted = None
        record_auth_failure(kind)
        self._transition(SessionState.UNINITIATED, message)

    @property
    def progress(self) -> Optional[int]:
        return self.state.progress

    @property
    def is_ready(self) -> bool:
        return self.state == SessionState.READY

    def display_name(self, account: Account) -> str:
        return display_name(account, self.accounts, self.options.incognito)

    # -- authentication --------------------------------------------------

    async def bootstrap(self) -> None:
        """Load stored credentials; authenticate right away when both are known"""
        if self.credential_store is None:
            return
        client_id, password = self.credential_store.load()
        if client_id:
            self.prefill_client_id = client_id
        if client_id and password:
            await self.submit_credentials(client_id, password)

    async def submit_credentials(self, client_id: str, password: str, remember_password: bool = False) -> None:
        """
        Start authentication for a client id / password pair.

        Raises ValidationFailure for malformed input without touching the
        session. A pair already being (or successfully) authenticated is
        not attempted again.
        """
        credentials = validate_credentials(client_id, password)
        pair = (credentials.client_id, credentials.password)
        if self._attempted == pair:
            logger.info("Credentials already submitted, ignoring")
            return
        if self.state != SessionState.UNINITIATED:
            raise SessionStateError(f"Cannot log in while {self.state.value}")

        self._attempted = pair
        self._credentials = credentials
        self.last_failure = None
        if self.credential_store is not None:
            self.credential_store.save(client_id, password if remember_password else None)

        self._transition(SessionState.AUTHENTICATING)
        try:
            await self.adapter.authenticate(credentials.client_id, credentials.password)
        except MfaRequiredError as e:
            await self._enter_mfa(e.challenges)
            return
        except InvalidCredentialsError as e:
            self._fail(e, INVALID_CREDENTIALS_MESSAGE, "invalid_credentials", prefill=client_id)
            return
        except DomainException as e:
            logger.error(f"Authentication failed: {e}")
            self._fail(e, GENERIC_FAILURE_MESSAGE, "other")
            return

        await self._complete_authentication()

    async def _enter_mfa(self, known: List[MfaChallenge], chained: bool = False) -> None:
        challenges = known
        if not challenges:
            try:
                challenges = await self.adapter.list_mfa_challenges()
            except DomainException as e:
                logger.error(f"Could not list MFA challenges: {e}")
                self._fail(e, GENERIC_FAILURE_MESSAGE, "other")
                return

        if not challenges:
            self._fail(MfaExhaustedError(MFA_EXHAUSTED_MESSAGE), MFA_EXHAUSTED_MESSAGE, "mfa_exhausted")
            return

        self.current_challenge = challenges[-1]
        self.qr_code = None
        record_mfa_challenge(self.current_challenge.type)
        self._transition(SessionState.MFA_PENDING)
        self.events.publish(MfaChallengeReceived(challenge=self.current_challenge, chained=chained))

        if self.current_challenge.type not in CODE_CHALLENGE_TYPES:
            self.start_mfa_polling()

    async def submit_mfa(self, code: str) -> None:
        """Answer the current challenge; a chained challenge replaces it"""
        if self.state != SessionState.MFA_PENDING or self.current_challenge is None:
            raise SessionStateError("No multi-factor challenge is waiting for an answer")

        challenge = self.current_challenge
        await self._stop_polling()
        self._transition(SessionState.AUTHENTICATING)
        try:
            await self.adapter.submit_mfa_response(challenge, code)
        except MfaRequiredError as e:
            await self._stop_polling()
            self.notify("error", "Another MFA request", "You have to submit another MFA.")
            await self._enter_mfa(e.challenges, chained=True)
            return
        except DomainException as e:
            # Wrong or expired code: keep the challenge for another try
            self._transition(SessionState.MFA_PENDING, str(e))
            if challenge.type not in CODE_CHALLENGE_TYPES:
                self.start_mfa_polling()
            return

        challenge.resolved = True
        await self._stop_polling()
        await self._complete_authentication()

    def start_mfa_polling(self) -> asyncio.Task:
        """Start the status poll; at most one poll loop runs at a time"""
        if self._poller is None or self._poller.done():
            self._poller = asyncio.create_task(self._poll_mfa_status())
        return self._poller

    async def _poll_mfa_status(self) -> None:
        # One poll at a time: each status call completes before the next sleep
        while self.state == SessionState.MFA_PENDING:
            await asyncio.sleep(self.poll_interval)
            if self.state != SessionState.MFA_PENDING:
                return
            try:
                status = await self.adapter.poll_mfa_status()
            except QrCodePayloadError as e:
                self.qr_code = e.data
                self.events.publish(MfaQrCodeReceived(data=e.data))
                continue
            except DomainException as e:
                logger.warning(f"MFA status poll failed: {e}")
                continue

            if self.state != SessionState.MFA_PENDING:
                return
            if status == MfaStatus.CONFIRMED:
                self._poller = None
                if self.current_challenge is not None:
                    self.current_challenge.resolved = True
                await self._complete_authentication()
                return

    async def _stop_polling(self) -> None:
        task, self._poller = self._poller, None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def cancel_mfa(self) -> None:
        """User dismissed the MFA prompt: stop polling and abandon the attempt"""
        await self._stop_polling()
        if self.state == SessionState.MFA_PENDING:
            self.current_challenge = None
            self._credentials = None
            self._attempted = None
            self._transition(SessionState.UNINITIATED, MFA_CANCELLED_MESSAGE)

    async def _complete_authentication(self) -> None:
        self.current_challenge = None
        self.prefill_client_id = None
        self._transition(SessionState.AUTHENTICATED)

        await self.refresh_accounts()
        self._transition(SessionState.DATA_FETCHED)

        await self.refresh_cash_balances()
        self._transition(SessionState.READY)

    # -- account data ----------------------------------------------------

    async def refresh_accounts(self) -> bool:
        """Replace the account list with a fresh fetch; failures are notifications"""
        async with self._accounts_lock:
            try:
                fresh = await self.adapter.get_accounts()
            except DomainException as e:
                logger.error(f"Error fetching accounts: {e}")
                self.notify("error", "Error fetching accounts", str(e))
                return False
            self.accounts = replace_accounts(self.accounts, fresh)
        return True

    async def refresh_cash_balances(self) -> None:
        """Fetch trading summaries and merge their cash into the current list by id"""
        trading_ids = [a.id for a in self.accounts if a.kind == AccountKind.TRADING]
        if not trading_ids:
            return

        results = await asyncio.gather(
            *(self.adapter.get_trading_summary(account_id) for account_id in trading_ids),
            return_exceptions=True,
        )

        cash_by_id: Dict[str, Decimal] = {}
        positions: List[PerformancePosition] = []
        for account_id, result in zip(trading_ids, results):
            if isinstance(result, DomainException):
                logger.error(f"Error fetching trading summary: {result}", extra={"account_id": account_id})
                self.notify("error", "Error fetching trading summary", str(result))
                continue
            if isinstance(result, BaseException):
                raise result
            cash = cash_balance_from(result)
            if cash is not None:
                cash_by_id[account_id] = cash
            positions.extend(positions_from(result))

        async with self._accounts_lock:
            self.accounts = merge_cash_balances(self.accounts, cash_by_id)
            self.positions = positions

    async def refresh(self) -> None:
        """Explicit user refresh: accounts first, then their cash"""
        if await self.refresh_accounts():
            await self.refresh_cash_balances()

    # -- startup ---------------------------------------------------------

    def startup(self) -> asyncio.Task:
        """Fetch the startup state in the background; initialization does not wait for it"""
        if self._startup_task is None:
            self._startup_task = asyncio.create_task(self._load_startup_state())
        return self._startup_task

    async def _load_startup_state(self) -> None:
        try:
            startup = await self.adapter.get_startup_state()
        except DomainException as e:
            logger.error(f"Error loading startup state: {e}")
            self.notify("error", "Error loading scheduled jobs", str(e))
            return

        self.dca_without_password = startup.dca_without_password
        if startup.dca_without_password:
            self.notify("info", "App opened for DCA", "Login to place the order")

        for job in startup.jobs_to_run:
            self.due_jobs.append(job)
            self.events.publish(DueJobConfirmationRequested(job=job, description=job_to_string(job)))

    def take_due_job(self, job_id: str) -> Optional[Job]:
        """Remove a due-job prompt and return its job (None when no such prompt)"""
        for job in self.due_jobs:
            if job.id == job_id:
                self.due_jobs.remove(job)
                return job
        return None

    # -- teardown --------------------------------------------------------

    async def reset(self, forget_credentials: bool = False) -> None:
        """Log out: back to credential entry with an empty account list"""
        await self._stop_polling()
        if forget_credentials and self.credential_store is not None:
            self.credential_store.clear()

        async with self._accounts_lock:
            self.accounts = []
            self.positions = []
        self.current_challenge = None
        self.qr_code = None
        self.prefill_client_id = None
        self.last_failure = None
        self._credentials = None
        self._attempted = None
        if self.state != SessionState.UNINITIATED:
            self._transition(SessionState.UNINITIATED)
        else:
            self.error = None

    async def close(self) -> None:
        await self._stop_polling()
        if self._startup_task is not None and not self._startup_task.done():
            self._startup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._startup_task
