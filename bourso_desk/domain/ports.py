"""Contracts the core requires from its external collaborators

The brokerage adapter talks to the remote bank; the stores persist what the
desktop keeps between runs. Implementations live in ``infrastructure``.
"""

from typing import AsyncIterator, List, Optional, Protocol, Tuple

from bourso_desk.domain.models import (
    Account,
    Job,
    MfaChallenge,
    MfaStatus,
    Order,
    OrderArgs,
    StartupState,
    SummaryItem,
)


class BrokerageAdapter(Protocol):
    """Remote brokerage operations

    Failures are raised from the ``bourso_desk.domain.exceptions`` taxonomy:
    InvalidCredentialsError, MfaRequiredError, BrokerageAPIError (and its
    QrCodePayloadError branch), TransferRejectedError.
    """

    async def authenticate(self, client_id: str, password: str) -> None: ...

    async def list_mfa_challenges(self) -> List[MfaChallenge]: ...

    async def submit_mfa_response(self, challenge: MfaChallenge, code: str) -> None: ...

    async def poll_mfa_status(self) -> MfaStatus: ...

    async def get_accounts(self) -> List[Account]: ...

    async def get_trading_summary(self, account_id: str) -> List[SummaryItem]: ...

    async def get_price_history(self, symbol: str, length_days: int) -> dict: ...

    def transfer_funds(
        self, source_id: str, target_id: str, amount: str, reason: str
    ) -> AsyncIterator[int]:
        """Yield progress steps 1..10; raise on failure, return on success"""
        ...

    async def get_startup_state(self) -> StartupState: ...

    async def list_scheduled_jobs(self) -> List[Job]: ...

    async def add_scheduled_job(self, job: Job) -> None: ...

    async def delete_scheduled_job(self, job_id: str) -> None: ...

    async def run_job_manually(self, job: Job) -> Order: ...

    async def place_order(self, args: OrderArgs) -> Order: ...


class CredentialStore(Protocol):
    """Local credential storage (password only when the user opted in)"""

    def load(self) -> Tuple[Optional[str], Optional[str]]: ...

    def save(self, client_id: str, password: Optional[str]) -> None: ...

    def clear(self) -> None: ...


class OrderHistory(Protocol):
    """Orders placed through this desk, kept longer than the bank keeps them"""

    def record(self, order: Order) -> None: ...

    def list_orders(self) -> List[Order]: ...
