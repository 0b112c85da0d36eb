"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Union

from bourso_desk.domain.exceptions import ValidationFailure


class AccountKind(str, Enum):
    """Account classification as reported by the brokerage (trusted, never inferred)"""

    BANKING = "Banking"
    SAVINGS = "Savings"
    TRADING = "Trading"
    LOANS = "Loans"


@dataclass(frozen=True)
class Account:
    """Bank or brokerage account

    Frozen: the account list is only ever replaced or merged into a new list.
    """

    id: str
    name: str
    kind: AccountKind
    balance_cents: int
    bank_name: str
    cash_balance: Optional[Decimal] = None  # Trading only, from the trading summary

    @property
    def is_external(self) -> bool:
        return self.bank_name != "BoursoBank"


@dataclass(frozen=True)
class Credentials:
    """Client id / password pair, held in session memory only"""

    client_id: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class SessionOptions:
    """Runtime display options passed explicitly to the core"""

    incognito: bool = False
    dev_mode: bool = False


class SessionState(str, Enum):
    """Session bootstrap states; MFA_PENDING is the only unnumbered one"""

    UNINITIATED = "uninitiated"
    AUTHENTICATING = "authenticating"
    MFA_PENDING = "mfa_pending"
    AUTHENTICATED = "authenticated"
    DATA_FETCHED = "data_fetched"
    READY = "ready"

    @property
    def progress(self) -> Optional[int]:
        return _STATE_PROGRESS.get(self)

    @property
    def description(self) -> str:
        return _STATE_DESCRIPTIONS[self]


_STATE_PROGRESS = {
    SessionState.UNINITIATED: 0,
    SessionState.AUTHENTICATING: 25,
    SessionState.AUTHENTICATED: 50,
    SessionState.DATA_FETCHED: 75,
    SessionState.READY: 100,
}

_STATE_DESCRIPTIONS = {
    SessionState.UNINITIATED: "Initiating connection to Bourso",
    SessionState.AUTHENTICATING: "Client initialized, logging in",
    SessionState.MFA_PENDING: "Waiting for multi-factor authentication",
    SessionState.AUTHENTICATED: "Logged in, fetching data",
    SessionState.DATA_FETCHED: "Data fetched, finalizing dashboard",
    SessionState.READY: "Dashboard finalized",
}


@dataclass
class MfaChallenge:
    """Outstanding multi-factor challenge"""

    id: str
    type: str  # "sms", "email", "push", "app", ...
    token: str = field(default="", repr=False)
    resolved: bool = False


class MfaStatus(str, Enum):
    """Answer of an MFA status poll"""

    CONFIRMED = "confirmed"
    PENDING = "pending"


@dataclass
class TransferRequest:
    """Transfer between two of the user's accounts, tracked through its progress steps"""

    source_account_id: str
    target_account_id: str
    amount: Optional[Decimal] = None
    reason: str = ""
    progress_step: int = 0

    def __post_init__(self) -> None:
        if self.source_account_id == self.target_account_id:
            raise ValidationFailure("Source and target accounts must differ", field="target")


class ScheduleKind(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class Schedule:
    """Recurrence of a DCA job; ``day`` is only meaningful for weekly/monthly"""

    kind: ScheduleKind
    day: Optional[int] = None

    @classmethod
    def daily(cls) -> "Schedule":
        return cls(ScheduleKind.DAILY)

    @classmethod
    def weekly(cls, day: int) -> "Schedule":
        return cls(ScheduleKind.WEEKLY, day)

    @classmethod
    def monthly(cls, day: int) -> "Schedule":
        return cls(ScheduleKind.MONTHLY, day)


@dataclass(frozen=True)
class Amount:
    """Order sized in currency units"""

    value: Decimal


@dataclass(frozen=True)
class Quantity:
    """Order sized in shares"""

    value: int


OrderSize = Union[Amount, Quantity]


@dataclass(frozen=True)
class OrderArgs:
    """What to trade, where, and how much"""

    account_id: str
    symbol: str
    side: str  # "buy" or "sell"
    size: OrderSize


@dataclass
class Job:
    """Recurring order; only ``last_run`` changes after creation"""

    id: str
    schedule: Schedule
    order: OrderArgs
    last_run: int  # epoch seconds


@dataclass(frozen=True)
class Order:
    """Order accepted by the brokerage"""

    id: str
    price: Decimal
    args: OrderArgs
    timestamp: Optional[int] = None


@dataclass(frozen=True)
class SummaryValue:
    """Fixed-point number as sent by the trading summary"""

    value: int
    decimals: int
    currency: Optional[str] = None

    def to_decimal(self) -> Decimal:
        return Decimal(self.value).scaleb(-self.decimals)


@dataclass(frozen=True)
class PerformancePosition:
    """Open position from the trading summary"""

    symbol: str
    label: str
    quantity: SummaryValue
    buying_price: SummaryValue


@dataclass(frozen=True)
class AccountSummaryItem:
    """Trading summary item tagged "account" """

    cash: SummaryValue


@dataclass(frozen=True)
class PositionsItem:
    """Trading summary item tagged "positions" """

    positions: List[PerformancePosition]


SummaryItem = Union[AccountSummaryItem, PositionsItem]


@dataclass(frozen=True)
class Quote:
    """End-of-day quote"""

    date: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int


@dataclass
class AssetPriceHistory:
    """Quote series of one asset, oldest first"""

    symbol: str
    name: str
    quotes: List[Quote]

    @property
    def latest_close(self) -> Optional[Decimal]:
        return self.quotes[-1].close if self.quotes else None


@dataclass
class StartupState:
    """What the brokerage backend reports when the app starts"""

    dca_without_password: bool
    jobs_to_run: List[Job]


@dataclass(frozen=True)
class Notification:
    """Non-fatal, human-readable message for the user"""

    level: str  # "info" | "success" | "error"
    title: str
    description: str = ""
