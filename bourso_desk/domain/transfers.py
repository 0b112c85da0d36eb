"""Transfer authorization rules, account selection and transfer form validation"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Sequence, Tuple

from bourso_desk.domain.accounts import find_account
from bourso_desk.domain.events import EventHub, TransferRequested
from bourso_desk.domain.exceptions import ValidationFailure
from bourso_desk.domain.models import Account, AccountKind

logger = logging.getLogger(__name__)

# Source kind -> target kinds it may send money to
ALLOWED_TARGETS = {
    AccountKind.TRADING: frozenset(),
    AccountKind.SAVINGS: frozenset({AccountKind.BANKING}),
    AccountKind.BANKING: frozenset(AccountKind),
    AccountKind.LOANS: frozenset(),
}

MIN_TRANSFER_AMOUNT = Decimal("10")
MAX_AMOUNT_DECIMALS = 2
MAX_REASON_LENGTH = 50

TOTAL_STEPS = 10
TRANSFER_STEPS = {
    1: "Validating transfer",
    2: "Initializing transfer (1)",
    3: "Initializing transfer (2)",
    4: "Setting sending account",
    5: "Setting destination account",
    6: "Configuring amount",
    7: "Validating beneficiary",
    8: "Setting transfer reason",
    9: "Confirming transfer",
    10: "Completing transfer",
}

_AMOUNT_PATTERN = re.compile(r"^(\d+(\.\d*)?|\.\d+)$")


def is_allowed(source: Account, target: Account) -> bool:
    """Whether money may move from ``source`` to ``target``"""
    if source.id == target.id:
        return False
    return target.kind in ALLOWED_TARGETS[source.kind]


def allowed_targets(source: Account, accounts: Sequence[Account]) -> List[Account]:
    return [a for a in accounts if is_allowed(source, a)]


def can_send(account: Account, accounts: Sequence[Account]) -> bool:
    return bool(allowed_targets(account, accounts))


class TransferSelection:
    """
    Two-click source/target picker.

    Idle: any account with at least one legal target can be armed.
    Armed on A: A disarms, an allowed B requests a transfer A -> B and returns
    to idle. A click that breaks the rule clears the arm without requesting
    anything; a click on an id that is not in the list is ignored.
    """

    def __init__(self, events: EventHub | None = None):
        self.events = events or EventHub()
        self.armed_id: Optional[str] = None

    @property
    def is_idle(self) -> bool:
        return self.armed_id is None

    def is_clickable(self, account: Account, accounts: Sequence[Account]) -> bool:
        if self.armed_id is None:
            return can_send(account, accounts)
        if account.id == self.armed_id:
            return True
        source = find_account(accounts, self.armed_id)
        return source is not None and is_allowed(source, account)

    def click(self, account_id: str, accounts: Sequence[Account]) -> Optional[TransferRequested]:
        account = find_account(accounts, account_id)
        if account is None:
            return None

        if self.armed_id is None:
            if can_send(account, accounts):
                self.armed_id = account.id
            return None

        if account.id == self.armed_id:
            self.armed_id = None
            return None

        source = find_account(accounts, self.armed_id)
        self.armed_id = None
        if source is None or not is_allowed(source, account):
            logger.info(
                "Transfer selection rejected",
                extra={"source": source.id if source else None, "target": account.id},
            )
            return None

        event = TransferRequested(source_account_id=source.id, target_account_id=account.id)
        self.events.publish(event)
        return event

    def reset(self) -> None:
        self.armed_id = None


def validate_amount(raw: str) -> Decimal:
    """
    Parse a transfer amount typed by the user.

    Requirements:
    - at least 10.00
    - no more than 2 decimal places
    """
    text = (raw or "").strip()
    if not text:
        raise ValidationFailure("Amount is required", field="amount")
    if not _AMOUNT_PATTERN.match(text):
        raise ValidationFailure("Amount must be a number", field="amount")
    try:
        amount = Decimal(text)
    except InvalidOperation as e:
        raise ValidationFailure("Amount must be a number", field="amount") from e

    if amount < MIN_TRANSFER_AMOUNT:
        raise ValidationFailure("Amount must be at least €10", field="amount")
    if "." in text and len(text.split(".", 1)[1]) > MAX_AMOUNT_DECIMALS:
        raise ValidationFailure("Maximum 2 decimal places allowed", field="amount")
    return amount


def validate_reason(raw: str | None) -> str:
    reason = raw or ""
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationFailure("Reason must be 50 characters or less", field="reason")
    return reason.strip()


def validate_transfer_form(amount: str, reason: str | None) -> Tuple[Decimal, str]:
    return validate_amount(amount), validate_reason(reason)


def next_display_step(shown: int, reported: int) -> int:
    """Clamp a reported step into 1..10 and never go below what is already shown"""
    step = min(max(reported, 1), TOTAL_STEPS)
    return max(shown, step)


def progress_percent(step: int) -> float:
    return step / TOTAL_STEPS * 100


def step_label(step: int) -> str:
    return TRANSFER_STEPS.get(step, "")
