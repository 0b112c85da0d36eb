"""Recurring DCA jobs - schedule math, cost estimation and wire encoding"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence

from bourso_desk.domain.accounts import find_account
from bourso_desk.domain.exceptions import ValidationFailure
from bourso_desk.domain.models import (
    Account,
    AccountKind,
    Amount,
    AssetPriceHistory,
    Job,
    OrderArgs,
    OrderSize,
    Quantity,
    Schedule,
    ScheduleKind,
)

# Calendar-naive intervals: a "month" is the average month, not the next calendar date
DAY_MS = 86_400_000
WEEK_MS = 604_800_000
MONTH_MS = 2_628_000_000

SCHEDULE_INTERVAL_MS = {
    ScheduleKind.DAILY: DAY_MS,
    ScheduleKind.WEEKLY: WEEK_MS,
    ScheduleKind.MONTHLY: MONTH_MS,
}

ORDER_SIDES = ("buy", "sell")


def format_size_value(size: OrderSize) -> str:
    """Shortest text for an order size: 50, 12.5, 3"""
    if isinstance(size, Quantity):
        return str(size.value)
    return format(size.value.normalize(), "f")


def job_id(schedule: Schedule, order: OrderArgs) -> str:
    """
    Content-derived job id, e.g. ``monthlyorder_buy_3_1rTCW8``.

    Re-submitting an identical schedule yields the same id; the job board
    treats that as a replacement of the listed job.
    """
    return f"{schedule.kind.value}order_{order.side}_{format_size_value(order.size)}_{order.symbol}"


def create_job(schedule: Schedule, order: OrderArgs, now_seconds: int) -> Job:
    return Job(id=job_id(schedule, order), schedule=schedule, order=order, last_run=now_seconds)


def next_run_ms(job: Job) -> int:
    return job.last_run * 1000 + SCHEDULE_INTERVAL_MS[job.schedule.kind]


def is_due(job: Job, now_ms: int) -> bool:
    return next_run_ms(job) <= now_ms


def next_run_label(job: Job, now_ms: int) -> str:
    """"Now" once the next run is in the past, otherwise a short local date"""
    if is_due(job, now_ms):
        return "Now"
    return datetime.fromtimestamp(next_run_ms(job) / 1000).strftime("%d %b, %H:%M")


def estimate_cost(order: OrderArgs, histories: Mapping[str, AssetPriceHistory]) -> Optional[Decimal]:
    """
    Estimated cash needed by one run of the order.

    Amount orders cost their amount. Quantity orders cost quantity times the
    latest close of the symbol; without a price history the cost is unknown
    (None), never zero.
    """
    if isinstance(order.size, Amount):
        return order.size.value

    history = histories.get(order.symbol)
    latest = history.latest_close if history else None
    if latest is None:
        return None
    return latest * order.size.value


class BalanceStatus(str, Enum):
    SUFFICIENT = "sufficient"
    INSUFFICIENT = "insufficient"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class BalanceCheck:
    status: BalanceStatus
    estimated_cost: Optional[Decimal]
    cash_balance: Optional[Decimal]


def check_balance(
    job: Job,
    accounts: Sequence[Account],
    histories: Mapping[str, AssetPriceHistory],
) -> BalanceCheck:
    """Compare the job's estimated cost with the cash of its Trading account"""
    account = find_account(accounts, job.order.account_id)
    estimated_cost = estimate_cost(job.order, histories)
    cash = account.cash_balance if account and account.kind == AccountKind.TRADING else None

    if cash is None or estimated_cost is None:
        return BalanceCheck(BalanceStatus.UNKNOWN, estimated_cost, cash)

    status = BalanceStatus.INSUFFICIENT if cash < estimated_cost else BalanceStatus.SUFFICIENT
    return BalanceCheck(status, estimated_cost, cash)


def schedule_to_string(schedule: Schedule) -> str:
    if schedule.kind == ScheduleKind.DAILY:
        return "Daily"
    if schedule.kind == ScheduleKind.WEEKLY:
        return f"Weekly: {schedule.day}"
    return f"Monthly: {schedule.day}"


def command_to_string(order: OrderArgs) -> str:
    value = format_size_value(order.size)
    if isinstance(order.size, Amount):
        what = f"{value}€ of {order.symbol}"
    else:
        what = f"{value} share(s) of {order.symbol}"
    return f"Order: {order.side} {what}"


def job_to_string(job: Job) -> str:
    return f"{schedule_to_string(job.schedule)} - {command_to_string(job.order)}"


@dataclass(frozen=True)
class JobAnnotation:
    """Job plus everything the job table shows next to it"""

    job: Job
    schedule: str
    command: str
    next_run: str
    balance: BalanceCheck
    need_cash: Decimal


def annotate(
    job: Job,
    accounts: Sequence[Account],
    histories: Mapping[str, AssetPriceHistory],
    now_ms: int,
) -> JobAnnotation:
    balance = check_balance(job, accounts, histories)
    need_cash = (
        balance.estimated_cost
        if balance.status == BalanceStatus.INSUFFICIENT and balance.estimated_cost is not None
        else Decimal(0)
    )
    return JobAnnotation(
        job=job,
        schedule=schedule_to_string(job.schedule),
        command=command_to_string(job.order),
        next_run=next_run_label(job, now_ms),
        balance=balance,
        need_cash=need_cash,
    )


def shares_for(order: OrderArgs, last_price: Decimal) -> int:
    """Whole shares an order buys: its quantity, or floor(amount / price)"""
    if isinstance(order.size, Quantity):
        return order.size.value
    if last_price <= 0:
        raise ValidationFailure(f"No usable price for {order.symbol}", field="symbol")
    return int(order.size.value // last_price)


def build_order_size(value: Any, use_amount: bool) -> OrderSize:
    """Validate the DCA form's single number field into an amount or a quantity"""
    try:
        number = Decimal(str(value))
    except InvalidOperation as e:
        raise ValidationFailure("Amount must be a number", field="amount") from e
    if not number.is_finite() or number < 1:
        raise ValidationFailure("Amount must be greater than 0", field="amount")
    if number != number.to_integral_value():
        raise ValidationFailure("Amount must be a whole number", field="amount")
    return Amount(number.quantize(Decimal(1))) if use_amount else Quantity(int(number))


def build_schedule(schedule_type: str, day: int = 1) -> Schedule:
    try:
        kind = ScheduleKind(schedule_type)
    except ValueError as e:
        raise ValidationFailure("Schedule type is required", field="schedule_type") from e
    if kind == ScheduleKind.DAILY:
        return Schedule.daily()
    return Schedule(kind, day)


def build_order(account_id: str, symbol: str, side: str, size: OrderSize) -> OrderArgs:
    if not symbol:
        raise ValidationFailure("Asset is required", field="symbol")
    if not account_id:
        raise ValidationFailure("Account is required", field="account_id")
    if side not in ORDER_SIDES:
        raise ValidationFailure(f"Unknown order side: {side}", field="side")
    return OrderArgs(account_id=account_id, symbol=symbol, side=side, size=size)


# Wire encoding: {"schedule": "daily" | {"weekly": {"day": n}} | {"monthly": {"day": n}},
#                 "last_run": s, "command": {"order": {...}}}

def schedule_to_wire(schedule: Schedule) -> Any:
    if schedule.kind == ScheduleKind.DAILY:
        return "daily"
    return {schedule.kind.value: {"day": schedule.day}}


def schedule_from_wire(data: Any) -> Schedule:
    if data == "daily":
        return Schedule.daily()
    if isinstance(data, dict) and len(data) == 1:
        kind, detail = next(iter(data.items()))
        if kind in ("weekly", "monthly") and isinstance(detail, dict) and "day" in detail:
            return Schedule(ScheduleKind(kind), int(detail["day"]))
    raise ValidationFailure(f"Unknown schedule: {data!r}", field="schedule")


def order_to_wire(order: OrderArgs) -> Dict[str, Any]:
    amount = order.size.value if isinstance(order.size, Amount) else None
    quantity = order.size.value if isinstance(order.size, Quantity) else None
    return {
        "account": order.account_id,
        "symbol": order.symbol,
        "side": order.side,
        "amount": float(amount) if amount is not None else None,
        "quantity": quantity,
    }


def order_from_wire(data: Mapping[str, Any]) -> OrderArgs:
    amount = data.get("amount")
    quantity = data.get("quantity")
    if (amount is None) == (quantity is None):
        raise ValidationFailure("Either quantity or amount should be set", field="amount")
    size: OrderSize = Amount(Decimal(str(amount))) if amount is not None else Quantity(int(quantity))
    return OrderArgs(account_id=data["account"], symbol=data["symbol"], side=data["side"], size=size)


def job_to_wire(job: Job) -> Dict[str, Any]:
    return {
        "id": job.id,
        "schedule": schedule_to_wire(job.schedule),
        "last_run": job.last_run,
        "command": {"order": order_to_wire(job.order)},
    }


def job_from_wire(data: Mapping[str, Any]) -> Job:
    command = data.get("command") or {}
    if "order" not in command:
        raise ValidationFailure("Only order jobs are supported", field="command")
    return Job(
        id=data["id"],
        schedule=schedule_from_wire(data["schedule"]),
        order=order_from_wire(command["order"]),
        last_run=int(data["last_run"]),
    )
