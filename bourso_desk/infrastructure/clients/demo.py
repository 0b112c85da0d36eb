"""In-memory brokerage used in dev mode: canned accounts, positions and quotes"""

import asyncio
import math
import uuid
from dataclasses import replace
from decimal import Decimal
from typing import AsyncIterator, Dict, List

from bourso_desk.domain.exceptions import BrokerageAPIError, TransferRejectedError
from bourso_desk.domain.jobs import shares_for
from bourso_desk.domain.models import (
    Account,
    AccountKind,
    AccountSummaryItem,
    Job,
    MfaChallenge,
    MfaStatus,
    Order,
    OrderArgs,
    PerformancePosition,
    PositionsItem,
    Quantity,
    StartupState,
    SummaryItem,
    SummaryValue,
)
from bourso_desk.utils.date_utils import now_epoch_seconds, now_ms

DAY_MS = 24 * 60 * 60 * 1000

DEMO_ACCOUNTS = [
    Account("chk-100200", "Compte Courant", AccountKind.BANKING, 254_032, "BoursoBank"),
    Account("liv-300400", "Livret A", AccountKind.SAVINGS, 1_200_000, "BoursoBank"),
    Account("pea-123456", "PEA - Plan d'Épargne en Actions", AccountKind.TRADING, 1_542_050, "BoursoBank"),
    Account("cto-789012", "CTO - Compte Titres Ordinaire", AccountKind.TRADING, 875_025, "BoursoBank"),
    Account("ext-555666", "Compte Joint", AccountKind.BANKING, 98_310, "Other Bank"),
]

DEMO_CASH = {
    "pea-123456": SummaryValue(value=42_050, decimals=2, currency="EUR"),
    "cto-789012": SummaryValue(value=12_525, decimals=2, currency="EUR"),
}

# symbol -> (name, min price, max price)
DEMO_ASSETS = {
    "1rTCW8": ("AMUNDI ETF MSCI WORLD UCITS ETF", 450, 480),
    "1rTCW9": ("AMUNDI ETF S&P 500 UCITS ETF", 380, 420),
    "1rTCW0": ("LYXOR ETF NASDAQ-100 UCITS ETF", 520, 560),
}

DEMO_POSITIONS = [
    PerformancePosition("1rTCW8", DEMO_ASSETS["1rTCW8"][0], SummaryValue(25, 0), SummaryValue(46_000, 2)),
    PerformancePosition("1rTCW9", DEMO_ASSETS["1rTCW9"][0], SummaryValue(30, 0), SummaryValue(39_000, 2)),
    PerformancePosition("1rTCW0", DEMO_ASSETS["1rTCW0"][0], SummaryValue(20, 0), SummaryValue(52_000, 2)),
]


def seeded_random(seed: int) -> float:
    """Deterministic pseudo-random number in [0, 1)"""
    x = math.sin(seed) * 10000
    return x - math.floor(x)


def generate_quotes(days: int, min_price: float, max_price: float, now: int, seed: int = 1000) -> List[dict]:
    """Random walk with clamping, one raw quote per day ending today"""
    quotes = []
    price = (min_price + max_price) / 2
    counter = seed

    for i in range(days - 1, -1, -1):
        change = (seeded_random(counter) - 0.5) * 10
        counter += 1
        price = max(min_price, min(max_price, price + change))

        open_ = price
        high = open_ + seeded_random(counter) * 5
        low = open_ - seeded_random(counter + 1) * 5
        close = low + seeded_random(counter + 2) * (high - low)
        volume = int(10000 + seeded_random(counter + 3) * 50000)
        counter += 4

        quotes.append(
            {
                "d": now - i * DAY_MS,
                "o": round(open_, 2),
                "h": round(high, 2),
                "l": round(low, 2),
                "c": round(close, 2),
                "v": volume,
            }
        )
        price = close
    return quotes


class DemoBrokerage:
    """Brokerage adapter that never leaves the process

    Any well-formed credentials log in without MFA. Transfers report all ten
    steps; a transfer larger than the source balance is rejected.
    """

    def __init__(self, step_delay: float = 0.0):
        self.step_delay = step_delay
        self.accounts: Dict[str, Account] = {a.id: a for a in DEMO_ACCOUNTS}
        self.jobs: Dict[str, Job] = {}

    async def authenticate(self, client_id: str, password: str) -> None:
        return None

    async def list_mfa_challenges(self) -> List[MfaChallenge]:
        return []

    async def submit_mfa_response(self, challenge: MfaChallenge, code: str) -> None:
        return None

    async def poll_mfa_status(self) -> MfaStatus:
        return MfaStatus.CONFIRMED

    async def get_accounts(self) -> List[Account]:
        return list(self.accounts.values())

    async def get_trading_summary(self, account_id: str) -> List[SummaryItem]:
        cash = DEMO_CASH.get(account_id)
        if cash is None:
            raise BrokerageAPIError(f"No trading summary for {account_id}")
        positions = DEMO_POSITIONS if account_id == "pea-123456" else []
        return [AccountSummaryItem(cash=cash), PositionsItem(positions=list(positions))]

    async def get_price_history(self, symbol: str, length_days: int) -> dict:
        name, low, high = DEMO_ASSETS.get(symbol, (symbol, 90, 110))
        return {
            "d": {
                "SymbolId": symbol,
                "Name": name,
                "QuoteTab": generate_quotes(length_days, low, high, now_ms()),
            }
        }

    async def _last_price(self, symbol: str) -> Decimal:
        raw = await self.get_price_history(symbol, 1)
        return Decimal(str(raw["d"]["QuoteTab"][-1]["c"]))

    async def transfer_funds(self, source_id: str, target_id: str, amount: str, reason: str) -> AsyncIterator[int]:
        if source_id not in self.accounts or target_id not in self.accounts:
            raise BrokerageAPIError("Unknown account")
        source = self.accounts[source_id]
        target = self.accounts[target_id]
        cents = int(Decimal(amount) * 100)

        for step in range(1, 10):
            await asyncio.sleep(self.step_delay)
            yield step

        if cents > source.balance_cents:
            raise TransferRejectedError("Insufficient funds")

        self.accounts[source_id] = replace(source, balance_cents=source.balance_cents - cents)
        self.accounts[target_id] = replace(target, balance_cents=target.balance_cents + cents)
        yield 10

    async def get_startup_state(self) -> StartupState:
        return StartupState(dca_without_password=False, jobs_to_run=[])

    async def list_scheduled_jobs(self) -> List[Job]:
        return list(self.jobs.values())

    async def add_scheduled_job(self, job: Job) -> None:
        self.jobs[job.id] = job

    async def delete_scheduled_job(self, job_id: str) -> None:
        self.jobs.pop(job_id, None)

    async def run_job_manually(self, job: Job) -> Order:
        return await self.place_order(job.order)

    async def place_order(self, args: OrderArgs) -> Order:
        price = await self._last_price(args.symbol)
        quantity = shares_for(args, price)
        if quantity < 1:
            raise BrokerageAPIError(f"Amount too small to buy one share of {args.symbol}")
        return Order(
            id=uuid.uuid4().hex,
            price=price,
            args=replace(args, size=Quantity(quantity)),
            timestamp=now_epoch_seconds(),
        )
