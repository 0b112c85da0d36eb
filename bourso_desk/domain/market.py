"""Market data - price histories, trading summaries and period performance"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Sequence

from bourso_desk.domain.exceptions import BrokerageAPIError
from bourso_desk.domain.models import (
    AccountSummaryItem,
    AssetPriceHistory,
    PerformancePosition,
    PositionsItem,
    Quote,
    SummaryItem,
    SummaryValue,
)

PERIOD_DAYS = {
    "1d": 1,
    "1m": 30,
    "6m": 180,
    "1y": 365,
}

PERIOD_LABELS = {
    "1d": "1 Day",
    "1m": "1 Month",
    "6m": "6 Months",
    "1y": "1 Year",
}

DEFAULT_PERIOD = "1m"


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value))


def parse_price_history(raw: Mapping[str, Any]) -> AssetPriceHistory:
    """
    Parse a quote series as sent by the brokerage.

    Expected shape: {"d": {"SymbolId", "Name", "QuoteTab": [{"d","o","h","l","c","v"}]}}
    """
    try:
        data = raw["d"]
        quotes = [
            Quote(
                date=int(q["d"]),
                open=_decimal(q["o"]),
                high=_decimal(q["h"]),
                low=_decimal(q["l"]),
                close=_decimal(q["c"]),
                volume=int(q["v"]),
            )
            for q in data["QuoteTab"]
        ]
        return AssetPriceHistory(symbol=data["SymbolId"], name=data["Name"], quotes=quotes)
    except (KeyError, TypeError, ValueError, ArithmeticError) as e:
        raise BrokerageAPIError(f"Malformed price history: {e}") from e


def parse_summary_value(raw: Mapping[str, Any]) -> SummaryValue:
    return SummaryValue(value=raw["value"], decimals=int(raw["decimals"]), currency=raw.get("currency"))


def parse_trading_summary(raw: Sequence[Mapping[str, Any]]) -> List[SummaryItem]:
    """
    Parse trading summary items; unknown tags are ignored.

    "account" items carry {"account": {"cash": {value, decimals}}}, "positions"
    items carry {"positions": [{symbol, label, quantity, buyingPrice}]}.
    """
    items: List[SummaryItem] = []
    try:
        for entry in raw:
            tag = entry.get("id")
            if tag == "account" and entry.get("account"):
                items.append(AccountSummaryItem(cash=parse_summary_value(entry["account"]["cash"])))
            elif tag == "positions":
                positions = [
                    PerformancePosition(
                        symbol=p["symbol"],
                        label=p.get("label", p["symbol"]),
                        quantity=parse_summary_value(p["quantity"]),
                        buying_price=parse_summary_value(p["buyingPrice"]),
                    )
                    for p in entry.get("positions") or []
                ]
                items.append(PositionsItem(positions=positions))
    except (KeyError, TypeError, ValueError) as e:
        raise BrokerageAPIError(f"Malformed trading summary: {e}") from e
    return items


def cash_balance_from(summary: Sequence[SummaryItem]) -> Optional[Decimal]:
    for item in summary:
        if isinstance(item, AccountSummaryItem):
            return item.cash.to_decimal()
    return None


def positions_from(summary: Sequence[SummaryItem]) -> List[PerformancePosition]:
    for item in summary:
        if isinstance(item, PositionsItem):
            return list(item.positions)
    return []


@dataclass(frozen=True)
class AssetPerformance:
    symbol: str
    name: str
    quantity: Decimal
    buying_price: Decimal
    start_price: Decimal
    end_price: Decimal
    gain_loss: Decimal
    gain_loss_percent: Decimal


@dataclass(frozen=True)
class PerformanceSummary:
    total_gain_loss: Decimal
    total_gain_loss_percent: Decimal
    start_balance: Decimal
    end_balance: Decimal
    by_asset: List[AssetPerformance]


def compute_performance(
    positions: Sequence[PerformancePosition],
    histories: Mapping[str, AssetPriceHistory],
) -> PerformanceSummary:
    """
    Gain/loss of the open positions over the span of the given histories.

    Start price is the oldest close, end price the latest. Positions without
    quotes are skipped. The total percent is weighted by the start balance.
    """
    by_asset: List[AssetPerformance] = []
    for position in positions:
        history = histories.get(position.symbol)
        if history is None or not history.quotes:
            continue

        quantity = position.quantity.to_decimal()
        start = history.quotes[0].close
        end = history.quotes[-1].close
        change = end - start
        by_asset.append(
            AssetPerformance(
                symbol=position.symbol,
                name=position.label,
                quantity=quantity,
                buying_price=position.buying_price.to_decimal(),
                start_price=start,
                end_price=end,
                gain_loss=change * quantity,
                gain_loss_percent=change / start * 100 if start else Decimal(0),
            )
        )

    total = sum((a.gain_loss for a in by_asset), Decimal(0))
    start_balance = sum((a.start_price * a.quantity for a in by_asset), Decimal(0))
    end_balance = sum((a.end_price * a.quantity for a in by_asset), Decimal(0))
    percent = total / start_balance * 100 if start_balance > 0 else Decimal(0)

    return PerformanceSummary(
        total_gain_loss=total,
        total_gain_loss_percent=percent,
        start_balance=start_balance,
        end_balance=end_balance,
        by_asset=by_asset,
    )
