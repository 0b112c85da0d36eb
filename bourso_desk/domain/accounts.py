"""Account directory - classification, display names and list maintenance

Every function here is pure: list "updates" return a new list and never touch
the accounts other readers may currently hold.
"""

import unicodedata
from dataclasses import replace
from decimal import Decimal
from typing import List, Mapping, Optional, Sequence

from bourso_desk.domain.models import Account, AccountKind

KIND_LABELS = {
    AccountKind.BANKING: "Banking",
    AccountKind.SAVINGS: "Savings",
    AccountKind.LOANS: "Loan",
}


def classify(account: Account) -> AccountKind:
    """Kind reported by the brokerage, taken as is"""
    return account.kind


def is_pea(account: Account) -> bool:
    return "PEA" in account.name.upper()


def _ordinal(account: Account, cohort: Sequence[Account]) -> int:
    ids = [a.id for a in cohort]
    return ids.index(account.id) + 1


def display_name(account: Account, accounts: Sequence[Account], incognito: bool) -> str:
    """
    Name to show for an account.

    In incognito mode the real name is replaced by a placeholder unique among
    accounts of the same kind, numbered by list order ("Savings 1", "Savings 2").
    Trading accounts are split into PEA and CTO cohorts; a cohort with a single
    member gets no number ("PEA DUPONT").
    """
    if not incognito:
        return account.name

    kind = classify(account)
    if kind == AccountKind.TRADING:
        pea = is_pea(account)
        cohort = [a for a in accounts if a.kind == AccountKind.TRADING and is_pea(a) == pea]
        label = "PEA DUPONT" if pea else "CTO DUPONT"
        if len(cohort) == 1:
            return label
        return f"{label} {_ordinal(account, cohort)}"

    cohort = [a for a in accounts if a.kind == kind]
    return f"{KIND_LABELS[kind]} {_ordinal(account, cohort)}"


def _collation_key(name: str) -> str:
    # Accent- and case-insensitive, close to what a locale collator does for names
    decomposed = unicodedata.normalize("NFKD", name)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).casefold()


def sort_for_display(accounts: Sequence[Account]) -> List[Account]:
    """PEA accounts first, then everything else; each group ordered by name"""
    return sorted(accounts, key=lambda a: (not is_pea(a), _collation_key(a.name), a.name))


def find_account(accounts: Sequence[Account], account_id: str) -> Optional[Account]:
    return next((a for a in accounts if a.id == account_id), None)


def replace_accounts(previous: Sequence[Account], fresh: Sequence[Account]) -> List[Account]:
    """
    Replace the account list with a freshly fetched one.

    Balances come from the fresh list; a cash balance already merged for an
    account that is still present is carried over until the next summary merge.
    """
    known_cash = {a.id: a.cash_balance for a in previous if a.cash_balance is not None}
    merged = [
        replace(a, cash_balance=known_cash[a.id])
        if a.cash_balance is None and a.kind == AccountKind.TRADING and a.id in known_cash
        else a
        for a in fresh
    ]
    return sort_for_display(merged)


def merge_cash_balances(accounts: Sequence[Account], cash_by_id: Mapping[str, Decimal]) -> List[Account]:
    """Attach cash balances to Trading accounts, matched by id"""
    return [
        replace(a, cash_balance=cash_by_id[a.id])
        if a.kind == AccountKind.TRADING and a.id in cash_by_id
        else a
        for a in accounts
    ]


def total_balance_cents(accounts: Sequence[Account]) -> int:
    return sum(a.balance_cents for a in accounts)
