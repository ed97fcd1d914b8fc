"""Balance arithmetic over journal lines.

Debit-normal accounts (assets and expenses) grow with debits; every other
account type grows with credits. All functions here are pure and operate on
``JournalLine`` objects already loaded from the database.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from simple_bookkeeping.models import ZERO, Account, AccountType, JournalLine


def is_debit_normal(account_type: AccountType | str) -> bool:
    return AccountType.parse(account_type).is_debit_normal


def signed_amount(line: JournalLine, account_type: AccountType | str) -> Decimal:
    """Change in balance caused by ``line`` on an account of ``account_type``."""
    if is_debit_normal(account_type):
        return line.debit - line.credit
    return line.credit - line.debit


def totals(lines: Iterable[JournalLine]) -> tuple[Decimal, Decimal]:
    """Return ``(total_debit, total_credit)``."""
    debit = credit = ZERO
    for line in lines:
        debit += line.debit
        credit += line.credit
    return debit, credit


def is_balanced(lines: Iterable[JournalLine]) -> bool:
    debit, credit = totals(lines)
    return debit == credit


def sort_lines(lines: Iterable[JournalLine]) -> list[JournalLine]:
    """Order lines by entry date, then entry number; ties keep input order."""
    return sorted(
        lines,
        key=lambda line: (line.entry_date or date.min, line.entry_number or ""),
    )


@dataclass
class RunningBalance:
    line: JournalLine
    balance: Decimal


def running_balances(
    lines: Iterable[JournalLine],
    account_type: AccountType | str,
    opening_balance: Decimal = ZERO,
) -> list[RunningBalance]:
    """Cumulative balance after each line, in ascending date order.

    ``balance[i] = balance[i-1] + debit[i] - credit[i]`` for debit-normal
    accounts and the mirror image otherwise, seeded with ``opening_balance``.
    """
    balance = opening_balance
    result: list[RunningBalance] = []
    for line in sort_lines(lines):
        balance += signed_amount(line, account_type)
        result.append(RunningBalance(line=line, balance=balance))
    return result


def balance_of(lines: Iterable[JournalLine], account_type: AccountType | str) -> Decimal:
    return sum((signed_amount(line, account_type) for line in lines), ZERO)


def split_at(
    lines: Iterable[JournalLine], start_date: date
) -> tuple[list[JournalLine], list[JournalLine]]:
    """Split lines into those dated before ``start_date`` and the rest."""
    before: list[JournalLine] = []
    rest: list[JournalLine] = []
    for line in lines:
        if line.entry_date is not None and line.entry_date < start_date:
            before.append(line)
        else:
            rest.append(line)
    return before, rest


@dataclass
class AccountBalance:
    """Debit/credit activity and normal-side balance of one account."""

    account: Account
    debit_total: Decimal = ZERO
    credit_total: Decimal = ZERO

    @property
    def balance(self) -> Decimal:
        if self.account.is_debit_normal:
            return self.debit_total - self.credit_total
        return self.credit_total - self.debit_total

    @property
    def has_activity(self) -> bool:
        return self.debit_total != ZERO or self.credit_total != ZERO


def aggregate_account_balances(
    accounts: Iterable[Account], lines: Iterable[JournalLine]
) -> dict[str, AccountBalance]:
    """Sum line activity per account id.

    Lines referencing accounts outside ``accounts`` are ignored.
    """
    balances = {account.id: AccountBalance(account=account) for account in accounts}
    for line in lines:
        entry = balances.get(line.account_id)
        if entry is None:
            continue
        entry.debit_total += line.debit
        entry.credit_total += line.credit
    return balances


@dataclass
class PartnerBalance:
    partner_id: str
    receivable: Decimal = ZERO
    payable: Decimal = ZERO
    last_transaction_date: date | None = None
    account_ids: list[str] = field(default_factory=list)

    @property
    def net(self) -> Decimal:
        return self.receivable - self.payable

    def to_dict(self) -> dict[str, object]:
        return {
            "partner_id": self.partner_id,
            "receivable_balance": self.receivable,
            "payable_balance": self.payable,
            "net_balance": self.net,
            "last_transaction_date": (
                self.last_transaction_date.isoformat() if self.last_transaction_date else None
            ),
        }


def compute_partner_balance(
    partner_id: str,
    lines: Sequence[JournalLine],
    accounts: Iterable[Account],
    receivable_codes: Iterable[str],
    payable_codes: Iterable[str],
) -> PartnerBalance:
    """Receivable, payable and net balance of a partner.

    ``receivable = sum(debit - credit)`` over the partner's lines on
    receivable-coded accounts, ``payable = sum(credit - debit)`` on
    payable-coded accounts. An organization without such accounts simply
    contributes zero.
    """
    receivable_codes = set(receivable_codes)
    payable_codes = set(payable_codes)
    receivable_ids: set[str] = set()
    payable_ids: set[str] = set()
    for account in accounts:
        if account.code in receivable_codes:
            receivable_ids.add(account.id)
        elif account.code in payable_codes:
            payable_ids.add(account.id)

    result = PartnerBalance(
        partner_id=partner_id, account_ids=sorted(receivable_ids | payable_ids)
    )
    for line in lines:
        if line.partner_id != partner_id:
            continue
        if line.account_id in receivable_ids:
            result.receivable += line.debit - line.credit
        elif line.account_id in payable_ids:
            result.payable += line.credit - line.debit
        else:
            continue
        if line.entry_date and (
            result.last_transaction_date is None
            or line.entry_date > result.last_transaction_date
        ):
            result.last_transaction_date = line.entry_date
    return result
