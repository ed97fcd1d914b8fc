"""Subsidiary books and the general ledger.

A book lists every posting on a set of accounts inside a date range, seeded
with the balance carried in from before the range, and shows for each row
the name of the counter account of the same journal entry.
"""

import csv
import io
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from simple_bookkeeping.ledger.balances import balance_of, signed_amount
from simple_bookkeeping.models import (
    ZERO,
    Account,
    AccountType,
    JournalEntry,
    JournalLine,
    format_amount,
)

UNKNOWN_COUNTER_ACCOUNT = "不明"

LEDGER_CSV_HEADERS: dict[str, list[str]] = {
    "cash": ["日付", "仕訳番号", "摘要", "相手勘定", "借方金額", "貸方金額", "残高"],
    "bank": ["日付", "仕訳番号", "摘要", "相手勘定", "入金", "出金", "残高"],
    "receivable": ["日付", "仕訳番号", "摘要", "相手勘定", "売上", "回収", "残高"],
    "payable": ["日付", "仕訳番号", "摘要", "相手勘定", "仕入", "支払", "残高"],
}


@dataclass
class LedgerRow:
    entry_date: date
    entry_number: str
    description: str
    counter_account: str
    debit: Decimal
    credit: Decimal
    balance: Decimal
    line_id: str | None = None
    journal_entry_id: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.line_id,
            "journal_entry_id": self.journal_entry_id,
            "date": self.entry_date.isoformat(),
            "entry_number": self.entry_number,
            "description": self.description,
            "counter_account_name": self.counter_account,
            "debit_amount": self.debit,
            "credit_amount": self.credit,
            "balance": self.balance,
        }


@dataclass
class LedgerBook:
    opening_balance: Decimal = ZERO
    rows: list[LedgerRow] = field(default_factory=list)

    @property
    def closing_balance(self) -> Decimal:
        return self.rows[-1].balance if self.rows else self.opening_balance

    @property
    def total_debit(self) -> Decimal:
        return sum((row.debit for row in self.rows), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((row.credit for row in self.rows), ZERO)

    def to_dict(self) -> dict[str, object]:
        return {
            "opening_balance": self.opening_balance,
            "entries": [row.to_dict() for row in self.rows],
            "closing_balance": self.closing_balance,
            "total_debit": self.total_debit,
            "total_credit": self.total_credit,
        }


def _sorted_entries(entries: Iterable[JournalEntry]) -> list[JournalEntry]:
    return sorted(entries, key=lambda entry: (entry.entry_date, entry.entry_number))


def build_book(
    account_ids: Iterable[str],
    account_type: AccountType | str,
    entries: Iterable[JournalEntry],
    account_names: Mapping[str, str],
    opening_lines: Iterable[JournalLine] = (),
    partner_id: str | None = None,
) -> LedgerBook:
    """Build a book over ``account_ids`` from entries inside the range.

    Args:
        account_ids: Accounts the book tracks (e.g. every bank account).
        account_type: Type deciding which side increases the balance.
        entries: Journal entries with their lines, already limited to the range.
        account_names: Account id to display name, for counter accounts.
        opening_lines: Lines on the tracked accounts dated before the range.
        partner_id: Restrict rows and opening balance to one partner.
    """
    tracked = set(account_ids)
    opening = [
        line
        for line in opening_lines
        if line.account_id in tracked and (partner_id is None or line.partner_id == partner_id)
    ]
    book = LedgerBook(opening_balance=balance_of(opening, account_type))

    balance = book.opening_balance
    for entry in _sorted_entries(entries):
        counter = next((line for line in entry.lines if line.account_id not in tracked), None)
        counter_name = (
            account_names.get(counter.account_id, UNKNOWN_COUNTER_ACCOUNT)
            if counter
            else UNKNOWN_COUNTER_ACCOUNT
        )
        for line in entry.lines:
            if line.account_id not in tracked:
                continue
            if partner_id is not None and line.partner_id != partner_id:
                continue
            balance += signed_amount(line, account_type)
            book.rows.append(
                LedgerRow(
                    entry_date=entry.entry_date,
                    entry_number=entry.entry_number,
                    description=line.description or entry.description,
                    counter_account=counter_name,
                    debit=line.debit,
                    credit=line.credit,
                    balance=balance,
                    line_id=line.id,
                    journal_entry_id=entry.id,
                )
            )
    return book


@dataclass
class AccountLedger:
    account: Account
    book: LedgerBook

    def to_dict(self) -> dict[str, object]:
        return {
            "account_id": self.account.id,
            "account_code": self.account.code,
            "account_name": self.account.name,
            "account_type": self.account.account_type.value,
            **self.book.to_dict(),
        }


def build_general_ledger(
    accounts: Iterable[Account],
    entries: Iterable[JournalEntry],
    opening_lines: Iterable[JournalLine] = (),
) -> list[AccountLedger]:
    """One ledger per account, ordered by code.

    Accounts with neither postings in the range nor an opening balance are
    left out.
    """
    accounts = sorted(accounts, key=lambda account: account.code)
    entries = _sorted_entries(entries)
    opening_lines = list(opening_lines)
    names = {account.id: account.name for account in accounts}

    ledgers: list[AccountLedger] = []
    for account in accounts:
        book = build_book([account.id], account.account_type, entries, names, opening_lines)
        if book.rows or book.opening_balance != ZERO:
            ledgers.append(AccountLedger(account=account, book=book))
    return ledgers


def export_ledger_csv(book: LedgerBook, ledger_type: str, start_date: date, end_date: date) -> str:
    """Render a subsidiary book as CSV with opening and closing balance rows."""
    headers = LEDGER_CSV_HEADERS.get(ledger_type)
    if headers is None:
        raise ValueError(f"Unknown ledger type: {ledger_type}")

    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(headers)
    writer.writerow(
        [start_date.isoformat(), "-", "開始残高", "-", "-", "-", format_amount(book.opening_balance)]
    )
    for row in book.rows:
        writer.writerow(
            [
                row.entry_date.isoformat(),
                row.entry_number,
                row.description,
                row.counter_account,
                format_amount(row.debit),
                format_amount(row.credit),
                format_amount(row.balance),
            ]
        )
    writer.writerow(
        [end_date.isoformat(), "-", "終了残高", "-", "-", "-", format_amount(book.closing_balance)]
    )
    return output.getvalue()
