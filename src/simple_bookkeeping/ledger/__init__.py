"""Ledger computation: balances, books and the account tree."""

from simple_bookkeeping.ledger.accounts_tree import build_tree, would_create_cycle
from simple_bookkeeping.ledger.balances import (
    AccountBalance,
    PartnerBalance,
    RunningBalance,
    aggregate_account_balances,
    compute_partner_balance,
    is_balanced,
    is_debit_normal,
    running_balances,
    signed_amount,
)
from simple_bookkeeping.ledger.books import (
    AccountLedger,
    LedgerBook,
    LedgerRow,
    build_book,
    build_general_ledger,
    export_ledger_csv,
)

__all__ = [
    "AccountBalance",
    "AccountLedger",
    "LedgerBook",
    "LedgerRow",
    "PartnerBalance",
    "RunningBalance",
    "aggregate_account_balances",
    "build_book",
    "build_general_ledger",
    "build_tree",
    "compute_partner_balance",
    "export_ledger_csv",
    "is_balanced",
    "is_debit_normal",
    "running_balances",
    "signed_amount",
    "would_create_cycle",
]
