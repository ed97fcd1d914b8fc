"""Simple Bookkeeping - double-entry bookkeeping core for Japanese small businesses."""

__version__ = "0.1.0"

from simple_bookkeeping.config import configure_logging, get_settings
from simple_bookkeeping.models import (
    Account,
    AccountingPeriod,
    AccountType,
    JournalEntry,
    JournalLine,
    JournalStatus,
    Partner,
)
from simple_bookkeeping.results import ActionError, ErrorCode, Failure, Success

__all__ = [
    "Account",
    "AccountType",
    "AccountingPeriod",
    "ActionError",
    "ErrorCode",
    "Failure",
    "JournalEntry",
    "JournalLine",
    "JournalStatus",
    "Partner",
    "Success",
    "configure_logging",
    "get_settings",
]
