"""Input validation schemas (pydantic models)."""

from simple_bookkeeping.validation.accounting_periods import (
    CreateAccountingPeriodInput,
    UpdateAccountingPeriodInput,
)
from simple_bookkeeping.validation.accounts import CreateAccountInput, UpdateAccountInput
from simple_bookkeeping.validation.common import DateRange, Pagination, QueryParams
from simple_bookkeeping.validation.journal_entries import (
    CreateJournalEntryInput,
    JournalLineInput,
    UpdateJournalEntryInput,
)
from simple_bookkeeping.validation.partners import CreatePartnerInput, UpdatePartnerInput

__all__ = [
    "CreateAccountInput",
    "CreateAccountingPeriodInput",
    "CreateJournalEntryInput",
    "CreatePartnerInput",
    "DateRange",
    "JournalLineInput",
    "Pagination",
    "QueryParams",
    "UpdateAccountInput",
    "UpdateAccountingPeriodInput",
    "UpdateJournalEntryInput",
    "UpdatePartnerInput",
]
