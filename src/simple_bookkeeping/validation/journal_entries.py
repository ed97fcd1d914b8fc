"""Input schemas for journal entries."""

from decimal import Decimal
from typing import Literal

from pydantic import Field, model_validator

from simple_bookkeeping.models import ZERO, JournalStatus
from simple_bookkeeping.validation.common import (
    Amount,
    DateStr,
    InputModel,
    QueryParams,
    UUIDStr,
)


class JournalLineInput(InputModel):
    account_id: UUIDStr
    debit: Amount | None = None
    credit: Amount | None = None
    description: str | None = Field(default=None, max_length=500)
    partner_id: UUIDStr | None = None
    tax_rate: Decimal | None = Field(default=None, ge=0, le=100)

    @model_validator(mode="after")
    def _one_side_only(self) -> "JournalLineInput":
        has_debit = self.debit is not None and self.debit > 0
        has_credit = self.credit is not None and self.credit > 0
        if has_debit == has_credit:
            raise ValueError("借方か貸方のいずれか一方のみ入力してください")
        return self

    @property
    def debit_amount(self) -> Decimal:
        return self.debit or ZERO

    @property
    def credit_amount(self) -> Decimal:
        return self.credit or ZERO


def check_balanced(lines: list[JournalLineInput]) -> None:
    total_debit = sum((line.debit_amount for line in lines), ZERO)
    total_credit = sum((line.credit_amount for line in lines), ZERO)
    if total_debit != total_credit:
        raise ValueError("借方と貸方の合計金額が一致しません")


class CreateJournalEntryInput(InputModel):
    entry_date: DateStr
    description: str = Field(min_length=1, max_length=500)
    lines: list[JournalLineInput] = Field(min_length=2, max_length=100)
    accounting_period_id: UUIDStr
    entry_number: str | None = Field(default=None, max_length=50)
    memo: str | None = Field(default=None, max_length=1000)
    reference_number: str | None = Field(default=None, max_length=50)

    @model_validator(mode="after")
    def _balanced(self) -> "CreateJournalEntryInput":
        check_balanced(self.lines)
        return self


class UpdateJournalEntryInput(InputModel):
    entry_date: DateStr | None = None
    description: str | None = Field(default=None, min_length=1, max_length=500)
    lines: list[JournalLineInput] | None = Field(default=None, min_length=2, max_length=100)
    memo: str | None = Field(default=None, max_length=1000)
    reference_number: str | None = Field(default=None, max_length=50)

    @model_validator(mode="after")
    def _balanced(self) -> "UpdateJournalEntryInput":
        if self.lines is not None:
            check_balanced(self.lines)
        return self


class JournalEntryQuery(QueryParams):
    start_date: DateStr | None = None
    end_date: DateStr | None = None
    accounting_period_id: UUIDStr | None = None
    account_id: UUIDStr | None = None
    partner_id: UUIDStr | None = None
    status: JournalStatus | None = None

    @model_validator(mode="after")
    def _range(self) -> "JournalEntryQuery":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("開始日は終了日以前である必要があります")
        return self


class DeleteJournalEntryInput(InputModel):
    id: UUIDStr
    reason: str = Field(min_length=1, max_length=500)


class ApproveJournalEntryInput(InputModel):
    id: UUIDStr
    comment: str | None = Field(default=None, max_length=500)


class CancelJournalEntryInput(InputModel):
    id: UUIDStr
    reason: str = Field(min_length=1, max_length=500)
    reverse_entry: bool = False


class ImportJournalEntriesInput(InputModel):
    entries: list[CreateJournalEntryInput] = Field(min_length=1, max_length=500)
    validate_only: bool = False
    skip_errors: bool = False


class DuplicateJournalEntryInput(InputModel):
    id: UUIDStr
    new_date: DateStr
    adjust_description: bool = True


class SearchJournalEntriesInput(InputModel):
    query: str = Field(min_length=1, max_length=100)
    search_in: list[Literal["description", "memo", "reference_number"]] | None = None
    limit: int = Field(default=20, ge=1, le=100)
