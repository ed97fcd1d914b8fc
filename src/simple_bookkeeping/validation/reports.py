"""Input schemas for financial reports, ledgers and exports."""

from enum import Enum
from typing import Literal

from pydantic import Field, model_validator

from simple_bookkeeping.validation.common import DateRange, DateStr, InputModel, UUIDStr


class ReportType(str, Enum):
    BALANCE_SHEET = "balance-sheet"
    PROFIT_LOSS = "profit-loss"
    TRIAL_BALANCE = "trial-balance"
    CASH_FLOW = "cash-flow"


class LedgerType(str, Enum):
    CASH = "cash"
    BANK = "bank"
    RECEIVABLE = "receivable"
    PAYABLE = "payable"


class ReportPeriod(DateRange):
    compare_period: DateRange | None = None


class ReportOptions(InputModel):
    include_zero_balance: bool = False
    include_inactive_accounts: bool = False
    language: Literal["ja", "en"] = "ja"


class BalanceSheetParams(InputModel):
    as_of_date: DateStr
    options: ReportOptions = Field(default_factory=ReportOptions)


class ProfitLossParams(InputModel):
    period: ReportPeriod
    options: ReportOptions = Field(default_factory=ReportOptions)


class TrialBalanceParams(InputModel):
    as_of_date: DateStr
    start_date: DateStr | None = None

    @model_validator(mode="after")
    def _range(self) -> "TrialBalanceParams":
        if self.start_date and self.start_date > self.as_of_date:
            raise ValueError("開始日は終了日以前である必要があります")
        return self


class CashFlowParams(InputModel):
    period: ReportPeriod


class GeneralLedgerParams(InputModel):
    period: ReportPeriod
    account_ids: list[UUIDStr] | None = None


class LedgerBookParams(InputModel):
    ledger_type: LedgerType
    period: DateRange
    account_id: UUIDStr | None = None
    partner_id: UUIDStr | None = None


class ExportReportParams(InputModel):
    report_type: ReportType
    period: DateRange
    format: Literal["csv"] = "csv"
