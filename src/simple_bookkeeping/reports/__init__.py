"""Financial statements and their CSV export."""

from simple_bookkeeping.reports.export import export_report
from simple_bookkeeping.reports.statements import (
    BalanceSheet,
    CashFlowStatement,
    ProfitAndLoss,
    TrialBalance,
    build_balance_sheet,
    build_cash_flow,
    build_profit_and_loss,
    build_trial_balance,
)

__all__ = [
    "BalanceSheet",
    "CashFlowStatement",
    "ProfitAndLoss",
    "TrialBalance",
    "build_balance_sheet",
    "build_cash_flow",
    "build_profit_and_loss",
    "build_trial_balance",
    "export_report",
]
