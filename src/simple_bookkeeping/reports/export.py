"""CSV rendering of financial statements."""

import csv
import io
from collections.abc import Callable, Iterable
from typing import Any

from simple_bookkeeping.models import format_amount
from simple_bookkeeping.reports.statements import (
    BalanceSheet,
    CashFlowSection,
    CashFlowStatement,
    ProfitAndLoss,
    ReportItem,
    TrialBalance,
)

SUPPORTED_FORMATS = ("csv",)

Row = list[str]


def _item_rows(items: Iterable[ReportItem]) -> list[Row]:
    return [["", item.code, item.name, format_amount(item.balance)] for item in items]


def _render(rows: Iterable[Row]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerows(rows)
    return output.getvalue()


def balance_sheet_rows(sheet: BalanceSheet) -> list[Row]:
    rows: list[Row] = [["Balance Sheet"], []]
    if sheet.as_of_date:
        rows.insert(1, ["As of", sheet.as_of_date.isoformat()])
    rows.append(["Category", "Account Code", "Account Name", "Balance"])

    rows += [["ASSETS"], ["Current Assets"], *_item_rows(sheet.current_assets.items)]
    rows += [["Fixed Assets"], *_item_rows(sheet.fixed_assets.items)]
    rows.append(["Total Assets", "", "", format_amount(sheet.total_assets)])

    rows += [[], ["LIABILITIES"], ["Current Liabilities"]]
    rows += _item_rows(sheet.current_liabilities.items)
    rows += [["Long-term Liabilities"], *_item_rows(sheet.long_term_liabilities.items)]
    rows.append(["Total Liabilities", "", "", format_amount(sheet.total_liabilities)])

    rows += [[], ["EQUITY"], ["Capital"], *_item_rows(sheet.capital.items)]
    rows += [["Retained Earnings"], *_item_rows(sheet.retained_earnings.items)]
    rows.append(["Current Period Income", "", "", format_amount(sheet.current_period_income)])
    rows.append(["Total Equity", "", "", format_amount(sheet.total_equity)])

    rows.append([])
    rows.append(
        [
            "Total Liabilities and Equity",
            "",
            "",
            format_amount(sheet.total_liabilities_and_equity),
        ]
    )
    return rows


def profit_and_loss_rows(report: ProfitAndLoss) -> list[Row]:
    rows: list[Row] = [["Profit & Loss Statement"], []]
    rows.append(["Category", "Account Code", "Account Name", "Amount"])

    rows += [["REVENUE"], ["Sales"], *_item_rows(report.sales.items)]
    rows += [["Other Revenue"], *_item_rows(report.other_revenue.items)]
    rows.append(["Total Revenue", "", "", format_amount(report.total_revenue)])

    rows += [[], ["EXPENSES"]]
    rows += [["Cost of Sales"], *_item_rows(report.cost_of_sales.items)]
    rows += [["Operating Expenses"], *_item_rows(report.operating_expenses.items)]
    rows += [["Financial Expenses"], *_item_rows(report.financial_expenses.items)]
    rows += [["Other Expenses"], *_item_rows(report.other_expenses.items)]
    rows.append(["Total Expenses", "", "", format_amount(report.total_expenses)])

    rows.append([])
    rows.append(["Gross Profit", "", "", format_amount(report.gross_profit)])
    rows.append(["Operating Profit", "", "", format_amount(report.operating_profit)])
    rows.append(["Net Profit", "", "", format_amount(report.net_profit)])
    return rows


def trial_balance_rows(report: TrialBalance) -> list[Row]:
    rows: list[Row] = [["Trial Balance"], []]
    rows.append(
        [
            "Account Code",
            "Account Name",
            "Debit Total",
            "Credit Total",
            "Debit Balance",
            "Credit Balance",
        ]
    )
    for row in report.rows:
        rows.append(
            [
                row.account.code,
                row.account.name,
                format_amount(row.debit_total),
                format_amount(row.credit_total),
                format_amount(row.debit_balance),
                format_amount(row.credit_balance),
            ]
        )
    rows.append([])
    rows.append(
        [
            "TOTALS",
            "",
            format_amount(report.debit_total),
            format_amount(report.credit_total),
            format_amount(report.debit_balance),
            format_amount(report.credit_balance),
        ]
    )
    rows.append([])
    rows.append([f"Balanced: {'Yes' if report.is_balanced else 'No'}"])
    return rows


def _cash_flow_section_rows(title: str, label: str, section: CashFlowSection) -> list[Row]:
    rows: list[Row] = [[title], ["Receipts"]]
    rows += [["", item.description, format_amount(item.amount)] for item in section.receipts]
    rows.append(["Payments"])
    rows += [["", item.description, format_amount(-item.amount)] for item in section.payments]
    rows.append([f"Net Cash from {label} Activities", "", format_amount(section.net)])
    return rows


def cash_flow_rows(statement: CashFlowStatement) -> list[Row]:
    rows: list[Row] = [["Cash Flow Statement"], []]
    rows.append(["Category", "Description", "Amount"])
    rows += _cash_flow_section_rows("OPERATING ACTIVITIES", "Operating", statement.operating)
    rows.append([])
    rows += _cash_flow_section_rows("INVESTING ACTIVITIES", "Investing", statement.investing)
    rows.append([])
    rows += _cash_flow_section_rows("FINANCING ACTIVITIES", "Financing", statement.financing)
    rows.append([])
    rows.append(["Beginning Cash Balance", "", format_amount(statement.beginning_cash)])
    rows.append(["Net Change in Cash", "", format_amount(statement.net_change)])
    rows.append(["Ending Cash Balance", "", format_amount(statement.ending_cash)])
    return rows


_ROW_BUILDERS: dict[str, Callable[[Any], list[Row]]] = {
    "balance-sheet": balance_sheet_rows,
    "profit-loss": profit_and_loss_rows,
    "trial-balance": trial_balance_rows,
    "cash-flow": cash_flow_rows,
}


def export_report(report_type: str, report: Any, export_format: str = "csv") -> str:
    """Render a built report as text in ``export_format``.

    Raises:
        ValueError: If the report type or format is not supported.
    """
    if export_format not in SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported export format: {export_format}")
    builder = _ROW_BUILDERS.get(report_type)
    if builder is None:
        raise ValueError(f"Unknown report type: {report_type}")
    return _render(builder(report))


def export_filename(report_type: str, stamp: str, export_format: str = "csv") -> str:
    return f"{report_type}-{stamp}.{export_format}"
