"""Tests for financial statements and their CSV export."""

from datetime import date
from decimal import Decimal

import pytest

from conftest import account_id
from simple_bookkeeping.ledger.balances import split_at
from simple_bookkeeping.models import Account, AccountType
from simple_bookkeeping.reports.export import export_filename, export_report
from simple_bookkeeping.reports.statements import (
    build_balance_sheet,
    build_cash_flow,
    build_profit_and_loss,
    build_trial_balance,
    classify_cash_movement,
    is_cash_account,
)

AS_OF = date(2024, 6, 30)


def codes(section):
    return [item.code for item in section.items]


class TestBalanceSheet:
    """Tests for balance sheet categorization."""

    def test_sections(self, accounts, sample_lines):
        """Test that accounts land in the right sections."""
        sheet = build_balance_sheet(accounts, sample_lines, AS_OF)

        assert codes(sheet.current_assets) == ["1110", "1130"]
        assert codes(sheet.fixed_assets) == ["1540"]
        assert codes(sheet.current_liabilities) == ["2110"]
        assert codes(sheet.long_term_liabilities) == ["2510"]
        assert codes(sheet.capital) == ["3110"]
        assert sheet.retained_earnings.items == []

    def test_totals_balance(self, accounts, sample_lines):
        """Test that assets equal liabilities plus equity including income."""
        sheet = build_balance_sheet(accounts, sample_lines, AS_OF)

        assert sheet.total_assets == Decimal("1816500")
        assert sheet.total_liabilities == Decimal("610000")
        assert sheet.current_period_income == Decimal("206500")
        assert sheet.total_equity == Decimal("1206500")
        assert sheet.is_balanced

    def test_zero_balances_omitted(self, accounts, sample_lines):
        """Test that settled accounts are not listed."""
        sheet = build_balance_sheet(accounts, sample_lines, AS_OF)

        assert "1140" not in codes(sheet.current_assets)

    def test_short_term_loan_is_current(self, accounts, make_entry):
        """Test that a loan under current liabilities stays current."""
        entry = make_entry("s-0001", "2024-04-01", [("1130", 300000, 0), ("2130", 0, 300000)])

        sheet = build_balance_sheet(accounts, entry.lines, AS_OF)

        assert codes(sheet.current_liabilities) == ["2130"]
        assert sheet.long_term_liabilities.items == []

    def test_unbalanced_sheet_flagged(self, accounts, make_entry):
        """Test that corrupt one-sided data is reported, not hidden."""
        entry = make_entry("x-0001", "2024-04-01", [("1130", 100, 0)])

        sheet = build_balance_sheet(accounts, entry.lines, AS_OF)

        assert not sheet.is_balanced

    def test_to_dict_shape(self, accounts, sample_lines):
        """Test the serialized structure."""
        data = build_balance_sheet(accounts, sample_lines, AS_OF).to_dict()

        assert data["as_of_date"] == "2024-06-30"
        assert data["assets"]["total"] == Decimal("1816500")
        assert data["assets"]["fixed"]["items"][0] == {
            "id": account_id("1540"),
            "code": "1540",
            "name": "工具器具備品",
            "balance": Decimal("200000"),
        }
        assert data["equity"]["current_period_income"] == Decimal("206500")
        assert data["is_balanced"] is True


class TestProfitAndLoss:
    """Tests for profit and loss categorization."""

    def test_profit_levels(self, accounts, sample_lines):
        """Test gross, operating and net profit."""
        report = build_profit_and_loss(accounts, sample_lines, date(2024, 4, 1), AS_OF)

        assert codes(report.sales) == ["4110"]
        assert codes(report.cost_of_sales) == ["5110"]
        assert codes(report.operating_expenses) == ["7130"]
        assert codes(report.financial_expenses) == ["8110"]
        assert report.gross_profit == Decimal("220000")
        assert report.operating_profit == Decimal("208000")
        assert report.net_profit == Decimal("206500")

    def test_other_revenue_and_expenses(self, make_account, make_entry):
        """Test that unknown tags fall back to the "other" sections."""
        interest = make_account("4510", AccountType.REVENUE, "OTHER")
        loss = make_account("8190", AccountType.EXPENSE, "OTHER")
        bank = make_account("1130", AccountType.ASSET, "BANK")
        entries = [
            make_entry("o-0001", "2024-04-01", [("1130", 50, 0), ("4510", 0, 50)]),
            make_entry("o-0002", "2024-04-02", [("8190", 20, 0), ("1130", 0, 20)]),
        ]
        lines = [line for entry in entries for line in entry.lines]

        report = build_profit_and_loss([interest, loss, bank], lines)

        assert codes(report.other_revenue) == ["4510"]
        assert codes(report.other_expenses) == ["8190"]
        assert report.net_profit == Decimal("30")

    def test_japanese_category_fallback(self, make_entry):
        """Test that the category label is used when subcategory is missing."""
        sales = Account(
            id=account_id("4110"),
            code="4110",
            name="売上高",
            account_type=AccountType.REVENUE,
            category="売上高",
        )
        entry = make_entry("j-0001", "2024-04-01", [("1130", 10, 0), ("4110", 0, 10)])

        report = build_profit_and_loss([sales], entry.lines)

        assert codes(report.sales) == ["4110"]

    def test_cash_sale_is_net_profit(self, accounts, make_entry):
        """Test that a single cash sale is all profit."""
        entry = make_entry("c-0001", "2024-04-01", [("1110", 100000, 0), ("4110", 0, 100000)])

        report = build_profit_and_loss(accounts, entry.lines)

        assert report.total_revenue == Decimal("100000")
        assert report.total_expenses == Decimal("0")
        assert report.gross_profit == Decimal("100000")
        assert report.net_profit == Decimal("100000")

    @pytest.mark.parametrize(
        "activity",
        [
            [],
            [("4110", 250000), ("5110", 90000)],
            [("4110", 120000), ("4510", 300), ("5110", 150000), ("7130", 8000)],
            [("5110", 40000), ("8110", 1200)],
            [("4510", 75), ("7140", 5400), ("7190", 990)],
            [("4110", 1000000), ("5110", 640000), ("7130", 33000), ("8110", 2500)],
        ],
    )
    def test_gross_profit_plus_cost_of_sales_is_revenue(self, accounts, make_entry, activity):
        """Test the gross profit identity across mixes of revenue and cost."""
        lines = []
        for index, (code, amount) in enumerate(activity):
            if code.startswith("4"):
                pair = [("1130", amount, 0), (code, 0, amount)]
            else:
                pair = [(code, amount, 0), ("1130", 0, amount)]
            lines.extend(make_entry(f"g-{index:04d}", "2024-04-01", pair).lines)

        report = build_profit_and_loss(accounts, lines)

        assert report.gross_profit + report.cost_of_sales.total == report.total_revenue
        assert report.net_profit == report.total_revenue - report.total_expenses


class TestTrialBalance:
    """Tests for the trial balance."""

    def test_rows_and_totals(self, accounts, sample_lines):
        """Test per-account totals and overall balance."""
        report = build_trial_balance(accounts, sample_lines, AS_OF)

        assert len(report.rows) == 11
        assert report.debit_total == report.credit_total == Decimal("2483500")
        assert report.debit_balance == report.credit_balance == Decimal("1952000")
        assert report.is_balanced

    def test_net_side(self, accounts, sample_lines):
        """Test that the net shows on the debit or credit side."""
        report = build_trial_balance(accounts, sample_lines, AS_OF)
        rows = {row.account.code: row for row in report.rows}

        assert rows["1130"].debit_balance == Decimal("1628500")
        assert rows["1130"].credit_balance == Decimal("0")
        assert rows["1110"].credit_balance == Decimal("12000")
        assert rows["1140"].debit_balance == rows["1140"].credit_balance == Decimal("0")

    def test_tolerance(self, accounts, make_entry):
        """Test that sub-cent differences still count as balanced."""
        entry = make_entry("t-0001", "2024-04-01", [("1130", "100.005", 0), ("4110", 0, "100")])

        assert build_trial_balance(accounts, entry.lines).is_balanced


class TestCashFlow:
    """Tests for the direct-method cash flow statement."""

    def test_categories(self, accounts, sample_entries):
        """Test operating, investing and financing classification."""
        statement = build_cash_flow(accounts, sample_entries)

        assert statement.operating.receipts_total == Decimal("330000")
        assert statement.operating.payments_total == Decimal("13500")
        assert statement.investing.net == Decimal("-200000")
        assert statement.financing.net == Decimal("1500000")
        assert statement.net_change == Decimal("1616500")
        assert statement.ending_cash == Decimal("1616500")

    def test_opening_balance(self, accounts, sample_entries):
        """Test that cash before the period becomes the beginning balance."""
        lines = [line for entry in sample_entries for line in entry.lines]
        opening, _ = split_at(lines, date(2024, 5, 1))
        in_range = [entry for entry in sample_entries if entry.entry_date >= date(2024, 5, 1)]

        statement = build_cash_flow(accounts, in_range, opening, date(2024, 5, 1), AS_OF)

        assert statement.beginning_cash == Decimal("1000000")
        assert statement.net_change == Decimal("616500")
        assert statement.ending_cash == Decimal("1616500")
        assert statement.to_dict()["period"]["start_date"] == "2024-05-01"

    def test_transfer_between_cash_accounts_ignored(self, accounts, make_entry):
        """Test that moving money between cash and bank has no impact."""
        entry = make_entry("c-0001", "2024-04-01", [("1110", 1000, 0), ("1130", 0, 1000)])

        statement = build_cash_flow(accounts, [entry])

        assert statement.net_change == Decimal("0")
        assert statement.operating.receipts == []

    def test_investing_wins_over_financing(self, accounts_by_code):
        """Test classification precedence for mixed entries."""
        assert classify_cash_movement([accounts_by_code["1540"], accounts_by_code["2510"]]) == "investing"
        assert classify_cash_movement([accounts_by_code["2510"]]) == "financing"
        assert classify_cash_movement([accounts_by_code["4110"]]) == "operating"
        assert classify_cash_movement([]) == "operating"

    def test_is_cash_account(self, accounts_by_code):
        """Test cash and bank detection."""
        assert is_cash_account(accounts_by_code["1110"])
        assert is_cash_account(accounts_by_code["1130"])
        assert not is_cash_account(accounts_by_code["1140"])


class TestExport:
    """Tests for CSV rendering of reports."""

    def test_balance_sheet_csv(self, accounts, sample_lines):
        """Test balance sheet rows."""
        sheet = build_balance_sheet(accounts, sample_lines, AS_OF)

        content = export_report("balance-sheet", sheet)
        lines = content.splitlines()

        assert lines[0] == "Balance Sheet"
        assert lines[1] == "As of,2024-06-30"
        assert "Category,Account Code,Account Name,Balance" in lines
        assert ",1130,普通預金,1628500" in lines
        assert "Total Assets,,,1816500" in lines
        assert "Total Liabilities and Equity,,,1816500" in lines

    def test_profit_and_loss_csv(self, accounts, sample_lines):
        """Test profit and loss summary rows."""
        report = build_profit_and_loss(accounts, sample_lines)

        lines = export_report("profit-loss", report).splitlines()

        assert "Gross Profit,,,220000" in lines
        assert "Net Profit,,,206500" in lines

    def test_trial_balance_csv(self, accounts, sample_lines):
        """Test trial balance totals row."""
        report = build_trial_balance(accounts, sample_lines, AS_OF)

        lines = export_report("trial-balance", report).splitlines()

        assert "TOTALS,,2483500,2483500,1952000,1952000" in lines
        assert lines[-1] == "Balanced: Yes"

    def test_cash_flow_csv(self, accounts, sample_entries):
        """Test that payments are shown as negative amounts."""
        statement = build_cash_flow(accounts, sample_entries)

        lines = export_report("cash-flow", statement).splitlines()

        assert ",パソコン購入,-200000" in lines
        assert "Net Cash from Investing Activities,,-200000" in lines
        assert "Ending Cash Balance,,1616500" in lines

    def test_unsupported_format(self, accounts, sample_lines):
        """Test that only CSV is supported."""
        sheet = build_balance_sheet(accounts, sample_lines, AS_OF)

        with pytest.raises(ValueError, match="Unsupported export format"):
            export_report("balance-sheet", sheet, "pdf")

    def test_unknown_report_type(self):
        """Test that unknown report types are rejected."""
        with pytest.raises(ValueError, match="Unknown report type"):
            export_report("general-ledger", object())

    def test_filename(self):
        """Test export filenames."""
        assert export_filename("trial-balance", "20250331") == "trial-balance-20250331.csv"
