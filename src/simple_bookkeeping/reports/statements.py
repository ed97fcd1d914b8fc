"""Financial statements built from account balances.

Accounts are bucketed by their subcategory tag (falling back to the
category label when no subcategory is set). Both the English tags used by
the report API and the Japanese headings of the seeded chart are accepted.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

import structlog

from simple_bookkeeping.ledger.balances import AccountBalance, aggregate_account_balances
from simple_bookkeeping.models import ZERO, Account, AccountType, JournalEntry, JournalLine

logger = structlog.get_logger(__name__)

CURRENT_ASSET_TAGS = frozenset(
    {"CURRENT", "CASH", "BANK", "RECEIVABLE", "INVENTORY", "流動資産", "現金", "預金", "現金同等物"}
)
CURRENT_LIABILITY_TAGS = frozenset({"CURRENT", "流動負債"})
CAPITAL_TAGS = frozenset({"CAPITAL", "資本金", "元入金"})
SALES_TAGS = frozenset({"SALES", "売上高", "売上"})
COST_OF_SALES_TAGS = frozenset({"COST_OF_SALES", "売上原価"})
OPERATING_TAGS = frozenset({"OPERATING", "販売費及び一般管理費", "販管費"})
FINANCIAL_TAGS = frozenset({"FINANCIAL", "営業外費用"})
CASH_TAGS = frozenset({"CASH", "BANK", "現金", "預金", "現金同等物"})
INVESTING_TAGS = frozenset({"FIXED_ASSET", "INVESTMENT", "固定資産", "投資その他の資産"})
FINANCING_TAGS = frozenset({"LOAN", "CAPITAL", "借入金", "資本金"})


def account_tag(account: Account) -> str:
    return (account.subcategory or account.category or "").strip()


def is_cash_account(account: Account) -> bool:
    return account_tag(account) in CASH_TAGS


@dataclass
class ReportItem:
    account_id: str
    code: str
    name: str
    balance: Decimal

    @classmethod
    def from_balance(cls, entry: AccountBalance) -> "ReportItem":
        return cls(
            account_id=entry.account.id,
            code=entry.account.code,
            name=entry.account.name,
            balance=entry.balance,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.account_id,
            "code": self.code,
            "name": self.name,
            "balance": self.balance,
        }


@dataclass
class Section:
    items: list[ReportItem] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return sum((item.balance for item in self.items), ZERO)

    def add(self, item: ReportItem) -> None:
        self.items.append(item)

    def to_dict(self) -> dict[str, Any]:
        return {"items": [item.to_dict() for item in self.items], "total": self.total}


def _nonzero_balances(
    accounts: Iterable[Account], lines: Iterable[JournalLine]
) -> list[AccountBalance]:
    balances = aggregate_account_balances(accounts, lines).values()
    return sorted(
        (entry for entry in balances if entry.balance != ZERO),
        key=lambda entry: entry.account.code,
    )


# === Balance sheet ===


@dataclass
class BalanceSheet:
    as_of_date: date | None
    current_assets: Section = field(default_factory=Section)
    fixed_assets: Section = field(default_factory=Section)
    current_liabilities: Section = field(default_factory=Section)
    long_term_liabilities: Section = field(default_factory=Section)
    capital: Section = field(default_factory=Section)
    retained_earnings: Section = field(default_factory=Section)
    current_period_income: Decimal = ZERO

    @property
    def total_assets(self) -> Decimal:
        return self.current_assets.total + self.fixed_assets.total

    @property
    def total_liabilities(self) -> Decimal:
        return self.current_liabilities.total + self.long_term_liabilities.total

    @property
    def total_equity(self) -> Decimal:
        return self.capital.total + self.retained_earnings.total + self.current_period_income

    @property
    def total_liabilities_and_equity(self) -> Decimal:
        return self.total_liabilities + self.total_equity

    @property
    def is_balanced(self) -> bool:
        return self.total_assets == self.total_liabilities_and_equity

    def to_dict(self) -> dict[str, Any]:
        return {
            "as_of_date": self.as_of_date.isoformat() if self.as_of_date else None,
            "assets": {
                "current": self.current_assets.to_dict(),
                "fixed": self.fixed_assets.to_dict(),
                "total": self.total_assets,
            },
            "liabilities": {
                "current": self.current_liabilities.to_dict(),
                "long_term": self.long_term_liabilities.to_dict(),
                "total": self.total_liabilities,
            },
            "equity": {
                "capital": self.capital.to_dict(),
                "retained_earnings": self.retained_earnings.to_dict(),
                "current_period_income": self.current_period_income,
                "total": self.total_equity,
            },
            "total_liabilities_and_equity": self.total_liabilities_and_equity,
            "is_balanced": self.is_balanced,
        }


def build_balance_sheet(
    accounts: Iterable[Account], lines: Iterable[JournalLine], as_of_date: date | None = None
) -> BalanceSheet:
    """Categorize cumulative balances up to ``as_of_date`` into a balance sheet.

    Revenue and expense accounts are not listed; their difference is carried
    into equity as ``current_period_income`` so the sheet balances before
    closing entries are posted.
    """
    sheet = BalanceSheet(as_of_date=as_of_date)
    income = ZERO

    for entry in _nonzero_balances(accounts, lines):
        account = entry.account
        tag = account_tag(account)
        item = ReportItem.from_balance(entry)

        if account.account_type == AccountType.ASSET:
            target = sheet.current_assets if tag in CURRENT_ASSET_TAGS else sheet.fixed_assets
            target.add(item)
        elif account.account_type == AccountType.LIABILITY:
            target = (
                sheet.current_liabilities
                if tag in CURRENT_LIABILITY_TAGS or account.category in CURRENT_LIABILITY_TAGS
                else sheet.long_term_liabilities
            )
            target.add(item)
        elif account.account_type == AccountType.EQUITY:
            target = sheet.capital if tag in CAPITAL_TAGS else sheet.retained_earnings
            target.add(item)
        elif account.account_type == AccountType.REVENUE:
            income += entry.balance
        else:
            income -= entry.balance

    sheet.current_period_income = income
    if not sheet.is_balanced:
        logger.warning(
            "balance_sheet_unbalanced",
            assets=str(sheet.total_assets),
            liabilities_and_equity=str(sheet.total_liabilities_and_equity),
        )
    return sheet


# === Profit and loss ===


@dataclass
class ProfitAndLoss:
    start_date: date | None
    end_date: date | None
    sales: Section = field(default_factory=Section)
    other_revenue: Section = field(default_factory=Section)
    cost_of_sales: Section = field(default_factory=Section)
    operating_expenses: Section = field(default_factory=Section)
    financial_expenses: Section = field(default_factory=Section)
    other_expenses: Section = field(default_factory=Section)

    @property
    def total_revenue(self) -> Decimal:
        return self.sales.total + self.other_revenue.total

    @property
    def total_expenses(self) -> Decimal:
        return (
            self.cost_of_sales.total
            + self.operating_expenses.total
            + self.financial_expenses.total
            + self.other_expenses.total
        )

    @property
    def gross_profit(self) -> Decimal:
        return self.total_revenue - self.cost_of_sales.total

    @property
    def operating_profit(self) -> Decimal:
        return self.gross_profit - self.operating_expenses.total

    @property
    def net_profit(self) -> Decimal:
        return self.total_revenue - self.total_expenses

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": {
                "start_date": self.start_date.isoformat() if self.start_date else None,
                "end_date": self.end_date.isoformat() if self.end_date else None,
            },
            "revenue": {
                "sales": self.sales.to_dict(),
                "other": self.other_revenue.to_dict(),
                "total": self.total_revenue,
            },
            "expenses": {
                "cost_of_sales": self.cost_of_sales.to_dict(),
                "operating": self.operating_expenses.to_dict(),
                "financial": self.financial_expenses.to_dict(),
                "other": self.other_expenses.to_dict(),
                "total": self.total_expenses,
            },
            "gross_profit": self.gross_profit,
            "operating_profit": self.operating_profit,
            "net_profit": self.net_profit,
        }


def build_profit_and_loss(
    accounts: Iterable[Account],
    lines: Iterable[JournalLine],
    start_date: date | None = None,
    end_date: date | None = None,
) -> ProfitAndLoss:
    """Categorize revenue and expense activity of a period."""
    report = ProfitAndLoss(start_date=start_date, end_date=end_date)

    for entry in _nonzero_balances(accounts, lines):
        account = entry.account
        tag = account_tag(account)
        item = ReportItem.from_balance(entry)

        if account.account_type == AccountType.REVENUE:
            (report.sales if tag in SALES_TAGS else report.other_revenue).add(item)
        elif account.account_type == AccountType.EXPENSE:
            if tag in COST_OF_SALES_TAGS:
                report.cost_of_sales.add(item)
            elif tag in OPERATING_TAGS:
                report.operating_expenses.add(item)
            elif tag in FINANCIAL_TAGS:
                report.financial_expenses.add(item)
            else:
                report.other_expenses.add(item)
    return report


# === Trial balance ===


@dataclass
class TrialBalanceRow:
    account: Account
    debit_total: Decimal
    credit_total: Decimal

    @property
    def net(self) -> Decimal:
        return self.debit_total - self.credit_total

    @property
    def debit_balance(self) -> Decimal:
        return self.net if self.net > ZERO else ZERO

    @property
    def credit_balance(self) -> Decimal:
        return -self.net if self.net < ZERO else ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account.id,
            "account_code": self.account.code,
            "account_name": self.account.name,
            "account_type": self.account.account_type.value,
            "debit_total": self.debit_total,
            "credit_total": self.credit_total,
            "debit_balance": self.debit_balance,
            "credit_balance": self.credit_balance,
        }


@dataclass
class TrialBalance:
    as_of_date: date | None
    rows: list[TrialBalanceRow] = field(default_factory=list)

    @property
    def debit_total(self) -> Decimal:
        return sum((row.debit_total for row in self.rows), ZERO)

    @property
    def credit_total(self) -> Decimal:
        return sum((row.credit_total for row in self.rows), ZERO)

    @property
    def debit_balance(self) -> Decimal:
        return sum((row.debit_balance for row in self.rows), ZERO)

    @property
    def credit_balance(self) -> Decimal:
        return sum((row.credit_balance for row in self.rows), ZERO)

    @property
    def is_balanced(self) -> bool:
        return abs(self.debit_total - self.credit_total) < Decimal("0.01")

    def to_dict(self) -> dict[str, Any]:
        return {
            "as_of_date": self.as_of_date.isoformat() if self.as_of_date else None,
            "items": [row.to_dict() for row in self.rows],
            "totals": {
                "debit_total": self.debit_total,
                "credit_total": self.credit_total,
                "debit_balance": self.debit_balance,
                "credit_balance": self.credit_balance,
            },
            "is_balanced": self.is_balanced,
        }


def build_trial_balance(
    accounts: Iterable[Account], lines: Iterable[JournalLine], as_of_date: date | None = None
) -> TrialBalance:
    """Debit/credit totals per account with activity, ordered by code.

    The net of each account is shown on the debit side when positive and
    on the credit side when negative.
    """
    report = TrialBalance(as_of_date=as_of_date)
    balances = aggregate_account_balances(accounts, lines).values()
    for entry in sorted(balances, key=lambda e: e.account.code):
        if not entry.has_activity:
            continue
        report.rows.append(
            TrialBalanceRow(
                account=entry.account,
                debit_total=entry.debit_total,
                credit_total=entry.credit_total,
            )
        )
    return report


# === Cash flow ===

CASH_FLOW_CATEGORIES = ("operating", "investing", "financing")


@dataclass
class CashMovement:
    journal_entry_id: str
    entry_date: date
    description: str
    amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "journal_entry_id": self.journal_entry_id,
            "date": self.entry_date.isoformat(),
            "description": self.description,
            "amount": self.amount,
        }


@dataclass
class CashFlowSection:
    receipts: list[CashMovement] = field(default_factory=list)
    payments: list[CashMovement] = field(default_factory=list)

    @property
    def receipts_total(self) -> Decimal:
        return sum((item.amount for item in self.receipts), ZERO)

    @property
    def payments_total(self) -> Decimal:
        return sum((item.amount for item in self.payments), ZERO)

    @property
    def net(self) -> Decimal:
        return self.receipts_total - self.payments_total

    def to_dict(self) -> dict[str, Any]:
        return {
            "receipts": [item.to_dict() for item in self.receipts],
            "payments": [item.to_dict() for item in self.payments],
            "net": self.net,
        }


@dataclass
class CashFlowStatement:
    start_date: date | None
    end_date: date | None
    operating: CashFlowSection = field(default_factory=CashFlowSection)
    investing: CashFlowSection = field(default_factory=CashFlowSection)
    financing: CashFlowSection = field(default_factory=CashFlowSection)
    beginning_cash: Decimal = ZERO

    def section(self, name: str) -> CashFlowSection:
        return getattr(self, name)

    @property
    def net_change(self) -> Decimal:
        return self.operating.net + self.investing.net + self.financing.net

    @property
    def ending_cash(self) -> Decimal:
        return self.beginning_cash + self.net_change

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": {
                "start_date": self.start_date.isoformat() if self.start_date else None,
                "end_date": self.end_date.isoformat() if self.end_date else None,
            },
            "operating": self.operating.to_dict(),
            "investing": self.investing.to_dict(),
            "financing": self.financing.to_dict(),
            "beginning_cash": self.beginning_cash,
            "net_change": self.net_change,
            "ending_cash": self.ending_cash,
        }


def classify_cash_movement(counter_accounts: Iterable[Account]) -> str:
    """Cash flow category implied by the non-cash side of an entry."""
    tags = {account_tag(account) for account in counter_accounts}
    if tags & INVESTING_TAGS:
        return "investing"
    if tags & FINANCING_TAGS:
        return "financing"
    return "operating"


def build_cash_flow(
    accounts: Iterable[Account],
    entries: Iterable[JournalEntry],
    opening_lines: Iterable[JournalLine] = (),
    start_date: date | None = None,
    end_date: date | None = None,
) -> CashFlowStatement:
    """Direct-method cash flow statement.

    Each entry touching a cash or bank account contributes its net cash
    impact (debit minus credit on cash lines) as a receipt or payment,
    categorized by the entry's other accounts.
    """
    accounts_by_id: Mapping[str, Account] = {account.id: account for account in accounts}
    cash_ids = {aid for aid, account in accounts_by_id.items() if is_cash_account(account)}

    statement = CashFlowStatement(start_date=start_date, end_date=end_date)
    statement.beginning_cash = sum(
        (line.net for line in opening_lines if line.account_id in cash_ids), ZERO
    )

    for entry in sorted(entries, key=lambda e: (e.entry_date, e.entry_number)):
        impact = ZERO
        counter_accounts: list[Account] = []
        for line in entry.lines:
            if line.account_id in cash_ids:
                impact += line.net
            elif line.account_id in accounts_by_id:
                counter_accounts.append(accounts_by_id[line.account_id])
        if impact == ZERO:
            continue

        section = statement.section(classify_cash_movement(counter_accounts))
        movement = CashMovement(
            journal_entry_id=entry.id,
            entry_date=entry.entry_date,
            description=entry.description or "Cash transaction",
            amount=abs(impact),
        )
        (section.receipts if impact > ZERO else section.payments).append(movement)
    return statement
