"""Conversion of simple (pattern based) entries into journal lines.

Users who do not know double-entry bookkeeping pick a transaction pattern
such as "cash sale" and enter an amount; the converter produces the
balanced journal lines, optionally splitting out consumption tax.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_FLOOR, Decimal
from typing import Any

import structlog
from pydantic import Field

from simple_bookkeeping.config.loaders import load_transaction_patterns
from simple_bookkeeping.models import ZERO, Account
from simple_bookkeeping.validation.common import Amount, DateStr, InputModel

logger = structlog.get_logger(__name__)

SALE_PATTERNS = frozenset({"cash_sale", "credit_sale"})
PURCHASE_PATTERNS = frozenset({"cash_purchase", "credit_purchase", "expense_cash", "expense_bank"})


class SimpleEntryInput(InputModel):
    transaction_type: str = Field(min_length=1)
    amount: Amount
    entry_date: DateStr
    description: str | None = Field(default=None, max_length=500)
    selected_account: str | None = Field(default=None, description="Account code picked by the user")
    contra_account: str | None = Field(default=None, description="Credit side code for transfers")
    tax_rate: Decimal | None = Field(default=None, ge=0, le=100)
    partner_id: str | None = None


@dataclass
class SimpleEntryConversion:
    entry_date: date
    description: str
    lines: list[dict[str, Any]] = field(default_factory=list)
    validation_errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.validation_errors


def calculate_tax(amount: Decimal, tax_rate: Decimal | None) -> Decimal:
    """Tax included in ``amount``: ``floor(amount * rate / 100)``."""
    if not tax_rate:
        return ZERO
    return (amount * tax_rate / 100).to_integral_value(rounding=ROUND_FLOOR)


class SimpleEntryConverter:
    """Turns a ``SimpleEntryInput`` into balanced journal lines.

    Accounts are looked up by code among the organization's accounts.
    """

    def __init__(self, accounts: Iterable[Account], patterns: dict[str, Any] | None = None):
        self._account_ids = {account.code: account.id for account in accounts}
        data = patterns if patterns is not None else load_transaction_patterns()
        self._patterns: dict[str, dict[str, Any]] = data["patterns"]
        self._tax_accounts: dict[str, str] = data.get("tax_accounts") or {}

    @property
    def patterns(self) -> dict[str, dict[str, Any]]:
        return self._patterns

    def requires_account_selection(self, transaction_type: str) -> bool:
        pattern = self._patterns.get(transaction_type) or {}
        return "account" in (pattern.get("required") or [])

    def _account_id(self, code: str | None, errors: list[str]) -> str | None:
        if not code:
            return None
        account_id = self._account_ids.get(str(code))
        if account_id is None:
            errors.append(f"勘定科目({code})が見つかりません")
        return account_id

    def validate(self, data: SimpleEntryInput) -> list[str]:
        pattern = self._patterns.get(data.transaction_type)
        if pattern is None:
            return ["無効な取引タイプです"]

        errors: list[str] = []
        required = pattern.get("required") or []
        if "amount" in required and data.amount <= 0:
            errors.append("金額を入力してください")
        if "account" in required and not data.selected_account:
            errors.append("勘定科目を選択してください")
        return errors

    def generate_description(self, data: SimpleEntryInput) -> str:
        pattern = self._patterns[data.transaction_type]
        return f"{data.entry_date.month}/{data.entry_date.day} {pattern['name']}"

    def convert(self, data: SimpleEntryInput) -> SimpleEntryConversion:
        result = SimpleEntryConversion(
            entry_date=data.entry_date,
            description=data.description or "",
            validation_errors=self.validate(data),
        )
        if not result.is_valid:
            return result

        pattern = self._patterns[data.transaction_type]
        result.description = data.description or self.generate_description(data)
        errors = result.validation_errors

        if data.transaction_type == "transfer":
            debit_code = data.selected_account
            credit_code = data.contra_account or pattern.get("credit")
        else:
            debit_code = pattern.get("debit") or data.selected_account
            credit_code = pattern.get("credit")

        debit_id = self._account_id(debit_code, errors)
        credit_id = self._account_id(credit_code, errors)
        if debit_id is not None and debit_id == credit_id:
            errors.append("借方と貸方に同じ勘定科目は指定できません")

        amount = data.amount
        tax = calculate_tax(amount, data.tax_rate)
        if tax > 0 and data.transaction_type in SALE_PATTERNS:
            tax_id = self._account_id(self._tax_accounts.get("output"), errors)
            lines = [
                (debit_id, amount, ZERO),
                (credit_id, ZERO, amount - tax),
                (tax_id, ZERO, tax),
            ]
        elif tax > 0 and data.transaction_type in PURCHASE_PATTERNS:
            tax_id = self._account_id(self._tax_accounts.get("input"), errors)
            lines = [
                (debit_id, amount - tax, ZERO),
                (tax_id, tax, ZERO),
                (credit_id, ZERO, amount),
            ]
        else:
            lines = [(debit_id, amount, ZERO), (credit_id, ZERO, amount)]

        if any(account_id is None for account_id, _, _ in lines) and not errors:
            errors.append("勘定科目が設定されていません")
        if errors:
            logger.debug("simple_entry_rejected", transaction_type=data.transaction_type, errors=errors)
            return result

        for account_id, debit, credit in lines:
            if debit == 0 and credit == 0:
                continue
            line: dict[str, Any] = {"account_id": account_id}
            if debit > 0:
                line["debit"] = debit
            else:
                line["credit"] = credit
            if data.partner_id:
                line["partner_id"] = data.partner_id
            result.lines.append(line)
        return result
