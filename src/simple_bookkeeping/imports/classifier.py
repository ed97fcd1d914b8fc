"""Rule based account suggestions for imported bank rows."""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from simple_bookkeeping.imports.csv_parser import TransactionType
from simple_bookkeeping.models import Account

logger = structlog.get_logger(__name__)

DEFAULT_RULE_CONFIDENCE = 0.8
INCOME_CONFIDENCE = 0.6
KEYWORD_CONFIDENCE = 0.7
DEFAULT_CONFIDENCE = 0.3


@dataclass
class ImportRule:
    """User defined mapping from a description pattern to accounts.

    ``description_pattern`` is a plain keyword, or a regular expression when
    wrapped in slashes (``/^amazon/``).
    """

    id: str
    description_pattern: str
    account_id: str
    contra_account_id: str
    confidence: float | None = None
    usage_count: int = 0
    is_active: bool = True

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ImportRule":
        confidence = row.get("confidence")
        return cls(
            id=str(row["id"]),
            description_pattern=str(row["description_pattern"]),
            account_id=str(row["account_id"]),
            contra_account_id=str(row["contra_account_id"]),
            confidence=float(confidence) if confidence is not None else None,
            usage_count=int(row.get("usage_count") or 0),
            is_active=bool(row.get("is_active", True)),
        )

    def matches(self, description: str) -> bool:
        pattern = self.description_pattern.lower()
        if len(pattern) > 1 and pattern.startswith("/") and pattern.endswith("/"):
            try:
                return re.search(pattern[1:-1], description, re.IGNORECASE) is not None
            except re.error:
                logger.debug("invalid_rule_pattern", rule_id=self.id)
        return pattern in description.lower()


@dataclass
class AccountSuggestion:
    """Debit account and contra (credit) account proposed for a row."""

    account_id: str
    contra_account_id: str
    confidence: float
    reason: str
    rule_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "contra_account_id": self.contra_account_id,
            "confidence": self.confidence,
            "reason": self.reason,
            "rule_id": self.rule_id,
        }


def find_matching_rule(description: str, rules: Iterable[ImportRule]) -> ImportRule | None:
    for rule in rules:
        if rule.is_active and rule.matches(description):
            return rule
    return None


def _find_account(accounts: Sequence[Account], code: str, name_part: str) -> Account | None:
    """The account with ``code``, else the first whose name contains ``name_part``."""
    by_code = next((account for account in accounts if account.code == code), None)
    if by_code is not None:
        return by_code
    return next((account for account in accounts if name_part in account.name), None)


def _bank_account(accounts: Sequence[Account]) -> Account | None:
    return _find_account(accounts, "1130", "普通預金")


def _revenue_account(accounts: Sequence[Account]) -> Account | None:
    return _find_account(accounts, "4110", "売上")


# (keywords, account code, account name fragment, reason)
EXPENSE_KEYWORD_RULES: tuple[tuple[tuple[str, ...], str, str, str], ...] = (
    (("電気", "ガス", "水道"), "7130", "水道光熱費", "Utility expense pattern"),
    (("電話", "携帯", "インターネット"), "7140", "通信費", "Communication expense pattern"),
    (("jr", "電車", "交通"), "7110", "旅費交通費", "Travel expense pattern"),
)


def suggest_by_keywords(
    description: str, transaction_type: TransactionType | None, accounts: Sequence[Account]
) -> AccountSuggestion | None:
    text = description.lower()
    bank = _bank_account(accounts)
    if bank is None:
        return None

    if transaction_type == "income" or "入金" in text or "振込" in text:
        revenue = _revenue_account(accounts)
        if revenue is not None:
            return AccountSuggestion(
                account_id=bank.id,
                contra_account_id=revenue.id,
                confidence=INCOME_CONFIDENCE,
                reason="Income pattern detected",
            )

    if transaction_type == "expense":
        for keywords, code, name_part, reason in EXPENSE_KEYWORD_RULES:
            if not any(keyword in text for keyword in keywords):
                continue
            expense = _find_account(accounts, code, name_part)
            if expense is not None:
                return AccountSuggestion(
                    account_id=expense.id,
                    contra_account_id=bank.id,
                    confidence=KEYWORD_CONFIDENCE,
                    reason=reason,
                )
    return None


def default_suggestion(
    transaction_type: TransactionType | None, accounts: Sequence[Account]
) -> AccountSuggestion | None:
    bank = _bank_account(accounts)
    if bank is None:
        return None

    if transaction_type == "income":
        revenue = _revenue_account(accounts)
        if revenue is not None:
            return AccountSuggestion(
                account_id=bank.id,
                contra_account_id=revenue.id,
                confidence=DEFAULT_CONFIDENCE,
                reason="Default income mapping",
            )
    elif transaction_type == "expense":
        expense = _find_account(accounts, "7190", "その他経費")
        if expense is not None:
            return AccountSuggestion(
                account_id=expense.id,
                contra_account_id=bank.id,
                confidence=DEFAULT_CONFIDENCE,
                reason="Default expense mapping",
            )
    return None


def classify_with_rules(
    description: str,
    transaction_type: TransactionType | None,
    rules: Iterable[ImportRule],
    accounts: Sequence[Account],
) -> AccountSuggestion | None:
    """Suggest accounts from import rules, then keywords, then defaults."""
    rule = find_matching_rule(description, rules)
    if rule is not None:
        return AccountSuggestion(
            account_id=rule.account_id,
            contra_account_id=rule.contra_account_id,
            confidence=rule.confidence or DEFAULT_RULE_CONFIDENCE,
            reason="Matched import rule",
            rule_id=rule.id,
        )
    return suggest_by_keywords(description, transaction_type, accounts) or default_suggestion(
        transaction_type, accounts
    )
