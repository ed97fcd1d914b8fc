"""Domain types for accounts, partners, journal entries and periods.

Rows come back from the database as plain dicts with amounts serialized as
numbers or strings; the ``from_row`` constructors normalize them into
``Decimal`` amounts and ``date`` values.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

ZERO = Decimal("0")


class AccountType(str, Enum):
    """Top-level account classification."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"

    @classmethod
    def parse(cls, value: Any) -> "AccountType":
        """Accept both ``asset`` and ``ASSET`` spellings."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())

    @property
    def is_debit_normal(self) -> bool:
        return self in (AccountType.ASSET, AccountType.EXPENSE)


class JournalStatus(str, Enum):
    """Lifecycle of a journal entry: draft -> approved -> locked."""

    DRAFT = "draft"
    APPROVED = "approved"
    LOCKED = "locked"


class PartnerType(str, Enum):
    CUSTOMER = "customer"
    SUPPLIER = "supplier"
    BOTH = "both"


class Role(str, Enum):
    """Organization membership roles."""

    ADMIN = "admin"
    ACCOUNTANT = "accountant"
    VIEWER = "viewer"

    @property
    def can_write(self) -> bool:
        return self in (Role.ADMIN, Role.ACCOUNTANT)


def to_decimal(value: Any) -> Decimal:
    """Convert a database amount (number, string or None) into a Decimal."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        # via str so 0.1 stays 0.1
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc


def format_amount(value: Decimal) -> str:
    """Render an amount without exponent; whole yen amounts drop the decimals."""
    if value == value.to_integral_value():
        return str(int(value))
    return f"{value.normalize():f}"


def to_date(value: Any) -> date:
    """Parse ``YYYY-MM-DD`` (or a timestamp starting with it) into a date."""
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass
class Account:
    """A chart-of-accounts entry."""

    id: str
    code: str
    name: str
    account_type: AccountType
    category: str | None = None
    subcategory: str | None = None
    parent_id: str | None = None
    is_active: bool = True
    organization_id: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Account":
        return cls(
            id=str(row["id"]),
            code=str(row["code"]),
            name=str(row["name"]),
            account_type=AccountType.parse(row.get("account_type") or row.get("type")),
            category=row.get("category"),
            subcategory=row.get("subcategory") or row.get("sub_category"),
            parent_id=row.get("parent_id"),
            is_active=bool(row.get("is_active", True)),
            organization_id=row.get("organization_id"),
        )

    @property
    def is_debit_normal(self) -> bool:
        return self.account_type.is_debit_normal


@dataclass
class Partner:
    """A customer or supplier."""

    id: str
    code: str
    name: str
    partner_type: PartnerType
    name_kana: str | None = None
    email: str | None = None
    phone: str | None = None
    payment_terms: int | None = None
    credit_limit: Decimal | None = None
    is_active: bool = True
    organization_id: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Partner":
        credit_limit = row.get("credit_limit")
        return cls(
            id=str(row["id"]),
            code=str(row["code"]),
            name=str(row["name"]),
            partner_type=PartnerType(row.get("partner_type", "both")),
            name_kana=row.get("name_kana"),
            email=row.get("email"),
            phone=row.get("phone"),
            payment_terms=row.get("payment_terms"),
            credit_limit=to_decimal(credit_limit) if credit_limit is not None else None,
            is_active=bool(row.get("is_active", True)),
            organization_id=row.get("organization_id"),
        )


@dataclass
class JournalLine:
    """One debit or credit line of a journal entry.

    ``entry_date`` and ``entry_number`` are copied from the parent entry so
    lines can be sorted and reported on without the header.
    """

    account_id: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    partner_id: str | None = None
    description: str | None = None
    tax_rate: Decimal | None = None
    line_number: int = 0
    id: str | None = None
    journal_entry_id: str | None = None
    entry_date: date | None = None
    entry_number: str | None = None
    entry_description: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "JournalLine":
        entry = row.get("journal_entries") or row.get("journal_entry") or {}
        entry_date = entry.get("entry_date") or row.get("entry_date")
        tax_rate = row.get("tax_rate")
        return cls(
            id=row.get("id"),
            journal_entry_id=row.get("journal_entry_id") or entry.get("id"),
            account_id=str(row["account_id"]),
            debit=to_decimal(row.get("debit_amount")),
            credit=to_decimal(row.get("credit_amount")),
            partner_id=row.get("partner_id"),
            description=row.get("description"),
            tax_rate=to_decimal(tax_rate) if tax_rate is not None else None,
            line_number=int(row.get("line_number") or 0),
            entry_date=to_date(entry_date) if entry_date else None,
            entry_number=entry.get("entry_number") or row.get("entry_number"),
            entry_description=entry.get("description"),
        )

    @property
    def net(self) -> Decimal:
        """Debit minus credit."""
        return self.debit - self.credit


@dataclass
class JournalEntry:
    """A balanced set of journal lines posted on one date."""

    id: str
    entry_number: str
    entry_date: date
    description: str
    status: JournalStatus = JournalStatus.DRAFT
    organization_id: str | None = None
    accounting_period_id: str | None = None
    created_by: str | None = None
    lines: list[JournalLine] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "JournalEntry":
        entry = cls(
            id=str(row["id"]),
            entry_number=str(row.get("entry_number") or ""),
            entry_date=to_date(row["entry_date"]),
            description=str(row.get("description") or ""),
            status=JournalStatus(row.get("status", "draft")),
            organization_id=row.get("organization_id"),
            accounting_period_id=row.get("accounting_period_id"),
            created_by=row.get("created_by"),
        )
        for line_row in row.get("journal_entry_lines") or []:
            line = JournalLine.from_row(line_row)
            line.journal_entry_id = entry.id
            line.entry_date = entry.entry_date
            line.entry_number = entry.entry_number
            line.entry_description = entry.description
            entry.lines.append(line)
        entry.lines.sort(key=lambda line: line.line_number)
        return entry

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)

    @property
    def is_editable(self) -> bool:
        return self.status == JournalStatus.DRAFT


@dataclass
class AccountingPeriod:
    """A fiscal period; closed periods reject postings."""

    id: str
    name: str
    start_date: date
    end_date: date
    is_closed: bool = False
    organization_id: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "AccountingPeriod":
        return cls(
            id=str(row["id"]),
            name=str(row.get("name") or ""),
            start_date=to_date(row["start_date"]),
            end_date=to_date(row["end_date"]),
            is_closed=bool(row.get("is_closed", False)),
            organization_id=row.get("organization_id"),
        )

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date
