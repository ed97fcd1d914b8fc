"""Pytest configuration and fixtures."""

import os
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("APP_ENV", "test")
os.environ.pop("OPENAI_API_KEY", None)

from simple_bookkeeping.actions.base import ActionContext  # noqa: E402
from simple_bookkeeping.models import Account, AccountType, JournalEntry  # noqa: E402

ORG_ID = "22222222-2222-2222-2222-222222222222"
USER_ID = "11111111-1111-1111-1111-111111111111"
PERIOD_ID = "33333333-3333-3333-3333-333333333333"
PARTNER_ID = "44444444-4444-4444-4444-444444444444"


def account_id(code: str) -> str:
    """Deterministic UUID for an account code, e.g. 1110 -> ...000000001110."""
    return f"00000000-0000-0000-0000-{int(code):012d}"


# (code, name, type, category, subcategory)
CHART = [
    ("1110", "現金", "asset", "流動資産", "CASH"),
    ("1130", "普通預金", "asset", "流動資産", "BANK"),
    ("1140", "売掛金", "asset", "流動資産", "RECEIVABLE"),
    ("1540", "工具器具備品", "asset", "固定資産", "FIXED_ASSET"),
    ("2110", "買掛金", "liability", "流動負債", "CURRENT"),
    ("2130", "短期借入金", "liability", "流動負債", "LOAN"),
    ("2510", "長期借入金", "liability", "固定負債", "LOAN"),
    ("3110", "元入金", "equity", "資本金", "CAPITAL"),
    ("3230", "繰越利益剰余金", "equity", "利益剰余金", "RETAINED_EARNINGS"),
    ("4110", "売上高", "revenue", "売上高", "SALES"),
    ("4510", "受取利息", "revenue", "営業外収益", "OTHER"),
    ("5110", "仕入高", "expense", "売上原価", "COST_OF_SALES"),
    ("7130", "水道光熱費", "expense", "販売費及び一般管理費", "OPERATING"),
    ("7140", "通信費", "expense", "販売費及び一般管理費", "OPERATING"),
    ("7190", "その他経費", "expense", "販売費及び一般管理費", "OPERATING"),
    ("8110", "支払利息", "expense", "営業外費用", "FINANCIAL"),
]


def account_row(code: str, name: str, account_type: str, category: str, subcategory: str) -> dict[str, Any]:
    return {
        "id": account_id(code),
        "organization_id": ORG_ID,
        "code": code,
        "name": name,
        "account_type": account_type,
        "category": category,
        "subcategory": subcategory,
        "parent_id": None,
        "is_active": True,
    }


@pytest.fixture
def account_rows() -> list[dict[str, Any]]:
    """Account rows as the database returns them."""
    return [account_row(*entry) for entry in CHART]


@pytest.fixture
def accounts(account_rows) -> list[Account]:
    return [Account.from_row(row) for row in account_rows]


@pytest.fixture
def accounts_by_code(accounts) -> dict[str, Account]:
    return {account.code: account for account in accounts}


@pytest.fixture
def make_account():
    """Factory for ad-hoc accounts."""

    def factory(
        code: str,
        account_type: AccountType = AccountType.ASSET,
        subcategory: str | None = None,
        parent_id: str | None = None,
        name: str | None = None,
    ) -> Account:
        return Account(
            id=account_id(code),
            code=code,
            name=name or f"Account {code}",
            account_type=account_type,
            subcategory=subcategory,
            parent_id=parent_id,
        )

    return factory


def entry_row(
    entry_id: str,
    entry_date: str,
    lines: list[tuple[str, Any, Any]],
    status: str = "approved",
    entry_number: str | None = None,
    description: str = "取引",
    partner_id: str | None = None,
) -> dict[str, Any]:
    """A journal entry row with embedded lines; lines are (code, debit, credit)."""
    return {
        "id": entry_id,
        "organization_id": ORG_ID,
        "accounting_period_id": PERIOD_ID,
        "entry_number": entry_number or f"{entry_date[:7].replace('-', '')}-{entry_id[-4:]}",
        "entry_date": entry_date,
        "description": description,
        "status": status,
        "journal_entry_lines": [
            {
                "id": f"{entry_id}-{index}",
                "journal_entry_id": entry_id,
                "account_id": account_id(code),
                "debit_amount": str(debit),
                "credit_amount": str(credit),
                "partner_id": partner_id,
                "line_number": index,
            }
            for index, (code, debit, credit) in enumerate(lines, start=1)
        ],
    }


def posted_line_rows(*entries: dict[str, Any]) -> list[dict[str, Any]]:
    """Line rows with their embedded entry header, as the lines query returns them."""
    rows = []
    for entry in entries:
        header = {
            key: entry[key]
            for key in ("id", "entry_date", "entry_number", "description", "status",
                        "organization_id")
        }
        rows.extend({**line, "journal_entries": header} for line in entry["journal_entry_lines"])
    return rows


@pytest.fixture
def make_entry():
    """Factory for ``JournalEntry`` objects built from (code, debit, credit) lines."""

    def factory(
        entry_id: str,
        entry_date: str,
        lines: list[tuple[str, Any, Any]],
        **kwargs: Any,
    ) -> JournalEntry:
        return JournalEntry.from_row(entry_row(entry_id, entry_date, lines, **kwargs))

    return factory


@pytest.fixture
def sample_entries(make_entry) -> list[JournalEntry]:
    """A small, balanced year of activity."""
    return [
        make_entry("e-0001", "2024-04-01", [("1130", 1000000, 0), ("3110", 0, 1000000)],
                   description="元入金"),
        make_entry("e-0002", "2024-04-10", [("1140", 330000, 0), ("4110", 0, 330000)],
                   description="売上 A社"),
        make_entry("e-0003", "2024-04-20", [("5110", 110000, 0), ("2110", 0, 110000)],
                   description="仕入 B社"),
        make_entry("e-0004", "2024-05-01", [("1130", 330000, 0), ("1140", 0, 330000)],
                   description="売掛金回収"),
        make_entry("e-0005", "2024-05-15", [("7130", 12000, 0), ("1110", 0, 12000)],
                   description="電気代"),
        make_entry("e-0006", "2024-06-01", [("1540", 200000, 0), ("1130", 0, 200000)],
                   description="パソコン購入"),
        make_entry("e-0007", "2024-06-30", [("1130", 500000, 0), ("2510", 0, 500000)],
                   description="銀行借入"),
        make_entry("e-0008", "2024-06-30", [("8110", 1500, 0), ("1130", 0, 1500)],
                   description="支払利息"),
    ]


@pytest.fixture
def sample_lines(sample_entries):
    return [line for entry in sample_entries for line in entry.lines]


# === Database mock ===


def _matches(row: dict[str, Any], filters: dict[str, Any] | None) -> bool:
    """Apply ``eq.`` and ``in.(...)`` filters on columns present in ``row``."""
    for column, expression in (filters or {}).items():
        if column not in row or not isinstance(expression, str):
            continue
        operator, _, value = expression.partition(".")
        actual = str(row[column]).lower()
        if operator == "eq" and actual != value.lower():
            return False
        if operator == "in" and actual not in value.strip("()").lower().split(","):
            return False
    return True


@pytest.fixture
def mock_db():
    """Mock database client answering reads from per-table fixtures.

    ``mock_db.rows[table]`` feeds ``select``, ``select_page`` and, unless
    ``mock_db.one[table]`` is set, ``select_one``. Plain ``eq``/``in``
    filters are applied; embedded and range filters are ignored. A list in
    ``mock_db.one[table]`` is consumed one item per call. The acting user
    is an admin unless a test changes ``mock_db.one["user_organizations"]``.
    """
    client = MagicMock()
    client.rows = {}
    client.one = {"user_organizations": {"role": "admin"}}

    def matching(table, filters):
        return [row for row in client.rows.get(table, []) if _matches(row, filters)]

    async def select(table, columns="*", filters=None, order=None, limit=None, offset=None):
        return matching(table, filters)

    async def select_page(table, columns="*", filters=None, order=None, limit=20, offset=0):
        rows = matching(table, filters)
        return rows[offset:offset + limit], len(rows)

    async def select_one(table, columns="*", filters=None):
        if table not in client.one:
            rows = matching(table, filters)
            return rows[0] if rows else None
        value = client.one[table]
        if isinstance(value, list):
            return value.pop(0) if value else None
        return value

    async def insert(table, rows):
        items = rows if isinstance(rows, list) else [rows]
        return [{"id": f"{table}-{index}", **row} for index, row in enumerate(items, start=1)]

    async def update(table, values, filters):
        return [{"id": "updated", **values}]

    client.select = AsyncMock(side_effect=select)
    client.select_page = AsyncMock(side_effect=select_page)
    client.select_one = AsyncMock(side_effect=select_one)
    client.insert = AsyncMock(side_effect=insert)
    client.update = AsyncMock(side_effect=update)
    client.delete = AsyncMock(return_value=[])
    client.close = AsyncMock()
    return client


@pytest.fixture
def mock_publisher():
    publisher = MagicMock()
    publisher.publish = MagicMock()
    return publisher


@pytest.fixture
def ctx(mock_db, mock_publisher) -> ActionContext:
    return ActionContext(client=mock_db, user_id=USER_ID, publisher=mock_publisher)


@pytest.fixture
def open_period_row() -> dict[str, Any]:
    return {
        "id": PERIOD_ID,
        "organization_id": ORG_ID,
        "name": "2024年度",
        "start_date": "2024-04-01",
        "end_date": "2025-03-31",
        "is_closed": False,
    }


def inserted_rows(mock_db, table: str) -> list[dict[str, Any]]:
    """Rows passed to ``insert`` for ``table``, in call order."""
    rows: list[dict[str, Any]] = []
    for call in mock_db.insert.call_args_list:
        if call.args[0] == table:
            values = call.args[1]
            rows.extend(values if isinstance(values, list) else [values])
    return rows
