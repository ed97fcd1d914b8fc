"""Tests for account, partner and accounting period actions."""

from decimal import Decimal

import pytest

from conftest import (
    ORG_ID,
    PARTNER_ID,
    PERIOD_ID,
    USER_ID,
    account_id,
    entry_row,
    inserted_rows,
    posted_line_rows,
)
from simple_bookkeeping.actions import (
    close_accounting_period,
    create_account,
    create_accounting_period,
    create_partner,
    delete_account,
    delete_partner,
    get_account_tree,
    get_partner_balance,
    get_partner_transactions,
    list_accounting_periods,
    list_partners,
    reopen_accounting_period,
    update_account,
    update_partner,
)
from simple_bookkeeping.events.types import EventType
from simple_bookkeeping.results import ErrorCode

PARTNER_ROW = {
    "id": PARTNER_ID,
    "organization_id": ORG_ID,
    "code": "C001",
    "name": "株式会社エー",
    "partner_type": "both",
    "is_active": True,
}


@pytest.fixture
def nested_account_rows(account_rows):
    """Chart where 普通預金 sits below 現金."""
    for row in account_rows:
        if row["code"] == "1130":
            row["parent_id"] = account_id("1110")
    return account_rows


def published_types(mock_publisher):
    return [c.args[0].event_type for c in mock_publisher.publish.call_args_list]


class TestAccountActions:
    """Tests for chart-of-accounts maintenance."""

    @pytest.mark.asyncio
    async def test_create_account(self, ctx, mock_db, mock_publisher):
        """Test creating an account."""
        result = await create_account(
            ctx, ORG_ID, {"code": "1120", "name": "小口現金", "account_type": "asset"}
        )

        assert result.success
        (row,) = inserted_rows(mock_db, "accounts")
        assert row["organization_id"] == ORG_ID
        assert row["account_type"] == "asset"
        assert published_types(mock_publisher) == [EventType.ACCOUNT_CREATED]

        (audit,) = inserted_rows(mock_db, "audit_logs")
        assert audit["action"] == "CREATE"
        assert audit["entity_type"] == "account"
        assert audit["entity_id"] == "accounts-1"
        assert audit["user_id"] == USER_ID
        assert audit["new_values"]["code"] == "1120"

    @pytest.mark.asyncio
    async def test_create_duplicate_code(self, ctx, mock_db):
        """Test that account codes are unique per organization."""
        mock_db.one["accounts"] = {"id": account_id("1110")}

        result = await create_account(
            ctx, ORG_ID, {"code": "1110", "name": "現金", "account_type": "asset"}
        )

        assert result.error.code == ErrorCode.ALREADY_EXISTS
        assert result.error.message == "勘定科目コード「1110」は既に使用されています。"
        mock_db.insert.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_with_parent_of_other_type(self, ctx, mock_db, account_rows):
        """Test that a parent must share the account type."""
        mock_db.rows["accounts"] = account_rows

        result = await create_account(
            ctx,
            ORG_ID,
            {
                "code": "1120",
                "name": "小口現金",
                "account_type": "asset",
                "parent_id": account_id("4110"),
            },
        )

        assert result.error.message == "親勘定科目と勘定科目タイプが一致しません。"

    @pytest.mark.asyncio
    async def test_create_invalid_code(self, ctx, mock_db):
        """Test the code character rule."""
        result = await create_account(
            ctx, ORG_ID, {"code": "11 20", "name": "小口現金", "account_type": "asset"}
        )

        assert result.error.code == ErrorCode.VALIDATION_ERROR
        assert "code" in result.error.details

    @pytest.mark.asyncio
    async def test_viewer_cannot_create(self, ctx, mock_db):
        """Test that viewers are read-only."""
        mock_db.one["user_organizations"] = {"role": "viewer"}

        result = await create_account(
            ctx, ORG_ID, {"code": "1120", "name": "小口現金", "account_type": "asset"}
        )

        assert result.error.code == ErrorCode.INSUFFICIENT_PERMISSIONS

    @pytest.mark.asyncio
    async def test_update_refuses_cycle(self, ctx, mock_db, nested_account_rows):
        """Test that a parent change may not form a loop."""
        mock_db.rows["accounts"] = nested_account_rows

        result = await update_account(
            ctx, ORG_ID, account_id("1110"), {"parent_id": account_id("1130")}
        )

        assert result.error.message == "親勘定科目の設定により循環参照が発生します。"
        mock_db.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_without_changes(self, ctx, mock_db, account_rows):
        """Test that an empty update is refused."""
        mock_db.rows["accounts"] = account_rows

        result = await update_account(ctx, ORG_ID, account_id("1110"), {})

        assert result.error.message == "更新する項目がありません。"

    @pytest.mark.asyncio
    async def test_update_name(self, ctx, mock_db, mock_publisher, account_rows):
        """Test a plain rename."""
        mock_db.rows["accounts"] = account_rows

        result = await update_account(ctx, ORG_ID, account_id("7190"), {"name": "雑費"})

        assert result.data["name"] == "雑費"
        assert mock_db.update.call_args.args[1] == {"name": "雑費"}
        assert published_types(mock_publisher) == [EventType.ACCOUNT_UPDATED]

    @pytest.mark.asyncio
    async def test_update_missing_account(self, ctx, mock_db, account_rows):
        """Test updating an unknown account."""
        mock_db.rows["accounts"] = account_rows

        result = await update_account(
            ctx, ORG_ID, "99999999-9999-9999-9999-999999999999", {"name": "雑費"}
        )

        assert result.error.code == ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete_with_children(self, ctx, mock_db, nested_account_rows):
        """Test that parents cannot be deleted."""
        mock_db.rows["accounts"] = nested_account_rows

        result = await delete_account(ctx, ORG_ID, account_id("1110"))

        assert result.error.code == ErrorCode.INVALID_OPERATION
        assert result.error.message == "子勘定科目が存在するため削除できません。"

    @pytest.mark.asyncio
    async def test_delete_used_account(self, ctx, mock_db, account_rows):
        """Test that posted accounts cannot be deleted."""
        mock_db.rows["accounts"] = account_rows
        mock_db.rows["journal_entry_lines"] = [{"id": "l-1", "account_id": account_id("7190")}]

        result = await delete_account(ctx, ORG_ID, account_id("7190"))

        assert result.error.message == "仕訳で使用されている勘定科目は削除できません。"
        mock_db.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_account(self, ctx, mock_db, mock_publisher, account_rows):
        """Test deleting an unused leaf account."""
        mock_db.rows["accounts"] = account_rows

        result = await delete_account(ctx, ORG_ID, account_id("7190"))

        assert result.data == {"id": account_id("7190")}
        assert mock_db.delete.call_args.args[0] == "accounts"
        assert published_types(mock_publisher) == [EventType.ACCOUNT_DELETED]

    @pytest.mark.asyncio
    async def test_accountant_cannot_delete(self, ctx, mock_db):
        """Test that deletion is for administrators."""
        mock_db.one["user_organizations"] = {"role": "accountant"}

        result = await delete_account(ctx, ORG_ID, account_id("7190"))

        assert result.error.code == ErrorCode.INSUFFICIENT_PERMISSIONS

    @pytest.mark.asyncio
    async def test_account_tree_with_balances(self, ctx, mock_db, nested_account_rows):
        """Test that parents roll up their children's balances."""
        mock_db.rows["accounts"] = nested_account_rows
        mock_db.rows["journal_entry_lines"] = posted_line_rows(
            entry_row("e-0001", "2024-04-01", [("1130", 1000000, 0), ("3110", 0, 1000000)]),
            entry_row("e-0002", "2024-04-02", [("1110", 30000, 0), ("1130", 0, 30000)]),
        )

        result = await get_account_tree(ctx, ORG_ID, include_balances=True)

        cash = next(node for node in result.data if node["code"] == "1110")
        assert [child["code"] for child in cash["children"]] == ["1130"]
        assert cash["balance"] == Decimal("30000")
        assert cash["total_balance"] == Decimal("1000000")
        assert all(node["code"] != "1130" for node in result.data)


class TestPartnerActions:
    """Tests for customers and suppliers."""

    @pytest.mark.asyncio
    async def test_create_partner(self, ctx, mock_db, mock_publisher):
        """Test creating a partner."""
        result = await create_partner(
            ctx,
            ORG_ID,
            {
                "code": "C002",
                "name": "株式会社ビー",
                "name_kana": "カブシキガイシャビー",
                "partner_type": "customer",
                "email": "info@example.co.jp",
            },
        )

        assert result.success
        (row,) = inserted_rows(mock_db, "partners")
        assert row["partner_type"] == "customer"
        assert row["organization_id"] == ORG_ID
        assert published_types(mock_publisher) == [EventType.PARTNER_CREATED]

    @pytest.mark.asyncio
    async def test_create_partner_invalid_fields(self, ctx, mock_db):
        """Test kana and email validation."""
        result = await create_partner(
            ctx,
            ORG_ID,
            {
                "code": "C002",
                "name": "株式会社ビー",
                "name_kana": "かぶしきがいしゃ",
                "partner_type": "customer",
                "email": "not-an-email",
            },
        )

        assert result.error.code == ErrorCode.VALIDATION_ERROR
        assert set(result.error.details) == {"name_kana", "email"}

    @pytest.mark.asyncio
    async def test_create_duplicate_code(self, ctx, mock_db):
        """Test that partner codes are unique."""
        mock_db.rows["partners"] = [PARTNER_ROW]

        result = await create_partner(
            ctx, ORG_ID, {"code": "C001", "name": "別会社", "partner_type": "supplier"}
        )

        assert result.error.code == ErrorCode.ALREADY_EXISTS
        assert result.error.message == "取引先コード「C001」は既に使用されています。"

    @pytest.mark.asyncio
    async def test_list_partners(self, ctx, mock_db):
        """Test listing with a type filter."""
        mock_db.rows["partners"] = [
            PARTNER_ROW,
            {**PARTNER_ROW, "id": "p-2", "code": "S001", "partner_type": "supplier"},
        ]

        result = await list_partners(ctx, ORG_ID, {"partner_type": "supplier"})

        assert [row["code"] for row in result.data["items"]] == ["S001"]
        assert result.data["pagination"]["total_count"] == 1

    @pytest.mark.asyncio
    async def test_update_missing_partner(self, ctx, mock_db):
        """Test updating an unknown partner."""
        result = await update_partner(ctx, ORG_ID, PARTNER_ID, {"name": "新社名"})

        assert result.error.code == ErrorCode.NOT_FOUND
        assert result.error.message == "取引先が見つかりません。"

    @pytest.mark.asyncio
    async def test_delete_partner_in_use(self, ctx, mock_db):
        """Test that partners on journal lines are kept."""
        mock_db.rows["partners"] = [PARTNER_ROW]
        mock_db.rows["journal_entry_lines"] = [{"id": "l-1", "partner_id": PARTNER_ID}]

        result = await delete_partner(ctx, ORG_ID, PARTNER_ID)

        assert result.error.code == ErrorCode.CONSTRAINT_VIOLATION
        mock_db.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_partner(self, ctx, mock_db):
        """Test deleting an unused partner."""
        mock_db.rows["partners"] = [PARTNER_ROW]

        result = await delete_partner(ctx, ORG_ID, PARTNER_ID)

        assert result.data == {"id": PARTNER_ID}
        assert mock_db.delete.call_args.args[0] == "partners"

    @pytest.mark.asyncio
    async def test_partner_balance(self, ctx, mock_db, account_rows):
        """Test receivable, payable and net balances."""
        mock_db.rows["accounts"] = account_rows
        mock_db.rows["partners"] = [PARTNER_ROW]
        mock_db.rows["journal_entry_lines"] = posted_line_rows(
            entry_row("e-0001", "2024-04-10", [("1140", 330000, 0), ("4110", 0, 330000)],
                      partner_id=PARTNER_ID),
            entry_row("e-0002", "2024-04-20", [("5110", 110000, 0), ("2110", 0, 110000)],
                      partner_id=PARTNER_ID),
            entry_row("e-0003", "2024-05-10", [("2110", 50000, 0), ("1130", 0, 50000)],
                      partner_id=PARTNER_ID),
        )

        result = await get_partner_balance(ctx, ORG_ID, {"partner_id": PARTNER_ID})

        assert result.data == {
            "partner_name": "株式会社エー",
            "partner_id": PARTNER_ID,
            "receivable_balance": Decimal("330000"),
            "payable_balance": Decimal("60000"),
            "net_balance": Decimal("270000"),
            "last_transaction_date": "2024-05-10",
        }

    @pytest.mark.asyncio
    async def test_partner_transactions_newest_first(self, ctx, mock_db, account_rows):
        """Test ordering and paging of partner lines."""
        mock_db.rows["accounts"] = account_rows
        mock_db.rows["partners"] = [PARTNER_ROW]
        mock_db.rows["journal_entry_lines"] = posted_line_rows(
            entry_row("e-0001", "2024-04-10", [("1140", 330000, 0), ("4110", 0, 330000)],
                      partner_id=PARTNER_ID),
            entry_row("e-0002", "2024-05-10", [("1130", 330000, 0), ("1140", 0, 330000)],
                      partner_id=PARTNER_ID),
        )

        result = await get_partner_transactions(
            ctx, ORG_ID, {"partner_id": PARTNER_ID, "page_size": 3}
        )

        items = result.data["items"]
        assert len(items) == 3
        assert items[0]["date"] == "2024-05-10"
        assert items[0]["balance"] == Decimal("0")
        assert [item["account_code"] for item in items] == ["1140", "1130", "4110"]
        assert result.data["pagination"] == {
            "page": 1,
            "page_size": 3,
            "total_count": 4,
            "total_pages": 2,
        }


class TestAccountingPeriodActions:
    """Tests for accounting periods."""

    @pytest.mark.asyncio
    async def test_create_period(self, ctx, mock_db, mock_publisher):
        """Test creating a period."""
        result = await create_accounting_period(
            ctx,
            ORG_ID,
            {"name": "2025年度", "start_date": "2025-04-01", "end_date": "2026-03-31"},
        )

        assert result.success
        row = mock_db.insert.call_args.args[1]
        assert row["is_closed"] is False
        assert row["start_date"] == "2025-04-01"
        assert published_types(mock_publisher) == [EventType.ACCOUNTING_PERIOD_CREATED]

    @pytest.mark.asyncio
    async def test_create_overlapping_period(self, ctx, mock_db, open_period_row):
        """Test that periods may not overlap."""
        mock_db.rows["accounting_periods"] = [open_period_row]

        result = await create_accounting_period(
            ctx,
            ORG_ID,
            {"name": "重複", "start_date": "2024-10-01", "end_date": "2025-09-30"},
        )

        assert result.error.message == "指定された期間は既存の会計期間と重複しています。"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("start_date", "end_date"),
        [("2025-04-01", "2025-04-01"), ("2025-04-01", "2027-04-02")],
    )
    async def test_create_invalid_range(self, ctx, mock_db, start_date, end_date):
        """Test that a period is non-empty and at most two years."""
        result = await create_accounting_period(
            ctx, ORG_ID, {"name": "2025年度", "start_date": start_date, "end_date": end_date}
        )

        assert result.error.code == ErrorCode.VALIDATION_ERROR
        mock_db.insert.assert_not_called()

    @pytest.mark.asyncio
    async def test_close_period(self, ctx, mock_db, mock_publisher, open_period_row):
        """Test closing a period without drafts."""
        mock_db.rows["accounting_periods"] = [open_period_row]

        result = await close_accounting_period(ctx, ORG_ID, PERIOD_ID)

        assert result.success
        assert mock_db.update.call_args.args[1] == {"is_closed": True}
        assert published_types(mock_publisher) == [EventType.ACCOUNTING_PERIOD_CLOSED]

    @pytest.mark.asyncio
    async def test_close_with_drafts(self, ctx, mock_db, open_period_row):
        """Test that drafts block closing."""
        mock_db.rows["accounting_periods"] = [open_period_row]
        mock_db.rows["journal_entries"] = [
            entry_row("e-0001", "2024-04-10", [("7190", 1000, 0), ("1110", 0, 1000)],
                      status="draft")
        ]

        result = await close_accounting_period(ctx, ORG_ID, PERIOD_ID)

        assert result.error.message == "未承認の仕訳があるため、会計期間を閉じることができません。"
        mock_db.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_close_twice(self, ctx, mock_db, open_period_row):
        """Test closing an already closed period."""
        mock_db.rows["accounting_periods"] = [{**open_period_row, "is_closed": True}]

        result = await close_accounting_period(ctx, ORG_ID, PERIOD_ID)

        assert result.error.message == "この会計期間は既に閉じられています。"

    @pytest.mark.asyncio
    async def test_accountant_cannot_close(self, ctx, mock_db, open_period_row):
        """Test that closing is for administrators."""
        mock_db.one["user_organizations"] = {"role": "accountant"}
        mock_db.rows["accounting_periods"] = [open_period_row]

        result = await close_accounting_period(ctx, ORG_ID, PERIOD_ID)

        assert result.error.code == ErrorCode.INSUFFICIENT_PERMISSIONS

    @pytest.mark.asyncio
    async def test_reopen(self, ctx, mock_db, open_period_row):
        """Test reopening only closed periods."""
        mock_db.rows["accounting_periods"] = [open_period_row]

        refused = await reopen_accounting_period(ctx, ORG_ID, PERIOD_ID)
        assert refused.error.code == ErrorCode.INVALID_OPERATION

        mock_db.rows["accounting_periods"] = [{**open_period_row, "is_closed": True}]
        reopened = await reopen_accounting_period(ctx, ORG_ID, PERIOD_ID)
        assert reopened.success
        assert mock_db.update.call_args.args[1] == {"is_closed": False}

    @pytest.mark.asyncio
    async def test_list_open_periods(self, ctx, mock_db, open_period_row):
        """Test filtering by closed state."""
        mock_db.rows["accounting_periods"] = [
            open_period_row,
            {**open_period_row, "id": "p-old", "name": "2023年度", "is_closed": True},
        ]

        result = await list_accounting_periods(ctx, ORG_ID, {"is_closed": False})

        assert [row["name"] for row in result.data] == ["2024年度"]
