"""Tests for bank CSV import actions and import rules."""

from unittest.mock import AsyncMock

import pytest

from conftest import ORG_ID, USER_ID, account_id, entry_row
from simple_bookkeeping.actions import (
    create_import_rule,
    delete_import_rule,
    execute_import,
    get_import_history,
    preview_import,
    update_import_rule,
    upload_csv_file,
)
from simple_bookkeeping.clients.database import DatabaseError
from simple_bookkeeping.events.types import EventType
from simple_bookkeeping.results import ErrorCode

IMPORT_ID = "77777777-7777-7777-7777-777777777777"
RULE_ID = "88888888-8888-8888-8888-888888888888"

SBI_UPLOAD = (
    "日付,内容,金額,残高,入出金\n"
    "2024/04/05,電気代 東京電力,8800,91200,出金\n"
    "2024/04/10,振込 カ)サンプル,110000,201200,入金\n"
).encode("utf-8")


def stored_row(day: str, description: str, amount: str, kind: str) -> dict:
    return {
        "date": day,
        "description": description,
        "amount": amount,
        "type": kind,
        "balance": None,
        "original_row": {"日付": day.replace("-", "/"), "内容": description, "金額": amount},
    }


STORED_ROWS = [
    stored_row("2024-04-05", "電気代 東京電力", "8800", "expense"),
    stored_row("2024-04-10", "振込 カ)サンプル", "110000", "income"),
    stored_row("2024-04-10", "振込 カ)サンプル", "110000", "income"),
    stored_row("2024-03-31", "ガス代", "5000", "expense"),
]


@pytest.fixture
def history_row():
    return {
        "id": IMPORT_ID,
        "organization_id": ORG_ID,
        "status": "pending",
        "csv_format": "sbi_bank",
        "file_data": {"rows": STORED_ROWS, "template": "sbi_bank"},
    }


@pytest.fixture
def import_db(mock_db, account_rows, history_row, open_period_row):
    mock_db.rows["accounts"] = account_rows
    mock_db.rows["import_histories"] = [history_row]
    mock_db.rows["accounting_periods"] = [open_period_row]
    return mock_db


class TestUploadCsvFile:
    """Tests for storing an uploaded bank CSV."""

    @pytest.mark.asyncio
    async def test_upload_detects_template(self, ctx, mock_db):
        """Test that the header selects the template and rows are stored."""
        result = await upload_csv_file(ctx, ORG_ID, SBI_UPLOAD, "bank.csv", "text/csv")

        assert result.success
        table, row = mock_db.insert.call_args.args
        assert table == "import_histories"
        assert row["csv_format"] == "sbi_bank"
        assert row["total_rows"] == 2
        assert row["status"] == "pending"
        assert row["user_id"] == USER_ID
        stored = row["file_data"]["rows"]
        assert [item["type"] for item in stored] == ["expense", "income"]
        assert stored[0]["date"] == "2024-04-05"
        assert stored[1]["amount"] == "110000"

    @pytest.mark.asyncio
    async def test_explicit_template(self, ctx, mock_db):
        """Test choosing a template by name."""
        result = await upload_csv_file(
            ctx, ORG_ID, SBI_UPLOAD, "bank.csv", template_name="sbi_bank"
        )

        assert result.data["file_data"]["template"] == "sbi_bank"

    @pytest.mark.asyncio
    async def test_unknown_template(self, ctx, mock_db):
        """Test naming a template that does not exist."""
        result = await upload_csv_file(
            ctx, ORG_ID, SBI_UPLOAD, "bank.csv", template_name="nope"
        )

        assert result.error.message == "CSVテンプレート「nope」が見つかりません。"

    @pytest.mark.asyncio
    async def test_invalid_file(self, ctx, mock_db):
        """Test that file problems are listed in the details."""
        result = await upload_csv_file(ctx, ORG_ID, SBI_UPLOAD, "bank.xlsx")

        assert result.error.code == ErrorCode.VALIDATION_ERROR
        assert result.error.message == "ファイルが不正です。"
        assert result.error.details == {"file": ["File must be a CSV file"]}
        mock_db.insert.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_file(self, ctx, mock_db):
        """Test a blank upload."""
        result = await upload_csv_file(ctx, ORG_ID, b"  \n", "bank.csv")

        assert result.error.message == "ファイルが空です"

    @pytest.mark.asyncio
    async def test_viewer_cannot_upload(self, ctx, mock_db):
        """Test that importing needs write access."""
        mock_db.one["user_organizations"] = {"role": "viewer"}

        result = await upload_csv_file(ctx, ORG_ID, SBI_UPLOAD, "bank.csv")

        assert result.error.code == ErrorCode.INSUFFICIENT_PERMISSIONS


class TestPreviewImport:
    """Tests for duplicate flags and account suggestions."""

    @pytest.mark.asyncio
    async def test_preview(self, ctx, import_db):
        """Test suggestions and both kinds of duplicates."""
        import_db.rows["journal_entries"] = [
            entry_row("e-0001", "2024-04-05", [("7130", 8800, 0), ("1130", 0, 8800)],
                      description="電気代 東京電力")
        ]

        result = await preview_import(ctx, ORG_ID, IMPORT_ID)

        preview = result.data["preview"]
        assert preview["total_rows"] == 4
        assert preview["template"] == "sbi_bank"
        assert preview["columns"] == ["日付", "内容", "金額"]

        mappings = result.data["mappings"]
        assert mappings[0]["account_id"] == account_id("7130")
        assert mappings[0]["contra_account_id"] == account_id("1130")
        assert mappings[0]["is_duplicate"] is True
        assert mappings[0]["action"] == "skip"
        assert mappings[0]["duplicate"]["journal_entry_id"] == "e-0001"

        assert mappings[1]["account_id"] == account_id("1130")
        assert mappings[1]["contra_account_id"] == account_id("4110")
        assert mappings[1]["is_duplicate"] is False
        assert mappings[1]["action"] == "import"

        assert mappings[2]["duplicate"]["duplicate_type"] == "within-import"
        assert mappings[2]["duplicate"]["duplicate_row_index"] == 1
        assert mappings[2]["action"] == "review"

    @pytest.mark.asyncio
    async def test_rule_wins_over_keywords(self, ctx, import_db):
        """Test that a stored import rule is applied first."""
        import_db.rows["import_rules"] = [
            {
                "id": RULE_ID,
                "organization_id": ORG_ID,
                "description_pattern": "東京電力",
                "account_id": account_id("7190"),
                "contra_account_id": account_id("1110"),
                "confidence": 0.95,
                "is_active": True,
            }
        ]

        result = await preview_import(ctx, ORG_ID, IMPORT_ID)

        first = result.data["mappings"][0]
        assert first["account_id"] == account_id("7190")
        assert first["confidence"] == 0.95
        assert first["reason"] == "Matched import rule"

    @pytest.mark.asyncio
    async def test_missing_history(self, ctx, mock_db):
        """Test previewing an unknown import."""
        result = await preview_import(ctx, ORG_ID, IMPORT_ID)

        assert result.error.code == ErrorCode.NOT_FOUND


class TestExecuteImport:
    """Tests for turning confirmed rows into draft entries."""

    @pytest.mark.asyncio
    async def test_execute(self, ctx, import_db, mock_publisher):
        """Test created, skipped and failed rows in one run."""
        result = await execute_import(
            ctx,
            ORG_ID,
            {
                "import_id": IMPORT_ID,
                "mappings": [
                    {"row_index": 0, "is_duplicate": True},
                    {
                        "row_index": 1,
                        "account_id": account_id("1130"),
                        "contra_account_id": account_id("4110"),
                        "confidence": 0.6,
                    },
                    {"row_index": 2},
                    {
                        "row_index": 3,
                        "account_id": account_id("7130"),
                        "contra_account_id": account_id("1130"),
                    },
                    {"row_index": 9},
                ],
                "create_rules_from_mappings": True,
            },
        )

        assert result.data["total_rows"] == 5
        assert result.data["imported_rows"] == 1
        assert result.data["skipped_rows"] == 1
        assert result.data["failed_rows"] == 3
        assert result.data["created_journal_entries"] == ["journal_entries-1"]
        assert result.data["errors"] == [
            {"row": 2, "error": "勘定科目が指定されていません"},
            {"row": 3, "error": "該当する会計期間がありません"},
            {"row": 9, "error": "行が存在しません"},
        ]

        inserts = {c.args[0]: c.args[1] for c in import_db.insert.call_args_list}
        assert inserts["journal_entries"]["status"] == "draft"
        assert inserts["journal_entries"]["entry_date"] == "2024-04-10"
        assert inserts["journal_entries"]["description"] == "振込 カ)サンプル"
        assert inserts["import_rules"] == [
            {
                "organization_id": ORG_ID,
                "description_pattern": "振込 カ)サンプル",
                "account_id": account_id("1130"),
                "contra_account_id": account_id("4110"),
                "confidence": 0.7,
                "usage_count": 1,
            }
        ]

        final_status = import_db.update.call_args_list[-1].args[1]
        assert final_status["status"] == "failed"
        assert final_status["imported_rows"] == 1

        events = [c.args[0] for c in mock_publisher.publish.call_args_list]
        assert events[-1].event_type == EventType.IMPORT_COMPLETED
        assert events[-1].data["failed_rows"] == 3

    @pytest.mark.asyncio
    async def test_confident_mappings_teach_nothing(self, ctx, import_db):
        """Test that only low-confidence mappings become rules."""
        result = await execute_import(
            ctx,
            ORG_ID,
            {
                "import_id": IMPORT_ID,
                "mappings": [
                    {
                        "row_index": 1,
                        "account_id": account_id("1130"),
                        "contra_account_id": account_id("4110"),
                        "confidence": 0.9,
                    }
                ],
                "create_rules_from_mappings": True,
            },
        )

        assert result.data["imported_rows"] == 1
        assert "import_rules" not in [c.args[0] for c in import_db.insert.call_args_list]
        assert import_db.update.call_args_list[-1].args[1]["status"] == "completed"

    @pytest.mark.asyncio
    async def test_database_failure_stored_as_safe_message(self, ctx, import_db):
        """Test that raw database errors are not kept in the import history."""
        original_insert = import_db.insert.side_effect

        async def insert(table, rows):
            if table == "journal_entries":
                raise DatabaseError("API error: 500 relation journal_entries", status_code=500)
            return await original_insert(table, rows)

        import_db.insert.side_effect = insert

        result = await execute_import(
            ctx,
            ORG_ID,
            {
                "import_id": IMPORT_ID,
                "mappings": [
                    {
                        "row_index": 1,
                        "account_id": account_id("1130"),
                        "contra_account_id": account_id("4110"),
                    }
                ],
            },
        )

        assert result.data["errors"] == [{"row": 1, "error": "データベースエラーが発生しました"}]
        stored = import_db.update.call_args_list[-1].args[1]
        assert stored["status"] == "failed"
        assert "API error" not in stored["error_message"]
        assert "journal_entries" not in stored["error_message"]

    @pytest.mark.asyncio
    async def test_already_completed(self, ctx, import_db, history_row):
        """Test that an import runs once."""
        import_db.rows["import_histories"] = [{**history_row, "status": "completed"}]

        result = await execute_import(
            ctx, ORG_ID, {"import_id": IMPORT_ID, "mappings": [{"row_index": 0}]}
        )

        assert result.error.code == ErrorCode.INVALID_OPERATION
        assert result.error.message == "このインポートは既に処理されています。"

    @pytest.mark.asyncio
    async def test_no_open_period(self, ctx, import_db):
        """Test that an open period is required."""
        import_db.rows["accounting_periods"] = []

        result = await execute_import(
            ctx, ORG_ID, {"import_id": IMPORT_ID, "mappings": [{"row_index": 0}]}
        )

        assert result.error.message == (
            "有効な会計期間がありません。先に会計期間を作成してください。"
        )
        import_db.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_request(self, ctx, import_db):
        """Test request validation."""
        result = await execute_import(ctx, ORG_ID, {"import_id": "abc", "mappings": []})

        assert result.error.code == ErrorCode.VALIDATION_ERROR
        assert {"import_id", "mappings"} <= set(result.error.details)


class TestImportRules:
    """Tests for import rule maintenance."""

    @pytest.mark.asyncio
    async def test_create_rule(self, ctx, mock_db, account_rows):
        """Test creating a rule for known accounts."""
        mock_db.rows["accounts"] = account_rows

        result = await create_import_rule(
            ctx,
            ORG_ID,
            {
                "description_pattern": "/^amazon/",
                "account_id": account_id("7190"),
                "contra_account_id": account_id("1130"),
            },
        )

        assert result.success
        row = mock_db.insert.call_args.args[1]
        assert row["confidence"] == 0.8
        assert row["usage_count"] == 0
        assert row["organization_id"] == ORG_ID

    @pytest.mark.asyncio
    async def test_create_rule_unknown_account(self, ctx, mock_db):
        """Test that rule accounts must exist."""
        result = await create_import_rule(
            ctx,
            ORG_ID,
            {
                "description_pattern": "電気",
                "account_id": account_id("7130"),
                "contra_account_id": account_id("1130"),
            },
        )

        assert result.error.message == "指定された勘定科目が存在しません。"

    @pytest.mark.asyncio
    async def test_update_rule(self, ctx, mock_db):
        """Test changing the confidence."""
        result = await update_import_rule(ctx, ORG_ID, RULE_ID, {"confidence": 0.9})

        assert result.data["confidence"] == 0.9

    @pytest.mark.asyncio
    async def test_update_missing_rule(self, ctx, mock_db):
        """Test that no updated row means not found."""
        mock_db.update = AsyncMock(return_value=[])

        result = await update_import_rule(ctx, ORG_ID, RULE_ID, {"is_active": False})

        assert result.error.code == ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete_rule(self, ctx, mock_db):
        """Test deleting existing and missing rules."""
        missing = await delete_import_rule(ctx, ORG_ID, RULE_ID)
        assert missing.error.code == ErrorCode.NOT_FOUND

        mock_db.delete.return_value = [{"id": RULE_ID}]
        deleted = await delete_import_rule(ctx, ORG_ID, RULE_ID)
        assert deleted.data == {"id": RULE_ID}

    @pytest.mark.asyncio
    async def test_import_history(self, ctx, mock_db, history_row):
        """Test listing past imports."""
        mock_db.rows["import_histories"] = [history_row]

        result = await get_import_history(ctx, ORG_ID)

        assert result.data["pagination"]["total_count"] == 1
        assert result.data["items"][0]["id"] == IMPORT_ID
