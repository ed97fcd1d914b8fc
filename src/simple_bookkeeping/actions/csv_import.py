"""Bank CSV import actions.

An upload is parsed and stored as an import history record; the preview
then adds duplicate flags and account suggestions per row, and execution
turns the confirmed rows into draft journal entries.
"""

import json
from typing import Any

import structlog

from simple_bookkeeping.actions.base import (
    ActionContext,
    ensure_accounts_exist,
    fetch_accounts,
    get_role,
    invalid,
    not_found,
    paginate,
    require_writer,
    server_action,
)
from simple_bookkeeping.actions.journal_entries import post_entry
from simple_bookkeeping.clients.database import DatabaseError, eq, gte, lte
from simple_bookkeeping.config import get_settings
from simple_bookkeeping.config.loaders import load_csv_templates
from simple_bookkeeping.events.types import import_finished
from simple_bookkeeping.imports.ai_classifier import build_ai_classifier, classify_transaction
from simple_bookkeeping.imports.classifier import ImportRule
from simple_bookkeeping.imports.csv_parser import (
    ParsedRow,
    detect_template,
    parse_with_template,
    validate_csv_file,
)
from simple_bookkeeping.imports.duplicates import (
    DuplicateAction,
    ExistingEntry,
    detect_duplicates,
    search_window,
)
from simple_bookkeeping.models import AccountingPeriod, JournalEntry
from simple_bookkeeping.results import (
    ActionFailed,
    ErrorCode,
    handle_database_error,
    validate_input,
)
from simple_bookkeeping.validation.common import QueryParams
from simple_bookkeeping.validation.imports import (
    CreateImportRuleInput,
    ExecuteImportInput,
    UpdateImportRuleInput,
)
from simple_bookkeeping.validation.journal_entries import CreateJournalEntryInput

logger = structlog.get_logger(__name__)

RULE_LEARNING_THRESHOLD = 0.8
LEARNED_RULE_CONFIDENCE = 0.7
LEARNED_PATTERN_LENGTH = 50


async def _fetch_history(ctx: ActionContext, organization_id: str, import_id: str) -> dict[str, Any]:
    history = await ctx.client.select_one(
        "import_histories",
        filters={"id": eq(import_id), "organization_id": eq(organization_id)},
    )
    if history is None:
        raise not_found("インポート履歴")
    return history


def _stored_rows(history: dict[str, Any]) -> list[ParsedRow]:
    file_data = history.get("file_data") or {}
    return [ParsedRow.from_dict(row) for row in file_data.get("rows") or []]


async def _fetch_rules(ctx: ActionContext, organization_id: str) -> list[ImportRule]:
    rows = await ctx.client.select(
        "import_rules",
        filters={"organization_id": eq(organization_id), "is_active": eq("true")},
        order="usage_count.desc",
    )
    return [ImportRule.from_row(row) for row in rows]


async def _existing_entries(
    ctx: ActionContext, organization_id: str, rows: list[ParsedRow]
) -> list[ExistingEntry]:
    window = search_window(rows)
    if window is None:
        return []
    start, end = window
    entries = await ctx.client.select(
        "journal_entries",
        "*, journal_entry_lines(*)",
        {
            "organization_id": eq(organization_id),
            "entry_date": [gte(start.isoformat()), lte(end.isoformat())],
        },
    )
    return [ExistingEntry.from_journal_entry(JournalEntry.from_row(row)) for row in entries]


@server_action
async def upload_csv_file(
    ctx: ActionContext,
    organization_id: str,
    data: bytes,
    filename: str,
    content_type: str | None = None,
    template_name: str | None = None,
) -> dict[str, Any]:
    """Parse an uploaded bank CSV and store its rows for preview."""
    await require_writer(ctx, organization_id, "CSVをインポート")
    settings = get_settings()

    problems = validate_csv_file(filename, len(data), content_type, settings.import_max_file_size)
    if problems:
        raise invalid("ファイルが不正です。", {"file": problems})
    if not data.strip():
        raise invalid("ファイルが空です")

    templates = load_csv_templates()
    if template_name:
        template = templates.get(template_name)
        if template is None:
            raise invalid(f"CSVテンプレート「{template_name}」が見つかりません。")
    else:
        template = detect_template(data, templates.values())

    rows, errors = parse_with_template(data, template, settings.import_max_rows)
    if errors and not rows:
        raise invalid(", ".join(errors))

    inserted = await ctx.client.insert(
        "import_histories",
        {
            "organization_id": organization_id,
            "user_id": ctx.user_id,
            "file_name": filename,
            "file_size": len(data),
            "csv_format": template["name"] if template else "unknown",
            "total_rows": len(rows),
            "imported_rows": 0,
            "failed_rows": 0,
            "status": "pending",
            "file_data": {
                "rows": [row.to_dict() for row in rows],
                "template": template["name"] if template else None,
            },
        },
    )
    history = inserted[0]
    logger.info(
        "csv_uploaded",
        import_id=history["id"],
        rows=len(rows),
        template=history["csv_format"],
    )
    return history


@server_action
async def preview_import(
    ctx: ActionContext, organization_id: str, import_id: str
) -> dict[str, Any]:
    """Rows of a stored upload with duplicate flags and account suggestions."""
    await get_role(ctx, organization_id)
    history = await _fetch_history(ctx, organization_id, import_id)
    rows = _stored_rows(history)

    duplicates = detect_duplicates(rows, await _existing_entries(ctx, organization_id, rows))
    accounts = await fetch_accounts(ctx, organization_id, active_only=True)
    rules = await _fetch_rules(ctx, organization_id)
    ai_classifier = build_ai_classifier()

    mappings = []
    for index, row in enumerate(rows):
        suggestion = await classify_transaction(
            row.description, row.type, rules, accounts, ai_classifier
        )
        duplicate = duplicates.get(index)
        mappings.append(
            {
                "row_index": index,
                "account_id": suggestion.account_id if suggestion else None,
                "contra_account_id": suggestion.contra_account_id if suggestion else None,
                "confidence": suggestion.confidence if suggestion else 0.0,
                "reason": suggestion.reason if suggestion else None,
                "is_duplicate": duplicate is not None,
                "duplicate": duplicate.to_dict() if duplicate else None,
                "action": (duplicate.action if duplicate else DuplicateAction.IMPORT).value,
            }
        )

    file_data = history.get("file_data") or {}
    return {
        "preview": {
            "rows": [row.to_dict() for row in rows],
            "columns": list(rows[0].original_row) if rows else [],
            "total_rows": len(rows),
            "template": file_data.get("template"),
        },
        "mappings": mappings,
    }


def _period_for(periods: list[AccountingPeriod], row: ParsedRow) -> AccountingPeriod | None:
    return next((period for period in periods if period.contains(row.date)), None)


@server_action
async def execute_import(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    """Create one draft entry per confirmed row.

    Each row debits its mapped account and credits the contra account.
    Rows that fail are reported individually and do not stop the import.
    """
    request = validate_input(ExecuteImportInput, data)
    await require_writer(ctx, organization_id, "CSVをインポート")

    history = await _fetch_history(ctx, organization_id, request.import_id)
    if history.get("status") == "completed":
        raise ActionFailed(ErrorCode.INVALID_OPERATION, "このインポートは既に処理されています。")
    rows = _stored_rows(history)

    period_rows = await ctx.client.select(
        "accounting_periods",
        filters={"organization_id": eq(organization_id), "is_closed": eq("false")},
        order="start_date.desc",
    )
    periods = [AccountingPeriod.from_row(row) for row in period_rows]
    if not periods:
        raise ActionFailed(
            ErrorCode.INVALID_OPERATION,
            "有効な会計期間がありません。先に会計期間を作成してください。",
        )

    await ctx.client.update(
        "import_histories", {"status": "processing"}, {"id": eq(request.import_id)}
    )

    created: list[str] = []
    errors: list[dict[str, Any]] = []
    learned_rules: list[dict[str, Any]] = []
    skipped = 0
    for mapping in request.mappings:
        if mapping.row_index >= len(rows):
            errors.append({"row": mapping.row_index, "error": "行が存在しません"})
            continue
        row = rows[mapping.row_index]
        if mapping.is_duplicate and request.skip_duplicates:
            skipped += 1
            continue
        if not mapping.account_id or not mapping.contra_account_id:
            errors.append({"row": mapping.row_index, "error": "勘定科目が指定されていません"})
            continue
        period = _period_for(periods, row)
        if period is None:
            errors.append({"row": mapping.row_index, "error": "該当する会計期間がありません"})
            continue

        try:
            entry_input = validate_input(
                CreateJournalEntryInput,
                {
                    "entry_date": row.date.isoformat(),
                    "description": row.description[:500] or "CSVインポート",
                    "accounting_period_id": period.id,
                    "lines": [
                        {"account_id": mapping.account_id, "debit": str(row.amount)},
                        {"account_id": mapping.contra_account_id, "credit": str(row.amount)},
                    ],
                },
            )
            entry = await post_entry(ctx, organization_id, entry_input)
        except ActionFailed as e:
            logger.warning("import_row_failed", row=mapping.row_index, code=e.error.code.value)
            errors.append({"row": mapping.row_index, "error": e.error.message})
            continue
        except DatabaseError as e:
            logger.warning("import_row_failed", row=mapping.row_index, db_code=e.code)
            errors.append(
                {"row": mapping.row_index, "error": handle_database_error(e).error.message}
            )
            continue

        created.append(entry["id"])
        if request.create_rules_from_mappings and mapping.confidence < RULE_LEARNING_THRESHOLD:
            learned_rules.append(
                {
                    "organization_id": organization_id,
                    "description_pattern": row.description[:LEARNED_PATTERN_LENGTH],
                    "account_id": mapping.account_id,
                    "contra_account_id": mapping.contra_account_id,
                    "confidence": LEARNED_RULE_CONFIDENCE,
                    "usage_count": 1,
                }
            )

    if learned_rules:
        await ctx.client.insert("import_rules", learned_rules)

    failed = len(errors)
    await ctx.client.update(
        "import_histories",
        {
            "status": "completed" if failed == 0 else "failed",
            "imported_rows": len(created),
            "failed_rows": failed,
            "error_message": json.dumps(errors, ensure_ascii=False) if errors else None,
        },
        {"id": eq(request.import_id)},
    )
    logger.info(
        "csv_import_executed",
        import_id=request.import_id,
        imported=len(created),
        failed=failed,
        skipped=skipped,
    )
    ctx.publish(import_finished(organization_id, request.import_id, len(created), failed))
    return {
        "total_rows": len(request.mappings),
        "imported_rows": len(created),
        "failed_rows": failed,
        "skipped_rows": skipped,
        "created_journal_entries": created,
        "errors": errors,
    }


@server_action
async def get_import_history(
    ctx: ActionContext, organization_id: str, params: dict[str, Any] | None = None
) -> dict[str, Any]:
    query = validate_input(QueryParams, params or {})
    await get_role(ctx, organization_id)
    pagination = query.pagination()
    rows, total = await ctx.client.select_page(
        "import_histories",
        "id, file_name, file_size, csv_format, total_rows, imported_rows, failed_rows, "
        "status, error_message, created_at",
        {"organization_id": eq(organization_id)},
        order=f"created_at.{query.order_direction or 'desc'}",
        limit=pagination.page_size,
        offset=pagination.offset,
    )
    return paginate(rows, pagination.page, pagination.page_size, total)


# === Import rules ===


@server_action
async def list_import_rules(ctx: ActionContext, organization_id: str) -> list[dict[str, Any]]:
    await get_role(ctx, organization_id)
    return await ctx.client.select(
        "import_rules",
        filters={"organization_id": eq(organization_id)},
        order="usage_count.desc,created_at.desc",
    )


@server_action
async def create_import_rule(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    rule = validate_input(CreateImportRuleInput, data)
    await require_writer(ctx, organization_id, "インポートルールを作成")
    await ensure_accounts_exist(ctx, organization_id, [rule.account_id, rule.contra_account_id])

    rows = await ctx.client.insert(
        "import_rules",
        {
            **rule.model_dump(mode="json"),
            "organization_id": organization_id,
            "usage_count": 0,
        },
    )
    logger.info("import_rule_created", rule_id=rows[0]["id"])
    return rows[0]


@server_action
async def update_import_rule(
    ctx: ActionContext, organization_id: str, rule_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    changes = validate_input(UpdateImportRuleInput, data)
    await require_writer(ctx, organization_id, "インポートルールを更新")
    await ensure_accounts_exist(
        ctx, organization_id, filter(None, [changes.account_id, changes.contra_account_id])
    )

    values = changes.model_dump(mode="json", exclude_none=True)
    if not values:
        raise invalid("更新する項目がありません。")
    rows = await ctx.client.update(
        "import_rules", values, {"id": eq(rule_id), "organization_id": eq(organization_id)}
    )
    if not rows:
        raise not_found("インポートルール")
    return rows[0]


@server_action
async def delete_import_rule(
    ctx: ActionContext, organization_id: str, rule_id: str
) -> dict[str, Any]:
    await require_writer(ctx, organization_id, "インポートルールを削除")
    rows = await ctx.client.delete(
        "import_rules", {"id": eq(rule_id), "organization_id": eq(organization_id)}
    )
    if not rows:
        raise not_found("インポートルール")
    logger.info("import_rule_deleted", rule_id=rule_id)
    return {"id": rule_id}
