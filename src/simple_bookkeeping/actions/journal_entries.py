"""Journal entry actions.

Entries are created as drafts, approved by an administrator and finally
locked. Only drafts can be changed or deleted, and nothing can be posted
into a closed accounting period.
"""

import re
from datetime import date
from typing import Any

import structlog

from simple_bookkeeping.actions.audit_logs import audit_entity_change
from simple_bookkeeping.actions.base import (
    ActionContext,
    ensure_accounts_exist,
    ensure_partners_exist,
    fetch_accounts,
    fetch_period,
    get_role,
    invalid,
    not_found,
    paginate,
    require_admin,
    require_writer,
    server_action,
)
from simple_bookkeeping.clients.database import eq, gte, ilike, lte
from simple_bookkeeping.events.types import EventType, journal_entry_event
from simple_bookkeeping.models import AccountingPeriod, JournalEntry, JournalStatus
from simple_bookkeeping.results import ActionFailed, ErrorCode, validate_input
from simple_bookkeeping.simple_entry import SimpleEntryConverter, SimpleEntryInput
from simple_bookkeeping.validation.audit_logs import AuditAction, AuditEntityType
from simple_bookkeeping.validation.common import sanitize_search_query
from simple_bookkeeping.validation.journal_entries import (
    ApproveJournalEntryInput,
    CreateJournalEntryInput,
    DeleteJournalEntryInput,
    JournalEntryQuery,
    JournalLineInput,
    UpdateJournalEntryInput,
)

logger = structlog.get_logger(__name__)

ENTRY_WITH_LINES = "*, journal_entry_lines(*)"
SORTABLE_COLUMNS = {"entry_date", "entry_number", "created_at", "status"}
ENTRY_NUMBER_SUFFIX = re.compile(r"-(\d+)$")


def _lines_payload(entry_id: str, lines: list[JournalLineInput]) -> list[dict[str, Any]]:
    return [
        {
            "journal_entry_id": entry_id,
            "account_id": line.account_id,
            "debit_amount": str(line.debit_amount),
            "credit_amount": str(line.credit_amount),
            "description": line.description,
            "partner_id": line.partner_id,
            "tax_rate": str(line.tax_rate) if line.tax_rate is not None else None,
            "line_number": index,
        }
        for index, line in enumerate(lines, start=1)
    ]


def _entry_total(lines: list[JournalLineInput]) -> str:
    return str(sum(line.debit_amount for line in lines))


def _check_period_open(period: AccountingPeriod, entry_date: date) -> None:
    if period.is_closed:
        raise ActionFailed(ErrorCode.INVALID_OPERATION, "この会計期間は既に締められています。")
    if not period.contains(entry_date):
        raise invalid(
            "仕訳日付が会計期間の範囲外です。",
            {
                "entry_date": entry_date.isoformat(),
                "period_start": period.start_date.isoformat(),
                "period_end": period.end_date.isoformat(),
            },
        )


async def _validate_references(
    ctx: ActionContext, organization_id: str, lines: list[JournalLineInput]
) -> None:
    await ensure_accounts_exist(ctx, organization_id, (line.account_id for line in lines))
    await ensure_partners_exist(
        ctx, organization_id, (line.partner_id for line in lines if line.partner_id)
    )


async def _fetch_entry(ctx: ActionContext, organization_id: str, entry_id: str) -> dict[str, Any]:
    row = await ctx.client.select_one(
        "journal_entries",
        ENTRY_WITH_LINES,
        {"id": eq(entry_id), "organization_id": eq(organization_id)},
    )
    if row is None:
        raise not_found("仕訳")
    return row


def _with_lines(row: dict[str, Any]) -> dict[str, Any]:
    data = dict(row)
    lines = data.pop("journal_entry_lines", None) or []
    data["lines"] = sorted(lines, key=lambda line: line.get("line_number") or 0)
    return data


async def next_entry_number(ctx: ActionContext, organization_id: str, entry_date: date) -> str:
    """``YYYYMM-NNNN`` following the highest number already used in that month.

    Deleted drafts leave gaps; numbers are never reused.
    """
    prefix = f"{entry_date:%Y%m}"
    rows = await ctx.client.select(
        "journal_entries",
        "entry_number",
        {"organization_id": eq(organization_id), "entry_number": ilike(f"{prefix}-*")},
        order="entry_number.desc",
        limit=1,
    )
    last = 0
    if rows:
        match = ENTRY_NUMBER_SUFFIX.search(str(rows[0].get("entry_number") or ""))
        if match:
            last = int(match.group(1))
    return f"{prefix}-{last + 1:04d}"


@server_action
async def list_journal_entries(
    ctx: ActionContext, organization_id: str, params: dict[str, Any] | None = None
) -> dict[str, Any]:
    query = validate_input(JournalEntryQuery, params or {})
    await get_role(ctx, organization_id)

    filters: dict[str, Any] = {"organization_id": eq(organization_id)}
    if query.accounting_period_id:
        filters["accounting_period_id"] = eq(query.accounting_period_id)
    if query.status:
        filters["status"] = eq(query.status.value)
    date_filters = []
    if query.start_date:
        date_filters.append(gte(query.start_date.isoformat()))
    if query.end_date:
        date_filters.append(lte(query.end_date.isoformat()))
    if date_filters:
        filters["entry_date"] = date_filters
    search = sanitize_search_query(query.search)
    if search:
        filters["description"] = ilike(f"*{search}*")

    order_by = query.order_by if query.order_by in SORTABLE_COLUMNS else "entry_date"
    direction = query.order_direction or "desc"
    pagination = query.pagination()
    rows, total = await ctx.client.select_page(
        "journal_entries",
        filters=filters,
        order=f"{order_by}.{direction},entry_number.{direction}",
        limit=pagination.page_size,
        offset=pagination.offset,
    )
    return paginate(rows, pagination.page, pagination.page_size, total)


@server_action
async def get_journal_entry(
    ctx: ActionContext, organization_id: str, entry_id: str
) -> dict[str, Any]:
    await get_role(ctx, organization_id)
    return _with_lines(await _fetch_entry(ctx, organization_id, entry_id))


async def post_entry(
    ctx: ActionContext, organization_id: str, data: CreateJournalEntryInput
) -> dict[str, Any]:
    """Insert a validated entry and its lines; the caller checks the role."""
    period = await fetch_period(ctx, organization_id, data.accounting_period_id)
    _check_period_open(period, data.entry_date)
    await _validate_references(ctx, organization_id, data.lines)

    entry_number = data.entry_number or await next_entry_number(
        ctx, organization_id, data.entry_date
    )
    inserted = await ctx.client.insert(
        "journal_entries",
        {
            "organization_id": organization_id,
            "accounting_period_id": data.accounting_period_id,
            "entry_number": entry_number,
            "entry_date": data.entry_date.isoformat(),
            "description": data.description,
            "memo": data.memo,
            "reference_number": data.reference_number,
            "status": JournalStatus.DRAFT.value,
            "created_by": ctx.user_id,
        },
    )
    entry = inserted[0]

    try:
        lines = await ctx.client.insert("journal_entry_lines", _lines_payload(entry["id"], data.lines))
    except Exception:
        logger.warning("journal_lines_insert_failed", entry_id=entry["id"])
        await ctx.client.delete("journal_entries", {"id": eq(entry["id"])})
        raise

    logger.info(
        "journal_entry_created",
        entry_id=entry["id"],
        entry_number=entry_number,
        line_count=len(lines),
    )
    ctx.publish(
        journal_entry_event(
            EventType.JOURNAL_ENTRY_CREATED, organization_id, entry, _entry_total(data.lines)
        )
    )
    return {**entry, "lines": lines}


async def _audit_created(ctx: ActionContext, organization_id: str, entry: dict[str, Any]) -> None:
    await audit_entity_change(
        ctx,
        organization_id,
        AuditAction.CREATE,
        AuditEntityType.JOURNAL_ENTRY,
        entry["id"],
        new_values={
            "entry_number": entry.get("entry_number"),
            "entry_date": entry.get("entry_date"),
            "description": entry.get("description"),
            "line_count": len(entry.get("lines") or []),
        },
    )


@server_action
async def create_journal_entry(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    """Validate and post a new draft entry with its lines."""
    entry_input = validate_input(CreateJournalEntryInput, data)
    await require_writer(ctx, organization_id, "仕訳を作成")
    entry = await post_entry(ctx, organization_id, entry_input)
    await _audit_created(ctx, organization_id, entry)
    return entry


@server_action
async def update_journal_entry(
    ctx: ActionContext, organization_id: str, entry_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    """Update a draft entry; lines, when given, replace the existing ones."""
    changes = validate_input(UpdateJournalEntryInput, data)
    await require_writer(ctx, organization_id, "仕訳を更新")

    existing = JournalEntry.from_row(await _fetch_entry(ctx, organization_id, entry_id))
    if not existing.is_editable:
        raise ActionFailed(ErrorCode.INVALID_OPERATION, "承認済みの仕訳は更新できません。")

    entry_date = changes.entry_date or existing.entry_date
    if existing.accounting_period_id:
        period = await fetch_period(ctx, organization_id, existing.accounting_period_id)
        _check_period_open(period, entry_date)
    if changes.lines is not None:
        await _validate_references(ctx, organization_id, changes.lines)

    values = changes.model_dump(exclude_none=True, exclude={"lines", "entry_date"})
    if changes.entry_date:
        values["entry_date"] = changes.entry_date.isoformat()
    if values:
        await ctx.client.update(
            "journal_entries", values, {"id": eq(entry_id), "organization_id": eq(organization_id)}
        )
    if changes.lines is not None:
        await ctx.client.delete("journal_entry_lines", {"journal_entry_id": eq(entry_id)})
        await ctx.client.insert("journal_entry_lines", _lines_payload(entry_id, changes.lines))

    updated = _with_lines(await _fetch_entry(ctx, organization_id, entry_id))
    logger.info("journal_entry_updated", entry_id=entry_id)
    await audit_entity_change(
        ctx,
        organization_id,
        AuditAction.UPDATE,
        AuditEntityType.JOURNAL_ENTRY,
        entry_id,
        old_values={
            "entry_date": existing.entry_date.isoformat(),
            "description": existing.description,
        },
        new_values={**values, "lines_replaced": changes.lines is not None},
    )
    ctx.publish(journal_entry_event(EventType.JOURNAL_ENTRY_UPDATED, organization_id, updated))
    return updated


async def _transition(
    ctx: ActionContext,
    organization_id: str,
    entry_id: str,
    source: JournalStatus,
    target: JournalStatus,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    existing = JournalEntry.from_row(await _fetch_entry(ctx, organization_id, entry_id))
    if existing.status != source:
        raise ActionFailed(
            ErrorCode.INVALID_OPERATION,
            f"ステータスが{existing.status.value}の仕訳は{target.value}にできません。",
        )
    if existing.accounting_period_id:
        period = await fetch_period(ctx, organization_id, existing.accounting_period_id)
        if period.is_closed:
            raise ActionFailed(
                ErrorCode.INVALID_OPERATION, "この会計期間は既に締められています。"
            )
    if existing.total_debit != existing.total_credit:
        raise invalid("借方と貸方の合計金額が一致しません")

    values = {"status": target.value, **(extra or {})}
    rows = await ctx.client.update(
        "journal_entries", values, {"id": eq(entry_id), "organization_id": eq(organization_id)}
    )
    logger.info("journal_entry_status_changed", entry_id=entry_id, status=target.value)
    return rows[0] if rows else {"id": entry_id, **values}


@server_action
async def approve_journal_entry(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    request = validate_input(ApproveJournalEntryInput, data)
    await require_admin(ctx, organization_id, "仕訳を承認")
    entry = await _transition(
        ctx,
        organization_id,
        request.id,
        JournalStatus.DRAFT,
        JournalStatus.APPROVED,
        {"approved_by": ctx.user_id},
    )
    await audit_entity_change(
        ctx,
        organization_id,
        AuditAction.APPROVE,
        AuditEntityType.JOURNAL_ENTRY,
        request.id,
        old_values={"status": JournalStatus.DRAFT.value},
        new_values={"status": JournalStatus.APPROVED.value},
    )
    ctx.publish(journal_entry_event(EventType.JOURNAL_ENTRY_APPROVED, organization_id, entry))
    return entry


@server_action
async def lock_journal_entry(
    ctx: ActionContext, organization_id: str, entry_id: str
) -> dict[str, Any]:
    await require_admin(ctx, organization_id, "仕訳をロック")
    entry = await _transition(
        ctx, organization_id, entry_id, JournalStatus.APPROVED, JournalStatus.LOCKED
    )
    await audit_entity_change(
        ctx,
        organization_id,
        AuditAction.UPDATE,
        AuditEntityType.JOURNAL_ENTRY,
        entry_id,
        old_values={"status": JournalStatus.APPROVED.value},
        new_values={"status": JournalStatus.LOCKED.value},
    )
    ctx.publish(journal_entry_event(EventType.JOURNAL_ENTRY_LOCKED, organization_id, entry))
    return entry


@server_action
async def delete_journal_entry(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    request = validate_input(DeleteJournalEntryInput, data)
    await require_admin(ctx, organization_id, "仕訳を削除")

    existing = JournalEntry.from_row(await _fetch_entry(ctx, organization_id, request.id))
    if not existing.is_editable:
        raise ActionFailed(ErrorCode.INVALID_OPERATION, "承認済みの仕訳は削除できません。")

    await ctx.client.delete("journal_entry_lines", {"journal_entry_id": eq(request.id)})
    await ctx.client.delete(
        "journal_entries", {"id": eq(request.id), "organization_id": eq(organization_id)}
    )
    logger.info("journal_entry_deleted", entry_id=request.id, reason=request.reason)
    await audit_entity_change(
        ctx,
        organization_id,
        AuditAction.DELETE,
        AuditEntityType.JOURNAL_ENTRY,
        request.id,
        old_values={
            "entry_number": existing.entry_number,
            "entry_date": existing.entry_date.isoformat(),
            "description": existing.description,
        },
        description=request.reason,
    )
    ctx.publish(
        journal_entry_event(
            EventType.JOURNAL_ENTRY_DELETED,
            organization_id,
            {"id": request.id, "entry_number": existing.entry_number, "status": "deleted"},
        )
    )
    return {"id": request.id}


@server_action
async def create_journal_entry_from_simple(
    ctx: ActionContext,
    organization_id: str,
    accounting_period_id: str,
    data: dict[str, Any],
) -> dict[str, Any]:
    """Create a draft entry from a simple transaction pattern."""
    simple = validate_input(SimpleEntryInput, data)
    await require_writer(ctx, organization_id, "仕訳を作成")

    accounts = await fetch_accounts(ctx, organization_id, active_only=True)
    conversion = SimpleEntryConverter(accounts).convert(simple)
    if not conversion.is_valid:
        raise invalid(
            "入力内容に誤りがあります。", {"general": conversion.validation_errors}
        )

    entry_input = validate_input(
        CreateJournalEntryInput,
        {
            "entry_date": conversion.entry_date.isoformat(),
            "description": conversion.description,
            "accounting_period_id": accounting_period_id,
            "lines": conversion.lines,
        },
    )
    entry = await post_entry(ctx, organization_id, entry_input)
    await _audit_created(ctx, organization_id, entry)
    return entry
