"""Accounting period actions: listing, creation and closing."""

from datetime import date
from typing import Any

import structlog

from simple_bookkeeping.actions.audit_logs import audit_entity_change
from simple_bookkeeping.actions.base import (
    ActionContext,
    fetch_period,
    get_role,
    invalid,
    require_admin,
    require_writer,
    server_action,
)
from simple_bookkeeping.clients.database import eq, gte, lte, neq
from simple_bookkeeping.events.types import EventType, record_event
from simple_bookkeeping.models import JournalStatus
from simple_bookkeeping.results import ActionFailed, ErrorCode, validate_input
from simple_bookkeeping.validation.accounting_periods import (
    AccountingPeriodFilter,
    CreateAccountingPeriodInput,
    add_years,
)
from simple_bookkeeping.validation.audit_logs import AuditAction, AuditEntityType

logger = structlog.get_logger(__name__)


async def has_overlap(
    ctx: ActionContext,
    organization_id: str,
    start_date: date,
    end_date: date,
    exclude_id: str | None = None,
) -> bool:
    """True if another period of the organization shares at least one day."""
    filters = {
        "organization_id": eq(organization_id),
        "start_date": lte(end_date.isoformat()),
        "end_date": gte(start_date.isoformat()),
    }
    if exclude_id:
        filters["id"] = neq(exclude_id)
    return await ctx.client.select_one("accounting_periods", "id", filters) is not None


@server_action
async def list_accounting_periods(
    ctx: ActionContext, organization_id: str, params: dict[str, Any] | None = None
) -> list[dict[str, Any]]:
    query = validate_input(AccountingPeriodFilter, params or {})
    await get_role(ctx, organization_id)

    filters: dict[str, Any] = {"organization_id": eq(organization_id)}
    if query.is_closed is not None:
        filters["is_closed"] = eq(str(query.is_closed).lower())
    if query.start_date:
        filters["end_date"] = gte(query.start_date.isoformat())
    if query.end_date:
        filters["start_date"] = lte(query.end_date.isoformat())
    return await ctx.client.select(
        "accounting_periods", filters=filters, order="start_date.desc", limit=query.limit
    )


@server_action
async def create_accounting_period(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    period = validate_input(CreateAccountingPeriodInput, data)
    await require_writer(ctx, organization_id, "会計期間を作成")

    if period.end_date > add_years(period.start_date, 1):
        logger.warning("accounting_period_longer_than_a_year", name=period.name)

    if await has_overlap(ctx, organization_id, period.start_date, period.end_date):
        raise invalid("指定された期間は既存の会計期間と重複しています。")

    rows = await ctx.client.insert(
        "accounting_periods",
        {
            **period.model_dump(mode="json", exclude_none=True),
            "organization_id": organization_id,
            "is_closed": False,
        },
    )
    created = rows[0]
    logger.info("accounting_period_created", period_id=created["id"], name=period.name)
    ctx.publish(record_event(EventType.ACCOUNTING_PERIOD_CREATED, organization_id, created))
    return created


@server_action
async def close_accounting_period(
    ctx: ActionContext, organization_id: str, period_id: str
) -> dict[str, Any]:
    """Close a period once none of its entries is still a draft."""
    await require_admin(ctx, organization_id, "会計期間を締め")
    period = await fetch_period(ctx, organization_id, period_id)
    if period.is_closed:
        raise invalid("この会計期間は既に閉じられています。")

    pending = await ctx.client.select_one(
        "journal_entries",
        "id",
        {
            "organization_id": eq(organization_id),
            "accounting_period_id": eq(period_id),
            "status": eq(JournalStatus.DRAFT.value),
        },
    )
    if pending is not None:
        raise invalid("未承認の仕訳があるため、会計期間を閉じることができません。")

    rows = await ctx.client.update(
        "accounting_periods",
        {"is_closed": True},
        {"id": eq(period_id), "organization_id": eq(organization_id)},
    )
    closed = rows[0] if rows else {"id": period_id, "name": period.name, "is_closed": True}
    logger.info("accounting_period_closed", period_id=period_id)
    await audit_entity_change(
        ctx,
        organization_id,
        AuditAction.UPDATE,
        AuditEntityType.ACCOUNTING_PERIOD,
        period_id,
        old_values={"is_closed": False},
        new_values={"is_closed": True},
        description=f"会計期間「{period.name}」を締め",
    )
    ctx.publish(record_event(EventType.ACCOUNTING_PERIOD_CLOSED, organization_id, closed))
    return closed


@server_action
async def reopen_accounting_period(
    ctx: ActionContext, organization_id: str, period_id: str
) -> dict[str, Any]:
    await require_admin(ctx, organization_id, "会計期間を再開")
    period = await fetch_period(ctx, organization_id, period_id)
    if not period.is_closed:
        raise ActionFailed(ErrorCode.INVALID_OPERATION, "この会計期間は閉じられていません。")

    rows = await ctx.client.update(
        "accounting_periods",
        {"is_closed": False},
        {"id": eq(period_id), "organization_id": eq(organization_id)},
    )
    logger.info("accounting_period_reopened", period_id=period_id)
    await audit_entity_change(
        ctx,
        organization_id,
        AuditAction.UPDATE,
        AuditEntityType.ACCOUNTING_PERIOD,
        period_id,
        old_values={"is_closed": True},
        new_values={"is_closed": False},
        description=f"会計期間「{period.name}」を再開",
    )
    return rows[0] if rows else {"id": period_id, "is_closed": False}
