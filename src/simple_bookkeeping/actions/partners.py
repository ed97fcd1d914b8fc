"""Business partner (customer / supplier) actions."""

from typing import Any

import structlog

from simple_bookkeeping.actions.audit_logs import audit_entity_change
from simple_bookkeeping.actions.base import (
    ActionContext,
    fetch_accounts,
    fetch_posted_lines,
    get_role,
    invalid,
    not_found,
    paginate,
    require_admin,
    require_writer,
    server_action,
)
from simple_bookkeeping.clients.database import eq, ilike, neq
from simple_bookkeeping.config import get_settings
from simple_bookkeeping.events.types import EventType, record_event
from simple_bookkeeping.ledger.balances import compute_partner_balance, running_balances
from simple_bookkeeping.models import AccountType, Partner
from simple_bookkeeping.results import ActionFailed, ErrorCode, validate_input
from simple_bookkeeping.validation.audit_logs import AuditAction, AuditEntityType
from simple_bookkeeping.validation.common import sanitize_search_query
from simple_bookkeeping.validation.partners import (
    CreatePartnerInput,
    PartnerBalanceQuery,
    PartnerQuery,
    PartnerTransactionsQuery,
    UpdatePartnerInput,
)

logger = structlog.get_logger(__name__)

SORTABLE_COLUMNS = {"code", "name", "name_kana", "partner_type", "created_at"}
TRANSACTIONS_PAGE_SIZE = 50


async def _fetch_partner(ctx: ActionContext, organization_id: str, partner_id: str) -> Partner:
    row = await ctx.client.select_one(
        "partners", filters={"id": eq(partner_id), "organization_id": eq(organization_id)}
    )
    if row is None:
        raise not_found("取引先")
    return Partner.from_row(row)


async def _ensure_code_available(
    ctx: ActionContext, organization_id: str, code: str, exclude_id: str | None = None
) -> None:
    filters = {"organization_id": eq(organization_id), "code": eq(code)}
    if exclude_id:
        filters["id"] = neq(exclude_id)
    if await ctx.client.select_one("partners", "id", filters) is not None:
        raise ActionFailed(
            ErrorCode.ALREADY_EXISTS, f"取引先コード「{code}」は既に使用されています。"
        )


@server_action
async def list_partners(
    ctx: ActionContext, organization_id: str, params: dict[str, Any] | None = None
) -> dict[str, Any]:
    query = validate_input(PartnerQuery, params or {})
    await get_role(ctx, organization_id)

    filters: dict[str, Any] = {"organization_id": eq(organization_id)}
    if query.partner_type:
        filters["partner_type"] = eq(query.partner_type.value)
    if query.is_active is not None:
        filters["is_active"] = eq(str(query.is_active).lower())
    search = sanitize_search_query(query.search)
    if search:
        filters["name"] = ilike(f"*{search}*")

    order_by = query.order_by if query.order_by in SORTABLE_COLUMNS else "code"
    pagination = query.pagination()
    rows, total = await ctx.client.select_page(
        "partners",
        filters=filters,
        order=f"{order_by}.{query.order_direction or 'asc'}",
        limit=pagination.page_size,
        offset=pagination.offset,
    )
    return paginate(rows, pagination.page, pagination.page_size, total)


@server_action
async def create_partner(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    partner = validate_input(CreatePartnerInput, data)
    await require_writer(ctx, organization_id, "取引先を作成")
    await _ensure_code_available(ctx, organization_id, partner.code)

    values = partner.model_dump(mode="json", exclude_none=True)
    rows = await ctx.client.insert("partners", {**values, "organization_id": organization_id})
    created = rows[0]
    logger.info("partner_created", partner_id=created["id"], code=partner.code)
    await audit_entity_change(
        ctx,
        organization_id,
        AuditAction.CREATE,
        AuditEntityType.PARTNER,
        created["id"],
        new_values=values,
        description=f"取引先「{partner.code} {partner.name}」を作成",
    )
    ctx.publish(record_event(EventType.PARTNER_CREATED, organization_id, created))
    return created


@server_action
async def update_partner(
    ctx: ActionContext, organization_id: str, partner_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    changes = validate_input(UpdatePartnerInput, data)
    await require_writer(ctx, organization_id, "取引先を更新")
    current = await _fetch_partner(ctx, organization_id, partner_id)

    if changes.code and changes.code != current.code:
        await _ensure_code_available(ctx, organization_id, changes.code, exclude_id=partner_id)

    values = changes.model_dump(mode="json", exclude_none=True)
    if not values:
        raise invalid("更新する項目がありません。")
    rows = await ctx.client.update(
        "partners", values, {"id": eq(partner_id), "organization_id": eq(organization_id)}
    )
    updated = rows[0] if rows else {"id": partner_id, **values}
    logger.info("partner_updated", partner_id=partner_id, fields=sorted(values))
    await audit_entity_change(
        ctx,
        organization_id,
        AuditAction.UPDATE,
        AuditEntityType.PARTNER,
        partner_id,
        old_values={"code": current.code, "name": current.name},
        new_values=values,
    )
    ctx.publish(record_event(EventType.PARTNER_UPDATED, organization_id, updated))
    return updated


@server_action
async def delete_partner(
    ctx: ActionContext, organization_id: str, partner_id: str
) -> dict[str, Any]:
    await require_admin(ctx, organization_id, "取引先を削除")
    current = await _fetch_partner(ctx, organization_id, partner_id)

    used = await ctx.client.select_one(
        "journal_entry_lines", "id", {"partner_id": eq(partner_id)}
    )
    if used is not None:
        raise ActionFailed(
            ErrorCode.CONSTRAINT_VIOLATION,
            "この取引先は仕訳で使用されているため削除できません。",
        )
    await ctx.client.delete(
        "partners", {"id": eq(partner_id), "organization_id": eq(organization_id)}
    )
    logger.info("partner_deleted", partner_id=partner_id)
    await audit_entity_change(
        ctx,
        organization_id,
        AuditAction.DELETE,
        AuditEntityType.PARTNER,
        partner_id,
        old_values={"code": current.code, "name": current.name},
    )
    return {"id": partner_id}


@server_action
async def get_partner_balance(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    """Receivable, payable and net balance of a partner as of a date."""
    query = validate_input(PartnerBalanceQuery, data)
    await get_role(ctx, organization_id)
    partner = await _fetch_partner(ctx, organization_id, query.partner_id)

    settings = get_settings()
    accounts = await fetch_accounts(ctx, organization_id)
    lines = await fetch_posted_lines(
        ctx, organization_id, end_date=query.as_of_date, partner_id=partner.id
    )
    balance = compute_partner_balance(
        partner.id,
        lines,
        accounts,
        settings.receivable_account_codes,
        settings.payable_account_codes,
    )
    return {"partner_name": partner.name, **balance.to_dict()}


@server_action
async def get_partner_transactions(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    """Posted lines of a partner, newest first, with a running balance.

    The balance accumulates ``debit - credit`` from the first line in the
    requested range, independently of the page being shown.
    """
    query = validate_input(PartnerTransactionsQuery, data)
    await get_role(ctx, organization_id)
    partner = await _fetch_partner(ctx, organization_id, query.partner_id)

    accounts = {account.id: account for account in await fetch_accounts(ctx, organization_id)}
    lines = await fetch_posted_lines(
        ctx,
        organization_id,
        start_date=query.from_date,
        end_date=query.to_date,
        partner_id=partner.id,
    )
    rows = []
    for item in running_balances(lines, AccountType.ASSET):
        line = item.line
        account = accounts.get(line.account_id)
        rows.append(
            {
                "id": line.id,
                "journal_entry_id": line.journal_entry_id,
                "date": line.entry_date.isoformat() if line.entry_date else "",
                "entry_number": line.entry_number or "",
                "description": line.description or line.entry_description or "",
                "account_code": account.code if account else "",
                "account_name": account.name if account else "",
                "debit_amount": line.debit,
                "credit_amount": line.credit,
                "balance": item.balance,
            }
        )
    rows.reverse()

    page = query.page or 1
    page_size = query.page_size or TRANSACTIONS_PAGE_SIZE
    start = (page - 1) * page_size
    return paginate(rows[start : start + page_size], page, page_size, len(rows))
