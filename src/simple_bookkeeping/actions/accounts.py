"""Chart-of-accounts actions."""

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
from simple_bookkeeping.events.types import EventType, record_event
from simple_bookkeeping.ledger.accounts_tree import build_tree, would_create_cycle
from simple_bookkeeping.ledger.balances import aggregate_account_balances
from simple_bookkeeping.models import Account
from simple_bookkeeping.results import ActionFailed, ErrorCode, validate_input
from simple_bookkeeping.validation.accounts import (
    AccountQuery,
    CreateAccountInput,
    UpdateAccountInput,
)
from simple_bookkeeping.validation.audit_logs import AuditAction, AuditEntityType
from simple_bookkeeping.validation.common import sanitize_search_query

logger = structlog.get_logger(__name__)

SORTABLE_COLUMNS = {"code", "name", "account_type", "created_at"}


async def _ensure_code_available(
    ctx: ActionContext, organization_id: str, code: str, exclude_id: str | None = None
) -> None:
    filters = {"organization_id": eq(organization_id), "code": eq(code)}
    if exclude_id:
        filters["id"] = neq(exclude_id)
    if await ctx.client.select_one("accounts", "id", filters) is not None:
        raise ActionFailed(
            ErrorCode.ALREADY_EXISTS, f"勘定科目コード「{code}」は既に使用されています。"
        )


def _by_id(accounts: list[Account], account_id: str) -> Account | None:
    return next((account for account in accounts if account.id == account_id), None)


@server_action
async def list_accounts(
    ctx: ActionContext, organization_id: str, params: dict[str, Any] | None = None
) -> dict[str, Any]:
    query = validate_input(AccountQuery, params or {})
    await get_role(ctx, organization_id)

    filters: dict[str, Any] = {"organization_id": eq(organization_id)}
    if query.account_type:
        filters["account_type"] = eq(query.account_type.value)
    if query.is_active is not None:
        filters["is_active"] = eq(str(query.is_active).lower())
    if query.parent_id:
        filters["parent_id"] = eq(query.parent_id)
    search = sanitize_search_query(query.search)
    if search:
        filters["name"] = ilike(f"*{search}*")

    order_by = query.order_by if query.order_by in SORTABLE_COLUMNS else "code"
    pagination = query.pagination()
    rows, total = await ctx.client.select_page(
        "accounts",
        filters=filters,
        order=f"{order_by}.{query.order_direction or 'asc'}",
        limit=pagination.page_size,
        offset=pagination.offset,
    )
    return paginate(rows, pagination.page, pagination.page_size, total)


@server_action
async def create_account(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    account = validate_input(CreateAccountInput, data)
    await require_writer(ctx, organization_id, "勘定科目を作成")
    await _ensure_code_available(ctx, organization_id, account.code)

    if account.parent_id:
        accounts = await fetch_accounts(ctx, organization_id)
        parent = _by_id(accounts, account.parent_id)
        if parent is None:
            raise invalid("親勘定科目が存在しません。")
        if parent.account_type != account.account_type:
            raise invalid("親勘定科目と勘定科目タイプが一致しません。")

    values = account.model_dump(mode="json")
    rows = await ctx.client.insert("accounts", {**values, "organization_id": organization_id})
    created = rows[0]
    logger.info("account_created", account_id=created["id"], code=account.code)
    await audit_entity_change(
        ctx,
        organization_id,
        AuditAction.CREATE,
        AuditEntityType.ACCOUNT,
        created["id"],
        new_values=values,
        description=f"勘定科目「{account.code} {account.name}」を作成",
    )
    ctx.publish(record_event(EventType.ACCOUNT_CREATED, organization_id, created))
    return created


@server_action
async def update_account(
    ctx: ActionContext, organization_id: str, account_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    """Update an account, refusing parent changes that would form a loop."""
    changes = validate_input(UpdateAccountInput, data)
    await require_writer(ctx, organization_id, "勘定科目を更新")

    accounts = await fetch_accounts(ctx, organization_id)
    current = _by_id(accounts, account_id)
    if current is None:
        raise not_found("勘定科目")

    if changes.code and changes.code != current.code:
        await _ensure_code_available(ctx, organization_id, changes.code, exclude_id=account_id)

    if changes.parent_id and changes.parent_id != current.parent_id:
        parent = _by_id(accounts, changes.parent_id)
        if parent is None:
            raise invalid("親勘定科目が存在しません。")
        if would_create_cycle(account_id, changes.parent_id, accounts):
            raise invalid("親勘定科目の設定により循環参照が発生します。")

    values = changes.model_dump(mode="json", exclude_none=True)
    if not values:
        raise invalid("更新する項目がありません。")
    rows = await ctx.client.update(
        "accounts", values, {"id": eq(account_id), "organization_id": eq(organization_id)}
    )
    updated = rows[0] if rows else {"id": account_id, **values}
    logger.info("account_updated", account_id=account_id, fields=sorted(values))
    await audit_entity_change(
        ctx,
        organization_id,
        AuditAction.UPDATE,
        AuditEntityType.ACCOUNT,
        account_id,
        old_values={"code": current.code, "name": current.name, "parent_id": current.parent_id},
        new_values=values,
    )
    ctx.publish(record_event(EventType.ACCOUNT_UPDATED, organization_id, updated))
    return updated


@server_action
async def delete_account(
    ctx: ActionContext, organization_id: str, account_id: str
) -> dict[str, Any]:
    """Delete an account that has neither postings nor child accounts."""
    await require_admin(ctx, organization_id, "勘定科目を削除")

    accounts = await fetch_accounts(ctx, organization_id)
    current = _by_id(accounts, account_id)
    if current is None:
        raise not_found("勘定科目")
    if any(account.parent_id == account_id for account in accounts):
        raise ActionFailed(
            ErrorCode.INVALID_OPERATION, "子勘定科目が存在するため削除できません。"
        )
    used = await ctx.client.select_one(
        "journal_entry_lines", "id", {"account_id": eq(account_id)}
    )
    if used is not None:
        raise ActionFailed(
            ErrorCode.INVALID_OPERATION, "仕訳で使用されている勘定科目は削除できません。"
        )

    await ctx.client.delete(
        "accounts", {"id": eq(account_id), "organization_id": eq(organization_id)}
    )
    logger.info("account_deleted", account_id=account_id, code=current.code)
    await audit_entity_change(
        ctx,
        organization_id,
        AuditAction.DELETE,
        AuditEntityType.ACCOUNT,
        account_id,
        old_values={"code": current.code, "name": current.name},
    )
    ctx.publish(
        record_event(
            EventType.ACCOUNT_DELETED,
            organization_id,
            {"id": current.id, "code": current.code, "name": current.name},
        )
    )
    return {"id": account_id}


@server_action
async def get_account_tree(
    ctx: ActionContext, organization_id: str, include_balances: bool = False
) -> list[dict[str, Any]]:
    await get_role(ctx, organization_id)
    accounts = await fetch_accounts(ctx, organization_id)

    balances = None
    if include_balances:
        lines = await fetch_posted_lines(ctx, organization_id)
        balances = {
            account_id: entry.balance
            for account_id, entry in aggregate_account_balances(accounts, lines).items()
        }
    return [node.to_dict() for node in build_tree(accounts, balances)]
