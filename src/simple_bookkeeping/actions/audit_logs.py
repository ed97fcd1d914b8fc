"""Audit trail of changes to journal entries, accounts and partners.

Mutating actions call ``audit_entity_change`` after their write succeeds.
A failed audit insert is logged and does not undo or fail the change
itself. Reading the trail needs write access (admin or accountant);
exporting it is admin only.
"""

import csv
import io
from datetime import timedelta
from typing import Any

import structlog

from simple_bookkeeping.actions.base import (
    ActionContext,
    paginate,
    require_admin,
    require_writer,
    server_action,
)
from simple_bookkeeping.clients.database import DatabaseError, eq, gte, lt
from simple_bookkeeping.errors import log_error_securely
from simple_bookkeeping.results import validate_input
from simple_bookkeeping.validation.audit_logs import (
    AuditAction,
    AuditEntityType,
    AuditLogQuery,
    ExportAuditLogsInput,
)

logger = structlog.get_logger(__name__)

AUDIT_WITH_USER = "*, users!user_id(id, email, name)"
EXPORT_LIMIT = 10000

CSV_HEADER = ["ID", "Date", "User ID", "Action", "Entity Type", "Entity ID", "Description"]
USER_COLUMNS = ["User Email", "User Name"]


async def audit_entity_change(
    ctx: ActionContext,
    organization_id: str,
    action: AuditAction,
    entity_type: AuditEntityType,
    entity_id: str,
    old_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
    description: str | None = None,
) -> None:
    try:
        await ctx.client.insert(
            "audit_logs",
            {
                "organization_id": organization_id,
                "user_id": ctx.user_id,
                "action": action.value,
                "entity_type": entity_type.value,
                "entity_id": entity_id,
                "old_values": old_values,
                "new_values": new_values,
                "description": description,
            },
        )
    except DatabaseError as e:
        log_error_securely(
            e,
            context={
                "audit_action": action.value,
                "entity_type": entity_type.value,
                "entity_id": entity_id,
            },
            user_id=ctx.user_id,
        )


def _filters(organization_id: str, query: AuditLogQuery) -> dict[str, Any]:
    filters: dict[str, Any] = {"organization_id": eq(organization_id)}
    created_at = []
    if query.start_date:
        created_at.append(gte(query.start_date.isoformat()))
    if query.end_date:
        # created_at is a timestamp; include the whole end day
        created_at.append(lt((query.end_date + timedelta(days=1)).isoformat()))
    if created_at:
        filters["created_at"] = created_at
    if query.user_id:
        filters["user_id"] = eq(query.user_id)
    if query.entity_type:
        filters["entity_type"] = eq(query.entity_type.value)
    if query.entity_id:
        filters["entity_id"] = eq(query.entity_id)
    if query.action:
        filters["action"] = eq(query.action.value)
    return filters


def _format_log(row: dict[str, Any]) -> dict[str, Any]:
    log = {key: value for key, value in row.items() if key != "users"}
    user = row.get("users")
    log["user"] = (
        {"id": user.get("id"), "email": user.get("email"), "name": user.get("name")}
        if user
        else None
    )
    return log


@server_action
async def list_audit_logs(
    ctx: ActionContext, organization_id: str, params: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Audit entries of the organization, newest first."""
    query = validate_input(AuditLogQuery, params or {})
    await require_writer(ctx, organization_id, "監査ログを閲覧")

    rows, total = await ctx.client.select_page(
        "audit_logs",
        AUDIT_WITH_USER,
        _filters(organization_id, query),
        order="created_at.desc",
        limit=query.page_size,
        offset=(query.page - 1) * query.page_size,
    )
    return paginate([_format_log(row) for row in rows], query.page, query.page_size, total)


@server_action
async def get_audit_entity_types(ctx: ActionContext, organization_id: str) -> list[str]:
    await require_writer(ctx, organization_id, "監査ログを閲覧")
    rows = await ctx.client.select(
        "audit_logs",
        "entity_type",
        {"organization_id": eq(organization_id)},
        order="entity_type.asc",
    )
    return sorted({row["entity_type"] for row in rows if row.get("entity_type")})


def audit_logs_csv(logs: list[dict[str, Any]], include_user_details: bool = False) -> str:
    header = list(CSV_HEADER)
    if include_user_details:
        header[3:3] = USER_COLUMNS

    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(header)
    for log in logs:
        row = [
            log.get("id") or "",
            log.get("created_at") or "",
            log.get("user_id") or "",
            log.get("action") or "",
            log.get("entity_type") or "",
            log.get("entity_id") or "",
            log.get("description") or "",
        ]
        if include_user_details:
            user = log.get("user") or {}
            row[3:3] = [user.get("email") or "", user.get("name") or ""]
        writer.writerow(row)
    return output.getvalue()


@server_action
async def export_audit_logs(
    ctx: ActionContext,
    organization_id: str,
    params: dict[str, Any] | None = None,
    options: dict[str, Any] | None = None,
) -> str | list[dict[str, Any]]:
    """Export the filtered trail as CSV text or a list of records."""
    query = validate_input(AuditLogQuery, params or {})
    export = validate_input(ExportAuditLogsInput, options or {})
    await require_admin(ctx, organization_id, "監査ログをエクスポート")

    rows = await ctx.client.select(
        "audit_logs",
        AUDIT_WITH_USER,
        _filters(organization_id, query),
        order="created_at.desc",
        limit=EXPORT_LIMIT,
    )
    logs = [_format_log(row) for row in rows]
    logger.info(
        "audit_logs_exported",
        organization_id=organization_id,
        format=export.format,
        count=len(logs),
    )

    if export.format == "csv":
        return audit_logs_csv(logs, export.include_user_details)
    if export.include_user_details:
        return logs
    return [{key: value for key, value in log.items() if key != "user"} for log in logs]
