"""Shared plumbing for server actions.

An action is an ``async def`` that takes an ``ActionContext`` first and
returns plain data. The ``server_action`` decorator turns its outcome into
an ``ActionResult``: returned data becomes ``Success``, ``ActionFailed``
becomes its ``Failure`` and network, database or unexpected errors are
mapped to safe messages in the configured language.
"""

import functools
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import date
from typing import Any, ParamSpec, TypeVar

import structlog

from simple_bookkeeping.clients.database import (
    DatabaseClient,
    DatabaseError,
    NetworkError,
    RateLimitError,
    eq,
    gte,
    in_,
    lt,
    lte,
)
from simple_bookkeeping.errors import log_error_securely
from simple_bookkeeping.events.publisher import EventPublisher
from simple_bookkeeping.events.types import ChangeEvent
from simple_bookkeeping.models import (
    Account,
    AccountingPeriod,
    JournalEntry,
    JournalLine,
    JournalStatus,
    Role,
)
from simple_bookkeeping.results import (
    ActionFailed,
    ActionResult,
    ErrorCode,
    Failure,
    Success,
    handle_database_error,
    internal_error,
    network_error,
    rate_limited,
)

logger = structlog.get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


@dataclass
class ActionContext:
    """Per-call dependencies: the database client and the acting user."""

    client: DatabaseClient
    user_id: str | None
    publisher: EventPublisher | None = None

    def publish(self, event: ChangeEvent) -> None:
        if self.publisher is not None:
            self.publisher.publish(event)


def server_action(
    func: Callable[P, Awaitable[T]],
) -> Callable[P, Awaitable[ActionResult[T]]]:
    """Wrap an action so it always returns an ``ActionResult``."""

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> ActionResult[T]:
        try:
            return Success(await func(*args, **kwargs))
        except ActionFailed as e:
            logger.info("action_failed", action=func.__name__, code=e.error.code.value)
            return Failure(e.error)
        except RateLimitError as e:
            return rate_limited(e.retry_after)
        except NetworkError as e:
            log_error_securely(e, context={"action": func.__name__})
            return network_error(e)
        except DatabaseError as e:
            log_error_securely(e, context={"action": func.__name__})
            return handle_database_error(e)
        except Exception as e:
            logger.exception("action_error", action=func.__name__)
            return internal_error(e)

    return wrapper


# === Authorization ===


async def get_role(ctx: ActionContext, organization_id: str) -> Role:
    """Role of the acting user in ``organization_id``.

    Raises:
        ActionFailed: UNAUTHORIZED without a user, FORBIDDEN without membership.
    """
    if not ctx.user_id:
        raise ActionFailed(ErrorCode.UNAUTHORIZED, "認証が必要です。ログインしてください。")

    membership = await ctx.client.select_one(
        "user_organizations",
        "role",
        {"user_id": eq(ctx.user_id), "organization_id": eq(organization_id)},
    )
    if membership is None:
        raise ActionFailed(ErrorCode.FORBIDDEN, "この組織へのアクセス権限がありません。")
    return Role(membership["role"])


async def require_writer(ctx: ActionContext, organization_id: str, action: str) -> Role:
    """Membership with write access (admin or accountant)."""
    role = await get_role(ctx, organization_id)
    if not role.can_write:
        raise ActionFailed(
            ErrorCode.INSUFFICIENT_PERMISSIONS, f"閲覧者は{action}できません。"
        )
    return role


async def require_admin(ctx: ActionContext, organization_id: str, action: str) -> Role:
    role = await get_role(ctx, organization_id)
    if role != Role.ADMIN:
        raise ActionFailed(
            ErrorCode.INSUFFICIENT_PERMISSIONS, f"管理者のみが{action}できます。"
        )
    return role


# === Common lookups ===


def not_found(resource: str) -> ActionFailed:
    return ActionFailed(ErrorCode.NOT_FOUND, f"{resource}が見つかりません。")


def invalid(message: str, details: Any = None) -> ActionFailed:
    return ActionFailed(ErrorCode.VALIDATION_ERROR, message, details)


async def fetch_accounts(
    ctx: ActionContext, organization_id: str, active_only: bool = False
) -> list[Account]:
    filters = {"organization_id": eq(organization_id)}
    if active_only:
        filters["is_active"] = eq("true")
    rows = await ctx.client.select("accounts", filters=filters, order="code.asc")
    return [Account.from_row(row) for row in rows]


async def ensure_accounts_exist(
    ctx: ActionContext, organization_id: str, account_ids: Iterable[str]
) -> None:
    wanted = set(account_ids)
    if not wanted:
        return
    rows = await ctx.client.select(
        "accounts",
        "id",
        {"organization_id": eq(organization_id), "id": in_(sorted(wanted))},
    )
    if {row["id"] for row in rows} != wanted:
        raise invalid("指定された勘定科目が存在しません。")


async def ensure_partners_exist(
    ctx: ActionContext, organization_id: str, partner_ids: Iterable[str]
) -> None:
    wanted = {pid for pid in partner_ids if pid}
    if not wanted:
        return
    rows = await ctx.client.select(
        "partners",
        "id",
        {"organization_id": eq(organization_id), "id": in_(sorted(wanted))},
    )
    if {row["id"] for row in rows} != wanted:
        raise invalid("指定された取引先が存在しません。")


async def fetch_period(
    ctx: ActionContext, organization_id: str, period_id: str
) -> AccountingPeriod:
    row = await ctx.client.select_one(
        "accounting_periods",
        filters={"id": eq(period_id), "organization_id": eq(organization_id)},
    )
    if row is None:
        raise invalid("指定された会計期間が存在しません。")
    return AccountingPeriod.from_row(row)


def paginate(items: list[Any], page: int, page_size: int, total: int) -> dict[str, Any]:
    return {
        "items": items,
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total_count": total,
            "total_pages": -(-total // page_size) if page_size else 0,
        },
    }


POSTED_STATUSES = (JournalStatus.APPROVED.value, JournalStatus.LOCKED.value)
LINE_WITH_ENTRY = (
    "*, journal_entries!inner(id, entry_date, entry_number, description, status, organization_id)"
)


def _date_filters(start_date: date | None, end_date: date | None, before: date | None) -> list[str]:
    expressions = []
    if start_date:
        expressions.append(gte(start_date.isoformat()))
    if end_date:
        expressions.append(lte(end_date.isoformat()))
    if before:
        expressions.append(lt(before.isoformat()))
    return expressions


async def fetch_posted_lines(
    ctx: ActionContext,
    organization_id: str,
    start_date: date | None = None,
    end_date: date | None = None,
    before: date | None = None,
    account_ids: Iterable[str] | None = None,
    partner_id: str | None = None,
) -> list[JournalLine]:
    """Lines of approved and locked entries, optionally limited by entry date."""
    filters: dict[str, Any] = {
        "journal_entries.organization_id": eq(organization_id),
        "journal_entries.status": in_(POSTED_STATUSES),
    }
    dates = _date_filters(start_date, end_date, before)
    if dates:
        filters["journal_entries.entry_date"] = dates
    if account_ids is not None:
        filters["account_id"] = in_(sorted(set(account_ids)))
    if partner_id is not None:
        filters["partner_id"] = eq(partner_id)
    rows = await ctx.client.select("journal_entry_lines", LINE_WITH_ENTRY, filters)
    return [JournalLine.from_row(row) for row in rows]


async def fetch_posted_entries(
    ctx: ActionContext,
    organization_id: str,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[JournalEntry]:
    """Approved and locked entries with their lines, by date and number."""
    filters: dict[str, Any] = {
        "organization_id": eq(organization_id),
        "status": in_(POSTED_STATUSES),
    }
    dates = _date_filters(start_date, end_date, None)
    if dates:
        filters["entry_date"] = dates
    rows = await ctx.client.select(
        "journal_entries",
        "*, journal_entry_lines(*)",
        filters,
        order="entry_date.asc,entry_number.asc",
    )
    return [JournalEntry.from_row(row) for row in rows]
