"""Subsidiary book actions: cash, bank, accounts receivable and payable."""

from typing import Any

import structlog

from simple_bookkeeping.actions.base import (
    ActionContext,
    fetch_accounts,
    fetch_posted_entries,
    fetch_posted_lines,
    get_role,
    invalid,
    not_found,
    server_action,
)
from simple_bookkeeping.config import get_settings
from simple_bookkeeping.ledger.books import LedgerBook, build_book, export_ledger_csv
from simple_bookkeeping.models import Account, AccountType
from simple_bookkeeping.results import validate_input
from simple_bookkeeping.validation.reports import LedgerBookParams, LedgerType

logger = structlog.get_logger(__name__)

LEDGER_ACCOUNT_TYPES = {
    LedgerType.CASH: AccountType.ASSET,
    LedgerType.BANK: AccountType.ASSET,
    LedgerType.RECEIVABLE: AccountType.ASSET,
    LedgerType.PAYABLE: AccountType.LIABILITY,
}


def ledger_account_codes(ledger_type: LedgerType) -> list[str]:
    settings = get_settings()
    return {
        LedgerType.CASH: settings.cash_account_codes,
        LedgerType.BANK: settings.bank_account_codes,
        LedgerType.RECEIVABLE: settings.receivable_account_codes,
        LedgerType.PAYABLE: settings.payable_account_codes,
    }[ledger_type]


def select_ledger_accounts(
    ledger_type: LedgerType, accounts: list[Account], account_id: str | None = None
) -> list[Account]:
    """Accounts a book of ``ledger_type`` tracks, optionally narrowed to one."""
    codes = set(ledger_account_codes(ledger_type))
    selected = [account for account in accounts if account.code in codes]
    if account_id is not None:
        selected = [account for account in selected if account.id == account_id]
        if not selected:
            raise invalid("指定された勘定科目はこの帳簿の対象ではありません。")
    return selected


async def _build_ledger(
    ctx: ActionContext, organization_id: str, params: LedgerBookParams
) -> tuple[list[Account], LedgerBook]:
    accounts = await fetch_accounts(ctx, organization_id)
    tracked = select_ledger_accounts(params.ledger_type, accounts, params.account_id)
    if not tracked:
        raise not_found("帳簿の勘定科目")

    tracked_ids = [account.id for account in tracked]
    entries = await fetch_posted_entries(
        ctx, organization_id, params.period.start_date, params.period.end_date
    )
    opening = await fetch_posted_lines(
        ctx, organization_id, before=params.period.start_date, account_ids=tracked_ids
    )
    book = build_book(
        tracked_ids,
        LEDGER_ACCOUNT_TYPES[params.ledger_type],
        entries,
        {account.id: account.name for account in accounts},
        opening,
        params.partner_id,
    )
    return tracked, book


@server_action
async def get_ledger(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    """Book with opening balance and running balance per posting."""
    params = validate_input(LedgerBookParams, data)
    await get_role(ctx, organization_id)
    tracked, book = await _build_ledger(ctx, organization_id, params)
    return {
        "ledger_type": params.ledger_type.value,
        "accounts": [{"id": a.id, "code": a.code, "name": a.name} for a in tracked],
        "start_date": params.period.start_date.isoformat(),
        "end_date": params.period.end_date.isoformat(),
        **book.to_dict(),
    }


@server_action
async def export_ledger(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> dict[str, str]:
    params = validate_input(LedgerBookParams, data)
    await get_role(ctx, organization_id)
    _, book = await _build_ledger(ctx, organization_id, params)

    content = export_ledger_csv(
        book, params.ledger_type.value, params.period.start_date, params.period.end_date
    )
    filename = (
        f"{params.ledger_type.value}-ledger-"
        f"{params.period.start_date:%Y%m%d}-{params.period.end_date:%Y%m%d}.csv"
    )
    logger.info("ledger_exported", ledger_type=params.ledger_type.value, rows=len(book.rows))
    return {"filename": filename, "content": content, "content_type": "text/csv"}
