"""Financial report actions.

All reports are computed from approved and locked entries only; drafts
never affect a statement.
"""

from datetime import date
from typing import Any

import structlog

from simple_bookkeeping.actions.base import (
    ActionContext,
    fetch_accounts,
    fetch_posted_entries,
    fetch_posted_lines,
    get_role,
    invalid,
    server_action,
)
from simple_bookkeeping.ledger.books import build_general_ledger
from simple_bookkeeping.reports.export import export_filename, export_report
from simple_bookkeeping.reports.statements import (
    build_balance_sheet,
    build_cash_flow,
    build_profit_and_loss,
    build_trial_balance,
)
from simple_bookkeeping.results import validate_input
from simple_bookkeeping.validation.reports import (
    BalanceSheetParams,
    CashFlowParams,
    ExportReportParams,
    GeneralLedgerParams,
    ProfitLossParams,
    ReportType,
    TrialBalanceParams,
)

logger = structlog.get_logger(__name__)


async def _build(
    ctx: ActionContext,
    organization_id: str,
    report_type: ReportType,
    start_date: date | None,
    end_date: date,
    include_inactive: bool = True,
) -> Any:
    accounts = await fetch_accounts(ctx, organization_id, active_only=not include_inactive)

    if report_type == ReportType.BALANCE_SHEET:
        lines = await fetch_posted_lines(ctx, organization_id, end_date=end_date)
        return build_balance_sheet(accounts, lines, end_date)
    if report_type == ReportType.PROFIT_LOSS:
        lines = await fetch_posted_lines(ctx, organization_id, start_date, end_date)
        return build_profit_and_loss(accounts, lines, start_date, end_date)
    if report_type == ReportType.TRIAL_BALANCE:
        lines = await fetch_posted_lines(ctx, organization_id, start_date, end_date)
        return build_trial_balance(accounts, lines, end_date)

    entries = await fetch_posted_entries(ctx, organization_id, start_date, end_date)
    opening = (
        await fetch_posted_lines(ctx, organization_id, before=start_date) if start_date else []
    )
    return build_cash_flow(accounts, entries, opening, start_date, end_date)


@server_action
async def get_balance_sheet(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    params = validate_input(BalanceSheetParams, data)
    await get_role(ctx, organization_id)
    sheet = await _build(
        ctx,
        organization_id,
        ReportType.BALANCE_SHEET,
        None,
        params.as_of_date,
        params.options.include_inactive_accounts,
    )
    logger.info("report_generated", report="balance_sheet", balanced=sheet.is_balanced)
    return sheet.to_dict()


@server_action
async def get_profit_and_loss(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    """Profit and loss for a period, optionally with a comparison period."""
    params = validate_input(ProfitLossParams, data)
    await get_role(ctx, organization_id)
    period = params.period
    include_inactive = params.options.include_inactive_accounts

    report = await _build(
        ctx,
        organization_id,
        ReportType.PROFIT_LOSS,
        period.start_date,
        period.end_date,
        include_inactive,
    )
    result = report.to_dict()
    if period.compare_period:
        comparison = await _build(
            ctx,
            organization_id,
            ReportType.PROFIT_LOSS,
            period.compare_period.start_date,
            period.compare_period.end_date,
            include_inactive,
        )
        result["comparison"] = comparison.to_dict()
    logger.info("report_generated", report="profit_loss", net_profit=str(report.net_profit))
    return result


@server_action
async def get_trial_balance(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    params = validate_input(TrialBalanceParams, data)
    await get_role(ctx, organization_id)
    report = await _build(
        ctx, organization_id, ReportType.TRIAL_BALANCE, params.start_date, params.as_of_date
    )
    if not report.is_balanced:
        logger.warning(
            "trial_balance_unbalanced",
            debit_total=str(report.debit_total),
            credit_total=str(report.credit_total),
        )
    return report.to_dict()


@server_action
async def get_cash_flow(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    params = validate_input(CashFlowParams, data)
    await get_role(ctx, organization_id)
    statement = await _build(
        ctx,
        organization_id,
        ReportType.CASH_FLOW,
        params.period.start_date,
        params.period.end_date,
    )
    return statement.to_dict()


@server_action
async def get_general_ledger(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> list[dict[str, Any]]:
    """Per-account ledgers with opening balances for a period."""
    params = validate_input(GeneralLedgerParams, data)
    await get_role(ctx, organization_id)

    accounts = await fetch_accounts(ctx, organization_id)
    if params.account_ids:
        wanted = set(params.account_ids)
        accounts = [account for account in accounts if account.id in wanted]
        if len(accounts) != len(wanted):
            raise invalid("指定された勘定科目が存在しません。")

    entries = await fetch_posted_entries(
        ctx, organization_id, params.period.start_date, params.period.end_date
    )
    opening = await fetch_posted_lines(
        ctx,
        organization_id,
        before=params.period.start_date,
        account_ids=[account.id for account in accounts],
    )
    return [ledger.to_dict() for ledger in build_general_ledger(accounts, entries, opening)]


@server_action
async def export_report_csv(
    ctx: ActionContext, organization_id: str, data: dict[str, Any]
) -> dict[str, str]:
    """Render a report as CSV text.

    Balance sheet and trial balance use the end of the period as their
    cut-off date; the other reports cover the whole period.
    """
    params = validate_input(ExportReportParams, data)
    await get_role(ctx, organization_id)
    period = params.period

    start_date = (
        None
        if params.report_type in (ReportType.BALANCE_SHEET, ReportType.TRIAL_BALANCE)
        else period.start_date
    )
    report = await _build(ctx, organization_id, params.report_type, start_date, period.end_date)
    try:
        content = export_report(params.report_type.value, report, params.format)
    except ValueError as e:
        raise invalid(str(e)) from e

    filename = export_filename(
        params.report_type.value, period.end_date.strftime("%Y%m%d"), params.format
    )
    logger.info("report_exported", report=params.report_type.value, filename=filename)
    return {"filename": filename, "content": content, "content_type": "text/csv"}
