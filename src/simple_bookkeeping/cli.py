"""Command line entry point.

Usage:
    # Parse a bank CSV and show rows, duplicates and account suggestions
    simple-bookkeeping preview-csv statement.csv --template sbi_bank

    # Build a report from an exported JSON file of accounts and entries
    simple-bookkeeping report trial-balance --input books.json --end 2025-03-31

    # Build a report from the database for one organization
    simple-bookkeeping report balance-sheet --organization ORG_ID --user USER_ID --end 2025-03-31

    # Run the realtime change-event server
    simple-bookkeeping serve-events --port 8765
"""

import argparse
import asyncio
import json
import sys
from datetime import date
from pathlib import Path
from typing import Any

import structlog

from simple_bookkeeping.config import configure_logging
from simple_bookkeeping.config.loaders import load_chart_of_accounts, load_csv_templates
from simple_bookkeeping.imports.classifier import classify_with_rules
from simple_bookkeeping.imports.csv_parser import detect_template, parse_with_template
from simple_bookkeeping.imports.duplicates import detect_duplicates
from simple_bookkeeping.ledger.balances import split_at
from simple_bookkeeping.models import Account, AccountType, JournalEntry, JournalStatus
from simple_bookkeeping.reports.export import export_report
from simple_bookkeeping.reports.statements import (
    build_balance_sheet,
    build_cash_flow,
    build_profit_and_loss,
    build_trial_balance,
)

logger = structlog.get_logger(__name__)

REPORT_TYPES = ("balance-sheet", "profit-loss", "trial-balance", "cash-flow")
POSTED = (JournalStatus.APPROVED, JournalStatus.LOCKED)


def default_accounts() -> list[Account]:
    """The bundled chart of accounts, identified by code."""
    return [
        Account(
            id=row["code"],
            code=row["code"],
            name=row["name"],
            account_type=AccountType.parse(row["type"]),
            category=row["category"],
            subcategory=row["subcategory"],
            parent_id=row["parent"],
        )
        for row in load_chart_of_accounts()
    ]


def _json_default(value: Any) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _print_json(data: Any) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=_json_default))


def preview_csv(path: Path, template_name: str | None, max_rows: int) -> dict[str, Any]:
    data = path.read_bytes()
    templates = load_csv_templates()
    if template_name:
        if template_name not in templates:
            raise ValueError(f"Unknown template: {template_name}")
        template = templates[template_name]
    else:
        template = detect_template(data, templates.values())

    rows, errors = parse_with_template(data, template, max_rows)
    duplicates = detect_duplicates(rows)
    accounts = default_accounts()
    names = {account.id: account.name for account in accounts}

    preview = []
    for index, row in enumerate(rows):
        suggestion = classify_with_rules(row.description, row.type, [], accounts)
        item = row.to_dict()
        item.pop("original_row")
        item["debit_account"] = names.get(suggestion.account_id) if suggestion else None
        item["credit_account"] = names.get(suggestion.contra_account_id) if suggestion else None
        item["duplicate"] = duplicates[index].to_dict() if index in duplicates else None
        preview.append(item)

    return {
        "template": template["name"] if template else None,
        "total_rows": len(rows),
        "errors": errors,
        "rows": preview,
    }


def build_report_from_file(
    path: Path, report_type: str, start_date: date | None, end_date: date
) -> Any:
    """Build a report from ``{"accounts": [...], "entries": [...]}`` rows.

    Entries carry their lines under ``journal_entry_lines``; only approved
    and locked entries are counted.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    accounts = [Account.from_row(row) for row in data.get("accounts") or []]
    entries = [
        entry
        for entry in (JournalEntry.from_row(row) for row in data.get("entries") or [])
        if entry.status in POSTED and entry.entry_date <= end_date
    ]
    lines = [line for entry in entries for line in entry.lines]

    if report_type == "balance-sheet":
        return build_balance_sheet(accounts, lines, end_date)

    opening, in_range = split_at(lines, start_date) if start_date else ([], lines)
    if report_type == "profit-loss":
        return build_profit_and_loss(accounts, in_range, start_date, end_date)
    if report_type == "trial-balance":
        return build_trial_balance(accounts, in_range, end_date)
    in_range_entries = [e for e in entries if start_date is None or e.entry_date >= start_date]
    return build_cash_flow(accounts, in_range_entries, opening, start_date, end_date)


async def build_report_from_database(
    organization_id: str,
    user_id: str,
    report_type: str,
    start_date: date | None,
    end_date: date,
) -> dict[str, Any]:
    from simple_bookkeeping.actions import (
        ActionContext,
        get_balance_sheet,
        get_cash_flow,
        get_profit_and_loss,
        get_trial_balance,
    )
    from simple_bookkeeping.clients.database import DatabaseClient

    async with DatabaseClient() as client:
        ctx = ActionContext(client=client, user_id=user_id)
        if report_type == "balance-sheet":
            result = await get_balance_sheet(ctx, organization_id, {"as_of_date": end_date})
        elif report_type == "trial-balance":
            params: dict[str, Any] = {"as_of_date": end_date}
            if start_date:
                params["start_date"] = start_date
            result = await get_trial_balance(ctx, organization_id, params)
        else:
            if start_date is None:
                raise ValueError(f"{report_type} needs --start")
            period = {"start_date": start_date, "end_date": end_date}
            action = get_profit_and_loss if report_type == "profit-loss" else get_cash_flow
            result = await action(ctx, organization_id, {"period": period})
    return result.to_dict()


async def serve_events(host: str | None, port: int | None) -> None:
    from simple_bookkeeping.events.publisher import EventPublisher

    publisher = EventPublisher(host=host, port=port)
    await publisher.start()
    try:
        await asyncio.Future()
    finally:
        await publisher.stop()


def _date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid date (YYYY-MM-DD): {value}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="simple-bookkeeping",
        description="Double-entry bookkeeping tools",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    preview = commands.add_parser("preview-csv", help="Parse a bank CSV export")
    preview.add_argument("file", type=Path)
    preview.add_argument("--template", help="Template name (default: auto-detect)")
    preview.add_argument("--max-rows", type=int, default=1000)

    report = commands.add_parser("report", help="Build a financial report")
    report.add_argument("report_type", choices=REPORT_TYPES)
    report.add_argument("--input", type=Path, help="JSON file with accounts and entries")
    report.add_argument("--organization", help="Organization id (read from the database)")
    report.add_argument("--user", help="Acting user id for database reads")
    report.add_argument("--start", type=_date)
    report.add_argument("--end", type=_date, default=date.today())
    report.add_argument("--csv", action="store_true", help="Print CSV instead of JSON")

    serve = commands.add_parser("serve-events", help="Run the WebSocket event server")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)

    return parser


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)

    try:
        if args.command == "preview-csv":
            _print_json(preview_csv(args.file, args.template, args.max_rows))
        elif args.command == "report":
            if args.input:
                report = build_report_from_file(args.input, args.report_type, args.start, args.end)
                if args.csv:
                    print(export_report(args.report_type, report), end="")
                else:
                    _print_json(report.to_dict())
            elif args.organization and args.user:
                _print_json(
                    asyncio.run(
                        build_report_from_database(
                            args.organization, args.user, args.report_type, args.start, args.end
                        )
                    )
                )
            else:
                logger.error("report_source_missing")
                return 2
        elif args.command == "serve-events":
            asyncio.run(serve_events(args.host, args.port))
    except KeyboardInterrupt:
        logger.info("interrupted")
    except (OSError, ValueError) as e:
        logger.error("command_failed", command=args.command, error=str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
