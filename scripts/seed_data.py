#!/usr/bin/env python3
"""Seed an organization with the default chart of accounts.

This script creates:
1. The default chart of accounts (parents before children)
2. An accounting period for the current fiscal year
3. Sample partners (one customer, one supplier)

Existing account and partner codes are skipped, so the script can be run
again safely.

Usage:
    python scripts/seed_data.py ORGANIZATION_ID
"""

import argparse
import asyncio
import sys
from typing import Any

from simple_bookkeeping.clients.database import DatabaseClient, DatabaseError, eq
from simple_bookkeeping.config import configure_logging, get_settings
from simple_bookkeeping.config.loaders import load_chart_of_accounts
from simple_bookkeeping.fiscal import (
    format_fiscal_year,
    get_current_fiscal_year,
    get_fiscal_period_range,
)

SAMPLE_PARTNERS = [
    {"code": "C001", "name": "株式会社サンプル商事", "name_kana": "カブシキガイシャサンプルショウジ", "partner_type": "customer"},
    {"code": "S001", "name": "有限会社テスト物産", "name_kana": "ユウゲンガイシャテストブッサン", "partner_type": "supplier"},
]


async def seed_accounts(client: DatabaseClient, organization_id: str) -> dict[str, str]:
    """Insert missing accounts; returns code -> id for every account."""
    existing = await client.select(
        "accounts", "id, code", {"organization_id": eq(organization_id)}
    )
    ids = {row["code"]: row["id"] for row in existing}

    created = 0
    for row in load_chart_of_accounts():
        if row["code"] in ids:
            continue
        record: dict[str, Any] = {
            "organization_id": organization_id,
            "code": row["code"],
            "name": row["name"],
            "account_type": row["type"],
            "category": row["category"],
            "subcategory": row["subcategory"],
            "parent_id": ids.get(row["parent"]) if row["parent"] else None,
            "is_active": True,
        }
        inserted = await client.insert("accounts", record)
        ids[row["code"]] = inserted[0]["id"]
        created += 1

    print(f"  ✓ {created} account(s) created, {len(ids) - created} already present")
    return ids


async def seed_period(client: DatabaseClient, organization_id: str) -> None:
    settings = get_settings()
    month, day = settings.fiscal_year_start_month, settings.fiscal_year_start_day
    fiscal_year = get_current_fiscal_year(month, day)
    start, end = get_fiscal_period_range(fiscal_year, month, day)

    existing = await client.select_one(
        "accounting_periods",
        "id",
        {"organization_id": eq(organization_id), "start_date": eq(start.isoformat())},
    )
    if existing:
        print(f"  - {format_fiscal_year(fiscal_year, month, day)} already exists")
        return

    await client.insert(
        "accounting_periods",
        {
            "organization_id": organization_id,
            "name": f"{fiscal_year}年度",
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "is_closed": False,
        },
    )
    print(f"  ✓ Created {format_fiscal_year(fiscal_year, month, day)}")


async def seed_partners(client: DatabaseClient, organization_id: str) -> None:
    for partner in SAMPLE_PARTNERS:
        existing = await client.select_one(
            "partners",
            "id",
            {"organization_id": eq(organization_id), "code": eq(partner["code"])},
        )
        if existing:
            print(f"  - {partner['name']} already exists")
            continue
        await client.insert("partners", {**partner, "organization_id": organization_id})
        print(f"  ✓ Created {partner['name']}")


async def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Seed an organization with default data")
    parser.add_argument("organization_id")
    parser.add_argument("--skip-partners", action="store_true")
    args = parser.parse_args()

    configure_logging()
    settings = get_settings()

    print("=" * 60)
    print("Simple Bookkeeping - Database Seeding")
    print("=" * 60)
    print(f"\nDatabase URL: {settings.supabase_url}")
    print(f"Organization: {args.organization_id}")

    async with DatabaseClient() as client:
        try:
            print("\n[Chart of Accounts]")
            await seed_accounts(client, args.organization_id)

            print("\n[Accounting Period]")
            await seed_period(client, args.organization_id)

            if not args.skip_partners:
                print("\n[Partners]")
                await seed_partners(client, args.organization_id)
        except DatabaseError as e:
            print(f"\n✗ Seeding failed: {e} ({e.code or e.status_code})")
            return 1

    print("\n" + "=" * 60)
    print("SEEDING COMPLETE!")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
