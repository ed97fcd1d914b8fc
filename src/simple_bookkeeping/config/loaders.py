"""Loaders for the static YAML data shipped with the package."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

DATA_DIR = Path(__file__).resolve().parent / "data"

ACCOUNT_TYPES = {"asset", "liability", "equity", "revenue", "expense"}
TEMPLATE_FIELDS = {"date", "description", "amount", "deposit", "withdrawal", "balance", "type"}


def _read_yaml(name: str) -> dict[str, Any]:
    path = DATA_DIR / name
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{name}: top level must be a mapping")
    return data


@lru_cache
def load_chart_of_accounts() -> tuple[dict[str, Any], ...]:
    """Load the default chart of accounts.

    Returns:
        Account rows in file order, each with ``code``, ``name``, ``type``,
        ``category``, ``subcategory`` and an optional ``parent`` code.
    """
    data = _read_yaml("chart_of_accounts.yaml")
    raw_accounts = data.get("accounts")
    if not isinstance(raw_accounts, list):
        raise ValueError("chart_of_accounts.yaml: accounts must be a list")

    seen: set[str] = set()
    accounts: list[dict[str, Any]] = []
    for row in raw_accounts:
        code = str(row.get("code", "")).strip()
        if not code:
            raise ValueError(f"chart_of_accounts.yaml: account without code: {row!r}")
        if code in seen:
            raise ValueError(f"chart_of_accounts.yaml: duplicate code {code}")
        account_type = str(row.get("type", "")).lower()
        if account_type not in ACCOUNT_TYPES:
            raise ValueError(f"chart_of_accounts.yaml: {code} has invalid type {account_type!r}")
        parent = row.get("parent")
        if parent is not None and str(parent) not in seen:
            raise ValueError(f"chart_of_accounts.yaml: {code} references unknown parent {parent}")

        seen.add(code)
        accounts.append(
            {
                "code": code,
                "name": str(row["name"]),
                "type": account_type,
                "category": row.get("category"),
                "subcategory": row.get("subcategory"),
                "parent": str(parent) if parent is not None else None,
            }
        )
    return tuple(accounts)


@lru_cache
def load_csv_templates() -> dict[str, dict[str, Any]]:
    """Load bank CSV templates keyed by template name."""
    data = _read_yaml("csv_templates.yaml")
    templates: dict[str, dict[str, Any]] = {}

    for row in data.get("templates") or []:
        name = row.get("name")
        columns = row.get("columns")
        if not name or not isinstance(columns, dict):
            raise ValueError(f"csv_templates.yaml: invalid template {row!r}")
        unknown = set(columns) - TEMPLATE_FIELDS
        if unknown:
            raise ValueError(f"csv_templates.yaml: {name} has unknown columns {sorted(unknown)}")
        if "date" not in columns or "description" not in columns:
            raise ValueError(f"csv_templates.yaml: {name} must map date and description")
        if "amount" not in columns and not {"deposit", "withdrawal"} <= set(columns):
            raise ValueError(
                f"csv_templates.yaml: {name} needs an amount or deposit/withdrawal columns"
            )

        templates[name] = {
            "name": name,
            "bank_name": row.get("bank_name", ""),
            "encoding": row.get("encoding", "utf-8"),
            "date_format": row.get("date_format", "YYYY-MM-DD"),
            "skip_rows": int(row.get("skip_rows", 0)),
            "delimiter": row.get("delimiter", ","),
            "columns": dict(columns),
        }
    return templates


@lru_cache
def load_transaction_patterns() -> dict[str, Any]:
    """Load simple-entry transaction patterns and the consumption tax accounts."""
    data = _read_yaml("transaction_patterns.yaml")
    patterns = data.get("patterns")
    if not isinstance(patterns, dict) or not patterns:
        raise ValueError("transaction_patterns.yaml: patterns must be a non-empty mapping")

    for key, pattern in patterns.items():
        required = pattern.get("required") or []
        if "account" not in required and not (pattern.get("debit") and pattern.get("credit")):
            raise ValueError(f"transaction_patterns.yaml: {key} needs debit and credit accounts")

    tax_accounts = data.get("tax_accounts") or {}
    return {"patterns": patterns, "tax_accounts": tax_accounts}
