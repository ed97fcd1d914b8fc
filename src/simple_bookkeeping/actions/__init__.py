"""Server actions: authorized, validated operations returning ``ActionResult``."""

from simple_bookkeeping.actions.accounting_periods import (
    close_accounting_period,
    create_accounting_period,
    list_accounting_periods,
    reopen_accounting_period,
)
from simple_bookkeeping.actions.accounts import (
    create_account,
    delete_account,
    get_account_tree,
    list_accounts,
    update_account,
)
from simple_bookkeeping.actions.audit_logs import (
    export_audit_logs,
    get_audit_entity_types,
    list_audit_logs,
)
from simple_bookkeeping.actions.base import ActionContext, server_action
from simple_bookkeeping.actions.csv_import import (
    create_import_rule,
    delete_import_rule,
    execute_import,
    get_import_history,
    list_import_rules,
    preview_import,
    update_import_rule,
    upload_csv_file,
)
from simple_bookkeeping.actions.journal_entries import (
    approve_journal_entry,
    create_journal_entry,
    create_journal_entry_from_simple,
    delete_journal_entry,
    get_journal_entry,
    list_journal_entries,
    lock_journal_entry,
    update_journal_entry,
)
from simple_bookkeeping.actions.ledgers import export_ledger, get_ledger
from simple_bookkeeping.actions.partners import (
    create_partner,
    delete_partner,
    get_partner_balance,
    get_partner_transactions,
    list_partners,
    update_partner,
)
from simple_bookkeeping.actions.reports import (
    export_report_csv,
    get_balance_sheet,
    get_cash_flow,
    get_general_ledger,
    get_profit_and_loss,
    get_trial_balance,
)

__all__ = [
    "ActionContext",
    "approve_journal_entry",
    "close_accounting_period",
    "create_account",
    "create_accounting_period",
    "create_import_rule",
    "create_journal_entry",
    "create_journal_entry_from_simple",
    "create_partner",
    "delete_account",
    "delete_import_rule",
    "delete_journal_entry",
    "delete_partner",
    "execute_import",
    "export_audit_logs",
    "export_ledger",
    "export_report_csv",
    "get_account_tree",
    "get_audit_entity_types",
    "get_balance_sheet",
    "get_cash_flow",
    "get_general_ledger",
    "get_import_history",
    "get_journal_entry",
    "get_ledger",
    "get_partner_balance",
    "get_partner_transactions",
    "get_profit_and_loss",
    "get_trial_balance",
    "list_accounting_periods",
    "list_accounts",
    "list_audit_logs",
    "list_import_rules",
    "list_journal_entries",
    "list_partners",
    "lock_journal_entry",
    "preview_import",
    "reopen_accounting_period",
    "server_action",
    "update_account",
    "update_import_rule",
    "update_journal_entry",
    "update_partner",
    "upload_csv_file",
]
