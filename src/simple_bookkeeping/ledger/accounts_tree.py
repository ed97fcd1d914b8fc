"""Parent/child structure of the chart of accounts."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal

from simple_bookkeeping.models import ZERO, Account


@dataclass
class AccountNode:
    account: Account
    children: list["AccountNode"] = field(default_factory=list)
    balance: Decimal = ZERO

    @property
    def total_balance(self) -> Decimal:
        """Own balance plus the balances of all descendants."""
        return self.balance + sum((child.total_balance for child in self.children), ZERO)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.account.id,
            "code": self.account.code,
            "name": self.account.name,
            "account_type": self.account.account_type.value,
            "balance": self.balance,
            "total_balance": self.total_balance,
            "children": [child.to_dict() for child in self.children],
        }


def would_create_cycle(account_id: str, new_parent_id: str | None, accounts: Iterable[Account]) -> bool:
    """True if making ``new_parent_id`` the parent of ``account_id`` closes a loop.

    Walks up from the proposed parent; reaching ``account_id`` (or an
    already-visited node, for pre-existing corrupt data) means a cycle.
    """
    if new_parent_id is None:
        return False
    if new_parent_id == account_id:
        return True

    parents = {account.id: account.parent_id for account in accounts}
    seen: set[str] = set()
    current: str | None = new_parent_id
    while current is not None:
        if current == account_id or current in seen:
            return True
        seen.add(current)
        current = parents.get(current)
    return False


def find_cycles(accounts: Iterable[Account]) -> list[list[str]]:
    """Return every parent-link cycle as a list of account ids."""
    parents = {account.id: account.parent_id for account in accounts}
    cycles: list[list[str]] = []
    settled: set[str] = set()

    for start in parents:
        path: list[str] = []
        on_path: set[str] = set()
        current: str | None = start
        while current is not None and current not in settled:
            if current in on_path:
                cycles.append(path[path.index(current):])
                break
            path.append(current)
            on_path.add(current)
            current = parents.get(current)
        settled.update(path)
    return cycles


def build_tree(
    accounts: Iterable[Account], balances: dict[str, Decimal] | None = None
) -> list[AccountNode]:
    """Build a forest ordered by account code.

    Accounts whose parent is missing from ``accounts`` become roots.
    """
    balances = balances or {}
    nodes = {
        account.id: AccountNode(account=account, balance=balances.get(account.id, ZERO))
        for account in sorted(accounts, key=lambda a: a.code)
    }
    roots: list[AccountNode] = []
    for node in nodes.values():
        parent = nodes.get(node.account.parent_id) if node.account.parent_id else None
        if parent is None or parent is node:
            roots.append(node)
        else:
            parent.children.append(node)
    return roots


def descendant_ids(account_id: str, accounts: Iterable[Account]) -> set[str]:
    """Ids of all accounts below ``account_id`` (excluding itself)."""
    children: dict[str, list[str]] = {}
    for account in accounts:
        if account.parent_id:
            children.setdefault(account.parent_id, []).append(account.id)

    result: set[str] = set()
    stack = list(children.get(account_id, []))
    while stack:
        current = stack.pop()
        if current in result or current == account_id:
            continue
        result.add(current)
        stack.extend(children.get(current, []))
    return result
