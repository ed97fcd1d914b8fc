"""Change events published to realtime subscribers.

Every write action publishes one of these after it succeeds, scoped to the
organization whose data changed.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventType(str, Enum):
    """Types of change events."""

    # Journal entries
    JOURNAL_ENTRY_CREATED = "journal_entry.created"
    JOURNAL_ENTRY_UPDATED = "journal_entry.updated"
    JOURNAL_ENTRY_APPROVED = "journal_entry.approved"
    JOURNAL_ENTRY_LOCKED = "journal_entry.locked"
    JOURNAL_ENTRY_DELETED = "journal_entry.deleted"

    # Master data
    ACCOUNT_CREATED = "account.created"
    ACCOUNT_UPDATED = "account.updated"
    ACCOUNT_DELETED = "account.deleted"
    PARTNER_CREATED = "partner.created"
    PARTNER_UPDATED = "partner.updated"

    # Periods
    ACCOUNTING_PERIOD_CREATED = "accounting_period.created"
    ACCOUNTING_PERIOD_CLOSED = "accounting_period.closed"

    # CSV import
    IMPORT_COMPLETED = "import.completed"
    IMPORT_FAILED = "import.failed"

    # Errors
    ERROR = "error"


@dataclass
class ChangeEvent:
    """Base event structure."""

    event_type: EventType
    organization_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: UUID = field(default_factory=uuid4)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary for JSON transmission."""
        return {
            "id": str(self.event_id),
            "type": self.event_type.value,
            "organization_id": self.organization_id,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


@dataclass
class JournalEntryEvent(ChangeEvent):
    """Lifecycle event of a journal entry."""

    entry_id: str = ""
    entry_number: str = ""
    status: str = ""
    total_amount: str = "0"

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["journal_entry"] = {
            "id": self.entry_id,
            "entry_number": self.entry_number,
            "status": self.status,
            "total_amount": self.total_amount,
        }
        return base


# === Event factories ===


def journal_entry_event(
    event_type: EventType,
    organization_id: str,
    entry: dict[str, Any],
    total_amount: Any = 0,
) -> JournalEntryEvent:
    return JournalEntryEvent(
        event_type=event_type,
        organization_id=organization_id,
        entry_id=str(entry.get("id", "")),
        entry_number=str(entry.get("entry_number") or ""),
        status=str(entry.get("status") or ""),
        total_amount=str(total_amount),
    )


def record_event(
    event_type: EventType, organization_id: str, record: dict[str, Any]
) -> ChangeEvent:
    """Event for a master-data change; carries the record's id, code and name."""
    return ChangeEvent(
        event_type=event_type,
        organization_id=organization_id,
        data={key: record[key] for key in ("id", "code", "name") if key in record},
    )


def import_finished(
    organization_id: str,
    import_id: str,
    imported_rows: int,
    failed_rows: int,
) -> ChangeEvent:
    event_type = EventType.IMPORT_COMPLETED if imported_rows else EventType.IMPORT_FAILED
    return ChangeEvent(
        event_type=event_type,
        organization_id=organization_id,
        data={
            "import_id": import_id,
            "imported_rows": imported_rows,
            "failed_rows": failed_rows,
        },
    )


def error_event(message: str, details: dict[str, Any] | None = None) -> ChangeEvent:
    return ChangeEvent(
        event_type=EventType.ERROR,
        data={"message": message, "details": details or {}},
    )
