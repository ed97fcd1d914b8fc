"""Input schemas for the audit trail."""

from enum import Enum
from typing import Literal

from pydantic import Field, model_validator

from simple_bookkeeping.validation.common import DateStr, InputModel, UUIDStr


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    APPROVE = "APPROVE"


class AuditEntityType(str, Enum):
    ACCOUNT = "account"
    JOURNAL_ENTRY = "journal_entry"
    PARTNER = "partner"
    ACCOUNTING_PERIOD = "accounting_period"


class AuditLogQuery(InputModel):
    start_date: DateStr | None = None
    end_date: DateStr | None = None
    user_id: UUIDStr | None = None
    entity_type: AuditEntityType | None = None
    entity_id: str | None = Field(default=None, max_length=100)
    action: AuditAction | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=50, ge=1, le=100)

    @model_validator(mode="after")
    def _start_before_end(self) -> "AuditLogQuery":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("開始日は終了日以前である必要があります")
        return self


class ExportAuditLogsInput(InputModel):
    format: Literal["csv", "json"] = "csv"
    include_user_details: bool = False
