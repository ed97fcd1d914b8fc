"""Input schemas for CSV import and import rules."""

from pydantic import Field

from simple_bookkeeping.validation.common import InputModel, UUIDStr


class ImportMapping(InputModel):
    row_index: int = Field(ge=0)
    account_id: UUIDStr | None = None
    contra_account_id: UUIDStr | None = None
    confidence: float = Field(default=0.0, ge=0, le=1)
    is_duplicate: bool = False


class ExecuteImportInput(InputModel):
    import_id: UUIDStr
    mappings: list[ImportMapping] = Field(min_length=1, max_length=1000)
    skip_duplicates: bool = True
    create_rules_from_mappings: bool = False


class CreateImportRuleInput(InputModel):
    description_pattern: str = Field(min_length=1, max_length=200)
    account_id: UUIDStr
    contra_account_id: UUIDStr
    confidence: float = Field(default=0.8, ge=0, le=1)
    is_active: bool = True


class UpdateImportRuleInput(InputModel):
    description_pattern: str | None = Field(default=None, min_length=1, max_length=200)
    account_id: UUIDStr | None = None
    contra_account_id: UUIDStr | None = None
    confidence: float | None = Field(default=None, ge=0, le=1)
    is_active: bool | None = None
