"""Input schemas for chart-of-accounts maintenance."""

from typing import Annotated

from pydantic import AfterValidator, BeforeValidator, Field, StringConstraints

from simple_bookkeeping.models import AccountType
from simple_bookkeeping.validation.common import (
    CODE_PATTERN,
    DateStr,
    InputModel,
    QueryParams,
    UUIDStr,
)


def _check_code(value: str) -> str:
    if not CODE_PATTERN.match(value):
        raise ValueError("コードは英数字、ハイフン、アンダースコアのみ使用できます")
    return value


def _parse_account_type(value: object) -> AccountType:
    try:
        return AccountType.parse(value)
    except ValueError as exc:
        raise ValueError("勘定科目タイプが正しくありません") from exc


Code = Annotated[str, StringConstraints(min_length=1, max_length=20), AfterValidator(_check_code)]
Name = Annotated[str, StringConstraints(min_length=1, max_length=100)]
AccountTypeField = Annotated[AccountType, BeforeValidator(_parse_account_type)]


class CreateAccountInput(InputModel):
    code: Code
    name: Name
    account_type: AccountTypeField
    category: str | None = Field(default=None, max_length=50)
    subcategory: str | None = Field(default=None, max_length=50)
    description: str | None = Field(default=None, max_length=500)
    parent_id: UUIDStr | None = None
    is_active: bool = True


class UpdateAccountInput(InputModel):
    code: Code | None = None
    name: Name | None = None
    account_type: AccountTypeField | None = None
    category: str | None = Field(default=None, max_length=50)
    subcategory: str | None = Field(default=None, max_length=50)
    description: str | None = Field(default=None, max_length=500)
    parent_id: UUIDStr | None = None
    is_active: bool | None = None


class AccountQuery(QueryParams):
    account_type: AccountTypeField | None = None
    is_active: bool | None = None
    parent_id: UUIDStr | None = None


class ImportAccountRow(InputModel):
    code: Code
    name: Name
    account_type: AccountTypeField
    category: str | None = None
    subcategory: str | None = None
    description: str | None = Field(default=None, max_length=500)
    parent_code: str | None = None


class ImportAccountsInput(InputModel):
    accounts: list[ImportAccountRow] = Field(min_length=1, max_length=1000)
    update_existing: bool = False


class AccountBalanceParams(InputModel):
    account_id: UUIDStr
    start_date: DateStr
    end_date: DateStr
    include_sub_accounts: bool = False


class SearchAccountsInput(InputModel):
    query: str = Field(min_length=1, max_length=100)
    types: list[AccountTypeField] | None = None
    limit: int = Field(default=10, ge=1, le=100)
    include_inactive: bool = False
