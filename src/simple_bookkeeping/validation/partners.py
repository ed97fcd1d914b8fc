"""Input schemas for business partners (customers and suppliers)."""

import re
from decimal import Decimal
from typing import Annotated

from pydantic import AfterValidator, Field, StringConstraints

from simple_bookkeeping.models import PartnerType
from simple_bookkeeping.validation.accounts import Code, Name
from simple_bookkeeping.validation.common import (
    MAX_AMOUNT,
    DateStr,
    InputModel,
    QueryParams,
    UUIDStr,
)

KANA_PATTERN = re.compile(r"^[ァ-ヴー\s]*$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_PATTERN = re.compile(r"^[0-9\-+\s()]*$")
POSTAL_CODE_PATTERN = re.compile(r"^\d{3}-?\d{4}$")
BANK_ACCOUNT_NUMBER_PATTERN = re.compile(r"^[0-9-]*$")


def _matching(pattern: re.Pattern[str], message: str):
    def check(value: str) -> str:
        if not pattern.match(value):
            raise ValueError(message)
        return value

    return AfterValidator(check)


NameKana = Annotated[
    str,
    StringConstraints(max_length=100),
    _matching(KANA_PATTERN, "取引先名（カナ）は全角カタカナで入力してください"),
]
Email = Annotated[
    str,
    StringConstraints(max_length=100),
    _matching(EMAIL_PATTERN, "メールアドレスの形式が正しくありません"),
]
Phone = Annotated[
    str,
    StringConstraints(max_length=20),
    _matching(PHONE_PATTERN, "電話番号は数字、ハイフン、プラス記号、括弧のみ使用できます"),
]
PostalCode = Annotated[
    str,
    StringConstraints(max_length=10),
    _matching(POSTAL_CODE_PATTERN, "郵便番号は7桁の数字（ハイフンあり/なし）で入力してください"),
]
BankAccountNumber = Annotated[
    str,
    StringConstraints(max_length=20),
    _matching(BANK_ACCOUNT_NUMBER_PATTERN, "口座番号は数字とハイフンのみ使用できます"),
]


class PartnerFields(InputModel):
    """Optional contact and banking fields shared by create and update."""

    name_kana: NameKana | None = None
    email: Email | None = None
    phone: Phone | None = None
    postal_code: PostalCode | None = None
    address: str | None = Field(default=None, max_length=200)
    bank_name: str | None = Field(default=None, max_length=50)
    bank_branch: str | None = Field(default=None, max_length=50)
    bank_account_type: str | None = Field(default=None, max_length=20)
    bank_account_number: BankAccountNumber | None = None
    bank_account_name: str | None = Field(default=None, max_length=100)
    payment_terms: int | None = Field(default=None, ge=0, le=365)
    credit_limit: Decimal | None = Field(default=None, ge=0, le=MAX_AMOUNT)
    notes: str | None = Field(default=None, max_length=500)


class CreatePartnerInput(PartnerFields):
    code: Code
    name: Name
    partner_type: PartnerType
    is_active: bool = True


class UpdatePartnerInput(PartnerFields):
    code: Code | None = None
    name: Name | None = None
    partner_type: PartnerType | None = None
    is_active: bool | None = None


class PartnerQuery(QueryParams):
    partner_type: PartnerType | None = None
    is_active: bool | None = None


class PartnerTransactionsQuery(InputModel):
    partner_id: UUIDStr
    from_date: DateStr | None = None
    to_date: DateStr | None = None
    page: int | None = Field(default=None, ge=1)
    page_size: int | None = Field(default=None, ge=1, le=100)


class PartnerBalanceQuery(InputModel):
    partner_id: UUIDStr
    as_of_date: DateStr | None = None


class SearchPartnersInput(InputModel):
    query: str = Field(min_length=1, max_length=100)
    partner_types: list[PartnerType] | None = None
    limit: int = Field(default=10, ge=1, le=100)
    include_inactive: bool = False
