"""Shared field types and helpers for input validation."""

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, model_validator

MAX_AMOUNT = Decimal("999999999999")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
CODE_PATTERN = re.compile(r"^[A-Z0-9_-]+$", re.IGNORECASE)


def _parse_amount(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("金額は数値で入力してください")
    if isinstance(value, (int, float, str)):
        try:
            return Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError("金額は数値で入力してください") from exc
    return value


def _check_amount(value: Decimal) -> Decimal:
    if not value.is_finite():
        raise ValueError("金額は数値で入力してください")
    if value < 0:
        raise ValueError("金額は0以上の値を入力してください")
    if value > MAX_AMOUNT:
        raise ValueError("金額が大きすぎます")
    exponent = value.normalize().as_tuple().exponent
    if isinstance(exponent, int) and exponent < -2:
        raise ValueError("金額は小数点以下2桁までです")
    return value


def _parse_date(value: Any) -> Any:
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise ValueError("日付はYYYY-MM-DD形式で入力してください")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError("有効な日付を入力してください") from exc


def _check_uuid(value: str) -> str:
    try:
        UUID(value)
    except ValueError as exc:
        raise ValueError("無効なID形式です") from exc
    return value


Amount = Annotated[Decimal, BeforeValidator(_parse_amount), AfterValidator(_check_amount)]
DateStr = Annotated[date, BeforeValidator(_parse_date)]
UUIDStr = Annotated[str, AfterValidator(_check_uuid)]


class InputModel(BaseModel):
    """Base for all input schemas: strips whitespace, rejects unknown fields."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


class Pagination(InputModel):
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class QueryParams(InputModel):
    page: int | None = Field(default=None, ge=1)
    page_size: int | None = Field(default=None, ge=1, le=100)
    order_by: str | None = None
    order_direction: Literal["asc", "desc"] | None = None
    search: str | None = Field(default=None, max_length=100)

    def pagination(self) -> Pagination:
        return Pagination(page=self.page or 1, page_size=self.page_size or 20)


class DateRange(InputModel):
    start_date: DateStr
    end_date: DateStr

    @model_validator(mode="after")
    def _start_before_end(self) -> "DateRange":
        if self.start_date > self.end_date:
            raise ValueError("開始日は終了日以前である必要があります")
        return self


def sanitize_search_query(search: str | None) -> str | None:
    """Escape LIKE wildcards and drop quotes and SQL comment markers."""
    if not search:
        return None
    cleaned = re.sub(r"[%_]", lambda m: "\\" + m.group(0), search)
    cleaned = re.sub(r"['\";]", "", cleaned)
    for marker in ("--", "/*", "*/"):
        cleaned = cleaned.replace(marker, "")
    return cleaned.strip() or None


def is_valid_sql_identifier(identifier: str) -> bool:
    return bool(re.fullmatch(r"[a-zA-Z_][a-zA-Z0-9_]*", identifier)) and len(identifier) <= 63
