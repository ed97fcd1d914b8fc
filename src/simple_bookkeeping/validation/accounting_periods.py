"""Input schemas for accounting periods."""

import re
from datetime import date
from typing import Annotated

from pydantic import AfterValidator, Field, StringConstraints, model_validator

from simple_bookkeeping.validation.common import DateStr, InputModel, UUIDStr

FORBIDDEN_CHARACTERS = re.compile(r"[<>'\";&]")
MAX_PERIOD_YEARS = 2


def _no_forbidden_characters(value: str) -> str:
    if FORBIDDEN_CHARACTERS.search(value):
        raise ValueError("使用できない文字が含まれています")
    return value


PeriodName = Annotated[
    str,
    StringConstraints(min_length=1, max_length=100),
    AfterValidator(_no_forbidden_characters),
]
PeriodDescription = Annotated[
    str,
    StringConstraints(max_length=500),
    AfterValidator(_no_forbidden_characters),
]


def add_years(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        # Feb 29 -> Feb 28
        return day.replace(year=day.year + years, day=28)


def check_period_dates(start: date, end: date) -> None:
    if start >= end:
        raise ValueError("開始日は終了日より前である必要があります")
    if end > add_years(start, MAX_PERIOD_YEARS):
        raise ValueError("会計期間は最大2年までです")


class CreateAccountingPeriodInput(InputModel):
    name: PeriodName
    start_date: DateStr
    end_date: DateStr
    description: PeriodDescription | None = None

    @model_validator(mode="after")
    def _dates(self) -> "CreateAccountingPeriodInput":
        check_period_dates(self.start_date, self.end_date)
        return self


class UpdateAccountingPeriodInput(InputModel):
    name: PeriodName | None = None
    start_date: DateStr | None = None
    end_date: DateStr | None = None
    description: PeriodDescription | None = None
    is_closed: bool | None = None

    @model_validator(mode="after")
    def _dates(self) -> "UpdateAccountingPeriodInput":
        if self.start_date and self.end_date:
            check_period_dates(self.start_date, self.end_date)
        return self


class CheckPeriodOverlapInput(InputModel):
    start_date: DateStr
    end_date: DateStr
    exclude_id: UUIDStr | None = None


class AccountingPeriodFilter(InputModel):
    is_closed: bool | None = None
    start_date: DateStr | None = None
    end_date: DateStr | None = None
    limit: int = Field(default=100, ge=1, le=100)
