"""Fiscal year arithmetic.

A fiscal year is named after the calendar year in which it starts; with an
April 1st start, 2024年度 runs from 2024-04-01 to 2025-03-31. A start day
that does not exist in some year (February 29th) is clamped to the last day
of that month.
"""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta

# Maximum day per month, with February allowing the leap day.
MAX_DAYS = (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


@dataclass(frozen=True)
class FiscalStartValidation:
    is_valid: bool
    error: str | None = None


def fiscal_year_start(fiscal_year: int, start_month: int, start_day: int) -> date:
    last_day = calendar.monthrange(fiscal_year, start_month)[1]
    return date(fiscal_year, start_month, min(start_day, last_day))


def get_fiscal_year(day: date, start_month: int, start_day: int) -> int:
    """Fiscal year that ``day`` belongs to."""
    if day < fiscal_year_start(day.year, start_month, start_day):
        return day.year - 1
    return day.year


def get_fiscal_period_range(
    fiscal_year: int, start_month: int, start_day: int
) -> tuple[date, date]:
    """First and last day (inclusive) of ``fiscal_year``."""
    start = fiscal_year_start(fiscal_year, start_month, start_day)
    end = fiscal_year_start(fiscal_year + 1, start_month, start_day) - timedelta(days=1)
    return start, end


def is_within_fiscal_year(day: date, fiscal_year: int, start_month: int, start_day: int) -> bool:
    start, end = get_fiscal_period_range(fiscal_year, start_month, start_day)
    return start <= day <= end


def format_fiscal_year(fiscal_year: int, start_month: int, start_day: int) -> str:
    """Display form, e.g. ``2024年度 (2024/04/01〜2025/03/31)``."""
    start, end = get_fiscal_period_range(fiscal_year, start_month, start_day)
    return f"{fiscal_year}年度 ({start:%Y/%m/%d}〜{end:%Y/%m/%d})"


def get_current_fiscal_year(start_month: int, start_day: int, today: date | None = None) -> int:
    return get_fiscal_year(today or date.today(), start_month, start_day)


def validate_fiscal_year_start(month: int, day: int) -> FiscalStartValidation:
    """Check a configured fiscal year start.

    February 29th is accepted with a note that non-leap years use the 28th.
    """
    if not 1 <= month <= 12:
        return FiscalStartValidation(False, "月は1〜12の範囲で入力してください")
    if not 1 <= day <= 31:
        return FiscalStartValidation(False, "日は1〜31の範囲で入力してください")

    max_day = MAX_DAYS[month - 1]
    if day > max_day:
        return FiscalStartValidation(False, f"{month}月は{max_day}日までです")
    if month == 2 and day == 29:
        return FiscalStartValidation(
            True, "うるう年でない場合は2月28日になります（システムで自動調整）"
        )
    return FiscalStartValidation(True)
