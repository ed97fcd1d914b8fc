"""Parsing of bank and credit card CSV exports.

Raw bytes are decoded with the bank's encoding, split into header-keyed
rows and then mapped through a column template into ``ParsedRow`` values.
Every cell is sanitized against spreadsheet formula injection.
"""

import csv
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

import structlog

from simple_bookkeeping.models import ZERO

logger = structlog.get_logger(__name__)

TransactionType = Literal["income", "expense"]

FORMULA_PREFIXES = ("=", "+", "-", "@", "|", "%")
_PLAIN_NUMBER = re.compile(r"^\d+(\.\d+)?$")
_AMOUNT_NOISE = re.compile(r"[￥¥$,，、\s]")
_DATE_SEPARATORS = re.compile(r"[/-]")
_JAPANESE_DATE_UNITS = re.compile(r"[年月日]")

# Python codec for each encoding name accepted in templates and requests.
ENCODINGS: dict[str, str] = {
    "utf-8": "utf-8-sig",
    "utf8": "utf-8-sig",
    "shift_jis": "cp932",
    "shift-jis": "cp932",
    "sjis": "cp932",
    "cp932": "cp932",
    "euc-jp": "euc_jp",
    "euc_jp": "euc_jp",
    "iso-2022-jp": "iso2022_jp",
    "iso2022_jp": "iso2022_jp",
}

FALLBACK_COLUMNS: dict[str, tuple[str, ...]] = {
    "date": ("date", "Date", "日付", "取引日"),
    "description": ("description", "Description", "摘要", "内容", "お取引内容"),
    "amount": ("amount", "Amount", "金額", "利用金額"),
}

INCOME_KEYWORDS = ("入金", "入", "収入", "deposit", "credit")
EXPENSE_KEYWORDS = ("出金", "出", "支出", "引き落とし", "withdrawal", "debit")

VALID_MIME_TYPES = ("text/csv", "application/csv", "text/plain")


class CsvParseError(ValueError):
    """The file could not be decoded or split into rows."""


@dataclass
class CsvParseOptions:
    encoding: str = "utf-8"
    delimiter: str = ","
    skip_rows: int = 0
    has_headers: bool = True
    max_rows: int | None = 1000


@dataclass
class ParsedRow:
    """One bank transaction normalized from a CSV row.

    ``amount`` is always non-negative; the direction lives in ``type``.
    """

    date: date
    description: str
    amount: Decimal
    type: TransactionType | None = None
    balance: Decimal | None = None
    original_row: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "description": self.description,
            "amount": str(self.amount),
            "type": self.type,
            "balance": str(self.balance) if self.balance is not None else None,
            "original_row": self.original_row,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ParsedRow":
        balance = data.get("balance")
        return cls(
            date=date.fromisoformat(str(data["date"])[:10]),
            description=str(data["description"]),
            amount=Decimal(str(data["amount"])),
            type=data.get("type"),
            balance=Decimal(str(balance)) if balance is not None else None,
            original_row=dict(data.get("original_row") or {}),
        )


@dataclass
class CsvParseResult:
    rows: list[dict[str, str]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def columns(self) -> list[str]:
        return list(self.rows[0]) if self.rows else []


def sanitize_csv_value(value: str) -> str:
    """Escape values a spreadsheet would evaluate as a formula.

    Plain negative numbers such as ``-123.45`` are left untouched.
    """
    stripped = value.lstrip()
    if not stripped.startswith(FORMULA_PREFIXES):
        return value
    if stripped.startswith("-") and _PLAIN_NUMBER.match(stripped[1:]):
        return value
    return f"'{value}"


def resolve_encoding(encoding: str | None) -> str:
    key = (encoding or "utf-8").strip().lower()
    codec = ENCODINGS.get(key)
    if codec is None:
        raise CsvParseError(f"Unsupported encoding: {encoding}")
    return codec


def decode(data: bytes, encoding: str | None = "utf-8") -> str:
    try:
        return data.decode(resolve_encoding(encoding))
    except UnicodeDecodeError as exc:
        raise CsvParseError(f"File is not valid {encoding}: {exc.reason}") from exc


def parse_csv_data(data: bytes, options: CsvParseOptions | None = None) -> CsvParseResult:
    """Decode and split CSV content into rows keyed by header.

    Blank lines are dropped and cells are trimmed. When ``has_headers`` is
    false, columns are keyed by their zero-based index. Decoding problems
    are reported in ``errors`` instead of raised.
    """
    options = options or CsvParseOptions()
    result = CsvParseResult()

    try:
        text = decode(data, options.encoding)
    except CsvParseError as exc:
        result.errors.append(f"CSV parse error: {exc}")
        return result

    lines = text.splitlines()[options.skip_rows:]
    reader = csv.reader(lines, delimiter=options.delimiter)
    records = ([cell.strip() for cell in record] for record in reader)
    records = (record for record in records if any(record))

    try:
        if options.has_headers:
            header = next(records, None)
            if header is None:
                return result
        else:
            header = None

        for record in records:
            if options.max_rows is not None and len(result.rows) >= options.max_rows:
                break
            keys = header if header is not None else [str(i) for i in range(len(record))]
            row = {key: sanitize_csv_value(value) for key, value in zip(keys, record)}
            result.rows.append(row)
    except csv.Error as exc:
        result.errors.append(f"CSV parse error: {exc}")
        result.rows = []
    return result


def parse_date(value: str | None, date_format: str = "YYYY-MM-DD") -> date | None:
    """Parse a bank date string; ``None`` when it is not a real date.

    Japanese ``2024年1月15日`` notation is accepted in every format and two
    digit years map to 2000-2049 / 1950-1999.
    """
    if not value:
        return None
    cleaned = _JAPANESE_DATE_UNITS.sub("/", value.strip()).rstrip("/")

    fmt = date_format.upper()
    if fmt in ("YYYY/MM/DD", "YYYY-MM-DD"):
        order = ("year", "month", "day")
    elif fmt in ("DD/MM/YYYY", "DD-MM-YYYY"):
        order = ("day", "month", "year")
    elif fmt in ("MM/DD/YYYY", "MM-DD-YYYY"):
        order = ("month", "day", "year")
    else:
        try:
            return date.fromisoformat(cleaned[:10])
        except ValueError:
            return None

    parts = _DATE_SEPARATORS.split(cleaned)
    if len(parts) != 3 or not all(part.strip().isdigit() for part in parts):
        return None
    values = dict(zip(order, (int(part) for part in parts)))
    year = values["year"]
    if year < 100:
        year += 2000 if year < 50 else 1900
    try:
        return date(year, values["month"], values["day"])
    except ValueError:
        return None


def parse_amount(value: str | int | float | Decimal | None) -> Decimal:
    """Parse a money cell; blanks, ``-`` and garbage become zero.

    Currency symbols, thousands separators and spaces are removed and
    ``(123)`` is read as ``-123``.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if not value or value.strip() in ("", "-"):
        return ZERO

    cleaned = _AMOUNT_NOISE.sub("", value).lstrip("'")
    if cleaned.startswith("(") and cleaned.endswith(")"):
        cleaned = f"-{cleaned[1:-1]}"
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return ZERO
    return amount if amount.is_finite() else ZERO


def determine_transaction_type(value: str) -> TransactionType | None:
    normalized = value.strip().lower()
    if normalized in ("+", "in"):
        return "income"
    if normalized in ("-", "out"):
        return "expense"
    if any(keyword in normalized for keyword in INCOME_KEYWORDS):
        return "income"
    if any(keyword in normalized for keyword in EXPENSE_KEYWORDS):
        return "expense"
    return None


def _lookup(raw_row: Mapping[str, str], columns: Mapping[str, str], name: str) -> str | None:
    column = columns.get(name)
    if column:
        return raw_row.get(column)
    for candidate in FALLBACK_COLUMNS.get(name, ()):
        if raw_row.get(candidate):
            return raw_row[candidate]
    return None


def _unescape(value: str) -> str:
    return value[1:] if value.startswith("'") else value


def parse_row(
    raw_row: Mapping[str, str],
    columns: Mapping[str, str] | None = None,
    date_format: str = "YYYY-MM-DD",
) -> ParsedRow | None:
    """Map one raw row through template ``columns``.

    Returns ``None`` for rows without a valid date or a description.
    """
    columns = columns or {}

    parsed_date = parse_date(_lookup(raw_row, columns, "date"), date_format)
    if parsed_date is None:
        return None
    description = _lookup(raw_row, columns, "description")
    if not description:
        return None

    amount = ZERO
    transaction_type: TransactionType | None = None
    deposit_column = columns.get("deposit")
    withdrawal_column = columns.get("withdrawal")

    if (
        deposit_column
        and withdrawal_column
        and deposit_column in raw_row
        and withdrawal_column in raw_row
    ):
        deposit = parse_amount(raw_row[deposit_column])
        withdrawal = parse_amount(raw_row[withdrawal_column])
        if deposit > ZERO:
            amount, transaction_type = deposit, "income"
        elif withdrawal > ZERO:
            amount, transaction_type = withdrawal, "expense"
    else:
        amount = parse_amount(_unescape(_lookup(raw_row, columns, "amount") or ""))
        type_column = columns.get("type")
        if type_column and raw_row.get(type_column):
            transaction_type = determine_transaction_type(raw_row[type_column])
            amount = abs(amount)
        elif amount < ZERO:
            amount, transaction_type = -amount, "expense"
        else:
            transaction_type = "income"

    balance_column = columns.get("balance")
    balance = (
        parse_amount(_unescape(raw_row[balance_column]))
        if balance_column and raw_row.get(balance_column)
        else None
    )

    return ParsedRow(
        date=parsed_date,
        description=sanitize_csv_value(description.strip()),
        amount=amount,
        type=transaction_type,
        balance=balance,
        original_row=dict(raw_row),
    )


def convert_to_parsed_rows(
    raw_rows: Iterable[Mapping[str, str]],
    template: Mapping[str, Any] | None = None,
    date_format: str | None = None,
) -> list[ParsedRow]:
    """Map raw rows through a template, silently dropping unusable rows."""
    columns = (template or {}).get("columns") or {}
    date_format = date_format or (template or {}).get("date_format") or "YYYY-MM-DD"

    rows: list[ParsedRow] = []
    skipped = 0
    for raw_row in raw_rows:
        parsed = parse_row(raw_row, columns, date_format)
        if parsed is None:
            skipped += 1
            continue
        rows.append(parsed)

    if skipped:
        logger.debug("csv_rows_skipped", skipped=skipped, parsed=len(rows))
    return rows


def _required_columns(template: Mapping[str, Any]) -> list[str]:
    columns = template.get("columns") or {}
    money = columns.get("amount") or columns.get("deposit") or columns.get("withdrawal")
    return [col for col in (columns.get("date"), columns.get("description"), money) if col]


def detect_template(
    data: bytes, templates: Iterable[Mapping[str, Any]]
) -> Mapping[str, Any] | None:
    """Return the first template whose required columns appear in the header.

    The header is read both as UTF-8 and as Shift-JIS since Japanese banks
    use either.
    """
    headers: list[set[str]] = []
    for encoding in ("utf-8", "shift_jis"):
        parsed = parse_csv_data(data, CsvParseOptions(encoding=encoding, max_rows=2))
        if parsed.rows:
            headers.append(set(parsed.columns))

    for template in templates:
        required = _required_columns(template)
        if required and any(all(col in header for col in required) for header in headers):
            logger.info("csv_template_detected", template=template.get("name"))
            return template
    return None


def validate_csv_file(
    filename: str,
    size: int,
    content_type: str | None = None,
    max_size: int = 10 * 1024 * 1024,
) -> list[str]:
    """Check an upload before parsing; returns a list of problems (empty if valid)."""
    errors: list[str] = []
    if not filename.lower().endswith(".csv"):
        errors.append("File must be a CSV file")
    if size > max_size:
        limit_mb = max_size / 1024 / 1024
        errors.append(
            f"File size exceeds {limit_mb:g}MB limit (current: {size / 1024 / 1024:.2f}MB)"
        )
    if content_type and content_type not in VALID_MIME_TYPES:
        errors.append(f"Invalid file type: {content_type}")
    return errors


def parse_with_template(
    data: bytes, template: Mapping[str, Any] | None = None, max_rows: int | None = 1000
) -> tuple[list[ParsedRow], list[str]]:
    """Parse a whole upload using the template's encoding, delimiter and columns."""
    template = template or {}
    options = CsvParseOptions(
        encoding=template.get("encoding") or "utf-8",
        delimiter=template.get("delimiter") or ",",
        skip_rows=int(template.get("skip_rows") or 0),
        max_rows=max_rows,
    )
    parsed = parse_csv_data(data, options)
    rows = convert_to_parsed_rows(parsed.rows, template, template.get("date_format"))
    return rows, parsed.errors
