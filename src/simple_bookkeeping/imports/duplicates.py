"""Heuristic duplicate detection for imported bank rows.

A row is compared against journal entries already booked around its date
and against the rows before it in the same file. The heuristics accept
false positives and negatives; the user reviews flagged rows.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from simple_bookkeeping.imports.csv_parser import ParsedRow
from simple_bookkeeping.models import JournalEntry

AMOUNT_TOLERANCE = Decimal("0.01")
DATE_WINDOW = timedelta(days=1)
EXISTING_SIMILARITY_THRESHOLD = 0.7
WITHIN_IMPORT_SIMILARITY_THRESHOLD = 0.9
WITHIN_IMPORT_CONFIDENCE = 0.9
SKIP_CONFIDENCE = 0.95
REVIEW_CONFIDENCE = 0.8


class DuplicateType(str, Enum):
    EXISTING = "existing"
    WITHIN_IMPORT = "within-import"


class DuplicateAction(str, Enum):
    SKIP = "skip"
    REVIEW = "review"
    IMPORT = "import"


@dataclass
class ExistingEntry:
    """The fields of a booked entry that matter for matching."""

    id: str
    entry_date: date
    description: str
    amount: Decimal

    @classmethod
    def from_journal_entry(cls, entry: JournalEntry) -> "ExistingEntry":
        return cls(
            id=entry.id,
            entry_date=entry.entry_date,
            description=entry.description,
            amount=entry.total_debit,
        )


@dataclass
class DuplicateInfo:
    confidence: float
    duplicate_type: DuplicateType
    journal_entry_id: str | None = None
    duplicate_row_index: int | None = None
    existing: ExistingEntry | None = None

    @property
    def action(self) -> DuplicateAction:
        return get_duplicate_action(self)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "is_duplicate": True,
            "confidence": self.confidence,
            "duplicate_type": self.duplicate_type.value,
            "action": self.action.value,
        }
        if self.journal_entry_id is not None:
            data["journal_entry_id"] = self.journal_entry_id
        if self.duplicate_row_index is not None:
            data["duplicate_row_index"] = self.duplicate_row_index
        if self.existing is not None:
            data["duplicate_details"] = {
                "date": self.existing.entry_date.isoformat(),
                "amount": str(self.existing.amount),
                "description": self.existing.description,
            }
        return data


def calculate_similarity(first: str, second: str) -> float:
    """Cheap description similarity in ``[0, 1]``.

    Equal strings score 1, an empty side 0, containment 0.8; otherwise the
    number of shared words over the longer word count. Callers lower-case.
    """
    if first == second:
        return 1.0
    if not first or not second:
        return 0.0
    if first in second or second in first:
        return 0.8

    words1 = first.split()
    words2 = second.split()
    common = [word for word in words1 if word in words2]
    return len(common) / max(len(words1), len(words2))


def _amounts_match(a: Decimal, b: Decimal) -> bool:
    return abs(a - b) < AMOUNT_TOLERANCE


def find_existing_duplicate(
    row: ParsedRow, existing: Iterable[ExistingEntry]
) -> DuplicateInfo | None:
    """First booked entry within a day with the same amount and a similar text."""
    description = row.description.lower()
    for entry in existing:
        if abs(row.date - entry.entry_date) > DATE_WINDOW:
            continue
        if not _amounts_match(row.amount, entry.amount):
            continue
        similarity = calculate_similarity(description, (entry.description or "").lower())
        if similarity > EXISTING_SIMILARITY_THRESHOLD:
            return DuplicateInfo(
                confidence=similarity,
                duplicate_type=DuplicateType.EXISTING,
                journal_entry_id=entry.id,
                existing=entry,
            )
    return None


def are_similar_transactions(first: ParsedRow, second: ParsedRow) -> bool:
    return (
        first.date == second.date
        and _amounts_match(first.amount, second.amount)
        and calculate_similarity(first.description.lower(), second.description.lower())
        > WITHIN_IMPORT_SIMILARITY_THRESHOLD
    )


def detect_duplicates(
    rows: Sequence[ParsedRow], existing: Iterable[ExistingEntry] = ()
) -> dict[int, DuplicateInfo]:
    """Map row index to duplicate info for every suspicious row.

    Matches against booked entries win; a row already flagged is not
    re-flagged as a copy of an earlier row in the same file.
    """
    existing = list(existing)
    duplicates: dict[int, DuplicateInfo] = {}

    for index, row in enumerate(rows):
        match = find_existing_duplicate(row, existing)
        if match is not None:
            duplicates[index] = match

    for first_index, first in enumerate(rows):
        for second_index in range(first_index + 1, len(rows)):
            if second_index in duplicates:
                continue
            if are_similar_transactions(first, rows[second_index]):
                duplicates[second_index] = DuplicateInfo(
                    confidence=WITHIN_IMPORT_CONFIDENCE,
                    duplicate_type=DuplicateType.WITHIN_IMPORT,
                    duplicate_row_index=first_index,
                )
    return duplicates


def search_window(rows: Sequence[ParsedRow]) -> tuple[date, date] | None:
    """Date range of booked entries worth fetching for ``rows``."""
    if not rows:
        return None
    dates = [row.date for row in rows]
    return min(dates) - DATE_WINDOW, max(dates) + DATE_WINDOW


def get_duplicate_action(duplicate: DuplicateInfo) -> DuplicateAction:
    if duplicate.confidence >= SKIP_CONFIDENCE:
        return DuplicateAction.SKIP
    if duplicate.confidence >= REVIEW_CONFIDENCE:
        return DuplicateAction.REVIEW
    return DuplicateAction.IMPORT


def filter_duplicates(
    rows: Sequence[ParsedRow],
    duplicates: dict[int, DuplicateInfo],
    skip_high_confidence: bool = True,
) -> list[ParsedRow]:
    """Drop rows whose duplicate confidence reaches the skip threshold."""
    if not skip_high_confidence:
        return list(rows)
    return [
        row
        for index, row in enumerate(rows)
        if index not in duplicates or duplicates[index].confidence < SKIP_CONFIDENCE
    ]
