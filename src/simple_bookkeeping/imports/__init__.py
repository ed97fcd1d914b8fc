"""Bank CSV import: parsing, duplicate detection and account suggestions."""

from simple_bookkeeping.imports.classifier import (
    AccountSuggestion,
    ImportRule,
    classify_with_rules,
)
from simple_bookkeeping.imports.csv_parser import (
    CsvParseOptions,
    ParsedRow,
    convert_to_parsed_rows,
    detect_template,
    parse_csv_data,
    validate_csv_file,
)
from simple_bookkeeping.imports.duplicates import (
    DuplicateAction,
    DuplicateInfo,
    ExistingEntry,
    detect_duplicates,
    filter_duplicates,
    get_duplicate_action,
)

__all__ = [
    "AccountSuggestion",
    "CsvParseOptions",
    "DuplicateAction",
    "DuplicateInfo",
    "ExistingEntry",
    "ImportRule",
    "ParsedRow",
    "classify_with_rules",
    "convert_to_parsed_rows",
    "detect_duplicates",
    "detect_template",
    "filter_duplicates",
    "get_duplicate_action",
    "parse_csv_data",
    "validate_csv_file",
]
