"""Shared data models used across budget importer modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - type-checking imports only
    from datetime import date
    from pathlib import Path

SUPPORTED_DELIMITERS: tuple[str, ...] = (',', ';', '\t')
"""Field delimiters accepted by the readers, in detection priority order."""

DEFAULT_DATE_FORMAT = 'MM/dd/yyyy'
DEFAULT_CURRENCY = 'USD'


class ImportField(str, Enum):
    """Canonical fields that raw CSV columns are mapped onto."""

    DATE = 'date'
    AMOUNT = 'amount'
    DEBIT = 'debit'
    CREDIT = 'credit'
    TYPE = 'type'
    NOTE = 'note'
    CATEGORY = 'category'
    CURRENCY = 'currency'


class AmountMode(str, Enum):
    """How the amount and direction of a row are read."""

    SINGLE = 'single'
    SPLIT_COLUMNS = 'split_columns'

    @classmethod
    def parse(cls, value: AmountMode | str) -> AmountMode:
        """Return the mode for ``value``, accepting ``splitColumns`` as an alias."""

        if isinstance(value, AmountMode):
            return value
        cleaned = value.strip()
        if cleaned in {'splitColumns', 'split', 'split-columns'}:
            return cls.SPLIT_COLUMNS
        try:
            return cls(cleaned)
        except ValueError as exc:
            raise ValueError(f'unknown amount mode: {value!r}') from exc


class TxKind(str, Enum):
    """Direction of a transaction; amounts themselves are always non-negative."""

    EXPENSE = 'expense'
    INCOME = 'income'


def header_signature(headers: tuple[str, ...] | list[str]) -> str:
    """Return the sorted, pipe-joined header names used to key import templates."""

    return '|'.join(sorted(headers))


@dataclass(frozen=True, slots=True)
class RawTable:
    """Parsed CSV contents with every row aligned to ``headers``."""

    headers: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    delimiter: str = ','
    strict: bool = True

    @property
    def signature(self) -> str:
        return header_signature(self.headers)

    def column_index(self, name: str) -> int | None:
        """Return the position of the first header called ``name``."""

        try:
            return self.headers.index(name)
        except ValueError:
            return None

    def preview(self, limit: int = 20) -> list[tuple[str, ...]]:
        """Return the first ``limit`` data rows."""

        return list(self.rows[:limit])


@dataclass(slots=True)
class FieldMapping:
    """Assignment of canonical import fields to CSV header names."""

    columns: dict[ImportField, str] = field(default_factory=dict)

    def get(self, import_field: ImportField) -> str | None:
        return self.columns.get(import_field)

    def set(self, import_field: ImportField, header: str | None) -> None:
        """Map ``import_field`` to ``header``; ``None`` or ``''`` unmaps it."""

        if header:
            self.columns[import_field] = header
        else:
            self.columns.pop(import_field, None)

    def is_mapped(self, import_field: ImportField) -> bool:
        return bool(self.columns.get(import_field))

    def is_import_ready(self, amount_mode: AmountMode | None = None) -> bool:
        """Return ``True`` when a date and a usable amount source are mapped.

        Without ``amount_mode`` either an amount column or a debit/credit column
        is enough. With a mode, the mapping must provide the columns that mode reads.
        """

        if not self.is_mapped(ImportField.DATE):
            return False
        has_amount = self.is_mapped(ImportField.AMOUNT)
        has_split = self.is_mapped(ImportField.DEBIT) or self.is_mapped(ImportField.CREDIT)
        if amount_mode is AmountMode.SINGLE:
            return has_amount
        if amount_mode is AmountMode.SPLIT_COLUMNS:
            return has_split
        return has_amount or has_split

    def copy(self) -> FieldMapping:
        return FieldMapping(columns=dict(self.columns))

    def to_dict(self) -> dict[str, str]:
        return {import_field.value: header for import_field, header in self.columns.items()}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> FieldMapping:
        mapping = cls()
        for key, header in raw.items():
            mapping.set(ImportField(key), str(header) if header else None)
        return mapping


@dataclass(slots=True)
class ImportOptions:
    """Parse settings consumed by the loader and the row normalizer."""

    date_format: str = DEFAULT_DATE_FORMAT
    delimiter: str | None = None
    amount_mode: AmountMode = AmountMode.SINGLE
    currency_fallback: str = DEFAULT_CURRENCY

    def __post_init__(self) -> None:
        if self.delimiter is not None and self.delimiter not in SUPPORTED_DELIMITERS:
            raise ValueError(f'unsupported delimiter: {self.delimiter!r}')
        self.amount_mode = AmountMode.parse(self.amount_mode)
        self.currency_fallback = self.currency_fallback.strip().upper()
        code = self.currency_fallback
        if len(code) != 3 or not (code.isascii() and code.isalpha()):
            raise ValueError(f'currency fallback must be a 3-letter code: {code!r}')


@dataclass(slots=True)
class ImportTemplate:
    """Saved mapping and parse settings for files with a given header signature."""

    name: str
    header_signature: str
    mapping: FieldMapping
    date_format: str = DEFAULT_DATE_FORMAT
    delimiter: str = ','
    amount_mode: AmountMode = AmountMode.SINGLE
    currency_fallback: str = DEFAULT_CURRENCY

    def options(self) -> ImportOptions:
        return ImportOptions(
            date_format=self.date_format,
            delimiter=self.delimiter,
            amount_mode=self.amount_mode,
            currency_fallback=self.currency_fallback,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            'name': self.name,
            'header_signature': self.header_signature,
            'date_format': self.date_format,
            'delimiter': self.delimiter,
            'amount_mode': self.amount_mode.value,
            'currency_fallback': self.currency_fallback,
            'mapping': self.mapping.to_dict(),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ImportTemplate:
        return cls(
            name=str(raw['name']),
            header_signature=str(raw['header_signature']),
            mapping=FieldMapping.from_dict(dict(raw.get('mapping') or {})),
            date_format=str(raw.get('date_format') or DEFAULT_DATE_FORMAT),
            delimiter=str(raw.get('delimiter') or ','),
            amount_mode=AmountMode.parse(str(raw.get('amount_mode') or AmountMode.SINGLE.value)),
            currency_fallback=str(raw.get('currency_fallback') or DEFAULT_CURRENCY),
        )


@dataclass(frozen=True, slots=True)
class ImportRow:
    """Normalized row ready for duplicate checking and persistence."""

    date: date
    amount: Decimal
    kind: TxKind
    currency_code: str
    note: str | None = None
    category_name: str | None = None


@dataclass(frozen=True, slots=True)
class Category:
    """Category entity owned by the transaction store."""

    id: int | str
    name: str


@dataclass(slots=True)
class Transaction:
    """Persisted transaction as exposed by a ``TransactionStore``."""

    uuid: str
    date: date
    amount: Decimal
    kind: TxKind
    currency_code: str
    import_hash: str | None
    note: str | None = None
    category: Category | None = None

    @property
    def signed_amount(self) -> Decimal:
        """Return the amount with expenses negative and income positive."""

        return -self.amount if self.kind is TxKind.EXPENSE else self.amount


@dataclass(slots=True)
class ImportSummary:
    """Counters reported at the end of an import run."""

    imported_count: int = 0
    invalid_count: int = 0
    duplicate_count: int = 0

    def summary(self) -> str:
        """Return a human readable summary string for logging/UX."""

        return (
            f'Imported {self.imported_count}, skipped {self.invalid_count} invalid, '
            f'skipped {self.duplicate_count} duplicates'
        )

    def to_dict(self) -> dict[str, int]:
        return {
            'imported': self.imported_count,
            'invalid': self.invalid_count,
            'duplicate': self.duplicate_count,
        }


@dataclass(slots=True)
class ProcessingJob:
    """An input file queued for import."""

    source_path: Path


@dataclass(slots=True)
class ProcessingResult:
    """Outcome of loading an input file into a ``RawTable``."""

    job: ProcessingJob
    table: RawTable
    warnings: list[str] = field(default_factory=list)

    def has_rows(self) -> bool:
        """Return ``True`` if the table contains at least one data row."""

        return bool(self.table.rows)

    def summary(self) -> str:
        """Return a human readable summary string for logging/UX."""

        count = len(self.table.rows)
        reader = 'strict reader' if self.table.strict else 'tolerant tokenizer'
        delimiter = 'tab' if self.table.delimiter == '\t' else repr(self.table.delimiter)
        return f'{self.job.source_path.name}: {count} rows, delimiter {delimiter}, {reader}'
