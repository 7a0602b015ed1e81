"""Per-row normalization of raw CSV cells into ``ImportRow`` values."""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, DecimalException
from typing import TYPE_CHECKING

from budget_importer.errors import MappingError, RowInvalidError
from budget_importer.models import AmountMode, ImportField, ImportRow, TxKind

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from collections.abc import Sequence

    from budget_importer.models import FieldMapping, ImportOptions

EXPENSE_HINTS = ('expense', 'debit', 'withdrawal', 'dr', 'charge', 'purchase', 'payment sent')
INCOME_HINTS = ('income', 'credit', 'deposit', 'cr', 'refund', 'payment received')

_WHITESPACE = re.compile(r'\s+')
_AMOUNT_NOISE = str.maketrans('', '', ',$€£')
_CURRENCY_CODE = re.compile('[A-Z]{3}')

AMOUNT_QUANTUM = Decimal('0.0001')
"""Scale of stored amounts; magnitudes are rounded to it before fingerprinting."""

MAX_AMOUNT = Decimal('1e11')
"""Exclusive bound on magnitudes; smaller values survive the float round trip of SQLite."""

_PATTERN_TOKENS: dict[str, dict[int, str]] = {
    'y': {1: '%Y', 2: '%y', 3: '%Y', 4: '%Y'},
    'M': {1: '%m', 2: '%m', 3: '%b', 4: '%B'},
    'L': {1: '%m', 2: '%m', 3: '%b', 4: '%B'},
    'd': {1: '%d', 2: '%d'},
    'E': {1: '%a', 2: '%a', 3: '%a', 4: '%A'},
    'H': {1: '%H', 2: '%H'},
    'h': {1: '%I', 2: '%I'},
    'm': {1: '%M', 2: '%M'},
    's': {1: '%S', 2: '%S'},
    'a': {1: '%p'},
}


def date_pattern_to_strptime(pattern: str) -> str:
    """Translate a ``MM/dd/yyyy`` style token pattern into a ``strptime`` format.

    Text between single quotes is literal and ``''`` is a literal quote. Patterns that
    already contain ``%`` are returned unchanged.
    """

    if '%' in pattern:
        return pattern

    parts: list[str] = []
    index = 0
    length = len(pattern)
    while index < length:
        char = pattern[index]
        if char == "'":
            if index + 1 < length and pattern[index + 1] == "'":
                parts.append("'")
                index += 2
                continue
            end = pattern.find("'", index + 1)
            if end == -1:
                raise ValueError(f'unterminated quote in date format: {pattern!r}')
            parts.append(pattern[index + 1 : end])
            index = end + 1
            continue
        if char.isascii() and char.isalpha():
            run = index
            while run < length and pattern[run] == char:
                run += 1
            count = run - index
            lengths = _PATTERN_TOKENS.get(char)
            if lengths is None:
                raise ValueError(f'unsupported date format token {char * count!r} in {pattern!r}')
            directive = lengths.get(min(count, max(lengths)))
            if directive is None:
                raise ValueError(f'unsupported date format token {char * count!r} in {pattern!r}')
            parts.append(directive)
            index = run
            continue
        parts.append(char)
        index += 1
    return ''.join(parts)


def parse_date(value: str | None, strptime_format: str) -> date:
    """Parse ``value`` with ``strptime_format`` and return the calendar date."""

    if value is None or not value.strip():
        raise RowInvalidError('missing date')
    cleaned = value.strip()
    try:
        return datetime.strptime(cleaned, strptime_format).date()
    except ValueError as exc:
        raise RowInvalidError(f'unrecognized date: {value!r}') from exc


def _to_decimal(text: str) -> Decimal | None:
    try:
        value = Decimal(text)
    except DecimalException:
        return None
    return value if value.is_finite() else None


def _bounded(value: Decimal, original: str) -> Decimal:
    """Return the magnitude of ``value`` rounded to the stored scale.

    Magnitudes the ``Numeric(18, 4)`` amount column cannot hold exactly raise
    ``RowInvalidError``.
    """

    magnitude = value.copy_abs()
    if magnitude >= MAX_AMOUNT:
        raise RowInvalidError(f'amount out of range: {original!r}')
    try:
        return magnitude.quantize(AMOUNT_QUANTUM)
    except DecimalException as exc:
        raise RowInvalidError(f'amount out of range: {original!r}') from exc


def parse_single_amount(amount_text: str | None, type_text: str | None = None) -> tuple[Decimal, TxKind]:
    """Return ``(magnitude, kind)`` for a signed amount cell.

    A leading or trailing minus, or surrounding parentheses, mark an expense. When
    ``type_text`` contains a known hint it decides the kind regardless of the sign;
    income hints are checked last.
    """

    if amount_text is None:
        raise RowInvalidError('missing amount')
    cleaned = _WHITESPACE.sub('', amount_text).translate(_AMOUNT_NOISE)

    negative = False
    if cleaned.startswith('(') and cleaned.endswith(')'):
        negative = True
        cleaned = cleaned[1:-1]
    if cleaned.endswith('-'):
        negative = True
        cleaned = cleaned[:-1]
    if cleaned.startswith('-'):
        negative = True
        cleaned = cleaned[1:]

    value = _to_decimal(cleaned)
    if value is None:
        raise RowInvalidError(f'unrecognized amount: {amount_text!r}')

    if type_text:
        lowered = type_text.lower()
        if any(hint in lowered for hint in EXPENSE_HINTS):
            negative = True
        if any(hint in lowered for hint in INCOME_HINTS):
            negative = False

    return _bounded(value, amount_text), TxKind.EXPENSE if negative else TxKind.INCOME


def _lenient_decimal(text: str | None) -> Decimal:
    if not text:
        return Decimal(0)
    value = _to_decimal(_WHITESPACE.sub('', text).replace(',', ''))
    return Decimal(0) if value is None else _bounded(value, text)


def parse_split_amount(debit_text: str | None, credit_text: str | None) -> tuple[Decimal, TxKind]:
    """Return ``(magnitude, kind)`` from separate debit and credit cells.

    Blank or unparsable cells count as zero, out of range values make the row invalid.
    A nonzero debit wins over the credit.
    """

    debit = _lenient_decimal(debit_text)
    if debit != 0:
        return debit, TxKind.EXPENSE
    credit = _lenient_decimal(credit_text)
    if credit != 0:
        return credit, TxKind.INCOME
    raise RowInvalidError('neither debit nor credit has a value')


class RowNormalizer:
    """Turn raw rows of one table into ``ImportRow`` values."""

    def __init__(self, headers: Sequence[str], mapping: FieldMapping, options: ImportOptions) -> None:
        try:
            self.date_format = date_pattern_to_strptime(options.date_format)
        except ValueError as exc:
            raise MappingError(str(exc)) from exc
        self.amount_mode = options.amount_mode
        self.currency_fallback = options.currency_fallback.upper()
        self._indexes: dict[ImportField, int] = {}
        for import_field, header in mapping.columns.items():
            if header in headers:
                self._indexes[import_field] = list(headers).index(header)

    def cell(self, cells: Sequence[str], import_field: ImportField) -> str | None:
        """Return the raw cell for ``import_field``, or ``None`` when it is unmapped."""

        index = self._indexes.get(import_field)
        if index is None or index >= len(cells):
            return None
        return cells[index]

    def normalize(self, cells: Sequence[str]) -> ImportRow:
        """Normalize one row, raising ``RowInvalidError`` when it cannot be imported."""

        row_date = parse_date(self.cell(cells, ImportField.DATE), self.date_format)

        if self.amount_mode is AmountMode.SINGLE:
            amount, kind = parse_single_amount(
                self.cell(cells, ImportField.AMOUNT),
                self.cell(cells, ImportField.TYPE),
            )
        else:
            amount, kind = parse_split_amount(
                self.cell(cells, ImportField.DEBIT),
                self.cell(cells, ImportField.CREDIT),
            )

        currency = (self.cell(cells, ImportField.CURRENCY) or '').strip().upper()
        if not _CURRENCY_CODE.fullmatch(currency):
            currency = self.currency_fallback
        category = (self.cell(cells, ImportField.CATEGORY) or '').strip()
        return ImportRow(
            date=row_date,
            amount=amount,
            kind=kind,
            currency_code=currency,
            note=self.cell(cells, ImportField.NOTE) or None,
            category_name=category or None,
        )
