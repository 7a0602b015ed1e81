"""Duplicate guard and batch importer."""

from __future__ import annotations

import hashlib
import logging
import uuid
from datetime import UTC, datetime, time
from typing import TYPE_CHECKING

from budget_importer.errors import MappingError, RowInvalidError
from budget_importer.models import Category, ImportSummary, Transaction
from budget_importer.normalize import RowNormalizer

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from datetime import date
    from decimal import Decimal

    from budget_importer.models import FieldMapping, ImportOptions, ImportRow, RawTable
    from budget_importer.store import TransactionStore

LOGGER = logging.getLogger(__name__)

FINGERPRINT_SEPARATOR = '|'


def epoch_seconds(value: date) -> int:
    """Return the Unix timestamp of UTC midnight on ``value``."""

    return int(datetime.combine(value, time.min, tzinfo=UTC).timestamp())


def format_amount(value: Decimal) -> str:
    """Render ``value`` without trailing zeros so ``42.5`` and ``42.50`` agree."""

    normalized = value.normalize()
    return format(normalized, 'f')


def compute_fingerprint(row: ImportRow) -> str:
    """Build the stable duplicate-detection hash for ``row``.

    Uses date, amount, kind, currency and note. The category is left out so that
    re-categorizing an imported transaction does not defeat duplicate detection.
    """

    base = FINGERPRINT_SEPARATOR.join(
        (
            str(epoch_seconds(row.date)),
            format_amount(row.amount),
            row.kind.value,
            row.currency_code,
            row.note or '',
        ),
    )
    return hashlib.sha256(base.encode('utf-8')).hexdigest()


class CategoryResolver:
    """Cache category lookups for the duration of one import run."""

    def __init__(self, store: TransactionStore) -> None:
        self.store = store
        self._cache: dict[str, Category] = {}

    def resolve(self, name: str | None) -> Category | None:
        if not name:
            return None
        key = name.lower()
        category = self._cache.get(key)
        if category is None:
            category = self.store.resolve_or_create_category(name)
            self._cache[key] = category
        return category


def import_table(
    table: RawTable,
    mapping: FieldMapping,
    options: ImportOptions,
    store: TransactionStore,
    *,
    commit: bool = True,
) -> ImportSummary:
    """Normalize every row of ``table`` and persist the ones not seen before.

    Invalid rows and duplicates are only counted. The store is committed once after
    the last row; a failing commit raises ``StoreCommitError`` for the whole batch.
    """

    if not mapping.is_import_ready(options.amount_mode):
        raise MappingError(f'mapping is not ready for {options.amount_mode.value} amount mode')

    normalizer = RowNormalizer(table.headers, mapping, options)
    categories = CategoryResolver(store)
    summary = ImportSummary()

    # Data rows start on line 2, after the header.
    for number, cells in enumerate(table.rows, start=2):
        try:
            row = normalizer.normalize(cells)
        except RowInvalidError as exc:
            summary.invalid_count += 1
            LOGGER.debug('Row %d skipped: %s', number, exc)
            continue

        fingerprint = compute_fingerprint(row)
        if store.find_by_fingerprint(fingerprint) is not None:
            summary.duplicate_count += 1
            LOGGER.debug('Row %d skipped: duplicate of an imported transaction', number)
            continue

        store.create(
            Transaction(
                uuid=str(uuid.uuid4()),
                date=row.date,
                amount=row.amount,
                kind=row.kind,
                currency_code=row.currency_code,
                import_hash=fingerprint,
                note=row.note,
                category=categories.resolve(row.category_name),
            ),
        )
        summary.imported_count += 1

    if commit:
        store.commit()
    LOGGER.info(summary.summary())
    return summary
