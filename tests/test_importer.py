from datetime import date
from decimal import Decimal

import pytest

from budget_importer.errors import MappingError, StoreCommitError
from budget_importer.importer import (
    CategoryResolver,
    compute_fingerprint,
    epoch_seconds,
    format_amount,
    import_table,
)
from budget_importer.mapping import plan_import
from budget_importer.models import FieldMapping, ImportOptions, ImportRow, ImportSummary, TxKind
from budget_importer.processors.csv_processor import load_table
from budget_importer.store import MemoryStore

SAMPLE = (
    'Date,Amount,Type,Note\n'
    '01/15/2025,42.50,Expense,Coffee\n'
    '01/16/2025,42.50,Expense,Coffee\n'
    'bad-date,10.00,Expense,X\n'
)


class FailingStore(MemoryStore):
    def commit(self) -> None:
        raise StoreCommitError('failed to commit import batch: disk full')


def _import(text: str, store: MemoryStore, *, commit: bool = True) -> ImportSummary:
    table = load_table(text)
    plan = plan_import(table, ImportOptions())
    return import_table(table, plan.mapping, plan.options, store, commit=commit)


def test_epoch_seconds_is_utc_midnight() -> None:
    assert epoch_seconds(date(1970, 1, 2)) == 86400
    assert epoch_seconds(date(2025, 1, 15)) == 1736899200


def test_format_amount_drops_trailing_zeros() -> None:
    assert format_amount(Decimal('42.50')) == '42.5'
    assert format_amount(Decimal('100.00')) == '100'
    assert format_amount(Decimal('0.10')) == '0.1'


def test_fingerprint_ignores_amount_scale_and_category() -> None:
    base = ImportRow(date(2025, 1, 15), Decimal('42.50'), TxKind.EXPENSE, 'USD', 'Coffee', 'Food')
    same = ImportRow(date(2025, 1, 15), Decimal('42.5'), TxKind.EXPENSE, 'USD', 'Coffee', None)
    assert compute_fingerprint(base) == compute_fingerprint(same)
    assert len(compute_fingerprint(base)) == 64


@pytest.mark.parametrize(
    'other',
    [
        ImportRow(date(2025, 1, 16), Decimal('42.50'), TxKind.EXPENSE, 'USD', 'Coffee'),
        ImportRow(date(2025, 1, 15), Decimal('42.51'), TxKind.EXPENSE, 'USD', 'Coffee'),
        ImportRow(date(2025, 1, 15), Decimal('42.50'), TxKind.INCOME, 'USD', 'Coffee'),
        ImportRow(date(2025, 1, 15), Decimal('42.50'), TxKind.EXPENSE, 'EUR', 'Coffee'),
        ImportRow(date(2025, 1, 15), Decimal('42.50'), TxKind.EXPENSE, 'USD', 'Tea'),
    ],
)
def test_fingerprint_distinguishes_rows(other: ImportRow) -> None:
    base = ImportRow(date(2025, 1, 15), Decimal('42.50'), TxKind.EXPENSE, 'USD', 'Coffee')
    assert compute_fingerprint(base) != compute_fingerprint(other)


def test_import_then_reimport_skips_duplicates() -> None:
    store = MemoryStore()

    first = _import(SAMPLE, store)
    assert first.to_dict() == {'imported': 2, 'invalid': 1, 'duplicate': 0}
    assert len(store.transactions) == 2
    assert {txn.date for txn in store.transactions} == {date(2025, 1, 15), date(2025, 1, 16)}
    assert all(txn.kind is TxKind.EXPENSE and txn.amount == Decimal('42.50') for txn in store.transactions)

    second = _import(SAMPLE, store)
    assert second.to_dict() == {'imported': 0, 'invalid': 1, 'duplicate': 2}
    assert len(store.transactions) == 2
    assert store.commits == 2


def test_repeated_row_in_one_file_counts_as_duplicate() -> None:
    store = MemoryStore()
    text = 'Date,Amount,Note\n01/15/2025,-5,Tea\n01/15/2025,-5.00,Tea\n'
    summary = _import(text, store)
    assert summary.to_dict() == {'imported': 1, 'invalid': 0, 'duplicate': 1}


def test_counts_add_up_to_row_count() -> None:
    store = MemoryStore()
    text = (
        'Date,Amount,Note\n'
        '01/15/2025,-5,Tea\n'
        '01/15/2025,oops,Tea\n'
        '01/15/2025,-5,Tea\n'
        '01/17/2025,20,Refund\n'
    )
    summary = _import(text, store)
    assert summary.imported_count + summary.invalid_count + summary.duplicate_count == 4


def test_categories_resolved_once_per_name() -> None:
    store = MemoryStore()
    text = (
        'Date,Amount,Category,Note\n'
        '01/01/2025,-1,Food,a\n'
        '01/02/2025,-2,food,b\n'
        '01/03/2025,-3,,c\n'
        '01/04/2025,-4,Rent,d\n'
    )
    _import(text, store)
    assert [category.name for category in store.categories] == ['Food', 'Rent']
    by_note = {txn.note: txn for txn in store.transactions}
    assert by_note['a'].category == by_note['b'].category
    assert by_note['c'].category is None


def test_duplicates_do_not_create_categories() -> None:
    store = MemoryStore()
    _import('Date,Amount,Note\n01/01/2025,-1,a\n', store)
    _import('Date,Amount,Category,Note\n01/01/2025,-1,Fresh,a\n', store)
    assert store.categories == []


def test_category_resolver_caches_case_insensitively() -> None:
    store = MemoryStore()
    resolver = CategoryResolver(store)
    first = resolver.resolve('Travel')
    assert resolver.resolve('TRAVEL') is first
    assert resolver.resolve('') is None
    assert resolver.resolve(None) is None
    assert len(store.categories) == 1


def test_dry_run_leaves_store_uncommitted() -> None:
    store = MemoryStore()
    summary = _import(SAMPLE, store, commit=False)
    assert summary.imported_count == 2
    assert store.transactions == []
    assert store.commits == 0


def test_commit_failure_propagates() -> None:
    store = FailingStore()
    with pytest.raises(StoreCommitError, match='disk full'):
        _import(SAMPLE, store)
    assert store.transactions == []


def test_mapping_not_ready_raises() -> None:
    table = load_table(SAMPLE)
    mapping = FieldMapping.from_dict({'date': 'Date'})
    with pytest.raises(MappingError, match='not ready'):
        import_table(table, mapping, ImportOptions(), MemoryStore())


def test_every_row_invalid_imports_nothing() -> None:
    store = MemoryStore()
    summary = _import('Date,Amount\nnope,1\n02/30/2025,2\n', store)
    assert summary.to_dict() == {'imported': 0, 'invalid': 2, 'duplicate': 0}
    assert store.commits == 1


def test_signed_amount() -> None:
    store = MemoryStore()
    _import('Date,Amount,Note\n01/01/2025,-3.25,out\n01/02/2025,10,in\n', store)
    signed = {txn.note: txn.signed_amount for txn in store.transactions}
    assert signed == {'out': Decimal('-3.25'), 'in': Decimal('10')}
