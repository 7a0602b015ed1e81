from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from budget_importer.models import (
    AmountMode,
    FieldMapping,
    ImportField,
    ImportOptions,
    ImportSummary,
    ImportTemplate,
    ProcessingJob,
    ProcessingResult,
    RawTable,
    Transaction,
    TxKind,
)


def test_raw_table_lookup_helpers() -> None:
    table = RawTable(headers=('Note', 'Date', 'Note'), rows=(('a', '01/01/2025', 'b'),), delimiter=';')
    assert table.signature == 'Date|Note|Note'
    assert table.column_index('Note') == 0
    assert table.column_index('Amount') is None
    assert table.preview(0) == []


@pytest.mark.parametrize(
    ('value', 'expected'),
    [
        ('single', AmountMode.SINGLE),
        ('split_columns', AmountMode.SPLIT_COLUMNS),
        ('splitColumns', AmountMode.SPLIT_COLUMNS),
        (AmountMode.SINGLE, AmountMode.SINGLE),
    ],
)
def test_amount_mode_parse(value: AmountMode | str, expected: AmountMode) -> None:
    assert AmountMode.parse(value) is expected


def test_amount_mode_parse_rejects_unknown() -> None:
    with pytest.raises(ValueError, match='unknown amount mode'):
        AmountMode.parse('double')


def test_import_options_validation() -> None:
    options = ImportOptions(delimiter='\t', amount_mode='splitColumns', currency_fallback=' eur ')  # type: ignore[arg-type]
    assert options.amount_mode is AmountMode.SPLIT_COLUMNS
    assert options.currency_fallback == 'EUR'
    with pytest.raises(ValueError, match='unsupported delimiter'):
        ImportOptions(delimiter='|')
    with pytest.raises(ValueError, match='3-letter code'):
        ImportOptions(currency_fallback='dollars')


def test_field_mapping_set_empty_unmaps() -> None:
    mapping = FieldMapping.from_dict({'date': 'Date', 'note': ''})
    assert mapping.to_dict() == {'date': 'Date'}
    mapping.set(ImportField.DATE, None)
    assert not mapping.is_mapped(ImportField.DATE)
    assert mapping.columns == {}


def test_template_round_trip_keeps_options() -> None:
    template = ImportTemplate(
        name='Card',
        header_signature='Amount|Date',
        mapping=FieldMapping.from_dict({'date': 'Date', 'amount': 'Amount'}),
        date_format='yyyy-MM-dd',
        delimiter='\t',
    )
    restored = ImportTemplate.from_dict(template.to_dict())
    assert restored == template


def test_import_summary_text() -> None:
    summary = ImportSummary(imported_count=2, invalid_count=1)
    assert summary.summary() == 'Imported 2, skipped 1 invalid, skipped 0 duplicates'
    assert summary.to_dict() == {'imported': 2, 'invalid': 1, 'duplicate': 0}


def test_processing_result_summary() -> None:
    job = ProcessingJob(source_path=Path('statement.csv'))
    table = RawTable(headers=('Date',), rows=(('01/01/2025',),), delimiter='\t', strict=False)
    result = ProcessingResult(job=job, table=table)
    assert result.has_rows()
    assert result.summary() == 'statement.csv: 1 rows, delimiter tab, tolerant tokenizer'


def test_signed_amount_for_income() -> None:
    txn = Transaction(
        uuid='1',
        date=date(2025, 1, 1),
        amount=Decimal('5'),
        kind=TxKind.INCOME,
        currency_code='USD',
        import_hash=None,
    )
    assert txn.signed_amount == Decimal('5')
