"""Output utilities: transaction CSV export, run reports and table previews."""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Iterable
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING

from budget_importer.models import RawTable, Transaction, TxKind

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from budget_importer.store import TransactionStore

EXPORT_HEADERS = ('Date', 'Amount', 'Type', 'Currency', 'Category', 'Note')


def build_export_payload(transactions: Iterable[Transaction]) -> str:
    """Serialize transactions into CSV text, oldest first."""

    if not isinstance(transactions, Iterable):
        raise TypeError('transactions must be iterable')

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\n')
    writer.writerow(EXPORT_HEADERS)
    for txn in sorted(transactions, key=lambda item: item.date):
        writer.writerow(
            (
                txn.date.isoformat(),
                format(txn.amount.quantize(Decimal('0.01')), '.2f'),
                'Expense' if txn.kind is TxKind.EXPENSE else 'Income',
                txn.currency_code,
                txn.category.name if txn.category is not None else '',
                txn.note or '',
            ),
        )
    return buffer.getvalue()


def write_export(store: TransactionStore, output_path: Path | str) -> int:
    """Write every stored transaction to ``output_path`` and return how many were written."""

    transactions = list(store.iter_transactions())
    payload = build_export_payload(transactions)
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open('w', encoding='utf-8', newline='') as handle:
        handle.write(payload)
    return len(transactions)


def build_report(entries: Iterable[dict[str, object]]) -> str:
    """Return the JSON run report printed by the CLI."""

    return json.dumps({'files': list(entries)}, indent=2, sort_keys=True)


def format_preview(table: RawTable, *, limit: int = 20, width: int = 18) -> str:
    """Render the header and first ``limit`` rows of ``table`` as a fixed-width grid."""

    if not isinstance(table, RawTable):
        raise TypeError('invalid table')

    def clip(cell: str) -> str:
        flat = ' '.join(cell.split())
        return flat if len(flat) <= width else f'{flat[: width - 1]}~'

    line_fmt = ' | '.join(f'{{{index}:<{width}}}' for index in range(len(table.headers)))
    lines = [line_fmt.format(*(clip(name) for name in table.headers))]
    lines.append('-+-'.join('-' * width for _ in table.headers))
    for row in table.preview(limit):
        lines.append(line_fmt.format(*(clip(cell) for cell in row)))
    return '\n'.join(lines)
