"""CSV loading pipeline: strict reader first, tolerant tokenizer as fallback."""

from __future__ import annotations

import csv
import io
import logging
from typing import TYPE_CHECKING

from budget_importer.detect import detect_delimiter
from budget_importer.errors import DecodeFailureError, FileLoadError, StrictParseError
from budget_importer.models import ProcessingJob, ProcessingResult, RawTable
from budget_importer.processors.tokenizer import tokenize

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from pathlib import Path

    from budget_importer.models import ImportOptions

LOGGER = logging.getLogger(__name__)


def decode_bytes(data: bytes) -> str:
    """Decode ``data`` as UTF-8, dropping a leading byte order mark."""

    try:
        return data.decode('utf-8-sig')
    except UnicodeDecodeError as exc:
        raise DecodeFailureError(f'input is not valid UTF-8: {exc.reason} at byte {exc.start}') from exc


def read_strict(text: str, delimiter: str) -> RawTable:
    """Parse well-formed CSV text with the standard library reader.

    The first row is the header. Any quoting error, blank or repeated header name, or
    row whose width differs from the header raises ``StrictParseError``.
    """

    reader = csv.reader(io.StringIO(text, newline=''), delimiter=delimiter, strict=True)
    try:
        rows = [row for row in reader if any(cell.strip() for cell in row)]
    except csv.Error as exc:
        raise StrictParseError(f'line {reader.line_num}: {exc}') from exc
    if not rows:
        raise StrictParseError('no header row')

    headers = tuple(rows[0])
    if any(not name.strip() for name in headers):
        raise StrictParseError('blank header name')
    if len(set(headers)) != len(headers):
        raise StrictParseError('repeated header name')
    width = len(headers)
    for number, row in enumerate(rows[1:], start=2):
        if len(row) != width:
            raise StrictParseError(f'row {number} has {len(row)} cells, expected {width}')
    return RawTable(headers=headers, rows=tuple(tuple(row) for row in rows[1:]), delimiter=delimiter)


def load_table(text: str, delimiter: str | None = None) -> RawTable:
    """Build a ``RawTable`` from decoded text.

    The strict reader runs with ``delimiter`` (detected when ``None``). When it fails,
    the tolerant tokenizer runs with a delimiter re-detected from the raw text.
    ``ParseEmptyError`` from the tokenizer propagates to the caller.
    """

    strict_delimiter = delimiter or detect_delimiter(text)
    try:
        return read_strict(text, strict_delimiter)
    except StrictParseError as exc:
        LOGGER.info('Strict CSV read failed (%s); using tolerant tokenizer', exc)

    fallback_delimiter = detect_delimiter(text)
    headers, rows = tokenize(text, fallback_delimiter)
    return RawTable(headers=headers, rows=tuple(rows), delimiter=fallback_delimiter, strict=False)


def read_text(path: Path) -> str:
    """Read and decode the file at ``path``."""

    try:
        data = path.read_bytes()
    except OSError as exc:
        raise FileLoadError(f'cannot read {path}: {exc.strerror or exc}') from exc
    return decode_bytes(data)


def process_csv(job: ProcessingJob, options: ImportOptions) -> ProcessingResult:
    """Load the CSV file of ``job`` and return a ``ProcessingResult``."""

    text = read_text(job.source_path)
    table = load_table(text, options.delimiter)
    warnings: list[str] = []
    if not table.strict:
        warnings.append('File is not well-formed CSV; parsed with the tolerant tokenizer.')
    if options.delimiter and table.delimiter != options.delimiter:
        warnings.append(f'Delimiter changed to {table.delimiter!r}.')
    return ProcessingResult(job=job, table=table, warnings=warnings)
