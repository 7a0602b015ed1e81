"""Tolerant CSV tokenizer for messy bank exports."""

from __future__ import annotations

from budget_importer.errors import ParseEmptyError

QUOTE = '"'


def _is_blank(row: list[str]) -> bool:
    return all(not cell.strip() for cell in row)


def split_rows(text: str, delimiter: str) -> list[list[str]]:
    """Split ``text`` into rows of cells, dropping rows made only of blank cells.

    Quoted fields may contain the delimiter, line breaks and doubled quotes. CR, LF
    and CRLF all end a row when they appear outside quotes.
    """

    rows: list[list[str]] = []
    row: list[str] = []
    field: list[str] = []
    in_quotes = False
    index = 0
    length = len(text)

    def end_row() -> None:
        row.append(''.join(field))
        field.clear()
        if not _is_blank(row):
            rows.append(row.copy())
        row.clear()

    while index < length:
        char = text[index]
        if char == QUOTE:
            if in_quotes and index + 1 < length and text[index + 1] == QUOTE:
                field.append(QUOTE)
                index += 1
            else:
                in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            row.append(''.join(field))
            field.clear()
        elif char in '\r\n' and not in_quotes:
            end_row()
            if char == '\r' and index + 1 < length and text[index + 1] == '\n':
                index += 1
        else:
            field.append(char)
        index += 1

    if field or row:
        end_row()
    return rows


def repair_row(row: list[str], width: int, delimiter: str) -> tuple[str, ...]:
    """Return ``row`` padded or merged so that it has exactly ``width`` cells.

    Extra cells are assumed to come from an unquoted delimiter inside the last
    column and are joined back into it.
    """

    if len(row) == width:
        return tuple(row)
    if len(row) < width:
        return tuple(row + [''] * (width - len(row)))
    merged = delimiter.join(row[width - 1 :])
    return (*row[: width - 1], merged)


def tokenize(text: str, delimiter: str) -> tuple[tuple[str, ...], list[tuple[str, ...]]]:
    """Parse ``text`` into ``(headers, rows)`` with every row as wide as the header."""

    rows = split_rows(text, delimiter)
    if not rows:
        raise ParseEmptyError('no header row found')
    headers = tuple(rows[0])
    width = len(headers)
    return headers, [repair_row(row, width, delimiter) for row in rows[1:]]
