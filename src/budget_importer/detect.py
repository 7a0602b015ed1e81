"""Input discovery and delimiter detection helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from budget_importer.models import SUPPORTED_DELIMITERS, ProcessingJob

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from collections.abc import Iterator
    from pathlib import Path

CSV_SUFFIXES: frozenset[str] = frozenset({'.csv', '.tsv', '.txt'})
"""Suffixes picked up when a directory is given as an input target."""

DEFAULT_DELIMITER = ','


def detect_delimiter(text: str) -> str:
    """Guess the field delimiter of ``text`` from its first data line.

    Empty lines are ignored and the header line is skipped. Each candidate is counted
    on the second line and the highest count wins, ties going to the earlier candidate
    in ``SUPPORTED_DELIMITERS``. Samples with fewer than two lines use a comma.
    """

    lines = [line for line in text.splitlines() if line]
    if len(lines) < 2:
        return DEFAULT_DELIMITER
    sample = lines[1]
    best, best_count = DEFAULT_DELIMITER, -1
    for candidate in SUPPORTED_DELIMITERS:
        count = sample.count(candidate)
        if count > best_count:
            best, best_count = candidate, count
    return best


def iter_jobs(target: Path) -> Iterator[ProcessingJob]:
    """Yield ``ProcessingJob`` entries for ``target`` (file or directory)."""

    expanded = target.expanduser()
    if expanded.is_file():
        yield ProcessingJob(source_path=expanded)
        return

    if not expanded.is_dir():
        raise FileNotFoundError(f'Input path not found: {expanded}')

    for entry in sorted(expanded.iterdir()):
        if entry.is_file() and entry.suffix.lower() in CSV_SUFFIXES:
            yield ProcessingJob(source_path=entry)

