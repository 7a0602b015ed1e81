"""Exception hierarchy for the CSV import pipeline.

File-level errors abort an import before any row is processed. ``RowInvalidError``
never escapes the per-row loop of the importer; it is only counted.
"""

from __future__ import annotations


class BudgetImportError(Exception):
    """Base class for every error raised by the import pipeline."""


class FileLoadError(BudgetImportError):
    """Raised when the input file cannot be read from disk."""


class DecodeFailureError(BudgetImportError):
    """Raised when the input bytes are not valid UTF-8 text."""


class ParseEmptyError(BudgetImportError):
    """Raised when the tokenizer finds no header row."""


class StrictParseError(BudgetImportError):
    """Raised by the strict reader; callers fall back to the tolerant tokenizer."""


class MappingError(BudgetImportError):
    """Raised when a field mapping is invalid or not ready for import."""


class StoreCommitError(BudgetImportError):
    """Raised when the transaction store fails to commit a batch."""


class RowInvalidError(ValueError):
    """Raised for a row whose date or amount cannot be normalized."""
