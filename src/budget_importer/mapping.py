"""Header auto-mapping and template application."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from budget_importer.errors import MappingError
from budget_importer.models import (
    AmountMode,
    FieldMapping,
    ImportField,
    ImportOptions,
    ImportTemplate,
    header_signature,
)

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from budget_importer.models import RawTable
    from budget_importer.templates import TemplateStore

LOGGER = logging.getLogger(__name__)

DEFAULT_SYNONYMS: dict[ImportField, tuple[str, ...]] = {
    ImportField.DATE: ('date', 'transactiondate', 'posteddate'),
    ImportField.AMOUNT: ('amount', 'amt', 'transactionamount'),
    ImportField.DEBIT: ('debit', 'withdrawal'),
    ImportField.CREDIT: ('credit', 'deposit'),
    ImportField.NOTE: ('description', 'memo', 'details', 'note'),
    ImportField.TYPE: ('type', 'drcr', 'transactiontype'),
    ImportField.CATEGORY: ('category',),
    ImportField.CURRENCY: ('currency', 'currencycode', 'cur'),
}
"""Normalized header names recognized for each canonical field."""

_NON_ALNUM = re.compile('[^a-z0-9]')

__all__ = [
    'DEFAULT_SYNONYMS',
    'ImportPlan',
    'apply_overrides',
    'auto_map',
    'header_signature',
    'merge_synonyms',
    'normalize_header',
    'parse_override',
    'plan_import',
    'resolve_amount_mode',
]


def normalize_header(name: str) -> str:
    """Lowercase ``name`` and drop every character that is not ``a-z`` or ``0-9``."""

    return _NON_ALNUM.sub('', name.lower())


def merge_synonyms(extra: Mapping[str, Iterable[str]] | None) -> dict[ImportField, tuple[str, ...]]:
    """Return ``DEFAULT_SYNONYMS`` extended with ``extra`` names per field."""

    merged = dict(DEFAULT_SYNONYMS)
    for key, names in (extra or {}).items():
        try:
            import_field = ImportField(key)
        except ValueError as exc:
            raise MappingError(f'unknown import field in synonyms: {key!r}') from exc
        added = tuple(normalize_header(name) for name in names)
        merged[import_field] = merged.get(import_field, ()) + added
    return merged


def auto_map(
    headers: Iterable[str],
    synonyms: Mapping[ImportField, Iterable[str]] | None = None,
) -> FieldMapping:
    """Guess a ``FieldMapping`` from header names.

    For each field, the first header in file order whose normalized name is a known
    synonym wins. Fields without a match stay unmapped.
    """

    table = synonyms or DEFAULT_SYNONYMS
    normalized = [(header, normalize_header(header)) for header in headers]
    mapping = FieldMapping()
    for import_field in ImportField:
        names = set(table.get(import_field, ()))
        for header, key in normalized:
            if key in names:
                mapping.set(import_field, header)
                break
    return mapping


def resolve_amount_mode(mapping: FieldMapping, mode: AmountMode) -> AmountMode:
    """Switch to split columns when only debit/credit columns were found."""

    if not mapping.is_mapped(ImportField.AMOUNT) and (
        mapping.is_mapped(ImportField.DEBIT) or mapping.is_mapped(ImportField.CREDIT)
    ):
        return AmountMode.SPLIT_COLUMNS
    return mode


@dataclass(slots=True)
class ImportPlan:
    """Mapping and parse settings chosen for one loaded table."""

    signature: str
    mapping: FieldMapping
    options: ImportOptions
    template_name: str | None = None

    def is_ready(self) -> bool:
        return self.mapping.is_import_ready(self.options.amount_mode)

    def template_from(self, name: str) -> ImportTemplate:
        """Build a template that reproduces this plan for same-shaped files."""

        return ImportTemplate(
            name=name,
            header_signature=self.signature,
            mapping=self.mapping.copy(),
            date_format=self.options.date_format,
            delimiter=self.options.delimiter or ',',
            amount_mode=self.options.amount_mode,
            currency_fallback=self.options.currency_fallback,
        )


def plan_import(
    table: RawTable,
    options: ImportOptions,
    templates: TemplateStore | None = None,
    *,
    template_name: str | None = None,
    synonyms: Mapping[ImportField, Iterable[str]] | None = None,
) -> ImportPlan:
    """Choose the mapping for ``table``.

    An explicitly named template wins, then a stored template whose header signature
    matches the table, then auto-mapping. A template that maps a column the table
    lacks raises ``MappingError``.
    """

    signature = table.signature
    template: ImportTemplate | None = None
    if templates is not None:
        if template_name:
            template = templates.find_by_name(template_name)
            if template is None:
                raise MappingError(f'no import template named {template_name!r}')
        else:
            template = templates.get(signature)

    if template is not None:
        missing = [header for header in template.mapping.columns.values() if table.column_index(header) is None]
        if missing:
            raise MappingError(f'import template {template.name!r} maps columns not in the file: {missing}')
        LOGGER.info('Applying import template %r', template.name)
        return ImportPlan(
            signature=signature,
            mapping=template.mapping.copy(),
            options=template.options(),
            template_name=template.name,
        )

    mapping = auto_map(table.headers, synonyms)
    mode = resolve_amount_mode(mapping, options.amount_mode)
    return ImportPlan(
        signature=signature,
        mapping=mapping,
        options=replace(options, delimiter=table.delimiter, amount_mode=mode),
    )


def parse_override(text: str) -> tuple[ImportField, str]:
    """Parse a ``field=header`` override; an empty header unmaps the field."""

    key, sep, header = text.partition('=')
    if not sep:
        raise MappingError(f'mapping override must look like field=header: {text!r}')
    try:
        import_field = ImportField(key.strip().lower())
    except ValueError as exc:
        raise MappingError(f'unknown import field: {key.strip()!r}') from exc
    return import_field, header


def apply_overrides(plan: ImportPlan, headers: Iterable[str], overrides: Iterable[str]) -> ImportPlan:
    """Apply user ``field=header`` edits to ``plan`` and return it."""

    known = set(headers)
    for text in overrides:
        import_field, header = parse_override(text)
        if header and header not in known:
            raise MappingError(f'column {header!r} not found in file headers')
        plan.mapping.set(import_field, header or None)
    return plan
