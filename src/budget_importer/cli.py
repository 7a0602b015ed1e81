"""Command-line interface for the budget importer."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING

from budget_importer import __version__ as pkg_version
from budget_importer.config import ImporterSettings, load_settings, parse_delimiter
from budget_importer.db import create_schema, make_engine, session_scope
from budget_importer.detect import iter_jobs
from budget_importer.errors import (
    DecodeFailureError,
    FileLoadError,
    MappingError,
    ParseEmptyError,
    StoreCommitError,
)
from budget_importer.importer import import_table
from budget_importer.mapping import ImportPlan, apply_overrides, merge_synonyms, plan_import, resolve_amount_mode
from budget_importer.models import AmountMode, ImportOptions, ProcessingJob
from budget_importer.output import build_report, format_preview, write_export
from budget_importer.processors.csv_processor import process_csv
from budget_importer.store import SqlStore
from budget_importer.templates import TemplateStore

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from budget_importer.models import FieldMapping, ImportField, RawTable
    from budget_importer.store import TransactionStore

EXIT_OK = 0
EXIT_UNREADABLE = 2
EXIT_MAPPING = 3
EXIT_COMMIT = 4

LOGGER = logging.getLogger('budget_importer.cli')
_HANDLER = logging.StreamHandler(sys.stderr)
_HANDLER.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
if not LOGGER.handlers:
    LOGGER.addHandler(_HANDLER)
LOGGER.setLevel(logging.INFO)
LOGGER.propagate = False


def _emit(message: str, args: argparse.Namespace, *, verbose_only: bool = False, error: bool = False) -> None:
    """Log ``message`` honoring ``--quiet``/``--verbose`` flags."""

    if verbose_only and not args.verbose:
        return
    if args.quiet and not error:
        return
    level = logging.ERROR if error else logging.INFO
    LOGGER.log(level, message)


def _configure_library_logging(args: argparse.Namespace) -> None:
    """Route package diagnostics (row skips, reader fallback) to stderr when verbose."""

    package_logger = logging.getLogger('budget_importer')
    if args.verbose:
        package_logger.setLevel(logging.DEBUG)
        if _HANDLER not in package_logger.handlers:
            package_logger.addHandler(_HANDLER)


def _cli_options(args: argparse.Namespace, settings: ImporterSettings) -> ImportOptions:
    return _override_options(settings.import_options(), args)


def _override_options(options: ImportOptions, args: argparse.Namespace) -> ImportOptions:
    """Apply only the parse settings given explicitly on the command line."""

    changes: dict[str, object] = {}
    if args.date_format:
        changes['date_format'] = args.date_format
    if args.delimiter:
        changes['delimiter'] = parse_delimiter(args.delimiter)
    if args.amount_mode:
        changes['amount_mode'] = AmountMode.parse(args.amount_mode)
    if args.currency:
        changes['currency_fallback'] = args.currency
    return replace(options, **changes) if changes else options


def _describe_mapping(mapping: FieldMapping) -> str:
    pairs = [f'{field.value}={header!r}' for field, header in _sorted_columns(mapping)]
    return ', '.join(pairs) or 'nothing mapped'


def _sorted_columns(mapping: FieldMapping) -> list[tuple[ImportField, str]]:
    return sorted(mapping.columns.items(), key=lambda item: item[0].value)


def _build_plan(
    table: RawTable,
    args: argparse.Namespace,
    options: ImportOptions,
    templates: TemplateStore,
    settings: ImporterSettings,
) -> ImportPlan:
    plan = plan_import(
        table,
        options,
        templates,
        template_name=args.template,
        synonyms=merge_synonyms(settings.synonyms),
    )
    apply_overrides(plan, table.headers, args.map)
    plan.options = _override_options(plan.options, args)
    if not args.amount_mode:
        plan.options.amount_mode = resolve_amount_mode(plan.mapping, plan.options.amount_mode)
    return plan


def _run_job(
    job: ProcessingJob,
    args: argparse.Namespace,
    options: ImportOptions,
    templates: TemplateStore,
    store: TransactionStore,
    settings: ImporterSettings,
) -> tuple[dict[str, object], int]:
    """Load, map and import one file; return its report entry and exit code."""

    entry: dict[str, object] = {'path': str(job.source_path), 'status': 'ok'}
    try:
        result = process_csv(job, options)
    except (FileLoadError, DecodeFailureError, ParseEmptyError) as exc:
        _emit(f'Error loading {job.source_path}: {exc}', args, error=True)
        entry.update(status='unreadable', error=str(exc))
        return entry, EXIT_UNREADABLE

    _emit(result.summary(), args)
    if not result.has_rows():
        result.warnings.append('File has a header row but no data rows.')
    for warning in result.warnings:
        _emit(f'Warning: {warning}', args, verbose_only=True)

    try:
        plan = _build_plan(result.table, args, options, templates, settings)
    except MappingError as exc:
        _emit(f'Error mapping {job.source_path.name}: {exc}', args, error=True)
        entry.update(status='mapping_error', error=str(exc))
        return entry, EXIT_MAPPING

    entry.update(
        template=plan.template_name,
        delimiter=result.table.delimiter,
        amount_mode=plan.options.amount_mode.value,
        mapping=plan.mapping.to_dict(),
    )
    _emit(f'Column mapping: {_describe_mapping(plan.mapping)}', args, verbose_only=True)

    if args.save_template:
        templates.save(plan.template_from(args.save_template))
        templates.flush()
        _emit(f'Saved import template {args.save_template!r}.', args)

    if args.preview:
        print(format_preview(result.table, limit=settings.preview_rows), file=sys.stderr)
        entry['status'] = 'previewed'
        return entry, EXIT_OK

    if not plan.is_ready():
        message = 'map a date column and an amount (or debit/credit) column matching the amount mode'
        _emit(f'{job.source_path.name}: {message}', args, error=True)
        entry.update(status='mapping_incomplete', error=message)
        return entry, EXIT_MAPPING

    try:
        summary = import_table(result.table, plan.mapping, plan.options, store, commit=not args.dry_run)
    except MappingError as exc:
        _emit(f'Error importing {job.source_path.name}: {exc}', args, error=True)
        entry.update(status='mapping_error', error=str(exc))
        return entry, EXIT_MAPPING
    except StoreCommitError as exc:
        _emit(f'Error importing {job.source_path.name}: {exc}', args, error=True)
        entry.update(status='commit_failed', error=str(exc))
        return entry, EXIT_COMMIT

    entry.update(summary.to_dict())
    if args.dry_run:
        entry['status'] = 'dry_run'
    _emit(f'{job.source_path.name}: {summary.summary()}', args)
    return entry, EXIT_OK


def _delete_template(templates: TemplateStore, name: str, args: argparse.Namespace) -> None:
    template = templates.find_by_name(name)
    if template is None:
        raise ValueError(f'No import template named {name!r}')
    templates.delete(template.header_signature)
    templates.flush()
    _emit(f'Deleted import template {name!r}.', args)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Import bank and card CSV exports into a budget database')
    parser.add_argument('targets', nargs='*', type=Path, help='Input CSV files or directories')
    parser.add_argument('-c', '--config', type=Path, help='Path to configuration TOML')
    parser.add_argument('--date-format', help='Date pattern such as MM/dd/yyyy or dd.MM.yy')
    parser.add_argument('--delimiter', help='Field delimiter: comma, semicolon, tab or auto')
    parser.add_argument(
        '--amount-mode',
        choices=['single', 'split_columns', 'splitColumns'],
        help='Read a signed amount column or separate debit/credit columns',
    )
    parser.add_argument('--currency', help='Currency code used when no currency column is mapped')
    parser.add_argument(
        '-m',
        '--map',
        action='append',
        default=[],
        metavar='FIELD=HEADER',
        help='Map an import field to a column (empty HEADER unmaps); repeatable',
    )
    parser.add_argument('-t', '--template', help='Apply the saved import template with this name')
    parser.add_argument('--save-template', metavar='NAME', help='Save the resulting mapping as a template')
    parser.add_argument('--delete-template', metavar='NAME', help='Delete the saved import template with this name')
    parser.add_argument('--database', help='SQLAlchemy database URL for stored transactions')
    parser.add_argument('--templates', type=Path, help='Path to the import templates JSON file')
    parser.add_argument('-p', '--preview', action='store_true', help='Show the parsed rows and mapping without importing')
    parser.add_argument('-n', '--dry-run', action='store_true', help='Run the import without committing')
    parser.add_argument('-e', '--export', type=Path, help='Write all stored transactions to this CSV file')
    parser.add_argument('-V', '--version', action='version', version=f'%(prog)s {pkg_version}')
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument('-q', '--quiet', action='store_true', help='Suppress informational output')
    verbosity.add_argument('-v', '--verbose', action='store_true', help='Print verbose progress details')
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if not args.targets and not args.export and not args.delete_template:
        raise ValueError('Provide at least one input file, --export or --delete-template')
    _configure_library_logging(args)
    settings = load_settings(args.config)
    options = _cli_options(args, settings)
    templates = TemplateStore.open(args.templates or settings.templates_path)
    _emit(f'Loaded {len(templates)} import templates.', args, verbose_only=True)
    if args.delete_template:
        _delete_template(templates, args.delete_template, args)
    engine = make_engine(args.database or settings.database_url)
    create_schema(engine)

    exit_code = EXIT_OK
    entries: list[dict[str, object]] = []
    with session_scope(engine) as session:
        store = SqlStore(session)
        for target in args.targets:
            try:
                jobs = list(iter_jobs(target))
            except FileNotFoundError as exc:
                _emit(str(exc), args, error=True)
                entries.append({'path': str(target), 'status': 'unreadable', 'error': str(exc)})
                exit_code = max(exit_code, EXIT_UNREADABLE)
                continue
            for job in jobs:
                entry, code = _run_job(job, args, options, templates, store, settings)
                entries.append(entry)
                exit_code = max(exit_code, code)
        if args.dry_run:
            session.rollback()
        if args.export:
            count = write_export(store, args.export)
            _emit(f'Exported {count} transactions to {args.export}.', args)

    print(build_report(entries))
    return exit_code


if __name__ == '__main__':  # pragma: no cover
    raise SystemExit(main())
