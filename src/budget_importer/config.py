"""Configuration utilities and dataclasses for the budget importer."""

from __future__ import annotations

import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from budget_importer.models import DEFAULT_CURRENCY, DEFAULT_DATE_FORMAT, AmountMode, ImportOptions

DEFAULT_CONFIG_PATH: Path = Path.home() / '.local/etc/budget_importer.toml'
"""Default location for the user provided TOML configuration file."""

DELIMITER_NAMES: dict[str, str | None] = {
    'comma': ',',
    'semicolon': ';',
    'tab': '\t',
    'auto': None,
}
"""Names accepted for ``delimiter`` in the TOML file and on the command line."""

BASE_SETTINGS: dict[str, Any] = {
    'date_format': DEFAULT_DATE_FORMAT,
    'delimiter': 'auto',
    'amount_mode': AmountMode.SINGLE.value,
    'currency_fallback': DEFAULT_CURRENCY,
    'database_url': 'sqlite:///~/.local/share/budget_importer/budget.db',
    'templates_path': '~/.local/share/budget_importer/templates.json',
    'preview_rows': 20,
    'synonyms': {},
}
"""Default settings merged with any local overrides."""


@dataclass(frozen=True, slots=True)
class ImporterSettings:
    """Structured settings for loading, mapping and storing imports."""

    date_format: str
    delimiter: str | None
    amount_mode: AmountMode
    currency_fallback: str
    database_url: str
    templates_path: Path
    preview_rows: int
    synonyms: Mapping[str, tuple[str, ...]]

    def import_options(self) -> ImportOptions:
        return ImportOptions(
            date_format=self.date_format,
            delimiter=self.delimiter,
            amount_mode=self.amount_mode,
            currency_fallback=self.currency_fallback,
        )


def parse_delimiter(value: str | None) -> str | None:
    """Return the delimiter character for a name such as ``semicolon`` or ``\\t``."""

    if value is None:
        return None
    if value in DELIMITER_NAMES:
        return DELIMITER_NAMES[value]
    if value == '\\t':
        return '\t'
    if value in {',', ';', '\t'}:
        return value
    raise ValueError(f'unsupported delimiter: {value!r}')


def _merge_dict(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, returning a new dictionary."""

    merged: dict[str, Any] = dict(base)
    for key, value in overrides.items():
        if key in merged and isinstance(merged[key], Mapping) and isinstance(value, Mapping):
            merged[key] = _merge_dict(merged[key], value)
        else:
            merged[key] = value
    return merged


def _prepare_settings(raw: Mapping[str, Any]) -> ImporterSettings:
    """Convert a raw dictionary into ``ImporterSettings`` with proper types."""

    synonyms: dict[str, tuple[str, ...]] = {}
    for key, names in dict(raw.get('synonyms', {})).items():
        values = [names] if isinstance(names, str) else list(names)
        synonyms[str(key)] = tuple(str(name) for name in values)
    return ImporterSettings(
        date_format=str(raw.get('date_format', DEFAULT_DATE_FORMAT)),
        delimiter=parse_delimiter(str(raw.get('delimiter', 'auto'))),
        amount_mode=AmountMode.parse(str(raw.get('amount_mode', AmountMode.SINGLE.value))),
        currency_fallback=str(raw.get('currency_fallback', DEFAULT_CURRENCY)).strip().upper(),
        database_url=str(raw.get('database_url', BASE_SETTINGS['database_url'])),
        templates_path=Path(str(raw.get('templates_path', BASE_SETTINGS['templates_path']))).expanduser(),
        preview_rows=int(raw.get('preview_rows', 20)),
        synonyms=synonyms,
    )


def default_settings() -> ImporterSettings:
    return _prepare_settings(BASE_SETTINGS)


def load_settings(path: Path | None = None) -> ImporterSettings:
    """Load ``ImporterSettings`` from the provided TOML file path.

    Without ``path`` the default location is used when it exists, otherwise the
    built-in defaults apply. An explicit ``path`` that does not exist is an error.
    """

    config_path = (path or DEFAULT_CONFIG_PATH).expanduser()
    if not config_path.is_file():
        if path is None:
            return default_settings()
        raise FileNotFoundError(f'Configuration file not found: {config_path}')

    with config_path.open('rb') as handle:
        overrides = tomllib.load(handle)

    return _prepare_settings(_merge_dict(BASE_SETTINGS, overrides))
