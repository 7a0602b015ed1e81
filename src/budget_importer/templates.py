"""Keyed storage for saved import templates."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from budget_importer.models import ImportTemplate

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from pathlib import Path

LOGGER = logging.getLogger(__name__)


class TemplateStore:
    """Import templates keyed by header signature, optionally backed by a JSON file.

    Saving a template for a signature that already has one replaces it. Nothing is
    written to disk until ``flush`` is called.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self._templates: dict[str, ImportTemplate] = {}

    @classmethod
    def open(cls, path: Path) -> TemplateStore:
        """Return a store loaded from ``path`` (empty when the file does not exist)."""

        store = cls(path.expanduser())
        store.load()
        return store

    def load(self) -> None:
        if self.path is None or not self.path.is_file():
            return
        with self.path.open('r', encoding='utf-8') as handle:
            payload = json.load(handle)
        records = payload.get('templates', []) if isinstance(payload, dict) else []
        self._templates = {}
        for record in records:
            template = ImportTemplate.from_dict(record)
            self._templates[template.header_signature] = template
        LOGGER.debug('Loaded %d import templates from %s', len(self._templates), self.path)

    def flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {'templates': [template.to_dict() for template in self.list_templates()]}
        with self.path.open('w', encoding='utf-8') as handle:
            json.dump(payload, handle, indent=2, sort_keys=True)
            handle.write('\n')

    def get(self, signature: str) -> ImportTemplate | None:
        return self._templates.get(signature)

    def find_by_name(self, name: str) -> ImportTemplate | None:
        for template in self._templates.values():
            if template.name == name:
                return template
        return None

    def save(self, template: ImportTemplate) -> None:
        self._templates[template.header_signature] = template

    def delete(self, signature: str) -> bool:
        return self._templates.pop(signature, None) is not None

    def list_templates(self) -> list[ImportTemplate]:
        return sorted(self._templates.values(), key=lambda template: template.name)

    def __len__(self) -> int:
        return len(self._templates)
