"""Transaction and category stores consumed by the importer."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from budget_importer.db import CategoryRecord, TransactionRecord
from budget_importer.errors import StoreCommitError
from budget_importer.models import Category, Transaction, TxKind

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from collections.abc import Iterator

    from sqlalchemy.orm import Session

LOGGER = logging.getLogger(__name__)


class TransactionStore(Protocol):
    """Persistence operations the importer needs."""

    def find_by_fingerprint(self, fingerprint: str) -> Transaction | None: ...

    def create(self, transaction: Transaction) -> Transaction: ...

    def resolve_or_create_category(self, name: str) -> Category: ...

    def commit(self) -> None: ...

    def iter_transactions(self) -> Iterator[Transaction]: ...


class MemoryStore:
    """In-memory store; created records stay pending until ``commit``."""

    def __init__(self) -> None:
        self.transactions: list[Transaction] = []
        self.categories: list[Category] = []
        self.pending: list[Transaction] = []
        self.commits = 0

    def find_by_fingerprint(self, fingerprint: str) -> Transaction | None:
        for transaction in (*self.transactions, *self.pending):
            if transaction.import_hash == fingerprint:
                return transaction
        return None

    def create(self, transaction: Transaction) -> Transaction:
        self.pending.append(transaction)
        return transaction

    def resolve_or_create_category(self, name: str) -> Category:
        lowered = name.lower()
        for category in self.categories:
            if category.name.lower() == lowered:
                return category
        category = Category(id=len(self.categories) + 1, name=name)
        self.categories.append(category)
        return category

    def commit(self) -> None:
        self.transactions.extend(self.pending)
        self.pending.clear()
        self.commits += 1

    def iter_transactions(self) -> Iterator[Transaction]:
        yield from sorted(self.transactions, key=lambda transaction: transaction.date)


def _category(record: CategoryRecord | None) -> Category | None:
    if record is None:
        return None
    return Category(id=record.id, name=record.name)


def _transaction(record: TransactionRecord) -> Transaction:
    return Transaction(
        uuid=record.uuid,
        date=record.date,
        amount=record.amount,
        kind=TxKind(record.kind),
        currency_code=record.currency_code,
        import_hash=record.import_hash,
        note=record.note,
        category=_category(record.category),
    )


class SqlStore:
    """Store backed by a SQLAlchemy session.

    The session autoflushes, so rows created earlier in the same batch are visible to
    ``find_by_fingerprint`` before ``commit``.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_fingerprint(self, fingerprint: str) -> Transaction | None:
        stmt = select(TransactionRecord).where(TransactionRecord.import_hash == fingerprint).limit(1)
        record = self.session.scalars(stmt).first()
        return _transaction(record) if record is not None else None

    def create(self, transaction: Transaction) -> Transaction:
        category_id = transaction.category.id if transaction.category is not None else None
        record = TransactionRecord(
            uuid=transaction.uuid,
            date=transaction.date,
            amount=transaction.amount,
            kind=transaction.kind.value,
            currency_code=transaction.currency_code,
            note=transaction.note,
            category_id=int(category_id) if category_id is not None else None,
            import_hash=transaction.import_hash,
        )
        self.session.add(record)
        return transaction

    def resolve_or_create_category(self, name: str) -> Category:
        stmt = select(CategoryRecord).where(func.lower(CategoryRecord.name) == name.lower()).limit(1)
        record = self.session.scalars(stmt).first()
        if record is None:
            record = CategoryRecord(name=name)
            self.session.add(record)
            self.session.flush()
            LOGGER.debug('Created category %r', name)
        return Category(id=record.id, name=record.name)

    def commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreCommitError(f'failed to commit import batch: {exc}') from exc

    def iter_transactions(self) -> Iterator[Transaction]:
        stmt = select(TransactionRecord).order_by(TransactionRecord.date, TransactionRecord.id)
        for record in self.session.scalars(stmt).unique():
            yield _transaction(record)
