"""SQLAlchemy schema and engine/session helpers for the transaction database.

Usage
-----
engine = make_engine('sqlite:///budget.db')
create_schema(engine)
with session_scope(engine) as session:
    ...
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

from sqlalchemy import CHAR, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, create_engine, func
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship, sessionmaker


class Base(DeclarativeBase):
    pass


class CategoryRecord(Base):
    __tablename__ = 'categories'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Case-insensitive uniqueness is enforced by the store's lookup on lower(name).
    name: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.current_timestamp())


class TransactionRecord(Base):
    __tablename__ = 'transactions'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(CHAR(36), nullable=False, unique=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    # Magnitude only, below 1e11 and rounded to four places; the direction lives in ``kind``.
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 4, asdecimal=True), nullable=False)
    kind: Mapped[str] = mapped_column(String(7), nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default='USD')
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    category_id: Mapped[int | None] = mapped_column(ForeignKey('categories.id'), nullable=True)
    import_hash: Mapped[str | None] = mapped_column(CHAR(64), nullable=True, unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.current_timestamp())

    category: Mapped[CategoryRecord | None] = relationship(lazy='joined')


def _ensure_sqlite_parent(url: str) -> None:
    parsed = make_url(url)
    if parsed.get_backend_name() == 'sqlite' and parsed.database and parsed.database != ':memory:':
        Path(parsed.database).expanduser().parent.mkdir(parents=True, exist_ok=True)


def expand_database_url(url: str) -> str:
    """Expand ``~`` in the path of SQLite URLs."""

    parsed = make_url(url)
    if parsed.get_backend_name() == 'sqlite' and parsed.database and parsed.database.startswith('~'):
        return parsed.set(database=str(Path(parsed.database).expanduser())).render_as_string(hide_password=False)
    return url


def make_engine(url: str) -> Engine:
    """Create an engine for ``url``, creating the SQLite file's directory if needed."""

    expanded = expand_database_url(url)
    _ensure_sqlite_parent(expanded)
    return create_engine(expanded)


def create_schema(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    """Provide a session that is closed on exit; committing is left to the caller."""

    factory = sessionmaker(bind=engine, expire_on_commit=False, class_=Session)
    session = factory()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    'Base',
    'CategoryRecord',
    'TransactionRecord',
    'create_schema',
    'expand_database_url',
    'make_engine',
    'session_scope',
]
