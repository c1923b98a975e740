"""Helpers for engines, sessions and transactions."""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Generator, List, Mapping, Optional, \
    Set

from pytz import UTC
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.session import Session
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]

_process_locks: Dict[str, threading.Lock] = {}
_process_locks_guard = threading.Lock()


def now() -> datetime:
    """Get the current time, UTC-aware."""
    return datetime.now(tz=UTC)


def _process_lock(name: str) -> threading.Lock:
    with _process_locks_guard:
        if name not in _process_locks:
            _process_locks[name] = threading.Lock()
        return _process_locks[name]


class Transaction:
    """
    A unit of work against the account database.

    Wraps a single :class:`.Session`. Statements issued through the session
    are observed in issue order; nothing is durable until the enclosing
    :func:`transaction` block exits normally.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self._locked: Set[str] = set()
        self._process_locks: List[threading.Lock] = []
        self._commit_hooks: List[Callable[[], None]] = []
        self._rollback_hooks: List[Callable[[], None]] = []

    @property
    def dialect(self) -> str:
        """Name of the SQL dialect of the bound engine."""
        name: str = self.session.get_bind().dialect.name
        return name

    def execute(self, statement: Any,
                params: Optional[Mapping[str, Any]] = None) -> Any:
        """Execute a statement (or raw SQL string) with named parameters."""
        if isinstance(statement, str):
            statement = text(statement)
        return self.session.execute(statement, params or {})

    def ensure_exclusive_lock(self, table: str) -> None:
        """
        Hold an exclusive lock on ``table`` until this transaction ends.

        PostgreSQL takes an ``ACCESS EXCLUSIVE`` table lock. Dialects without
        table locks fall back to a process-wide lock per engine and table.
        Calling this again for the same table is a no-op.
        """
        if table in self._locked:
            return
        bind = self.session.get_bind()
        if self.dialect == 'postgresql':
            quoted = bind.dialect.identifier_preparer.quote(table)
            self.session.execute(
                text(f'LOCK TABLE {quoted} IN ACCESS EXCLUSIVE MODE')
            )
        else:
            lock = _process_lock(f'{id(bind)}:{table}')
            lock.acquire()
            self._process_locks.append(lock)
        logger.debug('Acquired exclusive lock on %s', table)
        self._locked.add(table)

    def has_exclusive_lock(self, table: str) -> bool:
        """Whether :meth:`ensure_exclusive_lock` was called for ``table``."""
        return table in self._locked

    def on_commit(self, hook: Callable[[], None]) -> None:
        """Run ``hook`` once this transaction has committed."""
        self._commit_hooks.append(hook)

    def on_rollback(self, hook: Callable[[], None]) -> None:
        """Run ``hook`` once this transaction has been rolled back."""
        self._rollback_hooks.append(hook)

    def _after_commit(self) -> None:
        for hook in self._commit_hooks:
            hook()

    def _after_rollback(self) -> None:
        for hook in self._rollback_hooks:
            hook()

    def close(self) -> None:
        """Release held locks and the session."""
        while self._process_locks:
            self._process_locks.pop().release()
        self._locked.clear()
        self._commit_hooks = []
        self._rollback_hooks = []
        self.session.close()


@contextmanager
def transaction(session_factory: SessionFactory) \
        -> Generator[Transaction, None, None]:
    """Context manager for database transaction."""
    tr = Transaction(session_factory())
    try:
        yield tr
        tr.session.commit()
    except Exception as e:
        if isinstance(e, SQLAlchemyError):
            logger.error('Commit failed, rolling back: %s', str(e))
        else:
            logger.debug('Rolling back: %r', e)
        tr.session.rollback()
        tr._after_rollback()
        raise
    else:
        tr._after_commit()
    finally:
        tr.close()


def _enable_sqlite_foreign_keys(dbapi_connection: Any,
                                connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute('PRAGMA foreign_keys=ON')
    cursor.close()


def init_engine(database_uri: str, echo: bool = False) -> Engine:
    """Create an engine for ``database_uri``."""
    kwargs: Dict[str, Any] = {}
    if database_uri.startswith('sqlite'):
        kwargs['connect_args'] = {'check_same_thread': False}
        if database_uri in ('sqlite://', 'sqlite:///:memory:'):
            kwargs['poolclass'] = StaticPool
    engine = create_engine(database_uri, echo=echo, **kwargs)
    if engine.dialect.name == 'sqlite':
        event.listen(engine, 'connect', _enable_sqlite_foreign_keys)
    return engine


def session_factory(engine: Engine) -> SessionFactory:
    """Get a session factory bound to ``engine``."""
    return sessionmaker(bind=engine)


def create_all(engine: Engine) -> None:
    """Create all tables in the database."""
    Base.metadata.create_all(bind=engine)


def drop_all(engine: Engine) -> None:
    """Drop all tables in the database."""
    Base.metadata.drop_all(bind=engine)
