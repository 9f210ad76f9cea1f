# Overview: Service-layer operations for concurrency; row locks and per-product write guards.

from __future__ import annotations

import threading
from contextlib import contextmanager

from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from ..extensions import db


class TransientStoreError(RuntimeError):
    """Connectivity or lock-wait failure from the store. Not retried here; callers retry the request."""


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


class KeyedGuards:
    """
    One re-entrant lock per key, alive only while someone holds or waits on it.

    Used alongside FOR UPDATE so that same-product writers also serialize
    inside a single process on engines without row locks (SQLite).
    Different keys never contend.

    Entries are reference counted under the registry lock: a caller
    registers before it blocks on the key's lock, and the last one out
    removes the entry, so the registry never outgrows the keys in use.
    """

    def __init__(self):
        self._registry_lock = threading.Lock()
        self._locks: dict = {}  # key -> [RLock, holders]

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)

    def _acquire_entry(self, key) -> list:
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.RLock(), 0]
            entry[1] += 1
            return entry

    def _release_entry(self, key, entry: list) -> None:
        with self._registry_lock:
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key):
        entry = self._acquire_entry(key)
        try:
            with entry[0]:
                yield
        finally:
            self._release_entry(key, entry)


product_guards = KeyedGuards()


def serialize_sqlite_writers(engine) -> None:
    """
    File-backed SQLite only: every transaction starts with BEGIN IMMEDIATE.

    The write lock is taken up front and waits on the busy timeout. With
    pysqlite's deferred BEGIN, a reader upgrading to a writer while another
    connection commits fails at once with "database is locked".
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def enable_sqlite_foreign_keys(engine) -> None:
    """Every SQLite connection enforces FOREIGN KEY clauses (off by default)."""

    @event.listens_for(engine, "connect")
    def _foreign_keys_on(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@contextmanager
def unit_of_work(*, commit: bool = True):
    """
    Transactional scope for one mutation.

    commit=True: commit on success. commit=False: flush only, the enclosing
    unit of work commits. Any exception rolls back the whole session.
    """
    try:
        yield db.session
        if commit:
            db.session.commit()
        else:
            db.session.flush()
    except OperationalError as exc:
        db.session.rollback()
        raise TransientStoreError("store unavailable or lock wait timed out") from exc
    except Exception:
        db.session.rollback()
        raise
