"""
CRUD operations over a mapped table.

A ``RecordMapper`` pairs a ``Mapping`` descriptor with a SQL dialect and a
connection provider. Every operation takes an optional DB-API connection;
callers running a transaction pass theirs, otherwise the mapper borrows one
from the provider for the duration of the call.

Usage:
    users = RecordMapper(Mapping(table="users", columns={"name": "string", "age": "int"}))
    user = users.new({"name": "ada", "age": 36})
    users.create(user)
    users.find_all_by({"age": [20, 30]}, order={"name": "ASC"}, limit={"limit": 10})
"""

from __future__ import annotations

import threading
from contextlib import closing, contextmanager
from typing import Any, Callable, Dict, Generator, Iterable, List, Optional, Sequence, Tuple

from recordmap.cache import RecordCache
from recordmap.config import get_settings
from recordmap.domain.models import ID_COLUMN, Mapping, Record
from recordmap.errors import AlreadyPersistedError, UnsavedRecordError
from recordmap.infrastructure.db_factory import ConnectionProvider, default_connection
from recordmap.query import (
    Dialect,
    FilterMap,
    LimitSpec,
    OrderSpec,
    Query,
    build_conditions,
    count_sql,
    delete_sql,
    get_dialect,
    insert_sql,
    select_sql,
    update_sql,
)
from recordmap.utils.clock import Clock, now_string
from recordmap.utils.logging import get_logger

log = get_logger(__name__)

CREATED_AT = "created_at"
UPDATED_AT = "updated_at"


class ColumnCatalog:
    """
    Live column names per mapping, fetched at most once per key.

    Concurrent first access to a key runs its loader once. Each key loads
    under its own lock, so a slow table does not hold up lookups of others.
    """

    def __init__(self) -> None:
        self._columns: Dict[Tuple[str, str], Tuple[str, ...]] = {}
        self._key_locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._lock = threading.Lock()

    def get(self, key: Tuple[str, str], loader: Callable[[], Iterable[str]]) -> Tuple[str, ...]:
        with self._lock:
            cached = self._columns.get(key)
            if cached is not None:
                return cached
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            with self._lock:
                cached = self._columns.get(key)
            if cached is not None:
                return cached
            # Loader runs outside the shared lock; the key lock keeps it single.
            columns = tuple(loader())
            with self._lock:
                self._columns[key] = columns
            return columns

    def forget(self, key: Optional[Tuple[str, str]] = None) -> None:
        """Drop one cached entry, or all of them when no key is given."""
        with self._lock:
            if key is None:
                self._columns.clear()
                self._key_locks.clear()
            else:
                self._columns.pop(key, None)
                self._key_locks.pop(key, None)


column_catalog = ColumnCatalog()


def _rows(cursor: Any) -> List[Dict[str, Any]]:
    names = [column[0] for column in cursor.description]
    return [dict(zip(names, row)) for row in cursor.fetchall()]


class RecordMapper:
    """
    Read/write access to the table described by ``mapping``.

    Parameters
    ----------
    mapping : Mapping
        Table name, declared columns and timestamp flags.
    dialect : Dialect, optional
        SQL rendering rules; defaults to ``DB_DIALECT`` from settings.
    connection_provider : callable, optional
        Zero-argument callable returning a context manager that yields a
        connection. Defaults to the pooled provider.
    clock : callable, optional
        Returns the timestamp written to created_at / updated_at.
    cache : RecordCache, optional
        Cache façade; built lazily for the mapping when omitted.
    """

    def __init__(
        self,
        mapping: Mapping,
        dialect: Optional[Dialect] = None,
        connection_provider: Optional[ConnectionProvider] = None,
        clock: Optional[Clock] = None,
        cache: Optional[RecordCache] = None,
        catalog: Optional[ColumnCatalog] = None,
    ) -> None:
        self.mapping = mapping
        self.dialect = dialect or get_dialect(get_settings().db_dialect)
        self._connection_provider = connection_provider or default_connection
        self._clock = clock or now_string
        self._cache = cache
        self._catalog = catalog or column_catalog

    @property
    def table(self) -> str:
        return self.mapping.table

    @property
    def cache(self) -> RecordCache:
        if self._cache is None:
            self._cache = RecordCache(self.mapping)
        return self._cache

    def new(self, values: Optional[Dict[str, Any]] = None) -> Record:
        """An unsaved record of this mapping."""
        return Record(self.mapping, values)

    # -- connection and execution helpers ---------------------------------

    @contextmanager
    def _connection(self, conn: Any) -> Generator[Any, None, None]:
        if conn is not None:
            yield conn
            return
        with self._connection_provider() as borrowed:
            yield borrowed

    def _execute(self, cursor: Any, query: Query) -> None:
        sql = self.dialect.render(query.sql)
        log.debug(
            "Executing statement",
            extra={"table": self.table, "sql": sql, "params": query.params},
        )
        cursor.execute(sql, query.params)

    def _fetch_all(self, query: Query, conn: Any) -> List[Dict[str, Any]]:
        with self._connection(conn) as connection:
            with closing(connection.cursor()) as cursor:
                self._execute(cursor, query)
                return _rows(cursor)

    def _fetch_first(self, query: Query, conn: Any) -> Optional[Dict[str, Any]]:
        with self._connection(conn) as connection:
            with closing(connection.cursor()) as cursor:
                self._execute(cursor, query)
                row = cursor.fetchone()
                if row is None:
                    return None
                names = [column[0] for column in cursor.description]
                return dict(zip(names, row))

    def _execute_write(self, query: Query, conn: Any) -> int:
        with self._connection(conn) as connection:
            with closing(connection.cursor()) as cursor:
                self._execute(cursor, query)
                return cursor.rowcount

    def _to_record(self, row: Optional[Dict[str, Any]]) -> Optional[Record]:
        if row is None:
            return None
        return Record.from_row(self.mapping, row)

    def _conditions(
        self,
        filters: Optional[FilterMap],
        order: Optional[OrderSpec] = None,
        limit: Optional[LimitSpec] = None,
        for_update: bool = False,
    ) -> Query:
        return build_conditions(filters, order, limit, for_update, dialect=self.dialect)

    # -- reads -------------------------------------------------------------

    def find(self, record_id: Any, conn: Any = None, for_update: bool = False) -> Optional[Record]:
        """Fetch the row with the given id, or None."""
        query = self._conditions({ID_COLUMN: record_id}, for_update=for_update)
        return self._to_record(self._fetch_first(select_sql(self.table, None, query), conn))

    def find_by(
        self, filters: FilterMap, conn: Any = None, for_update: bool = False
    ) -> Optional[Record]:
        """Fetch the first row matching ``filters``, or None."""
        query = self._conditions(filters, for_update=for_update)
        return self._to_record(self._fetch_first(select_sql(self.table, None, query), conn))

    def find_all_by(
        self,
        filters: FilterMap,
        order: Optional[OrderSpec] = None,
        limit: Optional[LimitSpec] = None,
        conn: Any = None,
        for_update: bool = False,
    ) -> List[Record]:
        """Fetch every row matching ``filters``, ordered and windowed as requested."""
        query = self._conditions(filters, order, limit, for_update)
        rows = self._fetch_all(select_sql(self.table, None, query), conn)
        return [Record.from_row(self.mapping, row) for row in rows]

    def count_by(
        self,
        filters: Optional[FilterMap] = None,
        conn: Any = None,
        high_performance: bool = False,
    ) -> int:
        """
        Number of rows matching ``filters``.

        ``high_performance`` counts ``id`` instead of ``*``; both agree on
        tables whose id is never NULL.
        """
        query = count_sql(self.table, self._conditions(filters), high_performance)
        row = self._fetch_first(query, conn)
        if not row or not row.get("count"):
            return 0
        return int(row["count"])

    def get_column_specific_data(
        self,
        columns: Sequence[str],
        filters: FilterMap,
        order: Optional[OrderSpec] = None,
        limit: Optional[LimitSpec] = None,
        conn: Any = None,
    ) -> List[Record]:
        """
        Like ``find_all_by`` but selecting only ``columns``.

        The returned records carry only the projected fields; their id is set
        only when ``id`` is among the columns.
        """
        query = self._conditions(filters, order, limit)
        rows = self._fetch_all(select_sql(self.table, columns, query), conn)
        return [Record.from_row(self.mapping, row) for row in rows]

    # -- writes ------------------------------------------------------------

    def _write_items(self, record: Record) -> Tuple[List[str], List[Any]]:
        managed = set()
        if self.mapping.has_created_at:
            managed.add(CREATED_AT)
        if self.mapping.has_updated_at:
            managed.add(UPDATED_AT)
        columns: List[str] = []
        values: List[Any] = []
        for column, value in record.persistable_items():
            if column in managed:
                continue
            columns.append(column)
            values.append(value)
        return columns, values

    def create(self, record: Record, conn: Any = None) -> Any:
        """
        INSERT the record and assign the id the store generated.

        Only declared columns that were assigned on the record are written.
        Returns the new id.
        """
        if record.is_persisted:
            raise AlreadyPersistedError(self.mapping.name, record.id)
        columns, values = self._write_items(record)
        now = self._clock()
        if self.mapping.has_created_at:
            columns.append(CREATED_AT)
            values.append(now)
        if self.mapping.has_updated_at:
            columns.append(UPDATED_AT)
            values.append(now)

        query = insert_sql(self.table, columns, values, self.dialect)
        with self._connection(conn) as connection:
            with closing(connection.cursor()) as cursor:
                self._execute(cursor, query)
                if self.dialect.returning_id:
                    new_id = cursor.fetchone()[0]
                else:
                    new_id = cursor.lastrowid
        record.id = new_id
        log.debug("Created record", extra={"table": self.table, "id": new_id})
        return new_id

    def update(self, record: Record, conn: Any = None) -> int:
        """
        UPDATE every declared column assigned on the record, keyed by id.

        Returns the number of affected rows; 0 means no match or no change.
        """
        if not record.is_persisted:
            raise UnsavedRecordError(self.mapping.name, "update")
        columns, values = self._write_items(record)
        if self.mapping.has_updated_at:
            columns.append(UPDATED_AT)
            values.append(self._clock())
        if not columns:
            log.debug("Nothing to update", extra={"table": self.table, "id": record.id})
            return 0
        return self._execute_write(update_sql(self.table, columns, values, record.id), conn)

    def delete(self, record: Record, conn: Any = None) -> int:
        """DELETE the row keyed by the record's id; returns the affected row count."""
        if not record.is_persisted:
            raise UnsavedRecordError(self.mapping.name, "delete")
        return self._execute_write(delete_sql(self.table, record.id), conn)

    # -- column metadata ---------------------------------------------------

    def columns_on_db(self, conn: Any = None) -> Tuple[str, ...]:
        """Column names of the live table, fetched once per process."""

        def load() -> List[str]:
            query = Query(f"SELECT * FROM {self.table} WHERE 1 = 0", [])
            with self._connection(conn) as connection:
                with closing(connection.cursor()) as cursor:
                    self._execute(cursor, query)
                    return [column[0] for column in cursor.description]

        return self._catalog.get((self.mapping.name, self.table), load)

    def has_column(self, name: str, conn: Any = None) -> bool:
        """True when ``name`` is both a live column and a declared one."""
        return name in self.columns_on_db(conn) and self.mapping.is_declared(name)

    def has_column_defined(self, name: str) -> bool:
        return self.mapping.is_declared(name)

    def assign(self, record: Record, values: Dict[str, Any]) -> List[str]:
        """
        Copy declared fields from ``values`` onto the record.

        Returns the names that were skipped because the mapping does not
        declare them.
        """
        rejected = []
        for name, value in values.items():
            if self.has_column_defined(name):
                record[name] = value
            else:
                rejected.append(name)
        return rejected

    def to_json_hash(self, record: Record) -> Dict[str, Any]:
        return record.to_json_hash()


__all__ = ["CREATED_AT", "UPDATED_AT", "ColumnCatalog", "RecordMapper", "column_catalog"]
