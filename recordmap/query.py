"""
SQL construction for recordmap.

``build_conditions`` turns a filter map plus optional order and limit specs
into a ``Query``: a SQL fragment made of ``WHERE`` / ``ORDER BY`` / ``LIMIT`` /
``FOR UPDATE`` clauses and the positional values for its ``?`` placeholders.
Statements are always built with ``?`` placeholders; ``Dialect.render``
rewrites them into the paramstyle of the driver that executes them.

Usage:
    from recordmap.query import build_conditions, select_sql

    query = build_conditions({"age": [20, 30]}, order={"name": "ASC"}, limit={"limit": 10})
    sql, params = select_sql("users", None, query)
    # SELECT * FROM users WHERE age IN (?,?) ORDER BY name ASC LIMIT 10 / [20, 30]

Table and column names are taken from mapping metadata and are never quoted
or escaped; only values travel as bound parameters.
"""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from dataclasses import dataclass
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    NamedTuple,
    Optional,
    Sequence,
    Tuple,
    TypedDict,
    Union,
)

from recordmap.errors import InvalidQueryError

PLACEHOLDER = "?"

_DIRECTIONS = ("ASC", "DESC")
_COLLECTION_TYPES = (list, tuple, set, frozenset)

FilterMap = MappingABC[str, Any]
OrderSpec = Union[MappingABC[str, str], Sequence[Tuple[str, str]]]


class LimitSpec(TypedDict, total=False):
    """
    Row window. ``offset`` is ignored unless ``limit`` is present.
    """

    limit: int
    offset: int


class Query(NamedTuple):
    sql: str
    params: List[Any]


@dataclass(frozen=True)
class Dialect:
    """
    Rendering rules for one driver family.

    Attributes
    ----------
    name : str
        Registry key (``mysql``, ``postgresql``, ``sqlite``).
    paramstyle : str
        DB-API paramstyle of the driver: ``qmark`` or ``format``.
    limit_style : str
        ``comma`` renders ``LIMIT offset, limit``; ``offset`` renders
        ``LIMIT limit OFFSET offset``.
    returning_id : bool
        Whether INSERT reads the new id through ``RETURNING id`` instead of
        the cursor's ``lastrowid``.
    empty_insert : str
        Column/value clause used when an INSERT has no columns at all.
    """

    name: str
    paramstyle: str = "qmark"
    limit_style: str = "comma"
    returning_id: bool = False
    empty_insert: str = "DEFAULT VALUES"

    def render(self, sql: str) -> str:
        """Translate ``?`` placeholders to the driver's paramstyle."""
        if self.paramstyle == "qmark":
            return sql
        return sql.replace(PLACEHOLDER, "%s")

    def limit_clause(self, limit: int, offset: Optional[int]) -> str:
        if offset is None:
            return f"LIMIT {limit}"
        if self.limit_style == "comma":
            return f"LIMIT {offset}, {limit}"
        return f"LIMIT {limit} OFFSET {offset}"


MYSQL = Dialect("mysql", paramstyle="format", limit_style="comma", empty_insert="() VALUES ()")
POSTGRESQL = Dialect("postgresql", paramstyle="format", limit_style="offset", returning_id=True)
SQLITE = Dialect("sqlite", paramstyle="qmark", limit_style="comma")

DIALECTS: Dict[str, Dialect] = {d.name: d for d in (MYSQL, POSTGRESQL, SQLITE)}


def get_dialect(name: str) -> Dialect:
    """Look up a registered dialect by name (case-insensitive)."""
    try:
        return DIALECTS[name.lower()]
    except KeyError:
        raise InvalidQueryError(
            f"Unknown SQL dialect {name!r}; expected one of {sorted(DIALECTS)}"
        ) from None


def _placeholders(count: int) -> str:
    return ",".join(PLACEHOLDER for _ in range(count))


def _predicates(filters: FilterMap) -> Tuple[List[str], List[Any]]:
    conditions: List[str] = []
    values: List[Any] = []
    for column, value in filters.items():
        if isinstance(value, _COLLECTION_TYPES):
            members = list(value)
            if not members:
                # IN () is not valid SQL; an empty membership matches nothing.
                conditions.append("1 = 0")
                continue
            conditions.append(f"{column} IN ({_placeholders(len(members))})")
            values.extend(members)
        else:
            conditions.append(f"{column} = {PLACEHOLDER}")
            values.append(value)
    return conditions, values


def _order_clause(order: OrderSpec) -> str:
    pairs: Iterable[Tuple[str, str]] = order.items() if isinstance(order, MappingABC) else order
    terms = []
    for column, direction in pairs:
        normalized = str(direction).strip().upper()
        if normalized not in _DIRECTIONS:
            raise InvalidQueryError(f"Invalid sort direction {direction!r} for column {column!r}")
        terms.append(f"{column} {normalized}")
    if not terms:
        return ""
    return "ORDER BY " + ", ".join(terms)


def _non_negative_int(name: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidQueryError(f"{name} must be an integer, got {value!r}") from None
    if number < 0:
        raise InvalidQueryError(f"{name} must not be negative, got {number}")
    return number


def build_conditions(
    filters: Optional[FilterMap] = None,
    order: Optional[OrderSpec] = None,
    limit: Optional[LimitSpec] = None,
    for_update: bool = False,
    dialect: Dialect = MYSQL,
) -> Query:
    """
    Build the condition fragment and bound values for a SELECT.

    Parameters
    ----------
    filters : Mapping[str, Any], optional
        Column name to scalar (``col = ?``) or collection (``col IN (?,...)``).
        Predicates follow the mapping's key order and are joined with AND.
    order : Mapping[str, str] or sequence of pairs, optional
        Column to ``ASC``/``DESC``; every entry is rendered, in order.
    limit : LimitSpec, optional
        ``{"limit": n}`` or ``{"limit": n, "offset": m}``. Without a ``limit``
        key no LIMIT clause is emitted, even if ``offset`` is present.
    for_update : bool
        Append ``FOR UPDATE`` after the limit clause.
    dialect : Dialect
        Controls the LIMIT/OFFSET form.

    Returns
    -------
    Query
        ``sql`` is the fragment without a leading space ("" when no clause
        applies); ``params`` align with the ``?`` placeholders.
    """
    clauses: List[str] = []
    conditions, values = _predicates(filters or {})
    if conditions:
        clauses.append("WHERE " + " AND ".join(conditions))
    if order:
        order_clause = _order_clause(order)
        if order_clause:
            clauses.append(order_clause)
    if limit and "limit" in limit:
        row_count = _non_negative_int("limit", limit["limit"])
        offset = limit.get("offset")
        if offset is not None:
            offset = _non_negative_int("offset", offset)
        clauses.append(dialect.limit_clause(row_count, offset))
    if for_update:
        clauses.append("FOR UPDATE")
    return Query(" ".join(clauses), values)


def _join(statement: str, fragment: str) -> str:
    return f"{statement} {fragment}" if fragment else statement


def select_sql(table: str, columns: Optional[Sequence[str]], query: Query) -> Query:
    """``SELECT <columns or *> FROM table <fragment>``."""
    projection = ",".join(columns) if columns else "*"
    return Query(_join(f"SELECT {projection} FROM {table}", query.sql), list(query.params))


def count_sql(table: str, query: Query, high_performance: bool = False) -> Query:
    """``SELECT COUNT(*)``, or ``COUNT(id)`` when ``high_performance`` is set."""
    target = "id" if high_performance else "*"
    return Query(
        _join(f"SELECT COUNT({target}) AS count FROM {table}", query.sql), list(query.params)
    )


def insert_sql(
    table: str,
    columns: Sequence[str],
    values: Sequence[Any],
    dialect: Dialect = MYSQL,
) -> Query:
    """``INSERT INTO table (cols) VALUES (?,...)``, with ``RETURNING id`` where the dialect needs it."""
    if columns:
        sql = f"INSERT INTO {table} ({','.join(columns)}) VALUES ({_placeholders(len(columns))})"
    else:
        sql = f"INSERT INTO {table} {dialect.empty_insert}"
    if dialect.returning_id:
        sql += " RETURNING id"
    return Query(sql, list(values))


def update_sql(table: str, columns: Sequence[str], values: Sequence[Any], record_id: Any) -> Query:
    """``UPDATE table SET col=?,... WHERE id = ?``."""
    assignments = ",".join(f"{column}={PLACEHOLDER}" for column in columns)
    return Query(
        f"UPDATE {table} SET {assignments} WHERE id = {PLACEHOLDER}",
        [*values, record_id],
    )


def delete_sql(table: str, record_id: Any) -> Query:
    return Query(f"DELETE FROM {table} WHERE id = {PLACEHOLDER}", [record_id])


__all__ = [
    "PLACEHOLDER",
    "FilterMap",
    "OrderSpec",
    "LimitSpec",
    "Query",
    "Dialect",
    "MYSQL",
    "POSTGRESQL",
    "SQLITE",
    "DIALECTS",
    "get_dialect",
    "build_conditions",
    "select_sql",
    "count_sql",
    "insert_sql",
    "update_sql",
    "delete_sql",
]
