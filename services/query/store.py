"""
SQLite record store - the persistence side of the query engine.

Translates CompositeFilters into parameterised SQL and exposes the four
capabilities the core relies on:

- filter(kind, composite, sort, limit, offset) -> rows
- count(kind, composite) -> int
- group_count(kind, key, since, top_n) -> [(label, count)]
- delete_where(kind, predicate) -> affected row count

Rows are returned as plain dicts; mapping them to records is up to the caller.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, Optional, Sequence, Union

from services.query.fields import (
    EntityKind,
    EntitySpec,
    FieldKey,
    SortDirection,
    SortKey,
    entity_spec,
)
from services.query.predicates import Between, CompositeFilter, Contains, Equals, In, Predicate
from utils.dates import to_db_timestamp
from utils.db import get_conn

logger = logging.getLogger(__name__)

_LIKE_ESCAPE = "\\"


def to_param(value: Any) -> Any:
    """Convert a Python value to its stored SQLite representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return to_db_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def _escape_like(text: str) -> str:
    return (
        text.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )


def _check_field(spec: EntitySpec, key: Enum) -> None:
    if not spec.owns(key):
        raise ValueError(f"Field {key!r} does not belong to entity kind '{spec.kind.value}'")


def _predicate_sql(spec: EntitySpec, predicate: Predicate) -> tuple[str, list[Any]]:
    _check_field(spec, predicate.field)
    joined = spec.joined_field(predicate.field)

    if joined is not None:
        # Multi-valued field: match owners having at least one of the values
        if isinstance(predicate, Equals):
            values = [predicate.value]
        elif isinstance(predicate, In):
            values = list(predicate.values)
        else:
            raise ValueError(f"Only Equals/In are supported on multi-valued field {predicate.field!r}")
        placeholders = ", ".join("?" for _ in values)
        clause = (
            f"{spec.id_field.value} IN (SELECT {joined.owner_column} FROM {joined.table} "
            f"WHERE {joined.value_column} IN ({placeholders}))"
        )
        return clause, [to_param(v) for v in values]

    column = predicate.field.value

    if isinstance(predicate, Equals):
        return f"{column} = ?", [to_param(predicate.value)]

    if isinstance(predicate, Contains):
        pattern = f"%{_escape_like(predicate.text.lower())}%"
        return f"UNICODE_LOWER({column}) LIKE ? ESCAPE '{_LIKE_ESCAPE}'", [pattern]

    if isinstance(predicate, Between):
        parts: list[str] = []
        params: list[Any] = []
        if predicate.lower is not None:
            parts.append(f"{column} >= ?")
            params.append(to_param(predicate.lower))
        if predicate.upper is not None:
            parts.append(f"{column} <= ?")
            params.append(to_param(predicate.upper))
        if not parts:
            return "1 = 1", []
        return " AND ".join(parts), params

    if isinstance(predicate, In):
        placeholders = ", ".join("?" for _ in predicate.values)
        return f"{column} IN ({placeholders})", [to_param(v) for v in predicate.values]

    raise TypeError(f"Unsupported predicate type: {type(predicate).__name__}")


def compile_where(spec: EntitySpec, composite: CompositeFilter) -> tuple[str, list[Any]]:
    """
    Build the WHERE clause for a composite filter.

    Returns:
        Tuple of (clause, params); an empty filter yields "1 = 1"
    """
    if composite.matches_all:
        return "1 = 1", []

    clauses: list[str] = []
    params: list[Any] = []
    for predicate in composite:
        clause, predicate_params = _predicate_sql(spec, predicate)
        clauses.append(f"({clause})")
        params.extend(predicate_params)
    return " AND ".join(clauses), params


def compile_order_by(spec: EntitySpec, sort: Sequence[SortKey]) -> str:
    """ORDER BY for the declared keys plus the id tiebreaker for stable paging."""
    terms: list[str] = []
    seen: set = set()
    for key in sort:
        _check_field(spec, key.field)
        if spec.joined_field(key.field) is not None:
            raise ValueError(f"Cannot sort on multi-valued field {key.field!r}")
        if key.field in seen:
            continue
        seen.add(key.field)
        direction = "DESC" if key.direction == SortDirection.DESC else "ASC"
        terms.append(f"{key.field.value} {direction}")

    if spec.id_field not in seen:
        terms.append(f"{spec.id_field.value} ASC")
    return ", ".join(terms)


class SqliteRecordStore:
    """
    Record store backed by a SQLite database file.

    Every call opens its own connection, so instances can be shared between
    threads.

    Args:
        db_path: Database file path, defaults to settings.SQLITE_PATH
    """

    def __init__(self, db_path: Optional[str] = None) -> None:
        self.db_path = db_path

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = get_conn(self.db_path)
        try:
            yield conn
        finally:
            conn.close()

    def filter(
        self,
        kind: EntityKind,
        composite: CompositeFilter,
        sort: Sequence[SortKey] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        spec = entity_spec(kind)
        where, params = compile_where(spec, composite)
        sql = f"SELECT * FROM {spec.table} WHERE {where} ORDER BY {compile_order_by(spec, sort)}"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params = params + [limit, offset or 0]

        logger.debug("Executing filter query: kind=%s, sql=%s", kind.value, sql)

        with self.connection() as conn:
            rows = [dict(row) for row in conn.execute(sql, params)]
            if spec.joined:
                self._attach_joined(conn, spec, rows)
        return rows

    def count(self, kind: EntityKind, composite: CompositeFilter) -> int:
        spec = entity_spec(kind)
        where, params = compile_where(spec, composite)
        with self.connection() as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM {spec.table} WHERE {where}", params).fetchone()
        return int(row[0])

    def group_count(
        self,
        kind: EntityKind,
        key: FieldKey,
        since: Optional[datetime] = None,
        top_n: Optional[int] = None,
        by_day: bool = False,
    ) -> list[tuple[Any, int]]:
        """
        Count records per distinct value of `key`.

        Args:
            kind: Entity kind
            key: Field to group on
            since: Only count records whose timestamp is at or after this instant
            top_n: Keep only the first N groups
            by_day: Group on the UTC calendar day of a timestamp field

        Returns:
            (label, count) pairs; day groups ascending by label, other groups
            descending by count with ties ascending by label
        """
        spec = entity_spec(kind)
        _check_field(spec, key)

        expr = f"substr({key.value}, 1, 10)" if by_day else key.value
        order = "label ASC" if by_day else "value DESC, label ASC"

        sql = f"SELECT {expr} AS label, COUNT(*) AS value FROM {spec.table}"
        params: list[Any] = []
        if since is not None:
            sql += f" WHERE {spec.timestamp_field.value} >= ?"
            params.append(to_param(since))
        sql += f" GROUP BY label ORDER BY {order}"
        if top_n is not None:
            sql += " LIMIT ?"
            params.append(top_n)

        with self.connection() as conn:
            return [(row["label"], int(row["value"])) for row in conn.execute(sql, params)]

    def delete_where(self, kind: EntityKind, predicate: Union[Predicate, CompositeFilter]) -> int:
        """
        Delete matching records in a single transaction.

        Returns:
            The DELETE statement's own affected row count

        Raises:
            ValueError: If the filter is empty (would delete every record)
        """
        spec = entity_spec(kind)
        composite = predicate if isinstance(predicate, CompositeFilter) else CompositeFilter((predicate,))
        if composite.matches_all:
            raise ValueError("Refusing to delete with an empty filter")

        where, params = compile_where(spec, composite)
        with self.connection() as conn:
            with conn:
                cursor = conn.execute(f"DELETE FROM {spec.table} WHERE {where}", params)
                return cursor.rowcount

    def insert(self, kind: EntityKind, values: dict[str, Any]) -> int:
        """
        Insert one record and return its id.

        For users, a "permissions" entry is written to user_permissions.
        """
        spec = entity_spec(kind)
        row = dict(values)
        joined_values = {
            key: row.pop(key.value, None) or () for key in spec.joined
        }

        columns = list(row)
        for column in columns:
            _check_field(spec, spec.fields(column))

        sql = (
            f"INSERT INTO {spec.table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        with self.connection() as conn:
            with conn:
                record_id = conn.execute(sql, [to_param(row[c]) for c in columns]).lastrowid
                for key, items in joined_values.items():
                    joined = spec.joined[key]
                    conn.executemany(
                        f"INSERT INTO {joined.table} ({joined.owner_column}, {joined.value_column}) "
                        "VALUES (?, ?)",
                        [(record_id, to_param(item)) for item in items],
                    )
        return record_id

    def _attach_joined(
        self,
        conn: sqlite3.Connection,
        spec: EntitySpec,
        rows: list[dict[str, Any]],
    ) -> None:
        if not rows:
            return
        ids = [row[spec.id_field.value] for row in rows]
        placeholders = ", ".join("?" for _ in ids)
        for key, joined in spec.joined.items():
            grouped: dict[Any, list[Any]] = {record_id: [] for record_id in ids}
            cursor = conn.execute(
                f"SELECT {joined.owner_column} AS owner, {joined.value_column} AS value "
                f"FROM {joined.table} WHERE {joined.owner_column} IN ({placeholders}) "
                f"ORDER BY {joined.value_column}",
                ids,
            )
            for item in cursor:
                grouped[item["owner"]].append(item["value"])
            for row in rows:
                row[key.value] = grouped[row[spec.id_field.value]]
