"""Table listing and newest-first row snapshots for the active database."""

from __future__ import annotations

import logging
import re
import sqlite3
from typing import Sequence

from sqlglot import exp

from .errors import InvalidIdentifierError, QueryFailedError, TableNotFoundError
from .models import DataSource, RowSnapshot, TableDescriptor

LOG = logging.getLogger(__name__)

DEFAULT_LIMIT = 100

# Scanned in priority order; the first candidate present in the table wins.
ORDERING_CANDIDATES = ("created_at", "timestamp", "date", "datetime")

_IDENTIFIER = re.compile(r"[A-Za-z0-9_]+")

_TABLES_QUERY = """
    SELECT name FROM sqlite_master
    WHERE type = 'table' AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\'
"""

_COLUMNS_QUERY = "SELECT name FROM pragma_table_info(?) ORDER BY cid"


def validate_identifier(name: object) -> str:
    """Return ``name`` if it is a safe table identifier, else raise."""

    if not isinstance(name, str) or _IDENTIFIER.fullmatch(name) is None:
        raise InvalidIdentifierError(f"Invalid table name: {name!r}")
    return name


def ordering_column(columns: Sequence[str]) -> str | None:
    """Pick the date-like column used for newest-first ordering, if any."""

    for candidate in ORDERING_CANDIDATES:
        for column in columns:
            if column.lower() == candidate:
                return column
    return None


def build_snapshot_query(table: str, columns: Sequence[str], limit: int) -> str:
    """Render the windowed SELECT for ``table`` in the SQLite dialect."""

    order_by = ordering_column(columns)
    key = exp.column(order_by, quoted=True) if order_by else exp.column("rowid")
    query = (
        exp.select("*")
        .from_(exp.table_(table, quoted=True))
        .order_by(exp.Ordered(this=key, desc=True))
        .limit(limit)
    )
    return query.sql(dialect="sqlite")


class SnapshotEngine:
    """Reads table metadata and row windows from a data source handle."""

    def __init__(self, *, default_limit: int = DEFAULT_LIMIT) -> None:
        self._default_limit = default_limit

    @property
    def default_limit(self) -> int:
        return self._default_limit

    def list_tables(self, source: DataSource) -> tuple[str, ...]:
        """Every user table, in catalog order."""

        try:
            rows = source.handle.execute(_TABLES_QUERY).fetchall()
        except sqlite3.Error as exc:
            raise QueryFailedError(f"Failed to list tables in {source.path}: {exc}") from exc
        return tuple(str(row[0]) for row in rows)

    def describe(self, source: DataSource, table: str) -> TableDescriptor:
        """Fetch column names fresh from the schema."""

        name = validate_identifier(table)
        try:
            rows = source.handle.execute(_COLUMNS_QUERY, (name,)).fetchall()
        except sqlite3.Error as exc:
            raise QueryFailedError(f"Failed to read schema of {name}: {exc}") from exc
        columns = tuple(str(row[0]) for row in rows)
        if not columns:
            raise TableNotFoundError(f"Table '{name}' not found.")
        return TableDescriptor(name=name, columns=columns)

    def get_snapshot(self, source: DataSource, table: str, limit: int | None = None) -> RowSnapshot:
        """Return up to ``limit`` rows of ``table``, most recent first."""

        window = self._default_limit if limit is None else limit
        if isinstance(window, bool) or not isinstance(window, int) or window < 1:
            raise ValueError(f"limit must be a positive integer, got {window!r}")
        descriptor = self.describe(source, table)
        sql = build_snapshot_query(descriptor.name, descriptor.columns, window)
        LOG.debug("Running snapshot query", extra={"table": descriptor.name, "sql": sql})
        try:
            cursor = source.handle.execute(sql)
            names = tuple(item[0] for item in cursor.description or ())
            rows = tuple(dict(zip(names, record)) for record in cursor.fetchall())
        except sqlite3.Error as exc:
            raise QueryFailedError(f"Failed to read table {descriptor.name}: {exc}") from exc
        return RowSnapshot(name=descriptor.name, columns=descriptor.columns, rows=rows)


__all__ = [
    "DEFAULT_LIMIT",
    "ORDERING_CANDIDATES",
    "SnapshotEngine",
    "build_snapshot_query",
    "ordering_column",
    "validate_identifier",
]
