"""Shared dataclasses used across the server and viewer modules."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

Row = Mapping[str, object]


@dataclass(frozen=True, slots=True)
class DataSource:
    """An open SQLite file owned by the connection registry."""

    path: Path
    handle: sqlite3.Connection


@dataclass(frozen=True, slots=True)
class TableDescriptor:
    """Validated table name plus its columns in declaration order."""

    name: str
    columns: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class RowSnapshot:
    """Newest-first window of a table's rows."""

    name: str
    columns: tuple[str, ...]
    rows: tuple[Row, ...]

    def to_payload(self) -> dict[str, Any]:
        """Render the snapshot as the ``tableData`` payload."""

        return {
            "name": self.name,
            "columns": list(self.columns),
            "rows": [{key: _jsonable(value) for key, value in row.items()} for row in self.rows],
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> RowSnapshot:
        columns = tuple(str(column) for column in payload.get("columns") or ())
        rows = tuple(dict(row) for row in payload.get("rows") or () if isinstance(row, Mapping))
        return cls(name=str(payload.get("name", "")), columns=columns, rows=rows)


@dataclass(frozen=True, slots=True)
class EndpointCandidate:
    """Host/port pair probed by the discovery client."""

    host: str
    port: int

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


@dataclass(frozen=True, slots=True)
class SwitchResult:
    """Outcome of a database switch as reported to viewers."""

    success: bool
    path: str | None = None
    message: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if self.path is not None:
            payload["path"] = self.path
        if self.message is not None:
            payload["message"] = self.message
        return payload

    @classmethod
    def from_payload(cls, payload: object) -> SwitchResult:
        if not isinstance(payload, Mapping):
            return cls(success=False, message="Malformed acknowledgement from server.")
        path = payload.get("path")
        message = payload.get("message")
        return cls(
            success=bool(payload.get("success")),
            path=str(path) if path is not None else None,
            message=str(message) if message is not None else None,
        )


def _jsonable(value: object) -> object:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    return value


__all__ = [
    "DataSource",
    "EndpointCandidate",
    "Row",
    "RowSnapshot",
    "SwitchResult",
    "TableDescriptor",
]
