"""Owner of the active data source and broker for switching between files."""

from __future__ import annotations

import asyncio
import inspect
import logging
import sqlite3
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from . import protocol
from .errors import DirectoryNotFoundError, NoActiveDataSourceError, SwitchFailedError
from .models import DataSource, RowSnapshot
from .snapshot import SnapshotEngine
from .watcher import ChangeDetector

LOG = logging.getLogger(__name__)

Sink = Callable[[str, Any], Awaitable[Any] | None]

DEMO_SCHEMA = """
    CREATE TABLE users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT UNIQUE NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    INSERT INTO users (name, email) VALUES
        ('John Doe', 'john@example.com'),
        ('Jane Smith', 'jane@example.com'),
        ('Bob Johnson', 'bob@example.com');

    CREATE TABLE products (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        price REAL NOT NULL,
        stock INTEGER DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    INSERT INTO products (name, price, stock) VALUES
        ('Laptop', 999.99, 10),
        ('Smartphone', 699.99, 25),
        ('Headphones', 149.99, 50);
"""


def resolve_path(raw: str | Path) -> Path:
    """Absolute path for ``raw``; relative paths resolve against the cwd."""

    return Path(raw).expanduser().resolve()


def bootstrap_database(path: Path) -> bool:
    """Create ``path`` with the demo schema; no-op when the file exists."""

    if path.exists():
        return False
    LOG.info("Database file not found, creating a new one", extra={"path": str(path)})
    conn = sqlite3.connect(path)
    try:
        conn.executescript(DEMO_SCHEMA)
        conn.commit()
    finally:
        conn.close()
    return True


class ConnectionRegistry:
    """Holds the single live SQLite handle and fans out change signals."""

    def __init__(self, engine: SnapshotEngine | None = None, *, poll_interval: float = 1.0) -> None:
        self._engine = engine or SnapshotEngine()
        self._poll_interval = poll_interval
        self._active: DataSource | None = None
        self._detector: ChangeDetector | None = None
        self._sinks: list[Sink] = []
        self._switch_lock = asyncio.Lock()

    @property
    def engine(self) -> SnapshotEngine:
        return self._engine

    @property
    def active(self) -> DataSource | None:
        """The connected data source, or None in the degraded state."""

        return self._active

    @property
    def active_path(self) -> Path | None:
        return self._active.path if self._active else None

    def require_active(self) -> DataSource:
        if self._active is None:
            raise NoActiveDataSourceError("No database is currently connected.")
        return self._active

    def list_tables(self) -> tuple[str, ...]:
        return self._engine.list_tables(self.require_active())

    def get_snapshot(self, table: str, limit: int | None = None) -> RowSnapshot:
        return self._engine.get_snapshot(self.require_active(), table, limit)

    def subscribe(self, sink: Sink) -> Callable[[], None]:
        """Register a session sink; returns an unsubscribe handle."""

        self._sinks.append(sink)

        def _unsubscribe() -> None:
            if sink in self._sinks:
                self._sinks.remove(sink)

        return _unsubscribe

    async def publish(self, event: str, payload: Any = None) -> None:
        """Deliver ``event`` to every sink; one failing sink never blocks the rest."""

        for sink in tuple(self._sinks):
            try:
                result = sink(event, payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                LOG.exception("Session sink failed", extra={"event": event})

    async def open(self, raw_path: str | Path) -> Path:
        """Connect the startup data source without broadcasting."""

        async with self._switch_lock:
            return self._replace(raw_path)

    async def switch(self, raw_path: str | Path) -> Path:
        """Switch the active data source and notify every session."""

        async with self._switch_lock:
            path = self._replace(raw_path)
            await self.publish(protocol.DATABASE_CHANGED)
            await self.publish(protocol.DATABASE_PATH_CHANGED, str(path))
        return path

    def close(self) -> None:
        """Stop watching and release the handle."""

        self._release()

    def _replace(self, raw_path: str | Path) -> Path:
        path = resolve_path(raw_path)
        if not path.parent.is_dir():
            raise DirectoryNotFoundError(f"Directory does not exist: {path.parent}")
        try:
            bootstrap_database(path)
        except (sqlite3.Error, OSError) as exc:
            raise SwitchFailedError(f"Failed to create database at {path}: {exc}") from exc

        self._release()
        handle: sqlite3.Connection | None = None
        try:
            handle = sqlite3.connect(path)
            handle.execute("PRAGMA query_only = ON")
            # Forces a header read so non-database files fail here.
            handle.execute("SELECT count(*) FROM sqlite_master").fetchone()
        except sqlite3.Error as exc:
            if handle is not None:
                handle.close()
            LOG.error("Failed to open database, no data source active", extra={"path": str(path)})
            raise SwitchFailedError(f"Failed to open database at {path}: {exc}") from exc

        detector = ChangeDetector(path, self._handle_change, poll_interval=self._poll_interval)
        self._active = DataSource(path=path, handle=handle)
        self._detector = detector
        detector.start()
        LOG.info("Connected to SQLite database", extra={"path": str(path)})
        return path

    def _release(self) -> None:
        if self._detector is not None:
            self._detector.stop()
            self._detector = None
        if self._active is not None:
            previous = self._active
            self._active = None
            try:
                previous.handle.close()
            except sqlite3.Error:
                LOG.warning("Error closing database handle", extra={"path": str(previous.path)})

    async def _handle_change(self) -> None:
        await self.publish(protocol.DATABASE_CHANGED)


__all__ = [
    "ConnectionRegistry",
    "DEMO_SCHEMA",
    "Sink",
    "bootstrap_database",
    "resolve_path",
]
