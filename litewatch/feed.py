"""Viewer-side session state wiring discovery events into the UI."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from . import protocol
from .discovery import DiscoveryClient
from .errors import TransportLostError
from .models import EndpointCandidate, RowSnapshot, SwitchResult
from .protocol import SessionPhase, ViewerSession

LOG = logging.getLogger(__name__)

FeedListener = Callable[["FeedState"], None]


@dataclass(frozen=True, slots=True)
class FeedState:
    """What the viewer currently knows about the server and its tables."""

    phase: SessionPhase = SessionPhase.DISCONNECTED
    endpoint: str | None = None
    database_path: str | None = None
    tables: tuple[str, ...] = ()
    selected_table: str | None = None
    snapshot: RowSnapshot | None = None
    error: str | None = None
    refreshed_at: datetime | None = None


class TableFeed:
    """Keeps the selected table fresh as change signals arrive."""

    def __init__(
        self,
        discovery: DiscoveryClient,
        *,
        on_path_changed: Callable[[str], None] | None = None,
    ) -> None:
        self._discovery = discovery
        self._on_path_changed = on_path_changed
        self._state = FeedState()
        self._listeners: set[FeedListener] = set()
        self._discovery_unsubscribe = discovery.subscribe(self._handle_event)

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def discovery(self) -> DiscoveryClient:
        return self._discovery

    def subscribe(self, listener: FeedListener) -> Callable[[], None]:
        """Subscribe to feed updates; the current state is delivered immediately."""

        self._listeners.add(listener)
        listener(self._state)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    def detach(self) -> None:
        self._discovery_unsubscribe()

    def record_error(self, message: str) -> None:
        self._update(error=message)

    async def select(self, table: str) -> None:
        """Make ``table`` the selected table and fetch its snapshot."""

        if table == self._state.selected_table and self._state.snapshot is not None:
            return
        self._update(selected_table=table, snapshot=None)
        await self._request(protocol.GET_TABLE_DATA, table)

    async def refresh(self) -> None:
        """Re-fetch the table list; the selected snapshot follows the response."""

        await self._request(protocol.GET_TABLES)

    async def change_database(self, path: str) -> SwitchResult:
        connection = self._discovery.connection
        if connection is None:
            return SwitchResult(success=False, message="Not connected to a server.")
        try:
            result = await connection.change_database(path)
        except TransportLostError as exc:
            return SwitchResult(success=False, message=str(exc))
        if not result.success:
            self._update(error=result.message)
        return result

    async def _handle_event(self, event: str, payload: Any) -> None:
        if event == protocol.PHASE and isinstance(payload, ViewerSession):
            await self._handle_phase(payload)
        elif event in (protocol.DATABASE_PATH, protocol.DATABASE_PATH_CHANGED) and isinstance(payload, str):
            self._update(database_path=payload)
            self._remember_path(payload)
        elif event == protocol.DATABASE_CHANGED:
            await self.refresh()
        elif event == protocol.TABLES and isinstance(payload, list):
            await self._handle_tables(tuple(str(name) for name in payload))
        elif event == protocol.TABLE_DATA and isinstance(payload, Mapping):
            self._handle_table_data(RowSnapshot.from_payload(payload))
        elif event == protocol.ERROR:
            self._update(error=str(payload))

    async def _handle_phase(self, session: ViewerSession) -> None:
        endpoint = EndpointCandidate(self._discovery.host, session.port).url
        self._update(phase=session.phase, endpoint=endpoint)
        if session.phase is SessionPhase.READY:
            self._update(error=None)
            await self.refresh()

    async def _handle_tables(self, tables: tuple[str, ...]) -> None:
        selected = self._state.selected_table
        if selected not in tables:
            selected = tables[0] if tables else None
            self._update(tables=tables, selected_table=selected, snapshot=None)
        else:
            self._update(tables=tables)
        if selected is not None:
            await self._request(protocol.GET_TABLE_DATA, selected)

    def _handle_table_data(self, snapshot: RowSnapshot) -> None:
        if snapshot.name != self._state.selected_table:
            return
        self._update(snapshot=snapshot, error=None, refreshed_at=datetime.now(tz=timezone.utc))

    async def _request(self, event: str, data: Any = None) -> None:
        connection = self._discovery.connection
        if connection is None:
            return
        try:
            await connection.emit(event, data)
        except TransportLostError as exc:
            LOG.debug("Dropping request on lost transport: %s", exc, extra={"event": event})

    def _remember_path(self, path: str) -> None:
        if self._on_path_changed is None or not path:
            return
        try:
            self._on_path_changed(path)
        except Exception:
            LOG.exception("Failed to persist database path", extra={"path": path})

    def _update(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        for listener in tuple(self._listeners):
            listener(self._state)


__all__ = ["FeedListener", "FeedState", "TableFeed"]
