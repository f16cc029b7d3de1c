"""Socket.IO sync server: sessions, request handlers and the admin surface."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

import socketio
from aiohttp import web

from . import protocol
from .config import ServerSettings
from .errors import LitewatchError, PortUnavailableError, SwitchFailedError
from .models import SwitchResult
from .registry import ConnectionRegistry
from .snapshot import SnapshotEngine

LOG = logging.getLogger(__name__)

ADMIN_ROUTE = "/api/database"


@dataclass(slots=True)
class ServerSession:
    """One connected viewer as seen by the server."""

    sid: str
    selected_table: str | None = None
    active: bool = True


class SyncServer:
    """Binds the connection registry to viewer sessions over Socket.IO."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        settings: ServerSettings | None = None,
        *,
        sio: Any | None = None,
    ) -> None:
        self._registry = registry
        self._settings = settings or ServerSettings()
        # Handlers run inline so each session's responses keep request order.
        self._sio = sio or socketio.AsyncServer(
            async_mode="aiohttp",
            cors_allowed_origins="*",
            async_handlers=False,
            always_connect=True,
        )
        self._sessions: dict[str, ServerSession] = {}
        self._unsubscribers: dict[str, Callable[[], None]] = {}
        self._runner: web.AppRunner | None = None
        self.port: int | None = None
        self._register_handlers()

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def sessions(self) -> tuple[ServerSession, ...]:
        return tuple(self._sessions.values())

    def session(self, sid: str) -> ServerSession | None:
        return self._sessions.get(sid)

    def build_app(self) -> web.Application:
        """aiohttp application serving Socket.IO plus the admin routes."""

        app = web.Application()
        self._sio.attach(app)
        app.router.add_get(ADMIN_ROUTE, self._http_current_path)
        app.router.add_post(ADMIN_ROUTE, self._http_switch)
        return app

    async def start(self) -> int:
        """Bind the first free port in the search range and start serving."""

        runner = web.AppRunner(self.build_app())
        await runner.setup()
        for port in self._settings.candidate_ports():
            site = web.TCPSite(runner, self._settings.host, port)
            try:
                await site.start()
            except OSError as exc:
                LOG.warning("Port unavailable, trying next: %s", exc, extra={"port": port})
                continue
            self._runner = runner
            self.port = port
            LOG.info("Server running", extra={"host": self._settings.host, "port": port})
            return port
        await runner.cleanup()
        ports = self._settings.candidate_ports()
        raise PortUnavailableError(f"No free port between {ports[0]} and {ports[-1]}")

    async def stop(self) -> None:
        for sid in tuple(self._sessions):
            self._drop_session(sid)
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    async def handle_connect(self, sid: str, environ: Any = None, auth: Any = None) -> None:
        session = ServerSession(sid=sid)
        self._sessions[sid] = session

        async def _sink(event: str, payload: Any) -> None:
            if session.active:
                await self._emit(event, payload, sid)

        self._unsubscribers[sid] = self._registry.subscribe(_sink)
        LOG.info("Client connected", extra={"sid": sid})
        await self._emit(protocol.SERVER_PORT, self.port, sid)
        path = self._registry.active_path
        await self._emit(protocol.DATABASE_PATH, str(path) if path else "", sid)

    async def handle_disconnect(self, sid: str, reason: Any = None) -> None:
        self._drop_session(sid)
        LOG.info("Client disconnected", extra={"sid": sid, "reason": str(reason) if reason else None})

    async def handle_get_tables(self, sid: str, *_: Any) -> None:
        try:
            tables = self._registry.list_tables()
        except LitewatchError as exc:
            LOG.warning("Error getting tables: %s", exc, extra={"sid": sid})
            await self._emit(protocol.ERROR, f"Failed to get tables from database: {exc}", sid)
            return
        await self._emit(protocol.TABLES, list(tables), sid)

    async def handle_get_table_data(self, sid: str, table: Any = None) -> None:
        session = self._sessions.get(sid)
        if session is not None and isinstance(table, str):
            session.selected_table = table
        try:
            snapshot = self._registry.get_snapshot(table)
        except LitewatchError as exc:
            LOG.warning("Error getting data from table %s: %s", table, exc, extra={"sid": sid})
            await self._emit(protocol.ERROR, f"Failed to get data from table {table}: {exc}", sid)
            return
        await self._emit(protocol.TABLE_DATA, snapshot.to_payload(), sid)

    async def handle_change_database(self, sid: str, path: Any = None) -> dict[str, Any]:
        result = await self.switch_database(path)
        return result.to_payload()

    async def switch_database(self, path: Any) -> SwitchResult:
        """Shared switch entry point for the socket ack and the admin route."""

        if not isinstance(path, str) or not path.strip():
            return SwitchResult(success=False, message="Database path is required.")
        try:
            resolved = await self._registry.switch(path.strip())
        except SwitchFailedError as exc:
            LOG.warning("Database switch failed: %s", exc, extra={"requested": path})
            return SwitchResult(success=False, message=str(exc))
        return SwitchResult(success=True, path=str(resolved))

    def current_path(self) -> dict[str, Any]:
        path = self._registry.active_path
        return {"path": str(path) if path else None}

    async def _http_current_path(self, request: web.Request) -> web.Response:
        return web.json_response(self.current_path())

    async def _http_switch(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
        except ValueError:
            body = None
        path = body.get("dbPath") if isinstance(body, dict) else None
        result = await self.switch_database(path)
        return web.json_response(result.to_payload(), status=200 if result.success else 400)

    async def _emit(self, event: str, payload: Any, sid: str) -> None:
        if payload is None:
            await self._sio.emit(event, to=sid)
        else:
            await self._sio.emit(event, payload, to=sid)

    def _drop_session(self, sid: str) -> None:
        session = self._sessions.pop(sid, None)
        if session is not None:
            session.active = False
        unsubscribe = self._unsubscribers.pop(sid, None)
        if unsubscribe:
            unsubscribe()

    def _register_handlers(self) -> None:
        self._sio.on("connect", self.handle_connect)
        self._sio.on("disconnect", self.handle_disconnect)
        self._sio.on(protocol.GET_TABLES, self.handle_get_tables)
        self._sio.on(protocol.GET_TABLE_DATA, self.handle_get_table_data)
        self._sio.on(protocol.CHANGE_DATABASE, self.handle_change_database)


async def serve(settings: ServerSettings) -> None:
    """Open the configured database, bind a port and serve until cancelled."""

    registry = ConnectionRegistry(
        SnapshotEngine(default_limit=settings.snapshot_limit),
        poll_interval=settings.poll_interval,
    )
    try:
        await registry.open(settings.db_path)
    except SwitchFailedError as exc:
        LOG.error("Starting without an active database: %s", exc)
    server = SyncServer(registry, settings)
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()
        registry.close()


__all__ = ["ADMIN_ROUTE", "ServerSession", "SyncServer", "serve"]
