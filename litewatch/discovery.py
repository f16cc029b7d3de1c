"""Viewer-side discovery: find a live server among candidate ports and stay attached."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import socketio

from . import protocol
from .errors import NoServerReachableError, TransportLostError
from .models import EndpointCandidate, SwitchResult
from .protocol import SessionPhase, ViewerSession

LOG = logging.getLogger(__name__)

ClientFactory = Callable[[], Any]
Listener = Callable[[str, Any], Awaitable[Any] | None]

_PROBE_ERRORS = (socketio.exceptions.ConnectionError, asyncio.TimeoutError, OSError)


def _default_client_factory() -> socketio.AsyncClient:
    # Reconnection is driven by DiscoveryClient, not by the transport.
    return socketio.AsyncClient(reconnection=False)


class Connection:
    """An adopted endpoint plus the session riding on it."""

    def __init__(
        self,
        client: Any,
        endpoint: EndpointCandidate,
        session: ViewerSession,
        *,
        request_timeout: float,
    ) -> None:
        self._client = client
        self._endpoint = endpoint
        self._session = session
        self._request_timeout = request_timeout

    @property
    def endpoint(self) -> EndpointCandidate:
        return self._endpoint

    @property
    def session(self) -> ViewerSession:
        return self._session

    @property
    def phase(self) -> SessionPhase:
        return self._session.phase

    async def emit(self, event: str, data: Any = None) -> None:
        """Send a request; raises TransportLostError once the session dropped."""

        self._ensure_live()
        try:
            if data is None:
                await self._client.emit(event)
            else:
                await self._client.emit(event, data)
        except socketio.exceptions.SocketIOError as exc:
            raise TransportLostError(f"Failed to send {event}: {exc}") from exc

    async def change_database(self, path: str) -> SwitchResult:
        """Ask the server to switch files and wait for its acknowledgement."""

        self._ensure_live()
        try:
            ack = await self._client.call(protocol.CHANGE_DATABASE, path, timeout=self._request_timeout)
        except socketio.exceptions.SocketIOError as exc:
            raise TransportLostError(f"No acknowledgement for database switch: {exc}") from exc
        return SwitchResult.from_payload(ack)

    async def close(self) -> None:
        await self._client.disconnect()

    def _ensure_live(self) -> None:
        if not self._session.is_live:
            raise TransportLostError(f"Session to {self._endpoint.url} is {self._session.phase.value}.")


class DiscoveryClient:
    """Probes candidate ports one at a time and re-attaches after drops."""

    def __init__(
        self,
        candidate_ports: Iterable[int],
        *,
        host: str = "localhost",
        saved_port: int | None = None,
        probe_timeout: float = 3.0,
        reconnect_delay: float = 3.0,
        request_timeout: float = 10.0,
        client_factory: ClientFactory | None = None,
        on_port_confirmed: Callable[[int], None] | None = None,
    ) -> None:
        self._candidates = tuple(candidate_ports)
        self._host = host
        self._saved_port = saved_port
        self._probe_timeout = probe_timeout
        self._reconnect_delay = reconnect_delay
        self._request_timeout = request_timeout
        self._client_factory = client_factory or _default_client_factory
        self._on_port_confirmed = on_port_confirmed
        self._listeners: set[Listener] = set()
        self._session: ViewerSession | None = None
        self._connection: Connection | None = None
        self._probing = False
        self._closed = False
        self._reconnect_task: asyncio.Task[None] | None = None

    @property
    def host(self) -> str:
        return self._host

    @property
    def saved_port(self) -> int | None:
        """Seed port tried first on the next ``connect``."""

        return self._saved_port

    @property
    def connection(self) -> Connection | None:
        return self._connection

    @property
    def session(self) -> ViewerSession | None:
        return self._session

    @property
    def reconnect_task(self) -> asyncio.Task[None] | None:
        return self._reconnect_task

    def probe_order(self) -> list[int]:
        """Saved port first, then the configured candidates, de-duplicated."""

        order: list[int] = []
        if self._saved_port is not None:
            order.append(self._saved_port)
        for port in self._candidates:
            if port not in order:
                order.append(port)
        return order

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Receive ``(event, payload)`` for server events and phase changes."""

        self._listeners.add(listener)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    async def connect(self) -> Connection:
        """Adopt the first candidate that completes a transport handshake."""

        self._closed = False
        self._probing = True
        try:
            for port in self.probe_order():
                connection = await self._probe(EndpointCandidate(self._host, port))
                if connection is not None:
                    self._connection = connection
                    return connection
        finally:
            self._probing = False
        self._connection = None
        raise NoServerReachableError(
            f"No server reachable on {self._host} (tried ports {', '.join(map(str, self.probe_order()))})"
        )

    async def close(self) -> None:
        """Tear down the client; stops any pending reconnection."""

        self._closed = True
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None
        connection = self._connection
        self._connection = None
        if connection is not None:
            await self._mark_disconnected(connection.session)
            await connection.close()

    async def _probe(self, endpoint: EndpointCandidate) -> Connection | None:
        session = ViewerSession(port=endpoint.port)
        self._session = session
        await self._dispatch(protocol.PHASE, session)
        client = self._client_factory()
        self._bind(client, session)
        # Adopted up front: identity events can reach READY before connect() returns.
        connection = Connection(client, endpoint, session, request_timeout=self._request_timeout)
        self._connection = connection
        LOG.debug("Probing endpoint", extra={"url": endpoint.url})
        try:
            await asyncio.wait_for(
                client.connect(endpoint.url, wait_timeout=self._probe_timeout),
                timeout=self._probe_timeout,
            )
        except _PROBE_ERRORS as exc:
            LOG.info("Endpoint unreachable: %s", exc or type(exc).__name__, extra={"url": endpoint.url})
            self._connection = None
            await self._mark_disconnected(session)
            try:
                await client.disconnect()
            except Exception:
                LOG.debug("Error closing failed probe", extra={"url": endpoint.url}, exc_info=True)
            return None
        await self._opened(session)
        LOG.info("Connected to server", extra={"url": endpoint.url})
        return connection

    def _bind(self, client: Any, session: ViewerSession) -> None:
        async def _on_connect(*_: Any) -> None:
            await self._opened(session)

        async def _on_disconnect(*_: Any) -> None:
            await self._handle_drop(session)

        client.on("connect", _on_connect)
        client.on("disconnect", _on_disconnect)
        for event in protocol.SERVER_EVENTS:
            client.on(event, self._event_handler(session, event))

    def _event_handler(self, session: ViewerSession, event: str) -> Callable[..., Awaitable[None]]:
        async def _handler(*args: Any) -> None:
            await self._handle_event(session, event, args[0] if args else None)

        return _handler

    async def _opened(self, session: ViewerSession) -> None:
        if session.phase is not SessionPhase.CONNECTING:
            return
        session.advance(SessionPhase.HANDSHAKING)
        await self._dispatch(protocol.PHASE, session)
        # Identity events may have raced ahead of the transport confirmation.
        if session.try_ready():
            await self._dispatch(protocol.PHASE, session)

    async def _handle_event(self, session: ViewerSession, event: str, payload: Any) -> None:
        if session is not self._session:
            return
        became_ready = False
        if event == protocol.SERVER_PORT and isinstance(payload, int):
            became_ready = session.record_port(payload)
            self._confirm_port(payload)
        elif event == protocol.DATABASE_PATH and isinstance(payload, str):
            became_ready = session.record_path(payload)
        elif event == protocol.DATABASE_PATH_CHANGED and isinstance(payload, str):
            session.database_path = payload
        if became_ready:
            await self._dispatch(protocol.PHASE, session)
        await self._dispatch(event, payload)

    def _confirm_port(self, port: int) -> None:
        self._saved_port = port
        if self._on_port_confirmed is not None:
            try:
                self._on_port_confirmed(port)
            except Exception:
                LOG.exception("Failed to persist confirmed port", extra={"port": port})

    async def _handle_drop(self, session: ViewerSession) -> None:
        if self._probing or self._closed or session is not self._session:
            return
        if not session.is_live:
            return
        LOG.warning("Connection lost, reconnecting", extra={"port": session.port})
        self._connection = None
        await self._mark_disconnected(session)
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        while not self._closed:
            await asyncio.sleep(self._reconnect_delay)
            if self._closed:
                return
            try:
                await self.connect()
            except NoServerReachableError as exc:
                LOG.warning("Reconnect attempt failed: %s", exc)
                continue
            return

    async def _mark_disconnected(self, session: ViewerSession) -> None:
        if session.phase is SessionPhase.DISCONNECTED:
            return
        session.advance(SessionPhase.DISCONNECTED)
        await self._dispatch(protocol.PHASE, session)

    async def _dispatch(self, event: str, payload: Any) -> None:
        for listener in tuple(self._listeners):
            try:
                result = listener(event, payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                LOG.exception("Discovery listener failed", extra={"event": event})


__all__ = ["ClientFactory", "Connection", "DiscoveryClient", "Listener"]
