"""Shared fakes for the viewer-side tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
import socketio


class FakeClient:
    """Socket.IO client double driven by a :class:`FakeNetwork`."""

    def __init__(self, network: FakeNetwork) -> None:
        self.network = network
        self.handlers: dict[str, Any] = {}
        self.emitted: list[tuple[str, Any]] = []
        self.connected = False
        self.disconnect_calls = 0

    def on(self, event: str, handler: Any = None) -> None:
        self.handlers[event] = handler

    async def connect(self, url: str, **kwargs: Any) -> None:
        port = int(url.rsplit(":", 1)[1])
        self.network.attempts.append(port)
        if port in self.network.hanging:
            await asyncio.sleep(3600)
        if port not in self.network.reachable:
            raise socketio.exceptions.ConnectionError("Connection refused")
        self.connected = True
        await self.fire("connect")
        await self.fire("serverPort", port)
        await self.fire("databasePath", self.network.path)

    async def emit(self, event: str, data: Any = None, **kwargs: Any) -> None:
        if not self.connected:
            raise socketio.exceptions.BadNamespaceError("/ is not a connected namespace.")
        self.emitted.append((event, data))

    async def call(self, event: str, data: Any = None, timeout: float = 60, **kwargs: Any) -> Any:
        if not self.connected:
            raise socketio.exceptions.BadNamespaceError("/ is not a connected namespace.")
        self.emitted.append((event, data))
        if self.network.ack is None:
            raise socketio.exceptions.TimeoutError()
        return self.network.ack

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self.connected:
            self.connected = False
            await self.fire("disconnect")

    async def drop(self) -> None:
        """Simulate the server going away."""

        self.connected = False
        await self.fire("disconnect", "transport close")

    async def fire(self, event: str, *args: Any) -> None:
        handler = self.handlers.get(event)
        if handler is not None:
            await handler(*args)


class FakeNetwork:
    """Which ports answer, and every client handed out so far."""

    def __init__(self) -> None:
        self.reachable: set[int] = set()
        self.hanging: set[int] = set()
        self.path = "/srv/data/database.sqlite"
        self.ack: Any = {"success": True, "path": "/srv/data/other.sqlite"}
        self.attempts: list[int] = []
        self.clients: list[FakeClient] = []

    def factory(self) -> FakeClient:
        client = FakeClient(self)
        self.clients.append(client)
        return client

    @property
    def live_client(self) -> FakeClient:
        return next(client for client in reversed(self.clients) if client.connected)


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()
