"""Tests for the sync server handlers, broadcast fan-out and admin routes."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

import pytest
from aiohttp import web
from aiohttp import test_utils

from litewatch.config import ServerSettings
from litewatch.errors import PortUnavailableError
from litewatch.registry import ConnectionRegistry
from litewatch.server import ADMIN_ROUTE, SyncServer


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _FakeSio:
    """Captures handler registration and outgoing emits."""

    def __init__(self) -> None:
        self.handlers: dict[str, Any] = {}
        self.emitted: list[tuple[str | None, str, Any]] = []
        self.failing: set[str] = set()

    def on(self, event: str, handler: Any = None) -> None:
        self.handlers[event] = handler

    def attach(self, app: web.Application) -> None:
        return None

    async def emit(self, event: str, data: Any = None, to: str | None = None, **kwargs: Any) -> None:
        if to in self.failing:
            raise ConnectionResetError("transport gone")
        self.emitted.append((to, event, data))

    def events_for(self, sid: str) -> list[tuple[str, Any]]:
        return [(event, data) for to, event, data in self.emitted if to == sid]

    def clear(self) -> None:
        self.emitted.clear()


@pytest.fixture
async def registry(tmp_path: Path):
    instance = ConnectionRegistry(poll_interval=30)
    await instance.open(tmp_path / "database.sqlite")
    yield instance
    instance.close()


@pytest.fixture
def sio() -> _FakeSio:
    return _FakeSio()


@pytest.fixture
def server(registry: ConnectionRegistry, sio: _FakeSio) -> SyncServer:
    instance = SyncServer(registry, sio=sio)
    instance.port = 4002
    return instance


@pytest.mark.anyio
async def test_handlers_are_registered(server: SyncServer, sio: _FakeSio) -> None:
    assert {"connect", "disconnect", "getTables", "getTableData", "changeDatabase"} <= set(sio.handlers)


@pytest.mark.anyio
async def test_connect_announces_port_and_path(server: SyncServer, sio: _FakeSio, registry: ConnectionRegistry) -> None:
    await server.handle_connect("a")

    assert sio.events_for("a") == [
        ("serverPort", 4002),
        ("databasePath", str(registry.active_path)),
    ]
    assert server.session("a") is not None


@pytest.mark.anyio
async def test_connect_without_database_announces_empty_path(sio: _FakeSio) -> None:
    server = SyncServer(ConnectionRegistry(), sio=sio)
    server.port = 4000

    await server.handle_connect("a")

    assert sio.events_for("a")[-1] == ("databasePath", "")


@pytest.mark.anyio
async def test_get_tables_replies_to_requester(server: SyncServer, sio: _FakeSio) -> None:
    await server.handle_connect("a")
    await server.handle_connect("b")
    sio.clear()

    await server.handle_get_tables("a")

    assert sio.events_for("a") == [("tables", ["users", "products"])]
    assert sio.events_for("b") == []


@pytest.mark.anyio
async def test_get_table_data_returns_snapshot(server: SyncServer, sio: _FakeSio) -> None:
    await server.handle_connect("a")
    sio.clear()

    await server.handle_get_table_data("a", "users")

    [(event, payload)] = sio.events_for("a")
    assert event == "tableData"
    assert payload["name"] == "users"
    assert payload["columns"] == ["id", "name", "email", "created_at"]
    assert len(payload["rows"]) == 3
    assert server.session("a").selected_table == "users"


@pytest.mark.anyio
@pytest.mark.parametrize("table", ["users; DROP TABLE users", "missing_table", None])
async def test_get_table_data_errors_are_reported(server: SyncServer, sio: _FakeSio, table: Any) -> None:
    await server.handle_connect("a")
    sio.clear()

    await server.handle_get_table_data("a", table)

    [(event, message)] = sio.events_for("a")
    assert event == "error"
    assert message.startswith(f"Failed to get data from table {table}:")


@pytest.mark.anyio
async def test_get_tables_without_database_reports_error(sio: _FakeSio) -> None:
    server = SyncServer(ConnectionRegistry(), sio=sio)

    await server.handle_get_tables("a")

    [(event, message)] = sio.events_for("a")
    assert event == "error"
    assert message.startswith("Failed to get tables from database:")


@pytest.mark.anyio
async def test_change_database_acks_and_broadcasts(server: SyncServer, sio: _FakeSio, tmp_path: Path) -> None:
    target = tmp_path / "other.sqlite"
    conn = sqlite3.connect(target)
    conn.execute("CREATE TABLE orders (id INTEGER PRIMARY KEY)")
    conn.commit()
    conn.close()
    await server.handle_connect("a")
    await server.handle_connect("b")
    sio.clear()

    ack = await server.handle_change_database("a", str(target))

    assert ack == {"success": True, "path": str(target.resolve())}
    for sid in ("a", "b"):
        assert sio.events_for(sid) == [
            ("databaseChanged", None),
            ("databasePathChanged", str(target.resolve())),
        ]
    sio.clear()
    await server.handle_get_tables("b")
    assert sio.events_for("b") == [("tables", ["orders"])]


@pytest.mark.anyio
async def test_change_database_failure_is_acknowledged(server: SyncServer, sio: _FakeSio, tmp_path: Path) -> None:
    await server.handle_connect("a")
    sio.clear()

    ack = await server.handle_change_database("a", str(tmp_path / "nowhere" / "db.sqlite"))

    assert ack["success"] is False
    assert "Directory does not exist" in ack["message"]
    assert sio.emitted == []


@pytest.mark.anyio
@pytest.mark.parametrize("path", ["", "   ", None, 42])
async def test_change_database_requires_a_path(server: SyncServer, path: Any) -> None:
    ack = await server.handle_change_database("a", path)

    assert ack == {"success": False, "message": "Database path is required."}


@pytest.mark.anyio
async def test_disconnected_sessions_stop_receiving(server: SyncServer, sio: _FakeSio, tmp_path: Path) -> None:
    await server.handle_connect("a")
    await server.handle_connect("b")
    await server.handle_disconnect("b", "client disconnect")
    sio.clear()

    await server.switch_database(str(tmp_path / "next.sqlite"))

    assert server.session("b") is None
    assert sio.events_for("b") == []
    assert len(sio.events_for("a")) == 2


@pytest.mark.anyio
async def test_broken_session_does_not_block_broadcast(server: SyncServer, sio: _FakeSio, tmp_path: Path) -> None:
    await server.handle_connect("a")
    await server.handle_connect("b")
    sio.failing.add("a")
    sio.clear()

    result = await server.switch_database(str(tmp_path / "next.sqlite"))

    assert result.success
    assert [event for event, _ in sio.events_for("b")] == ["databaseChanged", "databasePathChanged"]


@pytest.mark.anyio
async def test_current_path_reports_active_file(server: SyncServer, registry: ConnectionRegistry) -> None:
    assert server.current_path() == {"path": str(registry.active_path)}


@pytest.mark.anyio
async def test_start_skips_busy_ports(
    registry: ConnectionRegistry, sio: _FakeSio, monkeypatch: pytest.MonkeyPatch
) -> None:
    busy = {4000, 4001}
    started: list[int] = []

    class _FakeSite:
        def __init__(self, runner: web.AppRunner, host: str, port: int) -> None:
            self.port = port

        async def start(self) -> None:
            if self.port in busy:
                raise OSError(98, "Address already in use")
            started.append(self.port)

    monkeypatch.setattr(web, "TCPSite", _FakeSite)
    server = SyncServer(registry, ServerSettings(port=4000, port_attempts=3), sio=sio)

    port = await server.start()
    await server.stop()

    assert port == 4002
    assert server.port == 4002
    assert started == [4002]


@pytest.mark.anyio
async def test_start_gives_up_when_range_exhausted(
    registry: ConnectionRegistry, sio: _FakeSio, monkeypatch: pytest.MonkeyPatch
) -> None:
    class _BusySite:
        def __init__(self, runner: web.AppRunner, host: str, port: int) -> None:
            pass

        async def start(self) -> None:
            raise OSError(98, "Address already in use")

    monkeypatch.setattr(web, "TCPSite", _BusySite)
    server = SyncServer(registry, ServerSettings(port=4000, port_attempts=2), sio=sio)

    with pytest.raises(PortUnavailableError):
        await server.start()
    assert server.port is None


@pytest.mark.anyio
async def test_admin_routes(registry: ConnectionRegistry, tmp_path: Path) -> None:
    server = SyncServer(registry)
    client = test_utils.TestClient(test_utils.TestServer(server.build_app()))
    await client.start_server()
    try:
        response = await client.get(ADMIN_ROUTE)
        assert response.status == 200
        assert await response.json() == {"path": str(registry.active_path)}

        target = tmp_path / "switched.sqlite"
        response = await client.post(ADMIN_ROUTE, json={"dbPath": str(target)})
        assert response.status == 200
        assert await response.json() == {"success": True, "path": str(target.resolve())}

        response = await client.post(ADMIN_ROUTE, json={})
        assert response.status == 400
        assert (await response.json())["message"] == "Database path is required."
    finally:
        await client.close()
