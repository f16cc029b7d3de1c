"""Textual viewer entry point for litewatch."""

from __future__ import annotations

import logging

from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import Footer, Header

from .config import ViewerConfig, load_viewer_config, save_viewer_config
from .discovery import ClientFactory, DiscoveryClient
from .errors import NoServerReachableError
from .feed import TableFeed
from .protocol import SessionPhase
from .widgets import DatabasePathForm, StatusBar, TableSelector, TableViewer

LOG = logging.getLogger(__name__)


def _load_app_config() -> ViewerConfig:
    """Load configuration with a small wrapper for test overrides."""

    return load_viewer_config()


class LitewatchApp(App[None]):
    """Live table viewer attached to a litewatch server."""

    TITLE = "SQLite Database Viewer"
    SUB_TITLE = "Real-time database monitoring"

    CSS = """
    Screen {
        layout: vertical;
    }
    #content {
        layout: horizontal;
        height: 1fr;
    }
    #main-column {
        layout: vertical;
        padding: 1 2;
        height: 1fr;
    }
    """

    BINDINGS = [
        ("ctrl+c", "quit", "Quit"),
        ("ctrl+r", "refresh", "Refresh / Reconnect"),
    ]

    def __init__(
        self,
        *,
        config: ViewerConfig | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        super().__init__()
        self._config = config or _load_app_config()
        self._discovery = DiscoveryClient(
            self._config.candidate_ports,
            host=self._config.host,
            saved_port=self._config.last_port,
            client_factory=client_factory,
            on_port_confirmed=self.remember_port,
        )
        self._feed = TableFeed(self._discovery, on_path_changed=self.remember_path)

    def compose(self) -> ComposeResult:
        """Compose the root layout."""

        yield Header(show_clock=True)
        main_column = Vertical(
            DatabasePathForm(self._feed),
            TableViewer(self._feed),
            id="main-column",
        )
        yield Horizontal(TableSelector(self._feed), main_column, id="content")
        yield StatusBar(self._feed)
        yield Footer()

    async def on_mount(self) -> None:
        self.run_worker(self.connect_to_server(), exclusive=True, group="discovery")

    @property
    def config(self) -> ViewerConfig:
        return self._config

    @property
    def discovery(self) -> DiscoveryClient:
        """Expose the discovery client for tests."""

        return self._discovery

    @property
    def feed(self) -> TableFeed:
        return self._feed

    async def connect_to_server(self) -> None:
        """Probe the candidate ports once; the user retries with Ctrl+R."""

        try:
            connection = await self._discovery.connect()
        except NoServerReachableError as exc:
            LOG.warning("Discovery failed: %s", exc)
            self._feed.record_error(str(exc))
            self._safe_notify(str(exc), severity="error")
            return
        self._safe_notify(f"Connected to {connection.endpoint.url}", severity="information")

    async def action_refresh(self) -> None:
        state = self._feed.state
        if state.phase is SessionPhase.READY:
            await self._feed.refresh()
            return
        if state.phase in (SessionPhase.CONNECTING, SessionPhase.HANDSHAKING):
            return
        if self._discovery.reconnect_task is not None and not self._discovery.reconnect_task.done():
            return
        self.run_worker(self.connect_to_server(), exclusive=True, group="discovery")

    def remember_port(self, port: int) -> None:
        """Persist the confirmed server port as the next discovery seed."""

        if self._config.last_port == port:
            return
        self._config = self._config.with_last_port(port)
        save_viewer_config(self._config)

    def remember_path(self, path: str) -> None:
        """Persist the last database path announced by the server."""

        if self._config.last_path == path:
            return
        self._config = self._config.with_last_path(path)
        save_viewer_config(self._config)

    async def _shutdown(self) -> None:
        self._feed.detach()
        await self._discovery.close()
        await super()._shutdown()

    def _safe_notify(self, message: str, *, severity: str = "information") -> None:
        if not self.is_running:
            return
        try:
            self.notify(message, severity=severity)
        except Exception:
            LOG.exception("Failed to display notification", extra={"message": message})


def main(config: ViewerConfig | None = None) -> None:
    """Invoke the Textual application."""

    LitewatchApp(config=config).run()


if __name__ == "__main__":
    main()
