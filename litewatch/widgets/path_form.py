"""Input for pointing the server at a different database file."""

from __future__ import annotations

from typing import Callable

from textual import on
from textual.app import ComposeResult
from textual.containers import Container
from textual.widgets import Input, Static

from litewatch.feed import FeedState, TableFeed


class DatabasePathForm(Container):
    """Submits ``changeDatabase`` requests and reports the outcome."""

    DEFAULT_CSS = """
    DatabasePathForm {
        height: auto;
        padding: 0 1;
        margin-bottom: 1;
    }

    #current-path {
        color: $text-muted;
    }
    """

    def __init__(self, feed: TableFeed) -> None:
        super().__init__(id="path-form")
        self._feed = feed
        self._input: Input | None = None
        self._current: Static | None = None
        self._unsubscribe: Callable[[], None] | None = None

    def compose(self) -> ComposeResult:
        self._input = Input(placeholder="Path to SQLite database file", id="path-input")
        yield self._input
        self._current = Static("Current: -", id="current-path")
        yield self._current

    async def on_mount(self) -> None:
        self._unsubscribe = self._feed.subscribe(self._handle_feed_update)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle_feed_update(self, state: FeedState) -> None:
        if self._current is not None:
            self._current.update(f"Current: {state.database_path or '-'}")

    @on(Input.Submitted, "#path-input")
    async def _handle_submit(self, event: Input.Submitted) -> None:
        event.stop()
        path = event.value.strip()
        if not path or path == self._feed.state.database_path:
            return
        result = await self._feed.change_database(path)
        if result.success:
            self.app.notify(f"Connected to {result.path}", severity="information")
            if self._input is not None:
                self._input.value = ""
        else:
            self.app.notify(result.message or "Database switch failed.", severity="error")


__all__ = ["DatabasePathForm"]
