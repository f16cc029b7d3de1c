"""Status bar widget that mirrors the viewer session."""

from __future__ import annotations

from typing import Callable

from textual.widgets import Static

from litewatch.feed import FeedState, TableFeed


class StatusBar(Static):
    """Compact status strip rendered above Textual's footer."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        padding: 0 1;
        background: $surface-darken-3;
        color: $text;
    }
    """

    def __init__(self, feed: TableFeed) -> None:
        super().__init__("", id="status-bar")
        self._feed = feed
        self._unsubscribe: Callable[[], None] | None = None

    async def on_mount(self) -> None:
        self._unsubscribe = self._feed.subscribe(self._handle_feed_update)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle_feed_update(self, state: FeedState) -> None:
        self.update(describe_state(state))


def describe_state(state: FeedState) -> str:
    """One-line summary of the feed state."""

    refreshed = state.refreshed_at.astimezone().strftime("%H:%M:%S") if state.refreshed_at else "-"
    parts = [
        f"Status: {state.phase.value}",
        f"Server: {state.endpoint or '-'}",
        f"Database: {state.database_path or '-'}",
        f"Tables: {len(state.tables)}",
        f"Refreshed: {refreshed}",
    ]
    if state.error:
        parts.append(f"Error: {state.error.splitlines()[0][:80]}")
    return " | ".join(parts)


__all__ = ["StatusBar", "describe_state"]
