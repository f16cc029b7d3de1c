"""Data table rendering the latest snapshot, newest rows first."""

from __future__ import annotations

from typing import Callable

from textual.app import ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Static

from litewatch.feed import FeedState, TableFeed
from litewatch.models import RowSnapshot


class TableViewer(Container):
    """Shows the selected table's snapshot."""

    DEFAULT_CSS = """
    TableViewer {
        layout: vertical;
        border: round $primary 40%;
        padding: 0 1;
        height: 1fr;
    }

    TableViewer .panel-title {
        text-style: bold;
    }

    #snapshot-table {
        height: 1fr;
    }
    """

    def __init__(self, feed: TableFeed) -> None:
        super().__init__(id="table-viewer")
        self._feed = feed
        self._title: Static | None = None
        self._table: DataTable | None = None
        self._shown: RowSnapshot | None = None
        self._unsubscribe: Callable[[], None] | None = None

    def compose(self) -> ComposeResult:
        self._title = Static("No table selected", classes="panel-title")
        yield self._title
        self._table = DataTable(id="snapshot-table", zebra_stripes=True)
        yield self._table

    async def on_mount(self) -> None:
        self._unsubscribe = self._feed.subscribe(self._handle_feed_update)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle_feed_update(self, state: FeedState) -> None:
        if self._table is None or self._title is None:
            return
        snapshot = state.snapshot
        if snapshot is self._shown:
            return
        self._shown = snapshot
        self._table.clear(columns=True)
        if snapshot is None:
            self._title.update(state.selected_table or "No table selected")
            return
        self._title.update(f"{snapshot.name}: {len(snapshot.rows)} rows (showing latest first)")
        self._table.add_columns(*snapshot.columns)
        for row in snapshot.rows:
            self._table.add_row(*(format_cell(row.get(column)) for column in snapshot.columns))


def format_cell(value: object) -> str:
    return "null" if value is None else str(value)


__all__ = ["TableViewer", "format_cell"]
