"""Sidebar listing the tables of the active database."""

from __future__ import annotations

from typing import Callable

from textual import on
from textual.app import ComposeResult
from textual.containers import Container
from textual.widgets import Label, ListItem, ListView, Static

from litewatch.feed import FeedState, TableFeed


class TableSelector(Container):
    """Lets the user pick which table the viewer follows."""

    DEFAULT_CSS = """
    TableSelector {
        width: 28;
        min-width: 22;
        border-right: solid $surface-darken-1;
        padding: 1;
        height: 1fr;
        background: $surface-darken-2;
    }

    TableSelector .sidebar-heading {
        text-style: bold;
        margin-bottom: 1;
    }

    #table-list .active {
        text-style: bold;
    }
    """

    def __init__(self, feed: TableFeed) -> None:
        super().__init__(id="table-selector")
        self._feed = feed
        self._table_list: ListView | None = None
        self._tables: tuple[str, ...] = ()
        self._unsubscribe: Callable[[], None] | None = None

    def compose(self) -> ComposeResult:
        yield Static("Tables", classes="sidebar-heading")
        self._table_list = ListView(id="table-list")
        yield self._table_list

    async def on_mount(self) -> None:
        self._unsubscribe = self._feed.subscribe(self._handle_feed_update)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle_feed_update(self, state: FeedState) -> None:
        if self._table_list is None:
            return
        if state.tables != self._tables:
            self._tables = state.tables
            items = [_TableListItem(name) for name in state.tables]
            self._table_list.clear()
            self._table_list.extend(items)
        else:
            items = list(self._table_list.query(_TableListItem))
        for item in items:
            item.set_class(item.table_name == state.selected_table, "active")

    @on(ListView.Selected)
    async def _handle_table_selected(self, event: ListView.Selected) -> None:
        item = event.item
        if isinstance(item, _TableListItem):
            event.stop()
            await self._feed.select(item.table_name)


class _TableListItem(ListItem):
    """List item storing a table name for selection callbacks."""

    def __init__(self, name: str) -> None:
        super().__init__(Label(name))
        self.table_name = name


__all__ = ["TableSelector"]
