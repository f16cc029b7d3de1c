"""Polling change detector for the observed database file."""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

LOG = logging.getLogger(__name__)

ChangeCallback = Callable[[], Awaitable[Any] | None]


class ChangeDetector:
    """Fires ``on_change`` whenever the file's modification time moves.

    Only *that* the file changed is reported. Two writes that restore the
    previous mtime within one poll window read as no change.
    """

    def __init__(self, path: Path | str, on_change: ChangeCallback, *, poll_interval: float = 1.0) -> None:
        self._path = Path(path)
        self._on_change = on_change
        self._poll_interval = poll_interval
        self._task: asyncio.Task[None] | None = None
        self._last_mtime: int | None = self._read_mtime()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Begin polling on the running event loop."""

        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._runner(), name=f"litewatch-watch:{self._path.name}")

    def stop(self) -> None:
        """Halt polling; safe to call more than once."""

        if self._task:
            self._task.cancel()
            self._task = None

    async def poll(self) -> bool:
        """Run one tick; return True when a change was reported."""

        current = self._read_mtime()
        if current is None or current == self._last_mtime:
            return False
        self._last_mtime = current
        result = self._on_change()
        if inspect.isawaitable(result):
            await result
        return True

    async def _runner(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._poll_interval)
                try:
                    await self.poll()
                except Exception:
                    LOG.exception("Change callback failed", extra={"path": str(self._path)})
        except asyncio.CancelledError:
            return

    def _read_mtime(self) -> int | None:
        try:
            return os.stat(self._path).st_mtime_ns
        except OSError as exc:
            LOG.warning("Cannot stat watched file: %s", exc, extra={"path": str(self._path)})
            return None


__all__ = ["ChangeCallback", "ChangeDetector"]
