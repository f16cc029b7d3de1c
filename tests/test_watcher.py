"""Tests for the polling change detector."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

from litewatch.watcher import ChangeDetector


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _set_mtime(path: Path, seconds: int) -> None:
    stamp = seconds * 1_000_000_000
    os.utime(path, ns=(stamp, stamp))


@pytest.mark.anyio
async def test_fires_once_per_mtime_transition(tmp_path: Path) -> None:
    path = tmp_path / "watched.sqlite"
    path.write_bytes(b"seed")
    _set_mtime(path, 1_000)
    calls: list[int] = []
    detector = ChangeDetector(path, lambda: calls.append(1))

    assert await detector.poll() is False
    assert await detector.poll() is False

    _set_mtime(path, 2_000)
    assert await detector.poll() is True
    assert await detector.poll() is False

    _set_mtime(path, 1_500)
    assert await detector.poll() is True
    assert calls == [1, 1]


@pytest.mark.anyio
async def test_async_callbacks_are_awaited(tmp_path: Path) -> None:
    path = tmp_path / "watched.sqlite"
    path.write_bytes(b"seed")
    _set_mtime(path, 1_000)
    seen: list[str] = []

    async def _on_change() -> None:
        await asyncio.sleep(0)
        seen.append("changed")

    detector = ChangeDetector(path, _on_change)
    _set_mtime(path, 2_000)

    assert await detector.poll() is True
    assert seen == ["changed"]


@pytest.mark.anyio
async def test_missing_file_is_not_fatal(tmp_path: Path) -> None:
    path = tmp_path / "later.sqlite"
    calls: list[int] = []
    detector = ChangeDetector(path, lambda: calls.append(1))

    assert await detector.poll() is False

    path.write_bytes(b"seed")
    assert await detector.poll() is True

    path.unlink()
    assert await detector.poll() is False
    assert calls == [1]


@pytest.mark.anyio
async def test_background_loop_reports_changes(tmp_path: Path) -> None:
    path = tmp_path / "watched.sqlite"
    path.write_bytes(b"seed")
    _set_mtime(path, 1_000)
    fired = asyncio.Event()
    detector = ChangeDetector(path, fired.set, poll_interval=0.01)

    detector.start()
    try:
        assert detector.running
        _set_mtime(path, 2_000)
        await asyncio.wait_for(fired.wait(), timeout=2)
    finally:
        detector.stop()

    assert not detector.running


@pytest.mark.anyio
async def test_callback_errors_do_not_stop_polling(tmp_path: Path) -> None:
    path = tmp_path / "watched.sqlite"
    path.write_bytes(b"seed")
    _set_mtime(path, 1_000)
    calls: list[int] = []
    second = asyncio.Event()

    def _on_change() -> None:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        second.set()

    detector = ChangeDetector(path, _on_change, poll_interval=0.01)
    detector.start()
    try:
        _set_mtime(path, 2_000)
        while not calls:
            await asyncio.sleep(0.01)
        _set_mtime(path, 3_000)
        await asyncio.wait_for(second.wait(), timeout=2)
    finally:
        detector.stop()

    assert len(calls) == 2
