"""Shared test fixtures for watchfile."""

from __future__ import annotations

import asyncio
import os
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

from watchfile.content.watcher import ChangeDetector, ChangeEvent, WatchTarget

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from watchfile.reactive.session import PushSession


class ScriptedDetector(ChangeDetector):
    """A ChangeDetector whose raw events are fed by the test.

    Significance filtering is inherited unchanged; only the watchfiles
    subscription is replaced by a queue the test writes to.
    """

    def __init__(self, target: WatchTarget) -> None:
        super().__init__(target)
        self.script: asyncio.Queue[Any] = asyncio.Queue()
        self.started = False
        self.closed = False

    def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self.closed = True

    async def changes(self) -> AsyncIterator[ChangeEvent]:
        while True:
            item = await self.script.get()
            if item is None:
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    def touch(self) -> None:
        """Queue a raw notification for the target path."""
        self.script.put_nowait(ChangeEvent(paths=(self.target.path,)))

    def fail(self, error: BaseException) -> None:
        """Queue an error event (non-fatal)."""
        self.script.put_nowait(ChangeEvent(error=error))

    def abort(self, error: BaseException) -> None:
        """Make iteration raise ``error``."""
        self.script.put_nowait(error)

    def finish(self) -> None:
        """End iteration after the queued events."""
        self.script.put_nowait(None)


class DetectorFactory:
    """Detector factory for WatchSupervisor that keeps the detectors it made."""

    def __init__(self) -> None:
        self.made: list[ScriptedDetector] = []

    def __call__(self, target: WatchTarget) -> ScriptedDetector:
        detector = ScriptedDetector(target)
        self.made.append(detector)
        return detector

    @property
    def last(self) -> ScriptedDetector:
        return self.made[-1]


class MtimeClock:
    """Writes files with strictly increasing, explicit modification times."""

    def __init__(self) -> None:
        self._next_ns = time.time_ns() + 1_000_000_000

    def write(self, path: Path, text: str) -> int:
        """Write ``text`` and stamp a fresh mtime. Returns the mtime in ns."""
        path.write_text(text, encoding="utf-8")
        return self.stamp(path)

    def stamp(self, path: Path) -> int:
        """Advance the file's mtime without touching its content."""
        mtime = self._next_ns
        self._next_ns += 1_000_000_000
        os.utime(path, ns=(mtime, mtime))
        return mtime


async def collect_frames(session: PushSession, into: list[str]) -> None:
    """Act as the transport: take every payload the session delivers."""
    async for markup in session.frames():
        into.append(markup)


async def wait_until(predicate: Any, timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it is truthy or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def clock() -> MtimeClock:
    return MtimeClock()


@pytest.fixture
def detectors() -> DetectorFactory:
    return DetectorFactory()


@pytest.fixture
def md_file(tmp_path: Path, clock: MtimeClock) -> Path:
    """An existing markdown file with an initial heading."""
    path = tmp_path / "notes.md"
    clock.write(path, "# Notes\n")
    return path
