"""File watcher — detects modifications of the single previewed file.

Each streaming connection owns one ChangeDetector. The detector polls the
target's parent directory with watchfiles (polling is forced so that
metadata-only edits and editor rename/replace saves are reported), keeps only
notifications for the target path, and hands them to the connection's loop
through a bounded asyncio queue.

A notification is *significant* only when the file exists and its
modification timestamp has moved past the target's watermark. Detection is
timestamp-based: rewriting identical content still counts as a change.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from watchfile._errors import NotificationSourceError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

# Max time watchfiles groups a burst of changes into one batch.
_DEBOUNCE_MS = 300
_STEP_MS = 50


def _mtime_ns(path: Path) -> int | None:
    """Return the modification time of ``path`` in nanoseconds, or None if absent."""
    try:
        return path.stat().st_mtime_ns
    except OSError:
        return None


@dataclass(slots=True)
class WatchTarget:
    """The watched file and the last modification time acted upon.

    Attributes:
        path: Absolute path to the watched file.
        watermark: ``st_mtime_ns`` of the last successfully pushed version,
            or of the file at watch start. None while the file has never
            been seen.

    """

    path: Path
    watermark: int | None = None

    @classmethod
    def capture(cls, path: str | Path) -> WatchTarget:
        """Create a target with its watermark set to the file's current mtime."""
        resolved = Path(path).resolve()
        return cls(path=resolved, watermark=_mtime_ns(resolved))

    @property
    def exists(self) -> bool:
        return self.path.is_file()

    def current_mtime(self) -> int | None:
        return _mtime_ns(self.path)

    def advanced(self) -> int | None:
        """Return the current mtime if it is newer than the watermark, else None."""
        mtime = self.current_mtime()
        if mtime is None:
            return None
        if self.watermark is not None and mtime <= self.watermark:
            return None
        return mtime

    def commit(self, mtime: int) -> None:
        """Advance the watermark. Never moves it backwards."""
        if self.watermark is None or mtime > self.watermark:
            self.watermark = mtime


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """A raw notification from the filesystem layer.

    Attributes:
        paths: Affected paths (only ever the watched file).
        error: Set when the watch subscription itself failed.

    """

    paths: tuple[Path, ...] = ()
    error: BaseException | None = None


class ChangeDetector:
    """Per-connection watch on a single file.

    Use as an async context manager; leaving the block stops the watch and
    releases the underlying notifier. A detector cannot be restarted.

    The watchfiles subscription runs in a background task that pushes
    ``ChangeEvent`` objects onto a bounded queue. When the queue is full the
    task waits, and watchfiles keeps accumulating changes into its next
    batch, so nothing is dropped.

    Subscription failures are reported as error events. After ``max_errors``
    of them in a row the detector gives up and iteration ends with
    ``NotificationSourceError``. A subscription that stayed up for a full
    poll interval breaks the run. A missing parent directory is not a
    failure: the detector idles until it exists.

    Args:
        target: The file to watch.
        poll_interval_ms: Polling interval handed to watchfiles.
        capacity: Maximum number of pending events.
        max_errors: Consecutive subscription failures tolerated.
        retry_delay: Seconds to wait before resubscribing after a failure
            (defaults to the poll interval).

    """

    def __init__(
        self,
        target: WatchTarget,
        *,
        poll_interval_ms: int = 1000,
        capacity: int = 16,
        max_errors: int = 3,
        retry_delay: float | None = None,
    ) -> None:
        self._target = target
        self._poll_interval_ms = poll_interval_ms
        self._capacity = capacity
        self._max_errors = max_errors
        self._retry_delay = retry_delay if retry_delay is not None else poll_interval_ms / 1000
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=capacity)
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._failure: NotificationSourceError | None = None

    @property
    def target(self) -> WatchTarget:
        return self._target

    @property
    def is_running(self) -> bool:
        """Whether the watch subscription task is active."""
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> int:
        """Number of events waiting to be consumed."""
        return self._queue.qsize()

    async def __aenter__(self) -> ChangeDetector:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def start(self) -> None:
        """Start the watch subscription in a background task."""
        if self._task is not None:
            msg = "ChangeDetector cannot be restarted"
            raise RuntimeError(msg)
        self._task = asyncio.create_task(
            self._pump(), name=f"watchfile-detector:{self._target.path.name}"
        )

    async def close(self) -> None:
        """Stop watching and wait for the subscription task to exit."""
        self._stop_event.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.wait([self._task])

    async def changes(self) -> AsyncIterator[ChangeEvent]:
        """Async iterator over raw ChangeEvents, including error events.

        Ends when the detector is closed. Raises ``NotificationSourceError``
        if the subscription was abandoned after repeated failures.

        """
        if self._task is None:
            msg = "ChangeDetector.start() must be called before iterating"
            raise RuntimeError(msg)

        task = self._task
        while True:
            if task.done():
                while not self._queue.empty():
                    yield self._queue.get_nowait()
                break
            getter = asyncio.ensure_future(self._queue.get())
            try:
                done, _ = await asyncio.wait(
                    {getter, task}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                if not getter.done():
                    getter.cancel()
            if getter in done:
                yield getter.result()

        if self._failure is not None:
            raise self._failure

    async def significant_changes(
        self,
        on_error: Callable[[BaseException], None] | None = None,
    ) -> AsyncIterator[int]:
        """Yield the new mtime each time the watched file has advanced.

        Events for an absent file, or whose mtime has not passed the target's
        watermark, are skipped. Error events are handed to ``on_error``.
        The watermark itself is only moved by the consumer via
        ``WatchTarget.commit``.

        """
        async for event in self.changes():
            if event.error is not None:
                if on_error is not None:
                    on_error(event.error)
                continue
            mtime = self._target.advanced()
            if mtime is not None:
                yield mtime

    async def _idle(self, seconds: float) -> None:
        """Sleep for ``seconds`` or until the detector is closed."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), seconds)
        except TimeoutError:
            pass

    async def _pump(self) -> None:
        """Background task: run watchfiles and push events to the queue.

        While the target's directory does not exist there is nothing to
        subscribe to; the task idles and checks again every poll interval.
        Once the directory is back, one synthetic event is queued so a file
        created before the subscription started is not missed.

        """
        from watchfiles import awatch

        target = self._target.path
        loop = asyncio.get_running_loop()
        healthy_after = self._poll_interval_ms / 1000
        errors = 0
        resync = False

        while not self._stop_event.is_set():
            if not target.parent.is_dir():
                resync = True
                await self._idle(self._poll_interval_ms / 1000)
                continue
            if resync:
                resync = False
                await self._queue.put(ChangeEvent(paths=(target,)))

            subscribed_at = loop.time()
            try:
                async for raw_changes in awatch(
                    target.parent,
                    watch_filter=None,
                    stop_event=self._stop_event,
                    debounce=_DEBOUNCE_MS,
                    step=_STEP_MS,
                    force_polling=True,
                    poll_delay_ms=self._poll_interval_ms,
                    recursive=False,
                ):
                    errors = 0
                    paths = tuple(
                        Path(path_str)
                        for _change, path_str in raw_changes
                        if Path(path_str) == target
                    )
                    if paths:
                        await self._queue.put(ChangeEvent(paths=paths))
            except Exception as exc:  # noqa: BLE001
                if not target.parent.is_dir():
                    # Directory removed under the subscription: wait for it.
                    continue
                # A subscription that ran for a full poll interval was healthy.
                if loop.time() - subscribed_at >= healthy_after:
                    errors = 0
                errors += 1
                await self._queue.put(ChangeEvent(error=exc))
                if errors >= self._max_errors:
                    msg = (
                        f"Watching {target} failed {errors} times in a row, "
                        f"giving up: {exc}"
                    )
                    self._failure = NotificationSourceError(msg)
                    return
                await self._idle(self._retry_delay)
