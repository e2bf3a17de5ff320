"""Watch supervisor — the per-connection change-to-push loop.

One WatchSupervisor runs per streaming connection, owning one ChangeDetector
and one PushSession. Connections share nothing: N clients previewing the same
file run N independent loops.

Loop states:

- ``initializing``: resolve the target and capture its baseline mtime.  A
  missing file is fine; the loop idles until it appears.
- ``watching``: for each significant change, read the whole file, render it
  and send it.  A failed read leaves the watermark alone so the next change
  retries; empty content is not pushed; a render failure drops that payload.
- ``terminated``: the detector's subscription is released and the session
  closed.  Reached when the client goes away, the watch subscription fails
  for good, or the task is cancelled.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from watchfile._errors import NotificationSourceError, RenderError, SessionClosed
from watchfile.content.renderer import ContentRenderer
from watchfile.content.watcher import ChangeDetector, WatchTarget

if TYPE_CHECKING:
    from collections.abc import Callable

    from watchfile._types import SkipReason, StopReason, WatchState
    from watchfile.observability.collector import WatchCollector
    from watchfile.observability.profiler import PushProfiler
    from watchfile.reactive.session import PushSession

    type DetectorFactory = Callable[[WatchTarget], ChangeDetector]


class WatchSupervisor:
    """Drives one connection from file change to client push.

    Args:
        path: The file to preview.
        session: The connection's push session.
        renderer: Markdown renderer (a default one is created when omitted).
        detector_factory: Builds the ChangeDetector for the target; defaults
            to a ChangeDetector using the polling/channel settings below.
        collector: Event recorder; no events are recorded when omitted.
        poll_interval_ms: Polling interval for the default detector.
        channel_capacity: Pending-event capacity for the default detector.
        max_source_errors: Subscription failures tolerated by the default detector.
        verbose: Print a timing line per push (requires ``collector``).

    """

    def __init__(
        self,
        path: str | Path,
        session: PushSession,
        *,
        renderer: ContentRenderer | None = None,
        detector_factory: DetectorFactory | None = None,
        collector: WatchCollector | None = None,
        poll_interval_ms: int = 1000,
        channel_capacity: int = 16,
        max_source_errors: int = 3,
        verbose: bool = False,
    ) -> None:
        self._path = Path(path)
        self._session = session
        self._renderer = renderer if renderer is not None else ContentRenderer()
        self._collector = collector
        self._state: WatchState = "initializing"
        self._target: WatchTarget | None = None
        self._stop_reason: StopReason | None = None
        self._profiler: PushProfiler | None = None

        if detector_factory is None:
            def detector_factory(target: WatchTarget) -> ChangeDetector:
                return ChangeDetector(
                    target,
                    poll_interval_ms=poll_interval_ms,
                    capacity=channel_capacity,
                    max_errors=max_source_errors,
                )
        self._detector_factory = detector_factory

        if collector is not None:
            from watchfile.observability.profiler import PushProfiler

            self._profiler = PushProfiler(collector.log, verbose=verbose)

    @property
    def state(self) -> WatchState:
        return self._state

    @property
    def target(self) -> WatchTarget | None:
        """The watch target, available once the loop has started."""
        return self._target

    @property
    def stop_reason(self) -> StopReason | None:
        """Why the loop terminated, or None while it is still running."""
        return self._stop_reason

    @property
    def session(self) -> PushSession:
        return self._session

    async def run(self) -> None:
        """Run the loop until the client disconnects or watching fails.

        Per-connection failures are recorded and end the loop; they never
        propagate. Cancellation runs the same cleanup and is re-raised.

        """
        target = WatchTarget.capture(self._path)
        self._target = target
        path = str(target.path)
        client_id = self._session.client_id
        reason: StopReason = "cancelled"

        try:
            async with self._detector_factory(target) as detector:
                self._state = "watching"
                if self._collector is not None:
                    self._collector.record_started(
                        client_id, path, target_exists=target.watermark is not None
                    )

                async for mtime in detector.significant_changes(self._on_source_error):
                    if not await self._push(target, mtime):
                        reason = "peer_closed"
                        break
        except NotificationSourceError as exc:
            reason = "source_failed"
            if self._collector is not None:
                self._collector.record_source_error(client_id, path, exc, fatal=True)
            else:
                print(f"  Watch failed: {exc}", file=sys.stderr)
        finally:
            if reason == "cancelled" and self._session.closed:
                reason = "peer_closed"
            self._state = "terminated"
            self._stop_reason = reason
            self._session.close()
            if self._collector is not None:
                self._collector.record_stopped(
                    client_id, path, reason=reason, payloads_sent=self._session.sent_count
                )

    def _on_source_error(self, error: BaseException) -> None:
        if self._collector is not None and self._target is not None:
            self._collector.record_source_error(
                self._session.client_id, str(self._target.path), error
            )

    def _skip(self, reason: SkipReason, detail: str = "") -> None:
        if self._collector is not None and self._target is not None:
            self._collector.record_skip(
                self._session.client_id, str(self._target.path), reason=reason, detail=detail
            )

    async def _push(self, target: WatchTarget, mtime: int) -> bool:
        """Read, render and send the current file content.

        Returns False when the client is gone and the loop must stop.

        """
        profiler = self._profiler
        if profiler is not None:
            profiler.begin(str(target.path))
            profiler.start("read")
        try:
            text = await asyncio.to_thread(target.path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            # Likely caught mid-write; the next change retries.
            self._skip("read_failed", str(exc))
            return True
        if profiler is not None:
            profiler.stop("read")

        if not text:
            self._skip("empty")
            return True

        if profiler is not None:
            profiler.start("render")
        try:
            markup = self._renderer.render(text)
        except RenderError as exc:
            # Only a newer version of the file is worth rendering again.
            target.commit(mtime)
            self._skip("render_failed", str(exc))
            return True
        if profiler is not None:
            profiler.stop("render")
            profiler.start("send")

        try:
            await self._session.send(markup)
        except SessionClosed:
            return False

        target.commit(mtime)
        if profiler is not None:
            profiler.stop("send")
            profiler.finish(size=len(markup))
        if self._collector is not None:
            self._collector.record_push(
                self._session.client_id, str(target.path), mtime_ns=mtime, size=len(markup)
            )
        return True
