"""Watch collector — the recording API used by per-connection watch loops.

Also implements Pounce's ``LifecycleCollector`` protocol (duck-typed) so it
can be passed to the server as its lifecycle collector.

Each method builds the matching frozen event and appends it to the shared
``EventLog``. Failures worth a human's attention are also printed to stderr.

Thread Safety:
    The collector delegates to ``EventLog`` which is internally locked.
    Safe to share between every connection's loop.

"""

from __future__ import annotations

import sys
from typing import Any

from watchfile.observability.events import (
    ChangeSkipped,
    PayloadPushed,
    SourceError,
    WatchStarted,
    WatchStopped,
    now_ns,
)
from watchfile.observability.log import EventLog


class WatchCollector:
    """Event recorder shared by all watch loops of a server.

    Args:
        log: The EventLog to store events in.
        echo: Print errors and lifecycle lines to stderr.

    """

    __slots__ = ("_echo", "_log")

    def __init__(self, log: EventLog | None = None, *, echo: bool = True) -> None:
        self._log = log if log is not None else EventLog()
        self._echo = echo

    @property
    def log(self) -> EventLog:
        """The underlying event log."""
        return self._log

    def _print(self, line: str) -> None:
        if self._echo:
            print(f"  {line}", file=sys.stderr)

    # ----- Pounce LifecycleCollector protocol -----

    def record(self, event: Any) -> None:
        """Record a Pounce connection lifecycle event.

        Implements the ``LifecycleCollector.record()`` protocol so HTTP
        connection events share the log with watch events.

        """
        self._log.append(event)

    # ----- Lifecycle -----

    def record_started(self, client_id: str, path: str, *, target_exists: bool) -> None:
        """Record a watch loop entering the watching state."""
        self._log.append(
            WatchStarted(
                client_id=client_id,
                path=path,
                target_exists=target_exists,
                timestamp_ns=now_ns(),
            )
        )
        if not target_exists:
            self._print(f"[{client_id}] waiting for {path} to appear")

    def record_stopped(self, client_id: str, path: str, *, reason: str, payloads_sent: int) -> None:
        """Record a watch loop terminating."""
        self._log.append(
            WatchStopped(
                client_id=client_id,
                path=path,
                reason=reason,  # type: ignore[arg-type]
                payloads_sent=payloads_sent,
                timestamp_ns=now_ns(),
            )
        )

    # ----- Change handling -----

    def record_push(self, client_id: str, path: str, *, mtime_ns: int, size: int) -> None:
        """Record a payload delivered to a client."""
        self._log.append(
            PayloadPushed(
                client_id=client_id,
                path=path,
                mtime_ns=mtime_ns,
                size=size,
                timestamp_ns=now_ns(),
            )
        )

    def record_skip(self, client_id: str, path: str, *, reason: str, detail: str = "") -> None:
        """Record a significant change that produced no payload."""
        self._log.append(
            ChangeSkipped(
                client_id=client_id,
                path=path,
                reason=reason,  # type: ignore[arg-type]
                detail=detail,
                timestamp_ns=now_ns(),
            )
        )
        if reason == "render_failed":
            self._print(f"[{client_id}] Render error: {detail}")

    def record_source_error(
        self,
        client_id: str,
        path: str,
        error: BaseException | str,
        *,
        fatal: bool = False,
    ) -> None:
        """Record a failure of the filesystem-watch subscription."""
        self._log.append(
            SourceError(
                client_id=client_id,
                path=path,
                error=str(error),
                fatal=fatal,
                timestamp_ns=now_ns(),
            )
        )
        label = "Watch failed" if fatal else "Watch error"
        self._print(f"[{client_id}] {label}: {error}")
