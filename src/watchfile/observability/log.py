"""Event log — the shared record of what every watch loop did.

A bounded ring buffer of ``WatchEvent`` objects. The stats endpoint reads it
two ways: recent push profiles for latency figures, and per-connection
summaries keyed by client id.

Thread Safety:
    All access goes through a ``threading.Lock``.  Loops on any thread may
    append while the endpoint reads.

"""

import threading
from collections import deque
from typing import Any

from watchfile.observability.events import (
    ChangeSkipped,
    PayloadPushed,
    SourceError,
    WatchEvent,
)


def _event_path(event: object) -> str:
    return getattr(event, "path", None) or getattr(event, "trigger_path", None) or ""


class EventLog:
    """Bounded event store.

    When ``max_events`` is reached the oldest events are dropped.

    Args:
        max_events: Maximum number of events to retain.

    """

    __slots__ = ("_events", "_lock", "_max_events")

    def __init__(self, max_events: int = 10_000) -> None:
        self._max_events = max_events
        self._events: deque[WatchEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def append(self, event: WatchEvent) -> None:
        with self._lock:
            self._events.append(event)

    def _snapshot(self) -> list[WatchEvent]:
        with self._lock:
            return list(self._events)

    def query(
        self,
        *,
        event_type: type | None = None,
        path: str | None = None,
        client_id: str | None = None,
        limit: int = 100,
    ) -> list[WatchEvent]:
        """Return matching events, most recent first.

        Args:
            event_type: Only events of this type.
            path: Only events whose path contains this substring.
            client_id: Only events of this connection.
            limit: Maximum number of events to return.

        """
        results: list[WatchEvent] = []
        for event in reversed(self._snapshot()):
            if len(results) >= limit:
                break
            if event_type is not None and not isinstance(event, event_type):
                continue
            if path is not None and path not in _event_path(event):
                continue
            if client_id is not None and getattr(event, "client_id", None) != client_id:
                continue
            results.append(event)
        return results

    def client_summary(self, client_id: str) -> dict[str, Any]:
        """Counts of pushes, skips and watch errors for one connection.

        ``last_mtime_ns`` is the file version most recently delivered to the
        client, or None before the first push.

        """
        pushed = skipped = errors = 0
        last_mtime_ns: int | None = None
        skip_reasons: dict[str, int] = {}
        for event in self._snapshot():
            if getattr(event, "client_id", None) != client_id:
                continue
            if isinstance(event, PayloadPushed):
                pushed += 1
                last_mtime_ns = event.mtime_ns
            elif isinstance(event, ChangeSkipped):
                skipped += 1
                skip_reasons[event.reason] = skip_reasons.get(event.reason, 0) + 1
            elif isinstance(event, SourceError):
                errors += 1
        return {
            "pushed": pushed,
            "skipped": skipped,
            "skip_reasons": skip_reasons,
            "source_errors": errors,
            "last_mtime_ns": last_mtime_ns,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def stats(self) -> dict[str, Any]:
        """Event totals by type."""
        by_type: dict[str, int] = {}
        events = self._snapshot()
        for event in events:
            name = type(event).__name__
            by_type[name] = by_type.get(name, 0) + 1
        return {
            "total": len(events),
            "max_events": self._max_events,
            "by_type": by_type,
        }
