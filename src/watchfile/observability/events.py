"""Event model for watch-loop observability.

Every per-connection watch loop reports what it did through these events:
when it started, each payload pushed, each change that produced no payload,
subscription failures, and why it stopped.

All events are frozen dataclasses with:
- ``timestamp_ns``: Monotonic nanosecond timestamp
- Descriptive fields for the specific event type

Thread Safety:
    All events are frozen (immutable) and safe to share across threads.

"""

import time
from dataclasses import dataclass
from typing import Literal


# ---------------------------------------------------------------------------
# Connection lifecycle events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class WatchStarted:
    """A connection's watch loop began watching.

    Attributes:
        client_id: The streaming connection.
        path: Absolute path of the watched file.
        target_exists: False if the loop starts idle, waiting for the file.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    client_id: str
    path: str
    target_exists: bool
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class WatchStopped:
    """A connection's watch loop terminated.

    Attributes:
        client_id: The streaming connection.
        path: Absolute path of the watched file.
        reason: ``peer_closed``, ``source_failed`` or ``cancelled``.
        payloads_sent: Payloads delivered over the connection's lifetime.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    client_id: str
    path: str
    reason: Literal["peer_closed", "source_failed", "cancelled"]
    payloads_sent: int
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Change handling events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PayloadPushed:
    """Rendered markup was delivered to a client.

    Attributes:
        client_id: The receiving connection.
        path: Watched file path.
        mtime_ns: Modification time of the version that was read.
        size: Length of the rendered markup in characters.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    client_id: str
    path: str
    mtime_ns: int
    size: int
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class ChangeSkipped:
    """A significant change produced no payload.

    Attributes:
        client_id: The connection whose loop skipped the change.
        path: Watched file path.
        reason: ``read_failed`` (retried on the next change), ``empty``
            (suppressed) or ``render_failed`` (dropped).
        detail: Error text, empty when not applicable.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    client_id: str
    path: str
    reason: Literal["read_failed", "empty", "render_failed"]
    detail: str
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class SourceError:
    """The filesystem-watch subscription reported a failure.

    Attributes:
        client_id: The affected connection.
        path: Watched file path.
        error: Error text.
        fatal: True when the failure ended the connection's loop.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    client_id: str
    path: str
    error: str
    fatal: bool
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Profiling
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PushProfile:
    """Per-stage timing for one change-to-push cycle.

    Attributes:
        trigger_path: Watched file path.
        read_ms: Time reading the file.
        render_ms: Time rendering markdown.
        send_ms: Time until the transport took the payload.
        total_ms: Wall time for the whole cycle.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    trigger_path: str
    read_ms: float
    render_ms: float
    send_ms: float
    total_ms: float
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Union type
# ---------------------------------------------------------------------------

type WatchEvent = (
    WatchStarted
    | WatchStopped
    | PayloadPushed
    | ChangeSkipped
    | SourceError
    | PushProfile
)


def now_ns() -> int:
    """Return the current monotonic clock value in nanoseconds."""
    return time.monotonic_ns()
