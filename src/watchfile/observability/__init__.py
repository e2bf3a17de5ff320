"""Observability — what every connection's watch loop did, and how fast.

Events:
- **Lifecycle**: watch started / stopped (with the reason)
- **Changes**: payload pushed, change skipped, watch-subscription errors
- **Profiling**: read / render / send timing per push

All events are frozen dataclasses with nanosecond timestamps, safe for
concurrent production from many connections.

Quick Start:
    >>> from watchfile.observability import WatchCollector, EventLog
    >>> log = EventLog()
    >>> collector = WatchCollector(log)
    >>> # Hand the collector to each WatchSupervisor
    >>> # The stats endpoint summarises collector.log

"""

from watchfile.observability.collector import WatchCollector
from watchfile.observability.events import (
    ChangeSkipped,
    PayloadPushed,
    PushProfile,
    SourceError,
    WatchEvent,
    WatchStarted,
    WatchStopped,
    now_ns,
)
from watchfile.observability.log import EventLog
from watchfile.observability.profiler import PushProfiler, compute_aggregate_stats

__all__ = [
    "ChangeSkipped",
    "EventLog",
    "PayloadPushed",
    "PushProfile",
    "PushProfiler",
    "SourceError",
    "WatchCollector",
    "WatchEvent",
    "WatchStarted",
    "WatchStopped",
    "compute_aggregate_stats",
    "now_ns",
]
