"""Push profiler — measures change-to-push latency per connection.

Provides a lightweight profiler that records per-stage timing for each
push cycle and emits ``PushProfile`` events to the ``EventLog``.

Thread Safety:
    One profiler per watch loop (single-writer).
    Aggregate queries are protected by the underlying ``EventLog`` lock.

"""

from __future__ import annotations

import sys
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from watchfile.observability.events import PushProfile, now_ns

if TYPE_CHECKING:
    from watchfile.observability.log import EventLog

_STAGES = ("read", "render", "send")


@dataclass(slots=True)
class _Timer:
    """Accumulates timing for a named stage."""

    name: str
    _start: float = 0.0
    elapsed_ms: float = 0.0

    def start(self) -> None:
        self._start = time.perf_counter()

    def stop(self) -> None:
        if self._start > 0:
            self.elapsed_ms = (time.perf_counter() - self._start) * 1000
            self._start = 0.0

    def reset(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0


class PushProfiler:
    """Records per-stage timing for a single push cycle.

    Usage::

        profiler = PushProfiler(event_log)

        profiler.begin("/notes/today.md")
        profiler.start("read")
        # ... read ...
        profiler.stop("read")
        profiler.start("render")
        # ... render ...
        profiler.stop("render")
        profiler.finish(size=len(html))

    After ``finish()``, a ``PushProfile`` event is appended to the log
    and a one-line summary is printed to stderr.

    """

    __slots__ = ("_log", "_t0", "_timers", "_trigger_path", "_verbose")

    def __init__(self, log: EventLog, *, verbose: bool = True) -> None:
        self._log = log
        self._verbose = verbose
        self._trigger_path = ""
        self._t0 = 0.0
        self._timers = {name: _Timer(name=name) for name in _STAGES}

    def begin(self, trigger_path: str) -> None:
        """Start profiling a new push cycle.

        Timers left running by an abandoned cycle are discarded.

        """
        self._trigger_path = trigger_path
        self._t0 = time.perf_counter()
        for timer in self._timers.values():
            timer.reset()

    def start(self, stage: str) -> None:
        """Start timing a named stage."""
        timer = self._timers.get(stage)
        if timer is not None:
            timer.start()

    def stop(self, stage: str) -> None:
        """Stop timing a named stage."""
        timer = self._timers.get(stage)
        if timer is not None:
            timer.stop()

    def finish(self, *, size: int = 0) -> PushProfile:
        """Finish profiling and emit the ``PushProfile`` event.

        Returns the profile for testing / inspection.

        """
        total_ms = (time.perf_counter() - self._t0) * 1000 if self._t0 > 0 else 0.0

        profile = PushProfile(
            trigger_path=self._trigger_path,
            read_ms=self._timers["read"].elapsed_ms,
            render_ms=self._timers["render"].elapsed_ms,
            send_ms=self._timers["send"].elapsed_ms,
            total_ms=total_ms,
            timestamp_ns=now_ns(),
        )

        self._log.append(profile)

        if self._verbose:
            self._print_summary(profile, size)

        return profile

    def _print_summary(self, p: PushProfile, size: int) -> None:
        """Print a one-line timing summary to stderr."""
        parts = p.trigger_path.replace("\\", "/").rsplit("/", 1)
        name = parts[-1] if parts else p.trigger_path

        stages = (
            f"read: {p.read_ms:.0f}ms, "
            f"render: {p.render_ms:.0f}ms, "
            f"send: {p.send_ms:.0f}ms"
        )
        print(
            f"  [{p.total_ms:.0f}ms] {name} -> pushed {size} chars ({stages})",
            file=sys.stderr,
        )


def compute_aggregate_stats(
    log: EventLog,
    *,
    limit: int = 100,
) -> dict:
    """Compute aggregate latency statistics from recent ``PushProfile`` events.

    Returns a dict with p50, p95, p99, and per-stage averages.

    """
    profiles = log.query(event_type=PushProfile, limit=limit)
    if not profiles:
        return {"count": 0}

    totals = sorted(p.total_ms for p in profiles)
    count = len(totals)

    def percentile(data: list[float], pct: float) -> float:
        idx = int(len(data) * pct / 100)
        return data[min(idx, len(data) - 1)]

    return {
        "count": count,
        "total_ms": {
            "p50": round(percentile(totals, 50), 1),
            "p95": round(percentile(totals, 95), 1),
            "p99": round(percentile(totals, 99), 1),
            "min": round(totals[0], 1),
            "max": round(totals[-1], 1),
        },
        "avg_by_stage_ms": {
            stage: round(sum(getattr(p, f"{stage}_ms") for p in profiles) / count, 1)
            for stage in _STAGES
        },
    }
