"""Reactive layer — per-connection watch loops and push delivery.

Each streaming connection gets a PushSession and a WatchSupervisor that
drives change detection, rendering and delivery for that connection only.
"""

from watchfile.reactive.registry import ConnectionRegistry, WatchConnection
from watchfile.reactive.session import PushSession
from watchfile.reactive.supervisor import WatchSupervisor

__all__ = [
    "ConnectionRegistry",
    "PushSession",
    "WatchConnection",
    "WatchSupervisor",
]
