"""Connection registry — the live watch loops of one server process.

Every streaming connection registers its supervisor task here while it runs.
The registry does not route payloads (each loop pushes to its own session);
it exists so the server can report live connections and cancel every loop on
shutdown.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from watchfile.reactive.supervisor import WatchSupervisor


@dataclass(frozen=True, slots=True)
class WatchConnection:
    """A connected streaming client and the task running its watch loop.

    Attributes:
        client_id: Unique identifier for this connection.
        supervisor: The connection's watch loop.
        task: The asyncio task running ``supervisor.run()``.

    """

    client_id: str
    supervisor: WatchSupervisor = field(compare=False, hash=False)
    task: asyncio.Task[None] = field(compare=False, hash=False)


class ConnectionRegistry:
    """Tracks running watch loops.

    Thread-safe: connection map protected by a lock.

    """

    def __init__(self) -> None:
        self._connections: dict[str, WatchConnection] = {}
        self._lock = threading.Lock()

    @property
    def connection_count(self) -> int:
        """Number of live streaming connections."""
        with self._lock:
            return len(self._connections)

    def start(self, supervisor: WatchSupervisor) -> WatchConnection:
        """Spawn ``supervisor.run()`` as a task and register it.

        When the task finishes, even if it was cancelled before it ever ran,
        the session is closed and the connection unregisters itself.

        """
        client_id = supervisor.session.client_id
        task = asyncio.create_task(supervisor.run(), name=f"watchfile-watch:{client_id}")
        conn = WatchConnection(client_id=client_id, supervisor=supervisor, task=task)
        with self._lock:
            self._connections[client_id] = conn
        task.add_done_callback(lambda _t: self._finished(conn))
        return conn

    def _finished(self, conn: WatchConnection) -> None:
        conn.supervisor.session.close()
        self.unregister(conn)

    def unregister(self, conn: WatchConnection) -> None:
        """Remove a connection (no-op if already gone)."""
        with self._lock:
            if self._connections.get(conn.client_id) is conn:
                del self._connections[conn.client_id]

    def get_connections(self) -> frozenset[WatchConnection]:
        """Snapshot of live connections (no lock held on return)."""
        with self._lock:
            return frozenset(self._connections.values())

    async def cancel_all(self) -> int:
        """Cancel every watch loop and wait for their cleanup.

        Returns:
            Number of loops that were cancelled.

        """
        conns = self.get_connections()
        tasks = [conn.task for conn in conns if not conn.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)
        return len(tasks)
