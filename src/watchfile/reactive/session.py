"""Push session — one live streaming connection to a browser.

The session sits between a connection's watch loop (the sender) and the
framework's event stream (the transport, which iterates ``frames()``). There
is no outbox: ``send`` hands over a single payload and returns only once the
transport has taken it and asked for the next one, so the order of ``send``
calls is the order the client sees.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import TYPE_CHECKING, Any

from watchfile._errors import SessionClosed

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable


class PushSession:
    """Delivery channel to one connected client.

    Args:
        client_id: Identifier used in logs and the connection registry.
            A random one is generated when omitted.

    """

    __slots__ = ("_closed", "_handoff", "_sent", "client_id")

    def __init__(self, client_id: str | None = None) -> None:
        self.client_id = client_id or uuid.uuid4().hex[:12]
        self._handoff: asyncio.Queue[str] = asyncio.Queue(maxsize=1)
        self._closed = asyncio.Event()
        self._sent = 0

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def sent_count(self) -> int:
        """Payloads the transport has taken from this session."""
        return self._sent

    async def send(self, markup: str) -> None:
        """Deliver one complete payload to the client.

        Raises:
            SessionClosed: If the connection is closed, before or during delivery.

        """
        if self.closed:
            raise SessionClosed(self.client_id)
        await self._until_closed(self._handoff.put(markup))
        await self._until_closed(self._handoff.join())
        self._sent += 1

    async def frames(self) -> AsyncIterator[str]:
        """Transport side: yield payloads in the order they were sent.

        Closing this generator (client disconnect, task cancellation) closes
        the session, which makes any pending or later ``send`` fail.

        """
        try:
            while True:
                markup = await self._until_closed(self._handoff.get())
                yield markup
                self._handoff.task_done()
        except SessionClosed:
            return
        finally:
            self.close()

    def close(self) -> None:
        """Mark the connection closed. Idempotent."""
        self._closed.set()

    async def _until_closed(self, awaitable: Awaitable[Any]) -> Any:
        """Await ``awaitable`` unless the session closes first."""
        waiter = asyncio.ensure_future(awaitable)
        closing = asyncio.ensure_future(self._closed.wait())
        try:
            done, _ = await asyncio.wait(
                {waiter, closing}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            closing.cancel()
            if not waiter.done():
                waiter.cancel()
        if waiter in done:
            return waiter.result()
        raise SessionClosed(self.client_id)
