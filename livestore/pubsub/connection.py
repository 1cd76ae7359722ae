"""
Connection Module

A ``Connection`` is the identity the subscription registry tracks and the
target the dispatcher delivers to. Each connection owns an outbound queue
drained by its own sender task, so a slow or stalled peer only ever delays
itself.

Transports subclass it and implement ``_write()``.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class Connection:
    """
    Base class for a client connection.

    Lifecycle:
        1. The transport creates the connection and starts ``run_sender()``
           as a task.
        2. ``deliver()`` enqueues encoded records without awaiting.
        3. ``close()`` stops accepting records; the sender flushes what is
           already queued and exits.

    Connections hash by identity, which is what the registry relies on.

    Attributes:
        id: Short unique identifier used in logs
        peer: Remote address description, if known
    """

    def __init__(self, peer: Any = None):
        self.id = f"C-{uuid.uuid4().hex[:8]}"
        self.peer = peer
        self._outbox: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        self._closed = False
        self._delivered = 0
        self._written = 0

    @property
    def closed(self) -> bool:
        """True once the connection stopped accepting records."""
        return self._closed

    def deliver(self, data: str) -> None:
        """
        Queue one encoded record for this connection.

        Raises:
            ConnectionError: If the connection is already closed
        """
        if self._closed:
            raise ConnectionError(f"connection {self.id} is closed")
        self._outbox.put_nowait(data)
        self._delivered += 1

    async def run_sender(self) -> None:
        """Write queued records in order until closed or a write fails."""
        while True:
            data = await self._outbox.get()
            if data is None:
                break
            try:
                await self._write(data)
            except Exception as exc:
                logger.warning(f"[{self.id}] Send failed, dropping outbound queue: {exc}")
                self._closed = True
                break
            self._written += 1

    def close(self) -> None:
        """Stop accepting records. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._outbox.put_nowait(None)

    async def _write(self, data: str) -> None:
        """Send one encoded record to the peer."""
        raise NotImplementedError

    def get_stats(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "peer": str(self.peer),
            "closed": self._closed,
            "delivered": self._delivered,
            "written": self._written,
            "pending": self._outbox.qsize(),
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} peer={self.peer}>"
