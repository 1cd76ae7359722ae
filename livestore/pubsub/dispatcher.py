"""
Broadcast Dispatcher Module

Fans one value update out to every subscriber of its key.
"""

import logging
from typing import Any

from ..protocol.commands import Response
from ..protocol.parser import ProtocolParser
from .registry import SubscriptionRegistry

logger = logging.getLogger(__name__)


class BroadcastDispatcher:
    """
    Delivers ``{key, value}`` notifications to a key's subscribers.

    The record is encoded once per publish and queued on each subscriber
    independently. A failed delivery is logged and skipped; it neither
    stops delivery to the others nor touches the registry, since cleanup
    belongs to the connection's own close path.
    """

    def __init__(self, registry: SubscriptionRegistry, parser: ProtocolParser = None):
        self.registry = registry
        self.parser = parser if parser is not None else ProtocolParser()
        self._published = 0
        self._failed = 0

    def publish(self, key: str, value: Any) -> int:
        """
        Notify every current subscriber of ``key``.

        Args:
            key: The key that changed
            value: Its new value

        Returns:
            Number of connections the notification was queued for
        """
        subscribers = self.registry.subscribers_of(key)
        if not subscribers:
            return 0

        payload = self.parser.format_response(Response.update(key, value))
        delivered = 0
        for connection in subscribers:
            try:
                connection.deliver(payload)
            except Exception as exc:
                self._failed += 1
                logger.warning(f"[{connection.id}] Failed to deliver update for {key!r}: {exc}")
                continue
            delivered += 1

        self._published += delivered
        return delivered

    def get_stats(self) -> dict:
        return {
            "published": self._published,
            "failed": self._failed,
        }
