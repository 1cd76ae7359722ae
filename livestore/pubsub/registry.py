"""
Subscription Registry Module

Tracks which connections want notifications for which keys.

Two indexes are kept in step: key -> connections (for fan-out) and
connection -> keys (so a disconnect is one call, not a scan over every
key). Empty sets are pruned from both.

The registry is owned by the event loop: its methods never await, so each
mutation is applied completely before any other coroutine runs, and
``subscribers_of()`` hands out an immutable snapshot.
"""

import logging
from typing import Any, Dict, FrozenSet, Set

from .connection import Connection

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """
    Key <-> connection subscription relation.

    Operations:
    - subscribe: Add a connection to a key's subscriber set (idempotent)
    - unsubscribe: Remove a connection from a key's subscriber set (idempotent)
    - drop_connection: Remove a connection from every subscriber set
    - subscribers_of: Snapshot of a key's subscriber set
    """

    def __init__(self):
        self._subscribers: Dict[str, Set[Connection]] = {}
        self._keys_by_connection: Dict[Connection, Set[str]] = {}

    def subscribe(self, connection: Connection, key: str) -> bool:
        """
        Subscribe a connection to a key.

        Returns:
            True if the subscription is new, False if it already existed
        """
        members = self._subscribers.setdefault(key, set())
        if connection in members:
            return False
        members.add(connection)
        self._keys_by_connection.setdefault(connection, set()).add(key)
        return True

    def unsubscribe(self, connection: Connection, key: str) -> bool:
        """
        Unsubscribe a connection from a key.

        Returns:
            True if a subscription was removed, False if there was none
        """
        members = self._subscribers.get(key)
        if not members or connection not in members:
            return False

        members.discard(connection)
        if not members:
            del self._subscribers[key]

        keys = self._keys_by_connection.get(connection)
        if keys is not None:
            keys.discard(key)
            if not keys:
                del self._keys_by_connection[connection]
        return True

    def drop_connection(self, connection: Connection) -> int:
        """
        Remove a connection from every subscriber set.

        Safe to call for a connection with no subscriptions, and more than
        once.

        Returns:
            Number of subscriptions removed
        """
        keys = self._keys_by_connection.pop(connection, set())
        for key in keys:
            members = self._subscribers.get(key)
            if members is None:
                continue
            members.discard(connection)
            if not members:
                del self._subscribers[key]

        if keys:
            logger.debug(f"[{connection.id}] Dropped {len(keys)} subscriptions")
        return len(keys)

    def subscribers_of(self, key: str) -> FrozenSet[Connection]:
        """Return a snapshot of the connections subscribed to ``key``."""
        return frozenset(self._subscribers.get(key, ()))

    def subscriptions_of(self, connection: Connection) -> FrozenSet[str]:
        """Return a snapshot of the keys ``connection`` is subscribed to."""
        return frozenset(self._keys_by_connection.get(connection, ()))

    def is_subscribed(self, connection: Connection, key: str) -> bool:
        return connection in self._subscribers.get(key, ())

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the registry.

        Returns:
            Dictionary containing:
            - keys_with_subscribers: Keys with at least one subscriber
            - connections: Connections holding at least one subscription
            - subscriptions: Total (connection, key) pairs
        """
        return {
            "keys_with_subscribers": len(self._subscribers),
            "connections": len(self._keys_by_connection),
            "subscriptions": sum(len(members) for members in self._subscribers.values()),
        }
