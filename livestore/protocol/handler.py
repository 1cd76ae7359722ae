"""
Protocol Handler Module

Interprets inbound commands against the object store, the persistence
manager, the subscription registry and the broadcast dispatcher.

Ordering:
    A set runs store-set -> persist -> publish under a lock for its key,
    so for any one key the record on disk and the notifications seen by
    subscribers follow the order in which sets were accepted. The disk
    write runs in a worker thread; sets on other keys, gets and
    subscriptions keep flowing while it is in progress.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Union

from ..cache.persistence import PersistenceManager
from ..cache.store import ObjectStore
from ..pubsub.connection import Connection
from ..pubsub.dispatcher import BroadcastDispatcher
from ..pubsub.registry import SubscriptionRegistry
from .commands import Action, Command, Response
from .parser import ProtocolParser

logger = logging.getLogger(__name__)


class ProtocolHandler:
    """
    Protocol state machine shared by every transport.

    The handler keeps no per-connection state of its own; subscriptions
    live in the registry and values in the store.

    Usage:
        handler = ProtocolHandler.from_cache_dir(".cache")
        handler.restore()
        await handler.handle_message(connection, '{"action": "get", "key": "score"}')

    Attributes:
        store: The ObjectStore holding current values
        persistence: The PersistenceManager mirroring values to disk
        registry: The SubscriptionRegistry
        dispatcher: The BroadcastDispatcher used by set
        parser: The ProtocolParser for decoding and encoding records
    """

    def __init__(
            self,
            store: ObjectStore = None,
            persistence: PersistenceManager = None,
            registry: SubscriptionRegistry = None,
            dispatcher: BroadcastDispatcher = None,
            parser: ProtocolParser = None,
    ):
        self.store = store if store is not None else ObjectStore()
        self.persistence = persistence if persistence is not None else PersistenceManager()
        self.registry = registry if registry is not None else SubscriptionRegistry()
        self.parser = parser if parser is not None else ProtocolParser()
        self.dispatcher = (
            dispatcher if dispatcher is not None
            else BroadcastDispatcher(self.registry, self.parser)
        )

        self._key_locks: Dict[str, asyncio.Lock] = {}
        self._total_requests = 0
        self._invalid_requests = 0

    @classmethod
    def from_cache_dir(cls, cache_dir: Union[str, Path]) -> "ProtocolHandler":
        """Build a handler with fresh components persisting under ``cache_dir``."""
        return cls(persistence=PersistenceManager(cache_dir))

    def restore(self) -> int:
        """
        Load persisted records into the store.

        Must run before the transports start taking traffic.

        Returns:
            Number of keys restored
        """
        return self.store.load(self.persistence.load())

    async def handle_message(self, connection: Connection, data: Union[str, bytes]) -> None:
        """
        Parse and execute one inbound record from ``connection``.

        Replies (if any) are queued on ``connection``. Malformed records
        are answered with ``{"error": "Invalid message format"}`` and touch
        nothing else.
        """
        command = self.parser.parse_request(data)
        self._total_requests += 1

        if not command.is_valid:
            self._invalid_requests += 1
            logger.warning(f"[{connection.id}] Invalid message: {command.raw[:200]!r}")
            self.reply(connection, Response.invalid_format())
            return

        await self.execute(connection, command)

    async def execute(self, connection: Connection, command: Command) -> None:
        """
        Execute a valid command on behalf of ``connection``.

        Args:
            connection: The requesting connection
            command: A command whose ``is_valid`` is True
        """
        key = command.key

        if command.action == Action.SUBSCRIBE:
            self.registry.subscribe(connection, key)
            logger.debug(f"[{connection.id}] Client subscribed to: {key}")
            if self.store.exists(key):
                self.reply(connection, Response.update(key, self.store.get(key)))
            return

        if command.action == Action.UNSUBSCRIBE:
            self.registry.unsubscribe(connection, key)
            logger.debug(f"[{connection.id}] Client unsubscribed from: {key}")
            return

        if command.action == Action.SET:
            await self.apply_set(key, command.value)
            logger.debug(f"[{connection.id}] Set {key}")
            return

        if command.action == Action.GET:
            self.reply(connection, self.lookup(key))
            return

        self.reply(connection, Response.invalid_format())

    async def apply_set(self, key: str, value: Any) -> Response:
        """
        Store, persist and publish a new value for ``key``.

        A persistence failure is logged by the persistence manager and does
        not undo the in-memory update or suppress the broadcast.

        Returns:
            The ``{key, value}`` record, for request/response callers
        """
        async with self._lock_for(key):
            self.store.set(key, value)
            await asyncio.to_thread(self.persistence.persist, key, value)
            self.dispatcher.publish(key, value)
        return Response.update(key, value)

    def lookup(self, key: str) -> Response:
        """Return the ``{key, value}`` record for ``key`` (value None if never set)."""
        return Response.update(key, self.store.get(key))

    def disconnect(self, connection: Connection) -> int:
        """
        Clean up after a connection terminated.

        Transports call this exactly once per connection, whatever closed
        it. It closes the connection's outbound queue and removes it from
        every subscriber set.

        Returns:
            Number of subscriptions removed
        """
        connection.close()
        return self.registry.drop_connection(connection)

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._key_locks.get(key)
        if lock is None:
            lock = self._key_locks[key] = asyncio.Lock()
        return lock

    def reply(self, connection: Connection, response: Response) -> None:
        """Queue one outbound record on a connection, logging if it is closed."""
        try:
            connection.deliver(self.parser.format_response(response))
        except ConnectionError as exc:
            logger.warning(f"[{connection.id}] Reply dropped: {exc}")

    def get_stats(self) -> Dict[str, Any]:
        """
        Get handler statistics.

        Returns:
            Dictionary with request counters and the stats of every
            component the handler owns.
        """
        return {
            "total_requests": self._total_requests,
            "invalid_requests": self._invalid_requests,
            "store_stats": self.store.get_stats(),
            "registry_stats": self.registry.get_stats(),
            "dispatcher_stats": self.dispatcher.get_stats(),
            "persistence_stats": self.persistence.get_stats(),
        }
