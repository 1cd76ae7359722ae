"""
Object Store Module

This module implements the in-memory object store, the single source of
truth for every value the server knows about.

Values are arbitrary JSON-compatible trees (None, bool, int, float, str,
list, dict). The store never inspects them; a ``set`` fully replaces the
previous value for the key. There is no delete and no eviction: the store
grows with the number of distinct keys ever set.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple


class ObjectStore:
    """
    In-memory key -> value mapping with last-write-wins semantics.

    The store is owned by the server's event loop. Every method runs to
    completion without awaiting, so readers always observe a fully applied
    prior ``set`` and never a partial one.

    Operations:
    - set: Insert or replace the value for a key, returning the previous one
    - get: Retrieve the current value for a key
    - exists: Check whether a key has ever been set

    Internal Storage:
        Plain dict, key -> value. A stored ``None`` is a real value (JSON
        null) and is distinct from a key that was never set; use
        ``exists()`` when the difference matters.
    """

    def __init__(self):
        self._store: Dict[str, Any] = {}
        self._total_sets = 0

    def set(self, key: str, value: Any) -> Optional[Any]:
        """
        Insert or replace the value for a key.

        Args:
            key: The key to store
            value: Any JSON-compatible value (not validated)

        Returns:
            The value stored before this call, or None if the key was
            never set
        """
        previous = self._store.get(key)
        self._store[key] = value
        self._total_sets += 1
        return previous

    def get(self, key: str, default: Any = None) -> Any:
        """
        Retrieve the current value for a key.

        Args:
            key: The key to look up
            default: Returned when the key was never set

        Returns:
            The stored value, or ``default``
        """
        return self._store.get(key, default)

    def exists(self, key: str) -> bool:
        """Check if a key has been set."""
        return key in self._store

    def load(self, entries: Iterable[Tuple[str, Any]]) -> int:
        """
        Absorb persisted entries before the server starts taking traffic.

        Args:
            entries: (key, value) pairs, typically from PersistenceManager.load()

        Returns:
            Number of entries loaded
        """
        count = 0
        for key, value in entries:
            self._store[key] = value
            count += 1
        return count

    def keys(self) -> List[str]:
        """Return a snapshot of all known keys."""
        return list(self._store)

    def size(self) -> int:
        """Get the current number of keys in the store."""
        return len(self._store)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the store.

        Returns:
            Dictionary containing:
            - total_keys: Number of keys currently stored
            - total_sets: Number of set() calls since startup
        """
        return {
            "total_keys": len(self._store),
            "total_sets": self._total_sets,
        }
