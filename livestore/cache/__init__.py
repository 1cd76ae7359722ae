"""Cache module for the live object store."""

from .persistence import PersistenceManager
from .store import ObjectStore

__all__ = ["ObjectStore", "PersistenceManager"]
