"""Publish/subscribe module for the live object store."""

from .connection import Connection
from .dispatcher import BroadcastDispatcher
from .registry import SubscriptionRegistry

__all__ = ["BroadcastDispatcher", "Connection", "SubscriptionRegistry"]
