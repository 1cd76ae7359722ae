"""
Live Object Store: Persistent Key-Value Store with Push Updates

A single-process key-value store built with Python asyncio. Clients
get and set values over HTTP, or subscribe to keys over a WebSocket or
a JSON-lines TCP connection and receive every change as it happens.
Every accepted value is mirrored to disk as one JSON record per key.
"""

__version__ = "1.0.0"
