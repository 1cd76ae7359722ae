"""Network transports for the live object store."""

from .http_gateway import WebSocketConnection, create_app
from .tcp_server import TCPConnection, TCPServer

__all__ = ["TCPConnection", "TCPServer", "WebSocketConnection", "create_app"]
