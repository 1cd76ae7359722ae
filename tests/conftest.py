"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests.
"""

import asyncio
import json
import socket
import pytest
import pytest_asyncio
from contextlib import closing
from pathlib import Path
from typing import Any, AsyncGenerator, List

from fastapi.testclient import TestClient

from livestore.cache.persistence import PersistenceManager
from livestore.cache.store import ObjectStore
from livestore.network.http_gateway import create_app
from livestore.network.tcp_server import TCPServer
from livestore.protocol.handler import ProtocolHandler
from livestore.protocol.parser import ProtocolParser
from livestore.pubsub.connection import Connection
from livestore.pubsub.dispatcher import BroadcastDispatcher
from livestore.pubsub.registry import SubscriptionRegistry


def find_free_port() -> int:
    """Find an available port for testing."""
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(('', 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


class RecordingConnection(Connection):
    """
    Connection test double that records delivered records as decoded JSON.

    Records are captured synchronously in ``deliver()``, so no sender
    task is needed.
    """

    def __init__(self, name: str = "test"):
        super().__init__(peer=name)
        self.messages: List[Any] = []

    def deliver(self, data: str) -> None:
        if self.closed:
            raise ConnectionError(f"connection {self.id} is closed")
        self.messages.append(json.loads(data))


# ============================================================================
# Core Component Fixtures
# ============================================================================

@pytest.fixture
def store() -> ObjectStore:
    """Create a fresh, empty ObjectStore."""
    return ObjectStore()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    """Persistence root inside the test's temp dir (not created yet)."""
    return tmp_path / "cache"


@pytest.fixture
def persistence(cache_dir: Path) -> PersistenceManager:
    """Create a PersistenceManager rooted at cache_dir."""
    return PersistenceManager(cache_dir)


@pytest.fixture
def registry() -> SubscriptionRegistry:
    """Create an empty SubscriptionRegistry."""
    return SubscriptionRegistry()


@pytest.fixture
def parser() -> ProtocolParser:
    """Create a ProtocolParser instance."""
    return ProtocolParser()


@pytest.fixture
def dispatcher(registry: SubscriptionRegistry) -> BroadcastDispatcher:
    """Create a BroadcastDispatcher over the registry fixture."""
    return BroadcastDispatcher(registry)


@pytest.fixture
def handler(cache_dir: Path) -> ProtocolHandler:
    """Create a ProtocolHandler persisting under cache_dir, already restored."""
    h = ProtocolHandler.from_cache_dir(cache_dir)
    h.restore()
    return h


@pytest.fixture
def connection_factory():
    """
    Factory fixture to create recording connections.

    Usage:
        def test_something(connection_factory):
            alice = connection_factory("alice")
    """
    def factory(name: str = "test") -> RecordingConnection:
        return RecordingConnection(name)
    return factory


# ============================================================================
# TCP Server Fixtures
# ============================================================================

@pytest.fixture
def server_port() -> int:
    """Get a free port for server testing."""
    return find_free_port()


@pytest_asyncio.fixture
async def server(handler: ProtocolHandler, server_port: int) -> AsyncGenerator[TCPServer, None]:
    """
    Create and start a TCP server instance for testing.

    This fixture:
    1. Creates a TCPServer on a random free port around the handler fixture
    2. Starts it in a background task
    3. Yields the server for testing
    4. Cleans up after the test
    """
    srv = TCPServer(handler, host='127.0.0.1', port=server_port)

    server_task = asyncio.create_task(srv.start())

    # Wait for server to be ready
    await asyncio.sleep(0.1)

    yield srv

    await srv.stop()
    server_task.cancel()
    try:
        await server_task
    except asyncio.CancelledError:
        pass


class JsonLineClient:
    """
    Helper class for talking to the TCP transport.

    Usage:
        async with JsonLineClient('127.0.0.1', port) as client:
            await client.send({"action": "get", "key": "score"})
            assert await client.receive() == {"key": "score", "value": None}
    """

    def __init__(self, host: str, port: int, timeout: float = 2.0):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.reader = None
        self.writer = None

    async def connect(self) -> None:
        """Establish connection to server."""
        self.reader, self.writer = await asyncio.open_connection(
            self.host, self.port
        )

    async def disconnect(self) -> None:
        """Close connection to server."""
        if self.writer:
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except Exception:
                pass

    async def send_raw(self, line: str) -> None:
        """Send one raw line (newline added if missing)."""
        if not line.endswith('\n'):
            line += '\n'
        self.writer.write(line.encode())
        await self.writer.drain()

    async def send(self, message: dict) -> None:
        """Send one JSON record."""
        await self.send_raw(json.dumps(message))

    async def receive(self) -> Any:
        """Receive and decode one JSON record."""
        line = await asyncio.wait_for(self.reader.readline(), self.timeout)
        return json.loads(line)

    async def request(self, message: dict) -> Any:
        """Send one record and receive the next one."""
        await self.send(message)
        return await self.receive()

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()


@pytest.fixture
def client_factory(server_port: int):
    """
    Factory fixture to create TCP test clients.

    Usage:
        async def test_something(server, client_factory):
            async with client_factory() as client:
                response = await client.request({"action": "get", "key": "k"})
    """
    def factory() -> JsonLineClient:
        return JsonLineClient('127.0.0.1', server_port)
    return factory


# ============================================================================
# HTTP / WebSocket Fixtures
# ============================================================================

@pytest.fixture
def app_client(handler: ProtocolHandler):
    """
    TestClient for the gateway app.

    Entered as a context manager so every request and WebSocket session
    shares one event loop, as they do under uvicorn.
    """
    with TestClient(create_app(handler)) as client:
        yield client


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
