"""
Async TCP Server Module

JSON-lines transport for the object store protocol: every inbound and
outbound record is one JSON object on its own newline-terminated line.

A TCP client has the same abilities as a WebSocket client (subscribe,
unsubscribe, set, get) and shares the same store and registry, so a set
over TCP reaches WebSocket subscribers and vice versa.
"""

import asyncio
import logging
from asyncio import StreamReader, StreamWriter
from typing import Optional, Set

from ..config.settings import settings
from ..protocol.commands import Response
from ..protocol.handler import ProtocolHandler
from ..pubsub.connection import Connection

logger = logging.getLogger(__name__)


class TCPConnection(Connection):
    """Connection writing newline-terminated records to a StreamWriter."""

    def __init__(self, writer: StreamWriter, peer=None):
        super().__init__(peer=peer)
        self.writer = writer

    async def _write(self, data: str) -> None:
        self.writer.write(data.encode("utf-8") + b"\n")
        await self.writer.drain()


class TCPServer:
    """
    Asynchronous TCP server for the JSON-lines transport.

    Each client connection is handled in its own coroutine; records from
    one client are processed in the order they arrive.

    Usage:
        server = TCPServer(handler, host='0.0.0.0', port=7171)
        await server.start()  # Runs forever

    Attributes:
        handler: The ProtocolHandler shared with the other transports
        host: Server bind address (e.g., '0.0.0.0')
        port: Server port number (e.g., 7171)
    """

    def __init__(
            self,
            handler: ProtocolHandler,
            host: str = None,
            port: int = None,
            max_message_bytes: int = None,
    ):
        self.handler = handler
        self.host = host if host is not None else settings.HOST
        self.port = port if port is not None else settings.TCP_PORT
        self.max_message_bytes = (
            max_message_bytes if max_message_bytes is not None
            else settings.MAX_MESSAGE_BYTES
        )

        # Server state
        self._server: Optional[asyncio.Server] = None
        self._running = False
        self._connection_count = 0
        self._total_requests = 0
        self._connections: Set[TCPConnection] = set()

    async def handle_client(
            self,
            reader: StreamReader,
            writer: StreamWriter
    ) -> None:
        """
        Handle a single client connection.

        Reads records until the client disconnects, feeding each one to
        the protocol handler. Whatever ends the loop, the handler's
        ``disconnect()`` runs exactly once, queued replies are flushed and
        the writer is closed.
        """
        addr = writer.get_extra_info('peername')
        connection = TCPConnection(writer, peer=addr)
        sender = asyncio.create_task(connection.run_sender())
        self._connections.add(connection)
        self._connection_count += 1
        logger.debug(f"[{connection.id}] Client connected: {addr}")

        try:
            while True:
                data = await self._read_line(reader)
                if data is None:
                    logger.warning(f"[{connection.id}] Message exceeds {self.max_message_bytes} bytes")
                    self.handler.reply(connection, Response.invalid_format())
                    continue

                if not data:
                    logger.debug(f"[{connection.id}] Client disconnected: {addr}")
                    break

                if not data.strip():
                    continue

                self._total_requests += 1
                await self.handler.handle_message(connection, data)

        except ConnectionResetError:
            logger.debug(f"[{connection.id}] Connection reset by client: {addr}")
        except Exception as exc:  # Log unexpected errors but keep server alive
            logger.exception(f"Error handling client {addr}: {exc}")
        finally:
            self.handler.disconnect(connection)
            self._connections.discard(connection)
            try:
                await sender
            except asyncio.CancelledError:
                sender.cancel()
                raise
            finally:
                writer.close()
            try:
                await writer.wait_closed()
            except Exception:
                pass

    async def _read_line(self, reader: StreamReader) -> Optional[bytes]:
        """
        Read one newline-terminated record.

        Returns the record bytes, b"" at end of stream, or None when the
        record was longer than the stream limit. An oversized record is
        consumed through its terminating newline, so its tail is never
        read as a record of its own.
        """
        oversized = False
        while True:
            try:
                line = await reader.readuntil(b"\n")
            except asyncio.IncompleteReadError as exc:
                line = exc.partial
            except asyncio.LimitOverrunError as exc:
                await reader.readexactly(exc.consumed)
                oversized = True
                continue
            return None if oversized else line

    async def start(self) -> None:
        """
        Start the server and begin accepting connections.

        Runs until cancelled or stopped.

        Example:
            server = TCPServer(handler, port=7171)
            asyncio.run(server.start())
        """
        if self._running:
            return

        self._server = await asyncio.start_server(
            self.handle_client,
            self.host,
            self.port,
            limit=self.max_message_bytes,
        )
        self._running = True

        addrs = ', '.join(str(sock.getsockname()) for sock in self._server.sockets or [])
        logger.info(f"TCP transport serving on {addrs}")

        try:
            async with self._server:
                await self._server.serve_forever()
        except asyncio.CancelledError:
            # Expected during shutdown/fixture cleanup
            logger.debug("TCP server start cancelled")
        finally:
            self._running = False

    async def stop(self) -> None:
        """
        Stop the server gracefully.

        Closes the listening socket and waits for it to shut down.
        """
        if self._server is None:
            return

        self._server.close()
        # Server.wait_closed() also waits for open client connections
        for connection in list(self._connections):
            connection.writer.close()
        try:
            await self._server.wait_closed()
        finally:
            self._server = None
            self._running = False

    def is_running(self) -> bool:
        """Check if the server is currently running."""
        return self._running

    def get_stats(self) -> dict:
        """
        Get server statistics.

        Returns:
            Dictionary with connection and request counts.
        """
        return {
            "running": self._running,
            "host": self.host,
            "port": self.port,
            "total_connections": self._connection_count,
            "total_requests": self._total_requests,
            "active_connections": len(self._connections),
        }
