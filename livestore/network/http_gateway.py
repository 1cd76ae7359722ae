"""FastAPI gateway: HTTP get/set endpoints and the WebSocket protocol endpoint."""
import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import JSONResponse

from .. import __version__
from ..protocol.commands import Response
from ..protocol.handler import ProtocolHandler
from ..pubsub.connection import Connection
from .tcp_server import TCPServer

logger = logging.getLogger(__name__)


class WebSocketConnection(Connection):
    """Connection sending one record per WebSocket text frame."""

    def __init__(self, websocket: WebSocket, peer: Any = None) -> None:
        super().__init__(peer=peer)
        self.websocket = websocket

    async def _write(self, data: str) -> None:
        await self.websocket.send_text(data)


def _error(response: Response, status_code: int = 400) -> JSONResponse:
    return JSONResponse(response.to_dict(), status_code=status_code)


def create_app(handler: ProtocolHandler, tcp_server: Optional[TCPServer] = None) -> FastAPI:
    """
    Build the gateway application around a protocol handler.

    The handler must already be restored from disk; the app does no
    startup work of its own. ``tcp_server``, when given, only contributes
    its counters to /stats.

    Routes:
        GET  /get/{key}   -> {key, value}, value null if never set
        POST /set         -> body {key, value}; stores, persists, broadcasts
        GET  /stats       -> server counters
        WS   /ws          -> object store protocol, one record per frame
    """
    app = FastAPI(title="Live Object Store", version=__version__)
    app.state.handler = handler
    app.state.tcp_server = tcp_server

    @app.get("/get/{key:path}")
    async def get_value(key: str) -> JSONResponse:
        return JSONResponse(handler.lookup(key).to_dict())

    @app.post("/set")
    async def set_value(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except (ValueError, RecursionError):
            logger.warning("POST /set: body is not valid JSON")
            return _error(Response.invalid_format())

        if not isinstance(body, dict):
            return _error(Response.invalid_format())

        key = body.get("key")
        if not key:
            return _error(Response.missing_key())
        if not isinstance(key, str):
            return _error(Response.invalid_format())

        response = await handler.apply_set(key, body.get("value"))
        return JSONResponse(response.to_dict())

    @app.get("/stats")
    async def stats() -> Dict[str, Any]:
        result = handler.get_stats()
        if tcp_server is not None:
            result["tcp_stats"] = tcp_server.get_stats()
        return result

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None:
        await ws.accept()
        peer = f"{ws.client.host}:{ws.client.port}" if ws.client else None
        connection = WebSocketConnection(ws, peer=peer)
        sender = asyncio.create_task(connection.run_sender())
        logger.debug(f"[{connection.id}] Client connected: {peer}")

        try:
            while True:
                message = await ws.receive()
                if message["type"] == "websocket.disconnect":
                    break
                data = message.get("text")
                if data is None:
                    data = message.get("bytes") or b""
                await handler.handle_message(connection, data)
        except Exception as exc:
            logger.exception(f"[{connection.id}] Error processing message: {exc}")
        finally:
            handler.disconnect(connection)
            logger.debug(f"[{connection.id}] Client disconnected")
            try:
                await sender
            except asyncio.CancelledError:
                sender.cancel()
                raise

    return app
