#!/usr/bin/env python3
"""
Live Object Store Server Entry Point

This is the main entry point for starting the object store server. It
restores persisted values, then serves HTTP and WebSocket clients with
uvicorn and JSON-lines TCP clients on the same event loop.

Usage:
    python -m livestore.server                      # Default settings
    python -m livestore.server --port 8080          # Custom HTTP/WebSocket port
    python -m livestore.server --tcp-port 9000      # Custom TCP port
    python -m livestore.server --no-tcp             # HTTP/WebSocket only
    python -m livestore.server --cache-dir /data    # Custom persistence root
    python -m livestore.server --debug              # Enable debug logging

Environment Variables:
    LIVESTORE_HOST       - Server bind address
    LIVESTORE_PORT       - HTTP/WebSocket port
    LIVESTORE_TCP_PORT   - JSON-lines TCP port
    CACHE_DIR            - Persistence root directory
    LIVESTORE_DEBUG      - Enable debug mode (true/false)
    LIVESTORE_LOG_LEVEL  - Log level when not in debug mode
"""

import argparse
import asyncio
import logging
import sys

import uvicorn

from .config.settings import settings
from .network.http_gateway import create_app
from .network.tcp_server import TCPServer
from .protocol.handler import ProtocolHandler

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Live Object Store: persistent key-value store with push updates",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--host",
        type=str,
        default=settings.HOST,
        help="Host address to bind to",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=settings.PORT,
        help="HTTP/WebSocket port to listen on",
    )

    parser.add_argument(
        "--tcp-port",
        type=int,
        default=settings.TCP_PORT,
        help="JSON-lines TCP port to listen on",
    )

    parser.add_argument(
        "--no-tcp",
        action="store_true",
        help="Do not start the JSON-lines TCP transport",
    )

    parser.add_argument(
        "--cache-dir",
        type=str,
        default=settings.CACHE_DIR,
        help="Directory holding one JSON record per key",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        default=settings.DEBUG,
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def setup_logging(debug: bool = False) -> None:
    """Configure logging based on debug flag."""
    level = logging.DEBUG if debug else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )


async def serve(args: argparse.Namespace) -> None:
    """Restore the store and run every transport until uvicorn exits."""
    handler = ProtocolHandler.from_cache_dir(args.cache_dir)
    restored = handler.restore()
    logger.info(f"Restored {restored} keys from {args.cache_dir}")

    tcp_server = None if args.no_tcp else TCPServer(handler, host=args.host, port=args.tcp_port)
    app = create_app(handler, tcp_server=tcp_server)

    config = uvicorn.Config(
        app,
        host=args.host,
        port=args.port,
        log_level="debug" if args.debug else "info",
    )
    http_server = uvicorn.Server(config)

    tcp_task = asyncio.create_task(tcp_server.start()) if tcp_server else None
    try:
        # uvicorn installs its own SIGINT/SIGTERM handlers and returns on shutdown
        await http_server.serve()
    finally:
        if tcp_server is not None:
            await tcp_server.stop()
            tcp_task.cancel()
            try:
                await tcp_task
            except asyncio.CancelledError:
                pass


def main() -> None:
    """Main entry point for the server."""
    args = parse_args()

    setup_logging(debug=args.debug)

    logger.info("=== Starting live object store ===")
    logger.info(f"  Host: {args.host}")
    logger.info(f"  HTTP/WebSocket port: {args.port}")
    logger.info(f"  TCP port: {'disabled' if args.no_tcp else args.tcp_port}")
    logger.info(f"  Cache dir: {args.cache_dir}")
    logger.info(f"  Debug: {args.debug}")

    try:
        asyncio.run(serve(args))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        logger.info("Server shutdown complete")


if __name__ == "__main__":
    main()
