import asyncio
import logging
import os
import pathlib
import ssl
import typing as t

import toml
import websockets
from websockets.asyncio.server import ServerConnection, serve

from protocol import ErrorMessage
from broadcast_relay.config import Config
from broadcast_relay.lifecycle import SessionLifecycle
from broadcast_relay.registry import ConnectionRegistry
from broadcast_relay.routing import RoutingEngine
from broadcast_relay.util import Connection

MODULE_PATH = pathlib.Path(os.path.dirname(__file__))


def load_config(path: t.Union[str, os.PathLike]) -> Config:
    """
    Reads the relay configuration, exiting if it can't be read
    :param path: Path to the TOML configuration file
    """
    try:
        with open(path) as f:
            return Config(toml.load(f))
    except (OSError, toml.TomlDecodeError) as e:
        logging.getLogger("relay").critical(f"Unable to load config file {path}: {e}")
        raise SystemExit(1)


class BroadcastRelay:
    def __init__(self, config: t.Optional[Config] = None):
        self.config = config if config is not None else load_config(MODULE_PATH / "config.toml")

        # Connection bookkeeping and message routing
        self.registry = ConnectionRegistry()
        self.lifecycle = SessionLifecycle(self.registry)
        self.routing = RoutingEngine(self.registry, self.lifecycle)

        # Serializes every registry access: one message or close event at a time
        self.lock = asyncio.Lock()

        # Main logger
        self.logger = logging.getLogger("relay")

    async def accept(self, sck: ServerConnection) -> t.Optional[Connection]:
        """
        Accepts a new client connection
        :param sck: The client connection
        :return: The unregistered connection, or None if it was turned away (the socket is already closed)
        """
        conn = Connection(sck)
        path = sck.request.path.split("?", 1)[0] if sck.request else None
        if path != self.config.server.path:
            self.logger.warning(f"Client {conn.ip} tried to connect with invalid path: {path}")
            try:
                await sck.send(ErrorMessage(message="Invalid path").to_json())
                await sck.close(1008, "Invalid path")
            # Client already gone
            except websockets.ConnectionClosed:
                pass
            return None

        self.logger.info(f"Client {conn.ip} connected")
        return conn

    async def handle_message(self, conn: Connection, raw: t.Union[str, bytes]):
        async with self.lock:
            await self.routing.dispatch(conn, raw)

    async def handle_close(self, conn: Connection):
        async with self.lock:
            await self.lifecycle.disconnected(conn)

    async def serve(self, sck: ServerConnection):
        """
        Main entry point for WebSocket server.
        :param sck: The socket to serve for
        """
        conn = await self.accept(sck)
        if not conn:
            return

        try:
            # Continually receive messages
            async for raw in sck:
                await self.handle_message(conn, raw)

        except websockets.ConnectionClosed:
            pass

        # Every closure ends here, clean or not
        finally:
            code = sck.close_code
            self.logger.log(logging.INFO if code is None or code <= 1001 else logging.WARNING,
                            f"{conn} disconnected with code {code}")
            await self.handle_close(conn)

    def ssl_context(self) -> t.Optional[ssl.SSLContext]:
        if not self.config.wss.enabled:
            return None
        ssl_ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ssl_ctx.load_cert_chain(self.config.wss.chain_path, self.config.wss.privkey_path)
        return ssl_ctx

    async def main(self):
        kwargs = {
            "host": self.config.server.host,
            "port": self.config.server.port,
            "ssl": self.ssl_context()
        }
        async with serve(self.serve, **kwargs):
            scheme = "wss" if kwargs["ssl"] else "ws"
            self.logger.info(f"Broadcast relay listening on {scheme}://{kwargs['host'] or '0.0.0.0'}:"
                             f"{kwargs['port']}{self.config.server.path}")
            await asyncio.Future()  # run forever
