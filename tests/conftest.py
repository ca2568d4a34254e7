"""
Shared fixtures and a fake WebSocket connection for relay tests.
"""

import asyncio
import itertools
import json
from types import SimpleNamespace

import pytest
from websockets.exceptions import ConnectionClosedOK
from websockets.protocol import State

from broadcast_relay import BroadcastRelay
from broadcast_relay.config import Config
from broadcast_relay.lifecycle import SessionLifecycle
from broadcast_relay.registry import ConnectionRegistry
from broadcast_relay.routing import RoutingEngine
from broadcast_relay.util import Connection


class FakeSocket:
    """
    Stands in for a websockets ServerConnection.

    Records every frame sent to it and replays `incoming` frames when
    iterated, then behaves as if the peer closed cleanly.
    """

    _ports = itertools.count(50000)

    def __init__(self, path="/ws", incoming=()):
        self.sent = []
        self.incoming = list(incoming)
        self.state = State.OPEN
        self.close_code = None
        self.close_reason = None
        self.remote_address = ("127.0.0.1", next(self._ports))
        self.request = SimpleNamespace(path=path)

    async def send(self, data):
        if self.state is not State.OPEN:
            raise ConnectionClosedOK(None, None)
        self.sent.append(data)

    async def close(self, code=1000, reason=""):
        if self.state is State.OPEN:
            self.state = State.CLOSED
            self.close_code = code
            self.close_reason = reason

    def drop(self, code=1006):
        """Simulates the peer going away without a closing handshake."""
        self.state = State.CLOSED
        self.close_code = code

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        for frame in self.incoming:
            if self.state is not State.OPEN:
                return
            yield frame
            await asyncio.sleep(0)
        await self.close(1000)

    @property
    def messages(self):
        return [json.loads(frame) for frame in self.sent]

    def of_type(self, type_name):
        return [msg for msg in self.messages if msg["type"] == type_name]


def make_connection(path="/ws"):
    return Connection(FakeSocket(path))


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def lifecycle(registry):
    ids = (f"viewer-{n}" for n in itertools.count(1))
    return SessionLifecycle(registry, id_factory=lambda: next(ids))


@pytest.fixture
def engine(registry, lifecycle):
    return RoutingEngine(registry, lifecycle)


@pytest.fixture
def relay():
    return BroadcastRelay(Config({}))


@pytest.fixture
def send(engine):
    """Dispatches a message dict from a connection as a JSON frame."""

    async def _send(conn, **message):
        await engine.dispatch(conn, json.dumps(message))

    return _send
