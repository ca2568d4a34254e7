import asyncio
import logging
import typing as t

import websockets

from protocol import Message
from broadcast_relay.util import Connection

logger = logging.getLogger("relay")


async def _send_raw(conn: Connection, payload: str, tag_name: str):
    if not conn.open:
        logger.debug(f"Dropped {tag_name} message to closed {conn}")
        return
    try:
        await conn.sck.send(payload)
    # Close raced the send, the message simply arrived too late
    except websockets.ConnectionClosed:
        logger.debug(f"{conn} closed while sending {tag_name} message")


async def send(conn: Connection, message: Message):
    """
    Sends a message to a single connection if it is still open
    :param conn: The recipient
    :param message: The message to send
    """
    await _send_raw(conn, message.to_json(), message.tag_name)


async def send_all(conns: t.Iterable[Connection], message: Message):
    """
    Send the same message to multiple connections
    :param conns: The recipients
    :param message: The message to send
    """
    conns = list(conns)
    if conns:
        payload = message.to_json()
        await asyncio.gather(*[_send_raw(conn, payload, message.tag_name) for conn in conns])
