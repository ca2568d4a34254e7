"""
Decodes inbound messages, checks the sender's role and routes them
"""
import logging
import typing as t

from protocol import *
from broadcast_relay import notifier
from broadcast_relay.lifecycle import SessionLifecycle
from broadcast_relay.registry import ConnectionRegistry
from broadcast_relay.util import Connection


class RoutingEngine:
    def __init__(self, registry: ConnectionRegistry, lifecycle: SessionLifecycle):
        self.registry = registry
        self.lifecycle = lifecycle
        self.logger = logging.getLogger("relay")

    async def reject(self, conn: Connection, reason: str):
        """Reports a protocol violation to its sender only"""
        self.logger.warning(f"Rejected message from {conn}: {reason}")
        await notifier.send(conn, ErrorMessage(message=reason))

    async def dispatch(self, conn: Connection, raw: t.Union[str, bytes]):
        """
        Handles one inbound frame. Never raises: every failure is reported back to the sender.
        :param conn: The sending connection
        :param raw: The frame as received
        """
        try:
            # Decode and verify message formatting
            msg = decode_message(raw)
        except MalformedMessage as e:
            await self.reject(conn, str(e))
            return

        try:
            # Delegate to message handler
            await message_handlers.get(msg.__class__, default_handler)(self, conn, msg)
        # Catch all exceptions so one bad message doesn't close the connection
        except Exception:
            self.logger.exception(f"Relay error while handling {msg.tag_name} message from {conn}")
            await notifier.send(conn, ErrorMessage(message="Internal relay error"))


# #  MESSAGE HANDLERS  # #
message_handlers = {}


# Registers a message handler
def message_handler(message_type: t.Type, sender: t.Optional[Role] = None):
    def decorate(fn: t.Callable[[RoutingEngine, Connection, Message], t.Coroutine]):
        if sender is not None:
            async def wrapper(self: RoutingEngine, conn: Connection, msg: Message):
                if conn.role is not sender:
                    await self.reject(conn, f"Only the {sender.value} may send {msg.tag_name} messages")
                    return
                await fn(self, conn, msg)

            message_handlers[message_type] = wrapper

        else:
            message_handlers[message_type] = fn

        return fn

    return decorate


@message_handler(RegisterMessage)
async def handle_register(self: RoutingEngine, conn: Connection, msg: RegisterMessage):
    if conn.role is not Role.UNASSIGNED:
        await self.reject(conn, f"Connection is already registered as {conn.role.value}")
        return
    if msg.role == Role.BROADCASTER.value:
        await self.lifecycle.register_broadcaster(conn)
    else:
        await self.lifecycle.register_viewer(conn)


@message_handler(OfferMessage, Role.BROADCASTER)
async def handle_offer(self: RoutingEngine, conn: Connection, msg: OfferMessage):
    viewer = self.registry.get_viewer(msg.viewer_id)
    if viewer is None:
        self.logger.info(f"Offer for missing viewer {msg.viewer_id}")
        await notifier.send(conn, ViewerMissingMessage(viewer_id=msg.viewer_id))
        return
    await notifier.send(viewer, msg)


@message_handler(AnswerMessage, Role.VIEWER)
async def handle_answer(self: RoutingEngine, conn: Connection, msg: AnswerMessage):
    if msg.viewer_id != conn.viewer_id:
        await self.reject(conn, "Viewers may only answer for their own viewer id")
        return
    if self.registry.broadcaster is None:
        self.logger.debug(f"Dropped answer from {conn}: no broadcaster")
        return
    await notifier.send(self.registry.broadcaster, msg)


@message_handler(CandidateMessage)
async def handle_candidate(self: RoutingEngine, conn: Connection, msg: CandidateMessage):
    # The origin decides both the required sender and the direction
    match Role(msg.origin):
        case Role.BROADCASTER:
            if conn.role is not Role.BROADCASTER:
                await self.reject(conn, "Only the broadcaster may send broadcaster candidates")
                return
            viewer = self.registry.get_viewer(msg.viewer_id)
            if viewer is None:
                self.logger.debug(f"Dropped candidate for missing viewer {msg.viewer_id}")
                return
            await notifier.send(viewer, msg)

        case Role.VIEWER:
            if conn.role is not Role.VIEWER:
                await self.reject(conn, "Only a registered viewer may send viewer candidates")
                return
            if msg.viewer_id != conn.viewer_id:
                await self.reject(conn, "Viewers may only send candidates for their own viewer id")
                return
            if self.registry.broadcaster is None:
                self.logger.debug(f"Dropped candidate from {conn}: no broadcaster")
                return
            await notifier.send(self.registry.broadcaster, msg)


@message_handler(StopMessage, Role.BROADCASTER)
async def handle_stop(self: RoutingEngine, conn: Connection, _msg: StopMessage):
    await self.lifecycle.stop(conn)


async def default_handler(self: RoutingEngine, conn: Connection, msg: Message):
    await self.reject(conn, f"Unexpected {msg.tag_name} message")
