"""
Registration, takeover, disconnect cascades and broadcast stop
"""
import logging
import typing as t
import uuid

from protocol import *
from broadcast_relay import notifier
from broadcast_relay.registry import ConnectionRegistry
from broadcast_relay.util import Connection

TAKEOVER_NOTICE = "Another broadcaster took over the session."


def generate_viewer_id() -> str:
    return str(uuid.uuid4())


class SessionLifecycle:
    def __init__(self, registry: ConnectionRegistry, id_factory: t.Callable[[], str] = generate_viewer_id):
        self.registry = registry
        self.id_factory = id_factory
        self.logger = logging.getLogger("relay")

    async def register_broadcaster(self, conn: Connection):
        """
        Registers a connection as the broadcaster, displacing any live broadcaster
        :param conn: The connection that sent the register message
        """
        conn.assign(Role.BROADCASTER)
        previous = self.registry.set_broadcaster(conn)
        if previous is not None:
            self.logger.warning(f"{previous} superseded by {conn}")
            await notifier.send(previous, ErrorMessage(message=TAKEOVER_NOTICE))
            previous.close(1000, "Superseded by another broadcaster")

        self.logger.info(f"Broadcaster connected from {conn.ip}")
        await notifier.send(conn, RegisteredMessage(role=Role.BROADCASTER.value))
        # Existing viewers can be offered to right away
        for viewer_id in list(self.registry.viewers):
            await notifier.send(conn, ViewerJoinedMessage(viewer_id=viewer_id))

    async def register_viewer(self, conn: Connection):
        """
        Registers a connection as a viewer under a freshly generated id
        :param conn: The connection that sent the register message
        """
        viewer_id = self.id_factory()
        while self.registry.has_viewer(viewer_id):
            viewer_id = self.id_factory()
        conn.assign(Role.VIEWER, viewer_id)
        self.registry.add_viewer(viewer_id, conn)
        self.logger.info(f"Viewer connected ({viewer_id}) from {conn.ip}")

        await notifier.send(conn, RegisteredMessage(
            role=Role.VIEWER.value,
            viewer_id=viewer_id,
            has_broadcaster=self.registry.has_broadcaster()
        ))
        if self.registry.broadcaster is not None:
            await notifier.send(self.registry.broadcaster, ViewerJoinedMessage(viewer_id=viewer_id))
        await self.broadcast_viewer_count()

    async def disconnected(self, conn: Connection):
        """
        Handles a closed connection, whatever the reason for the closure
        :param conn: The connection that closed
        """
        match conn.role:
            case Role.BROADCASTER:
                if not self.registry.remove_broadcaster(conn):
                    # Already replaced by a takeover
                    self.logger.info(f"Superseded {conn} disconnected")
                    return
                self.logger.info(f"Broadcaster {conn.ip} disconnected, ending broadcast")
                await self.end_broadcast()
                await self.broadcast_viewer_count()

            case Role.VIEWER:
                if self.registry.remove_viewer(conn.viewer_id) is not conn:
                    # Already dropped by a broadcast ending
                    self.logger.debug(f"Unregistered {conn} disconnected")
                    return
                self.logger.info(f"Viewer disconnected ({conn.viewer_id})")
                if self.registry.broadcaster is not None:
                    await notifier.send(self.registry.broadcaster, ViewerLeftMessage(viewer_id=conn.viewer_id))
                await self.broadcast_viewer_count()

            case _:
                self.logger.info(f"Unregistered {conn} disconnected")

    async def stop(self, conn: Connection):
        """
        Ends the broadcast on request, keeping the broadcaster connected and registered
        :param conn: The broadcaster that asked to stop
        """
        self.logger.info(f"Broadcaster {conn.ip} stopped the broadcast")
        await self.end_broadcast()
        await notifier.send(conn, StoppedMessage())
        await self.broadcast_viewer_count()

    async def end_broadcast(self):
        """Tells every viewer the broadcast ended, then disconnects and forgets them all"""
        viewers = self.registry.clear_viewers()
        for viewer in viewers:
            await notifier.send(viewer, BroadcasterEndedMessage())
            viewer.close(1000, "Broadcast ended")

    async def broadcast_viewer_count(self):
        await notifier.send_all(self.registry, ViewerCountMessage(count=self.registry.viewer_count))
