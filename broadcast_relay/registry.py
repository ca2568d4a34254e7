"""
In-memory bookkeeping of the broadcaster and viewer connections
"""
import typing as t

from protocol import Role
from broadcast_relay.util import Connection


class ConnectionRegistry:
    """
    Holds at most one broadcaster and the registered viewers by id.
    All operations are synchronous; callers serialize access.
    """

    def __init__(self):
        self.broadcaster: t.Optional[Connection] = None
        self.viewers: t.Dict[str, Connection] = {}

    def set_broadcaster(self, conn: Connection) -> t.Optional[Connection]:
        """
        Makes `conn` the broadcaster
        :param conn: The newly registered broadcaster
        :return: The displaced broadcaster if it is still open, so it can be told and closed
        """
        if conn.role is not Role.BROADCASTER:
            raise ValueError(f"{conn} is not a broadcaster")
        previous = self.broadcaster
        self.broadcaster = conn
        if previous is not None and previous is not conn and previous.open:
            return previous
        return None

    def remove_broadcaster(self, conn: Connection) -> bool:
        """
        Clears the broadcaster slot if `conn` still holds it
        :return: Whether `conn` was the current broadcaster
        """
        if self.broadcaster is conn:
            self.broadcaster = None
            return True
        return False

    def has_broadcaster(self) -> bool:
        return self.broadcaster is not None

    def add_viewer(self, viewer_id: str, conn: Connection):
        if conn.viewer_id != viewer_id:
            raise ValueError(f"{conn} cannot be stored under viewer id {viewer_id}")
        self.viewers[viewer_id] = conn

    def remove_viewer(self, viewer_id: str) -> t.Optional[Connection]:
        """Removes a viewer, returning it, or None if it was not registered"""
        return self.viewers.pop(viewer_id, None)

    def get_viewer(self, viewer_id: str) -> t.Optional[Connection]:
        return self.viewers.get(viewer_id)

    def has_viewer(self, viewer_id: str) -> bool:
        return viewer_id in self.viewers

    def clear_viewers(self) -> t.List[Connection]:
        """Empties the viewer map, returning the viewers that were in it"""
        viewers = list(self.viewers.values())
        self.viewers.clear()
        return viewers

    @property
    def viewer_count(self) -> int:
        return len(self.viewers)

    def __iter__(self) -> t.Iterator[Connection]:
        """Iterates over the viewers and then the broadcaster, if any"""
        yield from list(self.viewers.values())
        if self.broadcaster is not None:
            yield self.broadcaster
