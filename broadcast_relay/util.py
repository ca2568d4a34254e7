import asyncio
import logging
import logging.handlers
import os
import pathlib
import typing as t

from websockets.asyncio.server import ServerConnection
from websockets.protocol import State

from protocol import Role
from broadcast_relay.config import Config

# Numeric logging levels as defined by `logging`
LOG_LEVELS = {
    "critical": logging.CRITICAL,
    "fatal": logging.FATAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "warn": logging.WARN,
    "info": logging.INFO,
    "debug": logging.DEBUG
}


class Connection:
    """A client connection and the role it registered as"""

    def __init__(self, sck: ServerConnection):
        self.sck = sck
        self.role = Role.UNASSIGNED
        self.viewer_id: t.Optional[str] = None
        # Set once the relay decides to drop the connection
        self.close_task: t.Optional[asyncio.Future] = None

    @property
    def ip(self) -> str:
        return self.sck.remote_address[0] if self.sck.remote_address else "unknown"

    @property
    def open(self) -> bool:
        return self.close_task is None and self.sck.state is State.OPEN

    def assign(self, role: Role, viewer_id: t.Optional[str] = None):
        """
        Gives the connection its role. Roles are assigned exactly once.
        :param role: The role the connection registered as
        :param viewer_id: The generated id, for viewers only
        """
        if self.role is not Role.UNASSIGNED:
            raise RuntimeError(f"Connection from {self.ip} is already registered as {self.role.value}")
        if (role is Role.VIEWER) != (viewer_id is not None):
            raise ValueError("A viewer id is required for viewers and only for viewers")
        self.role = role
        self.viewer_id = viewer_id

    def close(self, code: int = 1000, reason: str = ""):
        """
        Closes the connection from the relay side without waiting for the closing handshake.
        Frames already sent are delivered before the close frame.
        """
        if self.close_task is None:
            self.close_task = asyncio.ensure_future(self.sck.close(code, reason))
            self.close_task.add_done_callback(self._close_done)

    def _close_done(self, task: asyncio.Future):
        if not task.cancelled() and task.exception() is not None:
            logging.getLogger("relay").error(f"Failed to close {self}", exc_info=task.exception())

    def __str__(self):
        match self.role:
            case Role.BROADCASTER:
                return f"broadcaster ({self.ip})"
            case Role.VIEWER:
                return f"viewer {self.viewer_id} ({self.ip})"
        return f"client {self.ip}"


def setup_logging(config: Config, module_path: pathlib.Path):
    """
    Attaches console and rotating file handlers to the relay and websockets loggers
    :param config: The relay configuration
    :param module_path: Directory relative log directories are resolved against
    """
    # Create formatter
    fmt = logging.Formatter(
        "{asctime} [{levelname}] [{name}: {module}.{funcName}] {message}",
        style="{"
    )
    logger = logging.getLogger("relay")

    # Stream handler
    stream_handl = logging.StreamHandler()
    stream_handl.setFormatter(fmt)
    level_name = config.logging.level.lower()
    stream_handl.setLevel(LOG_LEVELS.get(level_name, logging.INFO))
    handlers: t.List[logging.Handler] = [stream_handl]

    # File handler
    if config.logging.directory:
        log_dir = module_path / config.logging.directory
        os.makedirs(log_dir, exist_ok=True)
        file_handl = logging.handlers.TimedRotatingFileHandler(
            log_dir / "broadcast_relay.log",
            when="midnight",
            interval=1
        )
        file_handl.setFormatter(fmt)
        file_handl.setLevel(logging.DEBUG)
        handlers.append(file_handl)

    # Logger setup
    for name, level in {
        "relay": logging.DEBUG,
        "websockets": logging.INFO
    }.items():
        named_logger = logging.getLogger(name)
        named_logger.setLevel(level)
        for handler in handlers:
            named_logger.addHandler(handler)

    if level_name not in LOG_LEVELS:
        logger.warning(f"Invalid logging level: {config.logging.level}, using info")
