"""
Contains helper classes and default values for the configuration file
"""
import typing as t


class Config:
    def __init__(self, cfg: dict):
        self.server = ServerSection(cfg.get("server", {}))
        self.wss = WssSection(cfg.get("wss", {}))
        self.logging = LoggingSection(cfg.get("logging", {}))


class ServerSection:
    def __init__(self, cfg: dict):
        self.host: t.Optional[str] = cfg.get("host", None)
        self.port: int = cfg.get("port", 3000)
        # Only connections upgraded on this path are relayed
        self.path: str = cfg.get("path", "/ws")


class WssSection:
    def __init__(self, cfg: dict):
        self.enabled: bool = cfg.get("enabled", False)
        self.chain_path: str = cfg.get("chain_path", "chain.pem")
        self.privkey_path: str = cfg.get("privkey_path", "privkey.pem")


class LoggingSection:
    def __init__(self, cfg: dict):
        self.level: str = cfg.get("level", "info")
        # Empty string disables the rotating log file
        self.directory: str = cfg.get("directory", "logs")
