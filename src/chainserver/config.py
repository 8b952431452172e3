"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

All listener settings in one dataclass. The application object (routes and
middleware) is configured separately in code; ServerConfig only covers how
the server listens and logs.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    WHERE SETTINGS COME FROM                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Defaults in this dataclass     port 3000, 4-16 workers, INFO      │
    │            │                                                         │
    │            ▼                                                         │
    │   Keyword overrides in code      ServerConfig(port=0) in tests      │
    │                                                                      │
    │   No environment variables, no config files, no CLI flags.          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

validate() runs when HTTPServer is constructed so a bad value fails at
startup rather than on the first request.

=============================================================================
"""

import logging
from dataclasses import dataclass
from typing import Optional


DEFAULT_PORT = 3000


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP listener.

    Development:
        ServerConfig(log_level="DEBUG")

    Tests:
        ServerConfig(port=0, min_workers=1, max_workers=2)  # OS picks a port
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """Address to bind. "0.0.0.0" listens on all interfaces."""

    port: int = DEFAULT_PORT
    """Port to listen on. 0 lets the OS choose a free port."""

    backlog: int = 128
    """Pending connections the kernel queues before refusing new ones."""

    buffer_size: int = 8192
    """Bytes per recv() call."""

    timeout: Optional[float] = 30.0
    """Socket timeout for the first request on a connection, in seconds."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16
    queue_size: int = 100

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR or CRITICAL."""

    server_name: str = "chainserver/1.0"
    """Value of the Server response header."""

    def validate(self) -> None:
        """
        Raise ValueError for values the server cannot run with.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")

        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level: {self.log_level}")
