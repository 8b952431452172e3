"""
=============================================================================
TCP SOCKET SERVER
=============================================================================

The listening half of the server: create the socket, bind, listen, and
hand every accepted client to a callback wrapped in a Connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer.start()                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   socket()  ──►  bind((host, port))  ──►  listen(backlog)           │
    │                        │                                             │
    │                        └── OSError here ("Address already in use")   │
    │                            propagates: a startup failure             │
    │                                                                      │
    │   while running:                                                     │
    │       accept()            (1s timeout so shutdown() is noticed)     │
    │       Connection(...)                                                │
    │       on_connection(conn) (HTTPServer queues it on the thread pool) │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

SIGINT and SIGTERM trigger shutdown() when the server runs on the main
thread. Python only allows signal handlers there, so a server started
from a background thread (as the tests do) is stopped with shutdown().

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP listener.

        def on_connection(conn: Connection):
            ...

        server = SocketServer(config)
        server.start(on_connection)   # blocks until shutdown()
    """

    ACCEPT_TIMEOUT = 1.0

    def __init__(self, config: ServerConfig):
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._bound = threading.Event()
        self._original_handlers: dict = {}
        self._bound_address: Optional[Tuple[str, int]] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def bound_address(self) -> Optional[Tuple[str, int]]:
        """
        The (host, port) actually bound, or None before start().

        Differs from the configured port when port 0 asks the OS to pick.
        """
        return self._bound_address

    def wait_until_bound(self, timeout: Optional[float] = None) -> bool:
        return self._bound.wait(timeout)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Restart without waiting out TIME_WAIT on the old socket.
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(self.ACCEPT_TIMEOUT)
        return sock

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            logger.info("Received %s, initiating shutdown...", signal.Signals(signum).name)
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(
        self,
        on_connection: Callable[[Connection], None],
        on_bound: Optional[Callable[[], None]] = None,
    ):
        """
        Bind, listen and run the accept loop. Blocks until shutdown().

        ``on_bound`` is called once the socket is listening, before the
        first accept().

        Raises:
            OSError: If the address cannot be bound.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
            self._socket.listen(self.config.backlog)
        except OSError as e:
            logger.error("Failed to bind to %s:%s: %s", self.config.host, self.config.port, e)
            self._socket.close()
            self._socket = None
            raise

        self._bound_address = self._socket.getsockname()[:2]
        self._running = True
        self._setup_signals()

        try:
            if on_bound is not None:
                on_bound()
            self._bound.set()
            self._accept_loop(on_connection)
        finally:
            self._cleanup()

    def _accept_loop(self, on_connection: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error("Accept error: %s", e)
                break

            logger.debug("Accepted connection from %s:%s", *client_address[:2])

            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )
            on_connection(conn)

    def shutdown(self):
        """Ask the accept loop to stop. Idempotent, callable from any thread."""
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._bound.clear()
        logger.info("Socket server stopped")
