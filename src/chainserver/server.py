"""
=============================================================================
HTTP SERVER
=============================================================================

Runs an App on a socket. The server owns the network side; the App owns
everything that happens between a parsed request and a sent response.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         REQUEST FLOW                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   SocketServer.accept()                                              │
    │          │                                                           │
    │          ▼                                                           │
    │   ThreadPool.submit(_process_connection)   ── full ──► 503          │
    │          │                                                           │
    │          ▼  (worker thread, loops while keep-alive)                  │
    │   Connection.read_request()                ── slow ──► 408          │
    │          │                                 ── huge ──► 413          │
    │          ▼                                                           │
    │   RequestParser.parse()                    ── bad  ──► 400/405/505  │
    │          │                                                           │
    │          ▼                                                           │
    │   App.handle(request)                      global units, route      │
    │          │                                 units, terminal; 404/500 │
    │          ▼                                                           │
    │   Connection headers, HEAD body stripped, to_bytes(), sendall()     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Errors in the top half never reach the App, so the access log only sees
requests that parsed.

=============================================================================
"""

import sys
import logging
from typing import Optional, Tuple

from .application import App
from .config import ServerConfig
from .core.connection import Connection, ConnectionState, RequestTooLargeError
from .core.socket_server import SocketServer
from .core.thread_pool import ThreadPool
from .http.request import RequestParser, HTTPParseError
from .http.response import HTTPResponse, error_response
from .http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


class HTTPServer:
    """
    Serve an App over HTTP/1.x.

        app = create_app()
        server = HTTPServer(app, ServerConfig(port=3000))
        server.run()          # blocks until Ctrl+C or shutdown()

    From another thread (as the tests do):

        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        server.wait_until_started(timeout=5)
        server.port           # the real port, even with port=0
        server.shutdown()
    """

    def __init__(self, app: App, config: Optional[ServerConfig] = None):
        """
        Args:
            app: The application requests are dispatched to.
            config: Listener settings. Defaults to ServerConfig().

        Raises:
            ValueError: If the configuration is invalid.
        """
        self.app = app
        self.config = config or ServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        self._running = False

    # =========================================================================
    # ADDRESS
    # =========================================================================

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """The bound (host, port), or None before run() has bound the socket."""
        return self._socket_server.bound_address

    @property
    def port(self) -> int:
        bound = self.address
        return bound[1] if bound else self.config.port

    @property
    def is_running(self) -> bool:
        return self._running

    def wait_until_started(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is bound. False on timeout."""
        return self._socket_server.wait_until_bound(timeout)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Bind, serve, and block until shutdown.

        Raises:
            OSError: If the address cannot be bound (port already in use).
        """
        self._setup_logging()
        self._thread_pool.start()
        self._running = True

        try:
            self._socket_server.start(self._handle_connection, on_bound=self._announce)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def _announce(self):
        logger.info("Listening on port %d", self.port)

    def shutdown(self):
        """Stop accepting connections. run() returns once in-flight work drains."""
        self._socket_server.shutdown()

    def _setup_logging(self):
        """Send all log records to stdout at the configured level."""
        level = logging.getLevelName(self.config.log_level.upper())

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            stream=sys.stdout,
        )
        logging.getLogger("chainserver").setLevel(level)

    def _shutdown(self):
        self._running = False
        self._socket_server.shutdown()
        logger.info("Shutting down server...")
        self._thread_pool.shutdown(wait=True, timeout=self.config.keep_alive_timeout + 5.0)
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Hand an accepted connection to the pool, or answer 503."""
        try:
            submitted = self._thread_pool.submit(self._process_connection, args=(conn,))
        except RuntimeError:
            submitted = False

        if not submitted:
            logger.warning("[%s] Thread pool full, rejecting connection", conn.id)
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE)
            conn.close()

    def _process_connection(self, conn: Connection):
        """
        Serve requests on one connection until it closes.

        Runs on a worker thread. One request at a time: read, parse,
        dispatch to the App, write. Loops while both sides want keep-alive.
        """
        with conn:
            while self._running:
                try:
                    raw_request = conn.read_request()
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT)
                    break
                except RequestTooLargeError as e:
                    logger.warning("[%s] %s", conn.id, e)
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE)
                    break

                if raw_request is None:
                    break

                try:
                    request = self._parser.parse(raw_request, conn.address)
                except HTTPParseError as e:
                    logger.info("[%s] Bad request: %s", conn.id, e)
                    self._send_error(conn, HTTPStatus(e.status_code), str(e))
                    break

                conn.state = ConnectionState.PROCESSING
                response = self.app.handle(request)

                keep_alive = (
                    request.is_keep_alive
                    and self.config.keep_alive
                    and (response.get_header("Connection") or "").lower() != "close"
                )
                try:
                    data = self._serialize(request.method, response, keep_alive)
                except ValueError:
                    logger.exception("[%s] Cannot serialize response to %s %s",
                                     conn.id, request.method, request.path)
                    self._send_error(conn, HTTPStatus.INTERNAL_SERVER_ERROR)
                    break

                if not conn.send_response(data):
                    break
                if not keep_alive:
                    break

                conn.set_keep_alive()

    def _serialize(self, method: str, response: HTTPResponse, keep_alive: bool) -> bytes:
        """
        Add the connection headers and render the response.

        A HEAD response keeps its headers, Content-Length included, and
        loses its body.
        """
        # The sink is sealed once sent; serialize from a copy.
        out = HTTPResponse(version=response.version)
        out.status_code = response.status_code
        out.headers = dict(response.headers)
        out.body = response.body

        if not keep_alive:
            out.set_header("Connection", "close")
        else:
            if not out.has_header("Connection"):
                out.set_header("Connection", "keep-alive")
            if not out.has_header("Keep-Alive"):
                out.set_header("Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}")

        if method == "HEAD":
            if not response.has_header("Content-Length"):
                out.headers["Content-Length"] = str(len(response.body))
            out.body = b""

        return out.to_bytes(self.config.server_name)

    def _send_error(self, conn: Connection, status: HTTPStatus, message: Optional[str] = None):
        """Answer with a plain-text error and Connection: close."""
        response = error_response(status, message, close=True)
        conn.send_response(response.to_bytes(self.config.server_name))
