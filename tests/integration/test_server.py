"""
Integration tests: the demo application over real sockets.
"""

import http.client
import logging
import socket
import threading

import pytest

import chainserver.__main__ as cli
from chainserver import App, HTTPServer, ServerConfig, create_app


ACCESS = "chainserver.access"
GREETER = "chainserver.middleware.greeter"


def messages(caplog, name):
    return [r.getMessage() for r in caplog.records if r.name == name]


class TestRoutes:
    """The demo routes over HTTP."""

    def test_hi(self, live_server):
        """Test GET /hi over the wire."""
        status, headers, body = live_server.request("GET", "/hi")

        assert status == 200
        assert body == b"Hi"
        assert headers["content-length"] == "2"
        assert headers["content-type"] == "text/html; charset=utf-8"
        assert headers["server"] == "chainserver/1.0"
        assert "date" in headers
        assert len(headers["x-request-id"]) == 8

    def test_bye(self, live_server):
        """Test GET /bye over the wire."""
        status, _, body = live_server.request("GET", "/bye")
        assert status == 200
        assert body == b"Bye"

    def test_nope(self, live_server):
        """Test an unknown path is 404 over the wire."""
        status, _, body = live_server.request("GET", "/nope")
        assert status == 404
        assert body == b"Not Found"

    def test_head(self, live_server):
        """Test HEAD keeps Content-Length and drops the body."""
        status, headers, body = live_server.request("HEAD", "/hi")

        assert status == 200
        assert headers["content-length"] == "2"
        assert body == b""

    def test_logging_over_the_wire(self, live_server, caplog):
        """Test greeter and access lines for real requests."""
        with caplog.at_level(logging.INFO):
            live_server.request("GET", "/hi")
            live_server.request("GET", "/bye")
            live_server.request("GET", "/nope")

        assert messages(caplog, GREETER) == ["Hello, Universe", "Hello, World"]
        assert len(messages(caplog, ACCESS)) == 3


class TestConnections:
    """Keep-alive, close and concurrent clients."""

    def test_keep_alive(self, live_server):
        """Test two requests on one connection."""
        conn = http.client.HTTPConnection("127.0.0.1", live_server.port, timeout=5.0)
        try:
            conn.request("GET", "/hi")
            first = conn.getresponse()
            assert first.getheader("Connection") == "keep-alive"
            assert first.read() == b"Hi"

            conn.request("GET", "/bye")
            second = conn.getresponse()
            assert second.read() == b"Bye"
        finally:
            conn.close()

    def test_connection_close(self, live_server):
        """Test Connection: close is honoured."""
        status, headers, _ = live_server.request("GET", "/hi", headers={"Connection": "close"})
        assert status == 200
        assert headers["connection"] == "close"

    def test_http_10_closes(self, live_server):
        """Test HTTP/1.0 requests close the connection."""
        raw = live_server.send_raw(b"GET /hi HTTP/1.0\r\n\r\n")

        assert raw.startswith(b"HTTP/1.0 200 OK\r\n")
        assert b"Connection: close\r\n" in raw
        assert raw.endswith(b"\r\n\r\nHi")

    def test_concurrent_requests(self, live_server):
        """Test concurrent clients all get answers."""
        results = []
        lock = threading.Lock()

        def fetch(path):
            status, _, body = live_server.request("GET", path)
            with lock:
                results.append((status, body))

        threads = [
            threading.Thread(target=fetch, args=("/hi" if i % 2 else "/bye",))
            for i in range(10)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10.0)

        assert sorted(results) == sorted([(200, b"Hi")] * 5 + [(200, b"Bye")] * 5)


class TestMalformedRequests:
    """Requests the listener rejects before the pipeline runs."""

    @pytest.mark.parametrize("data,status", [
        (b"garbage\r\n\r\n", b"400"),
        (b"BREW /pot HTTP/1.1\r\n\r\n", b"405"),
        (b"GET /hi HTTP/2.0\r\n\r\n", b"505"),
        (b"POST /hi HTTP/1.1\r\nContent-Length: nope\r\n\r\n", b"400"),
    ])
    def test_parse_errors(self, live_server, data, status):
        """Test parse errors map to their status codes."""
        raw = live_server.send_raw(data)
        assert raw.startswith(b"HTTP/1.1 " + status + b" ")
        assert b"Connection: close\r\n" in raw

    def test_parse_errors_skip_the_pipeline(self, live_server, caplog):
        """Test rejected requests are not access-logged."""
        with caplog.at_level(logging.INFO):
            live_server.send_raw(b"garbage\r\n\r\n")
        assert messages(caplog, ACCESS) == []

    def test_too_large(self, serve):
        """Test an oversized request gets 413."""
        live = serve(create_app(), max_request_size=128)
        raw = live.send_raw(b"GET /hi HTTP/1.1\r\nX-Pad: " + b"a" * 256 + b"\r\n\r\n")
        assert raw.startswith(b"HTTP/1.1 413 ")

    def test_slow_client_times_out(self, serve):
        """Test a slow client gets 408."""
        live = serve(create_app(), timeout=0.5)
        raw = live.send_raw(b"GET /hi HTTP/1.1\r\n")
        assert raw.startswith(b"HTTP/1.1 408 ")


def test_full_pool_is_503(serve):
    """Test a full worker pool answers 503."""
    release = threading.Event()
    entered = threading.Event()

    app = App()

    @app.get("/slow")
    def slow(request, response):
        entered.set()
        release.wait(timeout=5.0)
        response.send("done")

    live = serve(app, min_workers=1, max_workers=1, queue_size=1)

    busy = socket.create_connection(("127.0.0.1", live.port), timeout=5.0)
    queued = None
    try:
        # One connection on the only worker, one waiting in the queue.
        busy.sendall(b"GET /slow HTTP/1.1\r\nConnection: close\r\n\r\n")
        assert entered.wait(timeout=5.0)
        queued = socket.create_connection(("127.0.0.1", live.port), timeout=5.0)

        raw = live.send_raw(b"GET /slow HTTP/1.1\r\n\r\n")
        assert raw.startswith(b"HTTP/1.1 503 ")
    finally:
        release.set()
        busy.close()
        if queued is not None:
            queued.close()


class TestHandlerResponses:
    """Responses shaped by handlers still go out well formed."""

    def test_failure_drops_stale_content_length(self, serve, caplog):
        """Test a handler that set Content-Length and raised gets a full 500."""
        app = App()

        @app.get("/partial")
        def partial(request, response):
            response.set_header("Content-Length", "100")
            response.set_header("X-Partial", "yes")
            raise RuntimeError("half-written")

        live = serve(app)
        with caplog.at_level(logging.ERROR):
            status, headers, body = live.request("GET", "/partial")

        assert status == 500
        assert body == b"Internal Server Error"
        assert headers["content-length"] == "21"
        assert "x-partial" not in headers

    def test_unencodable_header_is_500(self, serve, caplog):
        """Test a non-latin-1 header value becomes a 500, not a dropped socket."""
        app = App()

        @app.get("/euro")
        def euro(request, response):
            response.set_header("X-Name", "\u20ac")
            response.send("ok")

        live = serve(app)
        with caplog.at_level(logging.ERROR):
            status, headers, body = live.request("GET", "/euro")

        assert status == 500
        assert body == b"Internal Server Error"
        assert "x-name" not in headers

    def test_unencodable_header_set_directly_is_500(self, serve, caplog):
        """Test a header that only fails at serialization still gets a 500."""
        app = App()

        @app.get("/euro")
        def euro(request, response):
            response.headers["X-Name"] = "\u20ac"
            response.send("ok")

        live = serve(app)
        with caplog.at_level(logging.ERROR, logger="chainserver.server"):
            raw = live.send_raw(b"GET /euro HTTP/1.1\r\n\r\n")

        assert raw.startswith(b"HTTP/1.1 500 ")
        assert b"Connection: close\r\n" in raw
        assert "Cannot serialize response" in caplog.text

    def test_handler_connection_close_wins(self, serve):
        """Test a lower-case connection header from a handler closes the socket."""
        app = App()

        @app.get("/bye")
        def bye(request, response):
            response.set_header("connection", "close")
            response.send("Bye")

        live = serve(app, keep_alive_timeout=30.0)
        raw = live.send_raw(b"GET /bye HTTP/1.1\r\n\r\n")

        head = raw.partition(b"\r\n\r\n")[0].lower()
        assert head.count(b"\r\nconnection:") == 1
        assert b"\r\nconnection: close" in head
        assert b"keep-alive" not in head
        assert raw.endswith(b"\r\n\r\nBye")


class TestLifecycle:
    """Binding, announcing and shutting down."""

    def test_port_zero_reports_real_port(self, live_server):
        """Test port 0 reports the port the OS picked."""
        assert live_server.port != 0
        assert live_server.server.address == ("127.0.0.1", live_server.port)

    def test_listening_message(self, serve, caplog):
        """Test the listening message names the port."""
        with caplog.at_level(logging.INFO, logger="chainserver.server"):
            live = serve(create_app())
        assert f"Listening on port {live.port}" in caplog.text

    def test_shutdown_stops_accepting(self, serve):
        """Test shutdown closes the listening socket."""
        live = serve(create_app())
        port = live.port
        live.stop()

        with pytest.raises(OSError):
            socket.create_connection(("127.0.0.1", port), timeout=1.0).close()

    def test_port_in_use(self, config):
        """Test binding a busy port raises OSError."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            busy_port = blocker.getsockname()[1]

            server = HTTPServer(create_app(), ServerConfig(port=busy_port, min_workers=1, max_workers=1))
            with pytest.raises(OSError):
                server.run()

    def test_invalid_config(self):
        """Test an invalid config is refused up front."""
        with pytest.raises(ValueError):
            HTTPServer(create_app(), ServerConfig(port=70000))


class TestCLI:
    """The chainserver command."""

    def test_help(self, capsys):
        """Test -h prints usage and exits 0."""
        with pytest.raises(SystemExit) as exc:
            cli.main(["-h"])
        assert exc.value.code == 0
        assert "/hi" in capsys.readouterr().out

    def test_rejects_options(self):
        """Test unknown options exit 2."""
        with pytest.raises(SystemExit) as exc:
            cli.main(["--port", "8080"])
        assert exc.value.code == 2

    def test_startup_failure_exits_1(self, monkeypatch, capsys):
        """Test a busy port exits 1 with a message."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            busy_port = blocker.getsockname()[1]

            monkeypatch.setattr(
                cli, "ServerConfig",
                lambda: ServerConfig(port=busy_port, min_workers=1, max_workers=1),
            )
            with pytest.raises(SystemExit) as exc:
                cli.main([])

        assert exc.value.code == 1
        assert "Error: cannot listen on" in capsys.readouterr().err

    def test_clean_shutdown_exits_0(self, monkeypatch):
        """Test the command returns 0 once the server is shut down."""
        created = threading.Event()
        servers = []

        class TrackedServer(HTTPServer):
            def __init__(self, *args, **kwargs):
                super().__init__(*args, **kwargs)
                servers.append(self)
                created.set()

        monkeypatch.setattr(
            cli, "ServerConfig",
            lambda: ServerConfig(port=0, min_workers=1, max_workers=1, keep_alive_timeout=1.0),
        )
        monkeypatch.setattr(cli, "HTTPServer", TrackedServer)

        result = []
        thread = threading.Thread(target=lambda: result.append(cli.main([])), daemon=True)
        thread.start()

        assert created.wait(timeout=5.0)
        server = servers[0]
        assert server.wait_until_started(timeout=5.0)
        status, _ = _get(server.port, "/bye")
        assert status == 200

        server.shutdown()
        thread.join(timeout=10.0)

        assert not thread.is_alive()
        assert result == [0]


def _get(port, path):
    conn = http.client.HTTPConnection("127.0.0.1", port, timeout=5.0)
    try:
        conn.request("GET", path)
        resp = conn.getresponse()
        return resp.status, resp.read()
    finally:
        conn.close()
