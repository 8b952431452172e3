"""
=============================================================================
HTTP RESPONSE SINK
=============================================================================

HTTPResponse is the response-sink half of the (request, response, next)
triple every handler unit receives. Units write to it; the listener
serializes it to bytes once the chain has finished.

=============================================================================
WRITE-ONCE SEMANTICS
=============================================================================

A response can be sent exactly once. After ``send()`` the sink is sealed:
status, headers and body are frozen, and any further write raises
ResponseAlreadySentError.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    RESPONSE SINK LIFECYCLE                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │      OPEN                                         SENT               │
    │   ┌──────────────────────┐   send(body)    ┌──────────────────────┐ │
    │   │ status(code)    ✓    │ ──────────────► │ status(code)    ✗    │ │
    │   │ set_header()    ✓    │                 │ set_header()    ✗    │ │
    │   │ send()          ✓    │                 │ send()          ✗    │ │
    │   └──────────────────────┘                 │ to_bytes()      ✓    │ │
    │                                            └──────────────────────┘ │
    │                                                                      │
    │   ✗ = raises ResponseAlreadySentError                                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

This is what lets the pipeline answer "did anybody respond?" with a single
flag, ``response.sent``, and turn a duplicate response into a loud error
instead of two status lines on the wire.

=============================================================================
SERIALIZATION
=============================================================================

    HTTP/1.1 200 OK\r\n                         ← Status line
    Content-Type: text/html; charset=utf-8\r\n
    Content-Length: 2\r\n                       ← Always set
    Date: Sun, 18 Oct 2026 12:00:00 GMT\r\n     ← Always set
    Server: chainserver/1.0\r\n                 ← Always set
    \r\n
    Hi                                          ← Body bytes

=============================================================================
"""

from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Optional, Dict, Any, Union
import json

from .status_codes import HTTPStatus, reason_phrase


class ResponseAlreadySentError(RuntimeError):
    """Raised when a handler writes to a response that has already been sent."""


class HTTPResponse:
    """
    Write-once HTTP response sink.

    Usage inside a handler:

        def hi(request, response):
            response.send("Hi")

        def teapot(request, response):
            response.status(418).send("short and stout")

        def api(request, response):
            response.set_header("Cache-Control", "no-store").json({"ok": True})
    """

    def __init__(self, version: str = "HTTP/1.1"):
        self.version = version
        self.status_code: int = HTTPStatus.OK
        self.headers: Dict[str, str] = {}
        self.body: bytes = b""
        self._sent = False

    def __repr__(self) -> str:
        state = "sent" if self._sent else "open"
        return f"<HTTPResponse {self.status_code} {state} {len(self.body)} bytes>"

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def sent(self) -> bool:
        """True once a body has been written; the sink is then sealed."""
        return self._sent

    @property
    def status_line(self) -> str:
        return f"{self.version} {int(self.status_code)} {reason_phrase(self.status_code)}"

    def _ensure_open(self, action: str) -> None:
        if self._sent:
            raise ResponseAlreadySentError(
                f"Cannot {action}: response already sent "
                f"({int(self.status_code)} {reason_phrase(self.status_code)})"
            )

    # =========================================================================
    # MUTATORS (only while open)
    # =========================================================================

    def status(self, code: int) -> "HTTPResponse":
        """Set the status code. Chainable: ``response.status(404).send(...)``."""
        self._ensure_open("set status")
        if not 100 <= int(code) <= 599:
            raise ValueError(f"Invalid status code: {code}")
        self.status_code = code
        return self

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """
        Set a header, replacing any existing one with the same name
        (compared case-insensitively).

        Raises:
            ValueError: If the name or value cannot go on the wire as a
                single latin-1 header line.
        """
        self._ensure_open(f"set header {name}")
        _check_header(name, value)
        for existing in list(self.headers):
            if existing.lower() == name.lower():
                del self.headers[existing]
        self.headers[name] = value
        return self

    def reset_headers(self, keep=()) -> "HTTPResponse":
        """Drop every header except those named in ``keep``."""
        self._ensure_open("reset headers")
        wanted = {n.lower() for n in keep}
        self.headers = {n: v for n, v in self.headers.items() if n.lower() in wanted}
        return self

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup. Allowed before and after sending."""
        for existing, value in self.headers.items():
            if existing.lower() == name.lower():
                return value
        return default

    def has_header(self, name: str) -> bool:
        return self.get_header(name) is not None

    def send(self, body: Union[str, bytes] = b"") -> "HTTPResponse":
        """
        Write the body and seal the response.

        A str body defaults to ``text/html; charset=utf-8`` and bytes to
        ``application/octet-stream``, unless a Content-Type was already set.
        """
        self._ensure_open("send")

        if isinstance(body, str):
            payload = body.encode("utf-8")
            default_type = "text/html; charset=utf-8"
        else:
            payload = bytes(body)
            default_type = "application/octet-stream"

        if not self.has_header("Content-Type") and payload:
            self.headers["Content-Type"] = default_type

        self.body = payload
        self._sent = True
        return self

    def json(self, data: Any) -> "HTTPResponse":
        """Serialize ``data`` as JSON and send it."""
        self._ensure_open("send")
        if not self.has_header("Content-Type"):
            self.headers["Content-Type"] = "application/json; charset=utf-8"
        return self.send(json.dumps(data).encode("utf-8"))

    def send_status(self, code: int) -> "HTTPResponse":
        """Set the status and send its reason phrase as a plain-text body."""
        self.status(code)
        self.set_header("Content-Type", "text/plain; charset=utf-8")
        return self.send(reason_phrase(code))

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def to_bytes(self, server_name: str = "chainserver/1.0") -> bytes:
        """
        Serialize to raw HTTP bytes.

        Content-Length, Date and Server are filled in when the handler did
        not set them. The stored headers are not modified.
        """
        response_headers = dict(self.headers)

        if not self.has_header("Content-Length"):
            response_headers["Content-Length"] = str(len(self.body))

        if not self.has_header("Date"):
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if not self.has_header("Server"):
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("latin-1") + b"\r\n"
        return header_bytes + self.body


def _check_header(name: str, value: str) -> None:
    line = f"{name}: {value}"
    if "\r" in line or "\n" in line:
        raise ValueError(f"Header {name!r} contains a line break")
    try:
        line.encode("latin-1")
    except UnicodeEncodeError:
        raise ValueError(f"Header {name!r} is not latin-1 encodable: {value!r}") from None


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date: ``Sun, 18 Oct 2026 12:00:00 GMT``.

    HTTP dates are always GMT.
    """
    return format_datetime(dt.astimezone(timezone.utc), usegmt=True)


def error_response(
    status: HTTPStatus,
    message: Optional[str] = None,
    close: bool = False,
) -> HTTPResponse:
    """
    Build a sent plain-text error response.

    Used by the listener for errors that happen before any handler runs
    (400, 408, 413, 503).
    """
    response = HTTPResponse()
    if close:
        response.set_header("Connection", "close")
    if message is None:
        return response.send_status(status)
    response.status(status)
    response.set_header("Content-Type", "text/plain; charset=utf-8")
    return response.send(message)
