"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw bytes a client sent into an HTTPRequest: the request-context
object every handler unit in the pipeline receives.

=============================================================================
HTTP REQUEST FORMAT (RFC 9112)
=============================================================================

    GET /hi?lang=en HTTP/1.1\r\n      ← Request line: METHOD TARGET VERSION
    Host: localhost:3000\r\n          ← Headers, one per line
    User-Agent: curl/8.4.0\r\n
    \r\n                              ← Empty line ends the header section
    [body]                            ← Content-Length bytes, if any

=============================================================================
THE REQUEST AS SHARED CONTEXT
=============================================================================

One HTTPRequest object travels the whole chain. Units may read it and may
also write to ``request.context``, a plain dict, to hand data to the units
after them:

    ┌──────────────┐     ┌──────────────┐     ┌──────────────┐
    │ access log   │ ──► │   greeter    │ ──► │   terminal   │
    │ context[     │     │ reads        │     │ reads        │
    │ "request_id"]│     │ request.path │     │ context      │
    │    = "a1b2"  │     │              │     │              │
    └──────────────┘     └──────────────┘     └──────────────┘

The context lives exactly as long as the request. Nothing is shared
between requests.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any
from urllib.parse import parse_qs, urlsplit, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the status code the listener should answer with:

        400 Bad Request                - Malformed request syntax
        405 Method Not Allowed         - Unknown method token
        413 Payload Too Large          - Request exceeds size limit
        505 HTTP Version Not Supported - Anything but HTTP/1.0 or 1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:         GET, POST, ... (always upper case)
        path:           Decoded path without the query string ("/hi")
        target:         The request target exactly as sent ("/hi?lang=en")
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Header dict with lower-case names
        query_params:   "?a=1&a=2" → {"a": ["1", "2"]}
        body:           Raw body bytes
        client_address: (ip, port) of the peer
        context:        Per-request scratch space shared by the units
    """

    method: str
    path: str
    target: str = ""
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""
    client_address: tuple[str, int] = ("", 0)
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # Requests built by hand in tests often only give method and path.
        if not self.target:
            self.target = self.path

    @property
    def url(self) -> str:
        """The original request target, query string included."""
        return self.target

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        Should the connection stay open after this request?

            HTTP/1.1: keep alive unless "Connection: close"
            HTTP/1.0: close unless "Connection: keep-alive"
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter, or ``default``."""
        values = self.query_params.get(name, [])
        return values[0] if values else default


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    =========================================================================
    PARSING STEPS
    =========================================================================

        1. Enforce the size limit
        2. Split at the first \\r\\n\\r\\n into header section and body
        3. Parse the request line (method, target, version)
        4. Parse header lines into a lower-cased dict
        5. Trim the body to Content-Length

    =========================================================================
    """

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) (\S+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:\s]+):(.*)$")
    VALID_METHODS = frozenset(
        {"GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"}
    )

    def __init__(self, max_request_size: int = 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse one complete request.

        Args:
            data: Raw request bytes, headers and body.
            client_address: Peer (ip, port), kept for access logging.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, target, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            target=target,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, str, Dict[str, list[str]], str]:
        """
        Parse ``METHOD SP TARGET SP VERSION``.

        Returns:
            (method, target, path, query_params, version)
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        parts = urlsplit(target)
        path = unquote(parts.path) or "/"
        query_params = parse_qs(parts.query, keep_blank_values=True)

        return method, target, path, query_params, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict keyed by lower-case name.

        Repeated headers are joined with ", ". Lines that are not
        ``name: value`` are skipped.
        """
        headers: Dict[str, str] = {}

        for line in lines:
            if not line:
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.lower()
            value = value.strip()

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers
