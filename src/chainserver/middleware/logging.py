"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

One log line per request, written after the rest of the chain has run so
the final status code and timing are known.

=============================================================================
FORMATS
=============================================================================

A format is a string of ``:token`` placeholders. A few have names:

    dev       GET /hi 200 0.412 ms - 2
    tiny      GET /hi 200 2 - 0.412 ms
    short     127.0.0.1 GET /hi HTTP/1.1 200 2 - 0.412 ms
    common    127.0.0.1 - - [18/Oct/2026:12:00:00 +0000] "GET /hi HTTP/1.1" 200 2
    combined  common + "referrer" "user-agent"
    json      {"request_id": "a1b2c3d4", "method": "GET", ...}

Any other string is compiled as a custom format:

    request_logger(":method :url -> :status (:res[x-request-id])")

    ┌─────────────────────────────────────────────────────────────────────┐
    │                            TOKENS                                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │   :method          GET                                               │
    │   :url             /hi?lang=en      (target as sent)                 │
    │   :status          200                                               │
    │   :response-time   0.412            (milliseconds)                   │
    │   :remote-addr     127.0.0.1                                         │
    │   :http-version    1.1                                               │
    │   :user-agent      curl/8.4.0                                        │
    │   :referrer        Referer header                                    │
    │   :date[fmt]       web (default), clf or iso                         │
    │   :request-id      a1b2c3d4                                          │
    │   :res[name]       response header                                   │
    │   :req[name]       request header                                    │
    │                                                                      │
    │   Unknown tokens and missing values print as "-".                    │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST IDS
=============================================================================

Before calling next() the middleware stores a short random id in
``request.context["request_id"]`` so later units can include it in their
own log lines, and sets it as the X-Request-ID response header.

=============================================================================
"""

import re
import time
import json
import uuid
import logging
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Union

from .base import Middleware, NextFunction
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, format_http_date


logger = logging.getLogger("chainserver.access")


FORMATS: Dict[str, str] = {
    "dev": ":method :url :status :response-time ms - :res[content-length]",
    "tiny": ":method :url :status :res[content-length] - :response-time ms",
    "short": (
        ":remote-addr :method :url HTTP/:http-version :status "
        ":res[content-length] - :response-time ms"
    ),
    "common": (
        ':remote-addr - - [:date[clf]] ":method :url HTTP/:http-version" '
        ":status :res[content-length]"
    ),
    "combined": (
        ':remote-addr - - [:date[clf]] ":method :url HTTP/:http-version" '
        ':status :res[content-length] ":referrer" ":user-agent"'
    ),
}

TOKEN_PATTERN = re.compile(r":([-\w]{2,})(?:\[([^\]]+)\])?")


@dataclass
class RequestLog:
    """
    Everything known about a finished request.

    ``to_dict()`` is the json format; tokens in the text formats read
    their values from here, apart from ``:res[...]`` and ``:req[...]``
    which look at the live objects.
    """

    request_id: str
    method: str
    path: str
    url: str
    query: str
    http_version: str
    client_ip: str
    user_agent: str
    referrer: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "method": self.method,
            "path": self.path,
            "query": self.query,
            "client_ip": self.client_ip,
            "user_agent": self.user_agent,
            "status_code": self.status_code,
            "content_length": self.content_length,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp.isoformat(),
        }


# A compiled format is a list of literal strings and (token, argument) pairs.
CompiledFormat = List[Union[str, Tuple[str, Optional[str]]]]

TokenFunction = Callable[[RequestLog, HTTPRequest, HTTPResponse, Optional[str]], Optional[str]]


def _res_header(entry: RequestLog, request, response, name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    value = response.get_header(name)
    if value is None and name.lower() == "content-length" and response.body:
        # The listener adds Content-Length at serialization time.
        value = str(entry.content_length)
    return value


def _date(entry: RequestLog, request, response, fmt: Optional[str]) -> Optional[str]:
    when = entry.timestamp
    if fmt is None or fmt == "web":
        return format_http_date(when)
    if fmt == "clf":
        return when.strftime("%d/%b/%Y:%H:%M:%S %z")
    if fmt == "iso":
        return when.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return None


def _req_header(entry, request: HTTPRequest, response, name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    return request.get_header(name) or None


TOKENS: Dict[str, TokenFunction] = {
    "method": lambda e, req, res, arg: e.method,
    "url": lambda e, req, res, arg: e.url,
    "status": lambda e, req, res, arg: str(e.status_code),
    "response-time": lambda e, req, res, arg: f"{e.duration_ms:.3f}",
    "remote-addr": lambda e, req, res, arg: e.client_ip,
    "http-version": lambda e, req, res, arg: e.http_version,
    "user-agent": lambda e, req, res, arg: e.user_agent,
    "referrer": lambda e, req, res, arg: e.referrer,
    "date": _date,
    "request-id": lambda e, req, res, arg: e.request_id,
    "res": _res_header,
    "req": _req_header,
}


def compile_format(fmt: str) -> CompiledFormat:
    """
    Split a format string into literals and tokens.

        ":method :url"  →  [("method", None), " ", ("url", None)]
    """
    parts: CompiledFormat = []
    position = 0
    for match in TOKEN_PATTERN.finditer(fmt):
        if match.start() > position:
            parts.append(fmt[position:match.start()])
        parts.append((match.group(1), match.group(2)))
        position = match.end()
    if position < len(fmt):
        parts.append(fmt[position:])
    return parts


def render(
    compiled: CompiledFormat,
    entry: RequestLog,
    request: HTTPRequest,
    response: HTTPResponse,
) -> str:
    out = []
    for part in compiled:
        if isinstance(part, str):
            out.append(part)
            continue
        token, arg = part
        func = TOKENS.get(token)
        value = func(entry, request, response, arg) if func else None
        out.append(value if value else "-")
    return "".join(out)


class LoggingMiddleware(Middleware):
    """
    Access log middleware.

    Register it first so it sees every request, including the 404s and
    500s the pipeline produces:

        app.use(LoggingMiddleware())                      # dev format
        app.use(LoggingMiddleware("combined"))
        app.use(LoggingMiddleware("json", skip_paths=["/health"]))
    """

    def __init__(
        self,
        fmt: str = "dev",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[List[str]] = None,
    ):
        """
        Args:
            fmt: A named format ("dev", "combined", "common", "short",
                "tiny", "json") or a custom token string.
            include_request_id: Set the X-Request-ID response header.
            log_level: Level the access lines are logged at.
            skip_paths: Paths that are served but not logged.
        """
        self.fmt = fmt
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

        self._json = fmt == "json"
        self._compiled = None if self._json else compile_format(FORMATS.get(fmt, fmt))

    @property
    def name(self) -> str:
        return f"LoggingMiddleware({self.fmt})"

    def __call__(
        self,
        request: HTTPRequest,
        response: HTTPResponse,
        next: NextFunction,
    ) -> None:
        request_id = uuid.uuid4().hex[:8]
        request.context["request_id"] = request_id

        if self.include_request_id and not response.sent:
            response.set_header("X-Request-ID", request_id)

        start_time = time.perf_counter()
        next()
        duration_ms = (time.perf_counter() - start_time) * 1000

        if request.path in self.skip_paths:
            return

        entry = self._build_entry(request, response, request_id, duration_ms)
        logger.log(self.log_level, self.format(entry, request, response))

    def format(
        self,
        entry: RequestLog,
        request: HTTPRequest,
        response: HTTPResponse,
    ) -> str:
        """Render one access line in this middleware's format."""
        if self._json:
            return json.dumps(entry.to_dict())
        return render(self._compiled, entry, request, response)

    @staticmethod
    def _build_entry(
        request: HTTPRequest,
        response: HTTPResponse,
        request_id: str,
        duration_ms: float,
    ) -> RequestLog:
        query = request.url.partition("?")[2]
        return RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            url=request.url,
            query=query,
            http_version=request.version.partition("/")[2],
            client_ip=request.client_address[0],
            user_agent=request.user_agent,
            referrer=request.get_header("referer") or request.get_header("referrer"),
            status_code=int(response.status_code),
            content_length=len(response.body),
            duration_ms=duration_ms,
            timestamp=datetime.now(timezone.utc),
        )


def request_logger(fmt: str = "dev", **options) -> LoggingMiddleware:
    """
    Access-log factory.

        app.use(request_logger())            # dev
        app.use(request_logger("tiny"))
        app.use(request_logger(":method :url :status"))

    Extra keyword arguments go to LoggingMiddleware.
    """
    return LoggingMiddleware(fmt, **options)
