"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py      bytes → HTTPRequest (the shared request context)    │
    │ response.py     HTTPResponse, the write-once response sink          │
    │ router.py       (method, path) → route units + terminal handler     │
    │ status_codes.py HTTPStatus with reason phrases                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError
from .response import (
    HTTPResponse,
    ResponseAlreadySentError,
    error_response,
    format_http_date,
)
from .router import Router, Route, RouteMatch, normalize_path
from .status_codes import HTTPStatus

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "HTTPResponse",
    "ResponseAlreadySentError",
    "error_response",
    "format_http_date",
    "Router",
    "Route",
    "RouteMatch",
    "normalize_path",
    "HTTPStatus",
]
