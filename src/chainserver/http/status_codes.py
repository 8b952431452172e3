"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server can produce, with their reason phrases
(RFC 9110). Only the codes the pipeline and the listener emit are
listed here.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                   WHO PRODUCES WHICH STATUS                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   200 OK                  terminal handler (/hi, /bye)               │
    │   404 Not Found           pipeline, when the chain runs out          │
    │   500 Internal Error      pipeline, when a unit raises or stalls     │
    │                                                                      │
    │   400 / 405 / 413 / 505   listener, when the request bytes are bad   │
    │   408 Request Timeout     listener, when the client is too slow      │
    │   503 Unavailable         listener, when the thread pool is full     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so members compare equal to plain integers:

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    OK = 200

    BAD_REQUEST = 400
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    PAYLOAD_TOO_LARGE = 413

    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """Reason phrase used in the status line (``HTTP/1.1 404 Not Found``)."""
        return _STATUS_PHRASES.get(self, "Unknown")


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}


def reason_phrase(code: int) -> str:
    """
    Reason phrase for any integer status code.

    Handlers may set codes that are not members of HTTPStatus (a 418, say);
    those still need a status line, so we fall back to "Unknown".
    """
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return "Unknown"
