"""
=============================================================================
HANDLER UNITS
=============================================================================

    base.py     Middleware, FunctionMiddleware, MiddlewarePipeline,
                ContinuationError
    logging.py  LoggingMiddleware and the request_logger() factory
    greeter.py  the greeter() factory

Any ``(request, response, next)`` function can be registered as a unit;
the classes here are for units that carry configuration.

=============================================================================
"""

from .base import (
    Middleware,
    MiddlewarePipeline,
    FunctionMiddleware,
    function_middleware,
    as_middleware,
    ContinuationError,
    NextFunction,
)
from .logging import LoggingMiddleware, RequestLog, request_logger, FORMATS
from .greeter import greeter, DEFAULT_NAME

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "FunctionMiddleware",
    "function_middleware",
    "as_middleware",
    "ContinuationError",
    "NextFunction",
    "LoggingMiddleware",
    "RequestLog",
    "request_logger",
    "FORMATS",
    "greeter",
    "DEFAULT_NAME",
]
