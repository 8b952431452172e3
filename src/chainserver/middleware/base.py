"""
=============================================================================
HANDLER UNITS AND THE PIPELINE
=============================================================================

A handler unit is any callable taking ``(request, response, next)``. It
does one of three things:

    1. calls next() to hand control to the following unit
    2. writes a response with response.send(...) and returns
    3. does some work (logging, setting context) and then calls next()

    ┌─────────────────────────────────────────────────────────────────────┐
    │                 ONE REQUEST THROUGH THE PIPELINE                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   global units              route units           terminal          │
    │   ┌──────────┐  next()  ┌──────────────┐  next()  ┌──────────┐      │
    │   │ access   │ ───────► │ greeter(...) │ ───────► │   hi     │      │
    │   │ logger   │          │              │          │ send()   │      │
    │   └────▲─────┘          └──────────────┘          └──────────┘      │
    │        │                                                             │
    │        └── next() returns here once everything after it is done,   │
    │            so the logger sees the final status                      │
    │                                                                      │
    │   Ran out of units, nobody sent          ──► 404 Not Found          │
    │   A unit raised                          ──► 500, traceback logged  │
    │   A unit neither sent nor called next()  ──► 500, error logged      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
THE CONTINUATION
=============================================================================

Each unit gets its own ``next``. Calling it runs the rest of the chain
synchronously and returns when the rest of the chain has finished. Calling
it a second time raises ContinuationError.

Failures are caught at the unit that raised. The units before it see
their next() return normally, with the 500 already on the response.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterable, List, Optional, Union
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse
from ..http.router import TerminalHandler
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


# =============================================================================
# TYPE ALIASES
# =============================================================================

# The continuation a unit calls to pass control on. Takes no arguments.
NextFunction = Callable[[], None]

UnitFunction = Callable[[HTTPRequest, HTTPResponse, NextFunction], None]


class ContinuationError(RuntimeError):
    """Raised when a unit calls next() more than once for the same request."""


class Middleware(ABC):
    """
    Abstract base class for handler units.

        class StampContext(Middleware):
            def __call__(self, request, response, next):
                request.context["stamped"] = True   # before the rest
                next()                              # run the rest
                # after: response.status_code is final here
    """

    @abstractmethod
    def __call__(
        self,
        request: HTTPRequest,
        response: HTTPResponse,
        next: NextFunction,
    ) -> None:
        """
        Process the request.

        Either write a response or call ``next()`` exactly once.
        """

    @property
    def name(self) -> str:
        """Name used in log lines."""
        return self.__class__.__name__


class FunctionMiddleware(Middleware):
    """
    Wraps a plain function as a unit.

        def stamp(request, response, next):
            request.context["stamped"] = True
            next()

        app.use(FunctionMiddleware(stamp))
    """

    def __init__(self, func: UnitFunction, name: Optional[str] = None):
        self._func = func
        self._name = name or getattr(func, "__name__", type(func).__name__)

    def __call__(self, request, response, next) -> None:
        self._func(request, response, next)

    @property
    def name(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"<FunctionMiddleware {self._name}>"


def function_middleware(func: UnitFunction) -> FunctionMiddleware:
    """
    Decorator form of FunctionMiddleware.

        @function_middleware
        def stamp(request, response, next):
            request.context["stamped"] = True
            next()

        app.use(stamp)
    """
    return FunctionMiddleware(func)


def as_middleware(unit: Union[Middleware, UnitFunction]) -> Middleware:
    """Accept either a Middleware or a bare ``(request, response, next)`` function."""
    if isinstance(unit, Middleware):
        return unit
    if not callable(unit):
        raise TypeError(f"Handler unit must be callable, got {type(unit).__name__}")
    return FunctionMiddleware(unit)


class MiddlewarePipeline:
    """
    Ordered list of global units, and the runner that walks a chain.

        pipeline = MiddlewarePipeline()
        pipeline.use(request_logger())

        response = pipeline.run(
            request,
            HTTPResponse(),
            route_units=[greeter("Universe")],
            terminal=hi,
        )

    Units run in the order added. The pipeline holds no per-request
    state, so one instance serves concurrent requests.
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Union[Middleware, UnitFunction]) -> "MiddlewarePipeline":
        """Append one unit. Returns self for chaining."""
        unit = as_middleware(middleware)
        self._middleware.append(unit)
        logger.debug("Added middleware: %s", unit.name)
        return self

    def use(self, *middleware: Union[Middleware, UnitFunction]) -> "MiddlewarePipeline":
        """Append several units at once."""
        for mw in middleware:
            self.add(mw)
        return self

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)

    # =========================================================================
    # RUNNING A CHAIN
    # =========================================================================

    def run(
        self,
        request: HTTPRequest,
        response: HTTPResponse,
        route_units: Iterable[Middleware] = (),
        terminal: Optional[TerminalHandler] = None,
    ) -> HTTPResponse:
        """
        Run the global units, then ``route_units``, then ``terminal``.

        Args:
            request: Shared request context.
            response: Write-once sink the units write to.
            route_units: Units bound to the matched route, if any.
            terminal: The route's terminal handler, or None when no route
                matched.

        Returns:
            ``response``, always sent by the time this returns.
        """
        units = list(self._middleware) + [as_middleware(u) for u in route_units]

        def dispatch(index: int) -> None:
            if index < len(units):
                self._run_unit(units[index], request, response, lambda: dispatch(index + 1))
                return

            if terminal is not None:
                self._run_terminal(terminal, request, response)

            # End of the chain: units upstream must see the 404 when next() returns.
            if not response.sent:
                logger.debug("No handler responded to %s %s", request.method, request.path)
                _send_fallback(response, HTTPStatus.NOT_FOUND)

        dispatch(0)
        return response

    def _run_unit(
        self,
        unit: Middleware,
        request: HTTPRequest,
        response: HTTPResponse,
        downstream: Callable[[], None],
    ) -> None:
        called = False

        def next() -> None:
            nonlocal called
            if called:
                raise ContinuationError(f"next() called more than once by {unit.name}")
            called = True
            downstream()

        try:
            unit(request, response, next)
        except Exception:
            logger.exception(
                "Unhandled error in %s for %s %s", unit.name, request.method, request.path
            )
            if not response.sent:
                _send_fallback(response, HTTPStatus.INTERNAL_SERVER_ERROR)
            return

        if not called and not response.sent:
            logger.error(
                "%s returned without calling next() or sending a response for %s %s",
                unit.name, request.method, request.path,
            )
            _send_fallback(response, HTTPStatus.INTERNAL_SERVER_ERROR)

    def _run_terminal(
        self,
        terminal: TerminalHandler,
        request: HTTPRequest,
        response: HTTPResponse,
    ) -> None:
        name = getattr(terminal, "__name__", repr(terminal))
        try:
            terminal(request, response)
        except Exception:
            logger.exception(
                "Unhandled error in handler %s for %s %s", name, request.method, request.path
            )
            if not response.sent:
                _send_fallback(response, HTTPStatus.INTERNAL_SERVER_ERROR)


def _send_fallback(response: HTTPResponse, status: HTTPStatus) -> None:
    """
    Write one of the pipeline's own plain-text responses (404, 500).

    Drops any header a handler set before failing, except the request id.
    """
    response.reset_headers(keep=("X-Request-ID",))
    response.send_status(status)
