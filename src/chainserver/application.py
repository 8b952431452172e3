"""
=============================================================================
APPLICATION
=============================================================================

App owns the two registries a request is dispatched against:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                              App                                     │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   MiddlewarePipeline      global units, run for every request       │
    │   Router                  (method, path) → route units + terminal   │
    │                                                                      │
    │   handle(request):                                                   │
    │       match = router.match(request.method, request.path)            │
    │       pipeline.run(request, response,                                │
    │                    route_units=match.route.middleware,               │
    │                    terminal=match.route.handler)                     │
    │                                                                      │
    │   With no match there are no route units and no terminal, so the    │
    │   global units run and the chain falls through to 404.               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

App knows nothing about sockets. HTTPServer feeds it parsed requests and
writes back what handle() returns, and tests call handle() directly.

=============================================================================
"""

import logging
from typing import Any, Callable, Optional

from .http.request import HTTPRequest
from .http.response import HTTPResponse
from .http.router import Router, Route, TerminalHandler
from .middleware.base import MiddlewarePipeline, as_middleware


logger = logging.getLogger(__name__)


class App:
    """
    A set of global units and routes.

        app = App()
        app.use(request_logger())

        @app.get("/hi", greeter("Universe"))
        def hi(request, response):
            response.send("Hi")

        response = app.handle(HTTPRequest(method="GET", path="/hi"))
        response.body   # b"Hi"
    """

    def __init__(self):
        self._router = Router()
        self._middleware = MiddlewarePipeline()

    @property
    def router(self) -> Router:
        return self._router

    @property
    def middleware(self) -> MiddlewarePipeline:
        return self._middleware

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def use(self, unit: Any) -> "App":
        """
        Register a global unit. It runs for every request after this call,
        matched or not, before any route unit.

        Returns self for chaining.
        """
        self._middleware.add(unit)
        return self

    def add_route(
        self,
        path: str,
        handler: TerminalHandler,
        *middleware: Any,
        method: Optional[str] = "GET",
        name: Optional[str] = None,
    ) -> Route:
        units = [as_middleware(mw) for mw in middleware]
        route = self._router.add_route(path, handler, *units, method=method, name=name)
        logger.debug(
            "Registered %s %s with %d unit(s)", route.method or "ANY", route.path, len(units)
        )
        return route

    def route(
        self,
        path: str,
        *middleware: Any,
        method: Optional[str] = "GET",
        name: Optional[str] = None,
    ) -> Callable[[TerminalHandler], TerminalHandler]:
        """
        Decorator registering a terminal handler with its route units.

            @app.route("/bye", greeter(), method="GET")
            def bye(request, response):
                response.send("Bye")
        """
        def decorator(handler: TerminalHandler) -> TerminalHandler:
            self.add_route(path, handler, *middleware, method=method, name=name)
            return handler
        return decorator

    def get(self, path: str, *middleware: Any, name: Optional[str] = None):
        return self.route(path, *middleware, method="GET", name=name)

    def post(self, path: str, *middleware: Any, name: Optional[str] = None):
        return self.route(path, *middleware, method="POST", name=name)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Run one request through the pipeline.

        Never raises for handler failures: the returned response is always
        sent, with 404 or 500 when the chain did not produce one.
        """
        response = HTTPResponse(version=request.version)
        match = self._router.match(request.method, request.path)

        if match is None:
            return self._middleware.run(request, response)

        route = match.route
        request.context["route"] = route.name
        return self._middleware.run(
            request,
            response,
            route_units=route.middleware,
            terminal=route.handler,
        )

    def __repr__(self) -> str:
        return f"<App {len(self._middleware)} global unit(s), {len(self._router)} route(s)>"
