"""
=============================================================================
URL ROUTER
=============================================================================

Maps (method, path) to a route: an ordered list of route-specific handler
units plus the terminal handler that produces the response.

=============================================================================
ROUTE TABLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         ROUTE TABLE                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   METHOD  PATH   ROUTE UNITS              TERMINAL                   │
    │   ──────  ─────  ───────────────────────  ─────────                  │
    │   GET     /hi    [greeter("Universe")]    hi   → "Hi"                │
    │   GET     /bye   [greeter()]              bye  → "Bye"               │
    │                                                                      │
    │   GET /nope  → no match → the pipeline falls through to 404          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Paths are static. Matching is exact after normalizing slashes, so "/hi"
and "/hi/" are the same route, but "/hi/there" is not.

HEAD requests fall back to the GET route for the same path; the listener
drops the body before writing the response.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Dict, List, Tuple, Any


# Terminal handler: (request, response) -> None. It must write a response.
TerminalHandler = Callable[[Any, Any], None]


@dataclass
class Route:
    """
    A registered route.

        Route(
            path="/bye",
            method="GET",
            handler=bye,               # terminal handler
            middleware=[greeter()],    # route-specific units, in order
            name="bye",
        )
    """

    path: str
    method: Optional[str]
    handler: TerminalHandler
    middleware: List[Any] = field(default_factory=list)
    name: Optional[str] = None

    def __post_init__(self):
        if self.name is None:
            self.name = getattr(self.handler, "__name__", None)


@dataclass
class RouteMatch:
    """Result of a successful lookup."""

    route: Route


def normalize_path(path: str) -> str:
    """
    Canonical form used for registration and lookup.

        ""       → "/"
        "/hi/"   → "/hi"
        "hi"     → "/hi"
        "//a//"  → "/a"
    """
    stripped = path.strip("/")
    return "/" + stripped if stripped else "/"


class Router:
    """
    Static route table.

    Usage:

        router = Router()

        @router.get("/hi", greeter("Universe"))
        def hi(request, response):
            response.send("Hi")

        match = router.match("GET", "/hi")
        match.route.middleware   # [greeter("Universe")]
        match.route.handler      # hi
    """

    def __init__(self):
        self._routes: Dict[Tuple[Optional[str], str], Route] = {}

    def __len__(self) -> int:
        return len(self._routes)

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def add_route(
        self,
        path: str,
        handler: TerminalHandler,
        *middleware: Any,
        method: Optional[str] = "GET",
        name: Optional[str] = None,
    ) -> Route:
        """
        Register a route.

        Args:
            path: Static path, e.g. "/bye".
            handler: Terminal handler ``(request, response)``.
            *middleware: Route-specific units, run in the given order.
            method: HTTP method, or None to accept any method.
            name: Optional label, defaults to the handler's __name__.

        Raises:
            ValueError: If the same method and path are registered twice.
        """
        if not callable(handler):
            raise TypeError(f"Route handler for {path} is not callable")

        key = (method.upper() if method else None, normalize_path(path))
        if key in self._routes:
            raise ValueError(f"Route already registered: {key[0] or 'ANY'} {key[1]}")

        route = Route(
            path=key[1],
            method=key[0],
            handler=handler,
            middleware=list(middleware),
            name=name,
        )
        self._routes[key] = route
        return route

    def route(
        self,
        path: str,
        *middleware: Any,
        method: Optional[str] = "GET",
        name: Optional[str] = None,
    ) -> Callable[[TerminalHandler], TerminalHandler]:
        """
        Decorator form of add_route(). Returns the handler unchanged.

            @router.route("/bye", greeter(), method="GET")
            def bye(request, response):
                response.send("Bye")
        """
        def decorator(handler: TerminalHandler) -> TerminalHandler:
            self.add_route(path, handler, *middleware, method=method, name=name)
            return handler
        return decorator

    def get(self, path: str, *middleware: Any, name: Optional[str] = None):
        """Register a GET route."""
        return self.route(path, *middleware, method="GET", name=name)

    def post(self, path: str, *middleware: Any, name: Optional[str] = None):
        """Register a POST route."""
        return self.route(path, *middleware, method="POST", name=name)

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """
        Find the route for a request.

        Lookup order: exact method, then GET for a HEAD request, then a
        route registered for any method. Returns None when nothing matches.
        """
        method = method.upper()
        path = normalize_path(path)

        candidates = [method]
        if method == "HEAD":
            candidates.append("GET")
        candidates.append(None)

        for candidate in candidates:
            route = self._routes.get((candidate, path))
            if route is not None:
                return RouteMatch(route=route)

        return None

    def routes(self) -> List[Route]:
        """All routes in registration order."""
        return list(self._routes.values())
