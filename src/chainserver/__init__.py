"""
=============================================================================
CHAINSERVER
=============================================================================

A small HTTP server built to show request/response/next middleware
chaining.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   request ──► global units ──► route units ──► terminal handler     │
    │                 (access log)    (greeter)       (send "Hi")          │
    │                                                                      │
    │   nobody responded ──► 404        a unit raised ──► 500              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Quick start:

    from chainserver import App, HTTPServer, ServerConfig
    from chainserver.middleware import greeter, request_logger

    app = App()
    app.use(request_logger())

    @app.get("/hi", greeter("Universe"))
    def hi(request, response):
        response.send("Hi")

    HTTPServer(app, ServerConfig(port=3000)).run()

Package layout:

    application.py  App: global units, routes, dispatch
    demo.py         create_app(), the /hi and /bye demo
    server.py       HTTPServer: sockets, keep-alive, error responses
    config.py       ServerConfig
    core/           socket server, connections, thread pool
    http/           request parsing, response sink, router, status codes
    middleware/     pipeline, access log, greeter

=============================================================================
"""

__version__ = "1.0.0"

from .application import App
from .config import ServerConfig
from .demo import create_app
from .server import HTTPServer

__all__ = ["App", "HTTPServer", "ServerConfig", "create_app", "__version__"]
