"""
The demo application: two routes, an access log, and two greeters.

    GET /hi   → greeter("Universe") → "Hi"
    GET /bye  → greeter()           → "Bye"
    anything else                   → 404

The access logger is registered globally, so 404s are logged too.
"""

from typing import Optional

from .application import App
from .middleware.greeter import greeter, DEFAULT_NAME
from .middleware.logging import request_logger


HI_GREETING = "Universe"


def hi(request, response):
    response.send("Hi")


def bye(request, response):
    response.send("Bye")


def create_app(
    hi_greeting: Optional[str] = HI_GREETING,
    bye_greeting: Optional[str] = DEFAULT_NAME,
    access_log: Optional[str] = "dev",
) -> App:
    """
    Build the demo App.

    Args:
        hi_greeting: Name the /hi greeter uses, or None for no greeter.
        bye_greeting: Name the /bye greeter uses, or None for no greeter.
        access_log: Access-log format, or None to register no logger.
    """
    app = App()

    if access_log is not None:
        app.use(request_logger(access_log))

    hi_units = [greeter(hi_greeting)] if hi_greeting is not None else []
    bye_units = [greeter(bye_greeting)] if bye_greeting is not None else []

    app.add_route("/hi", hi, *hi_units)
    app.add_route("/bye", bye, *bye_units)

    return app
