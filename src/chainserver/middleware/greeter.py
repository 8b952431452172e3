"""
Greeter: a handler factory that logs a greeting and passes control on.

    app.get("/hi", greeter("Universe"))   # logs "Hello, Universe"
    app.get("/bye", greeter())            # logs "Hello, World"
"""

import logging

from .base import FunctionMiddleware


logger = logging.getLogger(__name__)

DEFAULT_NAME = "World"


def greeter(name: str = DEFAULT_NAME) -> FunctionMiddleware:
    """
    Build a unit that logs ``Hello, <name>`` and calls next().

    ``name`` is fixed when the factory is called; every request served by
    the returned unit greets the same name.
    """
    message = f"Hello, {name}"

    def greet(request, response, next):
        logger.info(message)
        next()

    return FunctionMiddleware(greet, name=f"greeter({name})")
