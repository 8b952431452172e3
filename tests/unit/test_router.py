"""
Unit tests for URL router.
"""

import pytest

from chainserver.http.router import Router, normalize_path
from chainserver.middleware import greeter


def hi(request, response):
    response.send("Hi")


def bye(request, response):
    response.send("Bye")


class TestRouter:
    """Tests for Router class."""

    def test_add_route(self):
        """Test adding routes."""
        router = Router()
        route = router.add_route("/hi", hi)

        assert len(router) == 1
        assert route.path == "/hi"
        assert route.method == "GET"
        assert route.name == "hi"
        assert route.middleware == []

    def test_route_units_kept_in_order(self):
        """Test route units are stored in order."""
        first, second = greeter("A"), greeter("B")
        router = Router()
        route = router.add_route("/hi", hi, first, second)
        assert route.middleware == [first, second]

    def test_match_static_path(self):
        """Test matching static paths."""
        router = Router()
        router.add_route("/hi", hi)
        router.add_route("/bye", bye)

        assert router.match("GET", "/hi").route.handler is hi
        assert router.match("GET", "/bye").route.handler is bye

    def test_no_match(self):
        """Test unknown paths and methods do not match."""
        router = Router()
        router.add_route("/hi", hi)

        assert router.match("GET", "/nope") is None
        assert router.match("GET", "/hi/there") is None
        assert router.match("POST", "/hi") is None

    def test_trailing_slash_is_ignored(self):
        """Test a trailing slash still matches."""
        router = Router()
        router.add_route("/hi", hi)
        assert router.match("GET", "/hi/") is not None

    def test_method_is_case_insensitive(self):
        """Test route methods are upper-cased."""
        router = Router()
        router.add_route("/hi", hi, method="get")
        assert router.match("GET", "/hi") is not None

    def test_head_falls_back_to_get(self):
        """Test HEAD matches a GET route."""
        router = Router()
        router.add_route("/hi", hi)
        assert router.match("HEAD", "/hi").route.handler is hi

    def test_any_method_route(self):
        """Test a route registered for any method."""
        router = Router()
        router.add_route("/echo", hi, method=None)

        assert router.match("PUT", "/echo") is not None
        assert router.match("DELETE", "/echo") is not None

    def test_exact_method_wins_over_any(self):
        """Test an exact method route beats an any-method route."""
        router = Router()
        router.add_route("/x", hi, method=None)
        router.add_route("/x", bye, method="POST")

        assert router.match("POST", "/x").route.handler is bye
        assert router.match("GET", "/x").route.handler is hi

    def test_duplicate_route(self):
        """Test registering the same route twice fails."""
        router = Router()
        router.add_route("/hi", hi)
        with pytest.raises(ValueError):
            router.add_route("/hi/", bye)

    def test_handler_must_be_callable(self):
        """Test a non-callable handler is refused."""
        with pytest.raises(TypeError):
            Router().add_route("/hi", "Hi")

    def test_decorators(self):
        """Test the get and post decorators."""
        router = Router()

        @router.get("/hi", greeter())
        def hello(request, response):
            response.send("Hi")

        @router.post("/bye")
        def goodbye(request, response):
            response.send("Bye")

        assert router.match("GET", "/hi").route.handler is hello
        assert router.match("POST", "/bye").route.handler is goodbye
        assert [r.name for r in router.routes()] == ["hello", "goodbye"]


@pytest.mark.parametrize("path,expected", [
    ("", "/"),
    ("/", "/"),
    ("/hi/", "/hi"),
    ("hi", "/hi"),
    ("//a//", "/a"),
])
def test_normalize_path(path, expected):
    """Test path normalization."""
    assert normalize_path(path) == expected
