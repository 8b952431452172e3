"""
=============================================================================
CLI ENTRY POINT
=============================================================================

    chainserver
    python -m chainserver

Starts the demo application on port 3000. There are no options; ``-h``
prints a short description.

Exit codes:

    0   stopped with Ctrl+C or SIGTERM
    1   could not start (port already in use, permission denied, ...)

=============================================================================
"""

import argparse
import sys

from . import __version__
from .config import ServerConfig
from .demo import create_app
from .server import HTTPServer


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="chainserver",
        description="Middleware chaining demo: GET /hi and GET /bye on port 3000.",
        epilog=f"chainserver {__version__}",
    )
    parser.parse_args(argv)

    config = ServerConfig()
    server = HTTPServer(create_app(), config)

    try:
        server.run()
    except OSError as e:
        print(f"Error: cannot listen on {config.host}:{config.port}: {e}", file=sys.stderr)
        sys.exit(1)

    return 0


if __name__ == "__main__":
    sys.exit(main())
