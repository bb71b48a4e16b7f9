#!/usr/bin/env python3
"""
tunebridge HTTP Server Runner
"""

from tunebridge.crosscutting.config import get_settings
from tunebridge.crosscutting.logging import setup_logging
from tunebridge.interfaces.http import HTTPServer


def main():
    """Run the HTTP server."""
    settings = get_settings()
    setup_logging(settings.log_level)
    server = HTTPServer(
        host=settings.host,
        port=settings.port,
        debug=False,
        settings=settings
    )
    server.run()


if __name__ == '__main__':
    main()
