"""
=============================================================================
HTTPWARE - HTTP Middleware, Static Files and a Threaded HTTP/1.1 + HTTP/2 Server
=============================================================================

Apps are plain callables ``request -> response``. Middleware wraps apps to
add caching validators, timing, locking and method overriding, and a small
server runs the result over HTTP/1.1 or HTTP/2.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   HTTPServer (HTTP/1.1 keep-alive, HTTP/2 prior knowledge)          │
    │        │                                                             │
    │        ▼                                                             │
    │   middleware:  Runtime → Lock → MethodOverride → ConditionalGet     │
    │                → ETag → ContentLength → Head                        │
    │        │                                                             │
    │        ▼                                                             │
    │   app:  StaticFileHandler (byte ranges) or your own callable        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    httpware/
    ├── __init__.py          # package exports
    ├── __main__.py          # CLI (python -m httpware ROOT)
    ├── server.py            # HTTPServer, run(), valid_options()
    ├── config.py            # ServerConfig
    ├── core/                # sockets, connections, thread pool, HTTP/2
    ├── http/                # request, response, dates, ranges, statuses
    ├── middleware/          # ConditionalGet, ETag, Runtime, Lock, ...
    └── handlers/            # StaticFileHandler

=============================================================================
QUICK START
=============================================================================

    from httpware import HTTPServer, ServerConfig
    from httpware.handlers import StaticFileHandler
    from httpware.middleware import (
        ConditionalGetMiddleware, ETagMiddleware, RuntimeMiddleware,
    )

    server = HTTPServer(StaticFileHandler("./public"), ServerConfig(port=8080))
    server.use(RuntimeMiddleware())
    server.use(ConditionalGetMiddleware())
    server.use(ETagMiddleware())
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .server import HTTPServer, run, valid_options
from .config import ServerConfig

__all__ = ["HTTPServer", "ServerConfig", "run", "valid_options", "__version__"]
