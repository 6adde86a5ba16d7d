"""
=============================================================================
HTTPWARE CLI
=============================================================================

Serves a directory through the full middleware stack.

    python -m httpware                      # current directory on :8080
    python -m httpware ./public --port 3000
    python -m httpware ./public --http2     # also accept h2 prior knowledge
    python -m httpware ./public --lock      # one request at a time

The app built here, outermost first:

    LoggingMiddleware
    RuntimeMiddleware        (--runtime-name NAME → X-Runtime-NAME)
    LockMiddleware           (--lock)
    MethodOverrideMiddleware
    HeadMiddleware
    ConditionalGetMiddleware
    ETagMiddleware           (unless --no-etag)
    ContentLengthMiddleware
    StaticFileHandler(ROOT)

=============================================================================
"""

import argparse
import sys
import os

from . import __version__
from .server import HTTPServer
from .config import ServerConfig, DEFAULT_PORT, default_host
from .handlers import StaticFileHandler
from .middleware import (
    LoggingMiddleware,
    RuntimeMiddleware,
    LockMiddleware,
    MethodOverrideMiddleware,
    ConditionalGetMiddleware,
    ETagMiddleware,
    ContentLengthMiddleware,
    HeadMiddleware,
)


def build_parser() -> argparse.ArgumentParser:
    base = ServerConfig.from_env()

    parser = argparse.ArgumentParser(
        prog="httpware",
        description="Serve a directory with conditional GET, ETags and byte ranges",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m httpware                         # serve . on port 8080
  python -m httpware ./public --port 3000    # custom root and port
  python -m httpware ./public --http2        # HTTP/1.1 and HTTP/2
        """
    )

    parser.add_argument(
        "root",
        nargs="?",
        default=base.static_dir or ".",
        help="Directory to serve (default: HTTPWARE_STATIC_DIR or .)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=base.host,
        help=f"Host to bind to (default: {default_host(base.environment)})"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=base.port,
        help=f"Port to listen on (default: {DEFAULT_PORT})"
    )

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=4,
        help="Minimum worker threads; the pool grows to twice this (default: 4)"
    )

    parser.add_argument(
        "--http2",
        action="store_true",
        default=base.http2,
        help="Accept HTTP/2 with prior knowledge on the same port"
    )

    # ─────────────────────────────────────────────────────────────────────
    # MIDDLEWARE
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--runtime-name",
        default=None,
        help="Suffix for the runtime header (X-Runtime-NAME)"
    )

    parser.add_argument(
        "--no-etag",
        action="store_true",
        help="Do not generate ETags for buffered responses"
    )

    parser.add_argument(
        "--lock",
        action="store_true",
        help="Serialize requests with a global lock"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=base.log_level.upper(),
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"httpware {__version__}"
    )

    return parser


def build_server(args: argparse.Namespace) -> HTTPServer:
    config = ServerConfig(
        host=args.host,
        port=args.port,
        min_workers=args.workers,
        max_workers=args.workers * 2,
        static_dir=args.root,
        log_level=args.log_level,
        http2=args.http2,
    )

    server = HTTPServer(StaticFileHandler(args.root), config)

    server.use(LoggingMiddleware(log_format=config.log_format))
    server.use(RuntimeMiddleware(args.runtime_name))
    if args.lock:
        server.use(LockMiddleware())
    server.use(MethodOverrideMiddleware())
    server.use(HeadMiddleware())
    server.use(ConditionalGetMiddleware())
    if not args.no_etag:
        server.use(ETagMiddleware())
    server.use(ContentLengthMiddleware())

    return server


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not os.path.isdir(args.root):
        parser.error(f"not a directory: {args.root}")

    try:
        server = build_server(args)
        server.run()
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
