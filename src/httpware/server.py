"""
=============================================================================
HTTP SERVER
=============================================================================

Runs an app (any ``request -> response`` callable, usually wrapped in
middleware) on a threaded socket server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          HTTPServer                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   SocketServer ──accept──► ThreadPool ──worker──► _process_connection│
    │                                                        │             │
    │                         ┌──────────────────────────────┤             │
    │                         │ "PRI * HTTP/2.0" + http2     │ HTTP/1.x    │
    │                         ▼                              ▼             │
    │                     H2Session                 RequestParser          │
    │                         │                              │             │
    │                         └──────────► middleware ◄──────┘             │
    │                                         │                            │
    │                                         ▼                            │
    │                                        app                           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WRITING RESPONSES (HTTP/1.x)
=============================================================================

The head goes out first, then the body as the app produced it:

    bytes body                     Content-Length added when missing
    iterable + Content-Length      streamed as is
    iterable, HTTP/1.1             Transfer-Encoding: chunked
    iterable, HTTP/1.0             streamed, then the connection closes

HEAD requests and 1xx/204/304 responses never carry a body. The body is
closed after writing in every case, which is what releases file handles
and LockMiddleware's lock.

=============================================================================
"""

import os
import logging
from typing import Callable, Optional

from .config import ServerConfig, DEFAULT_PORT, DEVELOPMENT, default_host
from .core import SocketServer, Connection, ConnectionState, ThreadPool, H2Session, H2_PREFACE_START
from .http import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    HTTPResponse,
    ResponseBuilder,
    HTTPStatus,
    plain_error,
)
from .middleware import MiddlewarePipeline, Middleware


logger = logging.getLogger(__name__)

App = Callable[[HTTPRequest], HTTPResponse]


def not_found_app(request: HTTPRequest) -> HTTPResponse:
    return plain_error(HTTPStatus.NOT_FOUND, "Not Found")


class HTTPServer:
    """
    Threaded HTTP/1.1 server with optional HTTP/2 (prior knowledge).

    =========================================================================
    USAGE
    =========================================================================

        server = HTTPServer(StaticFileHandler("./public"))
        server.use(RuntimeMiddleware())
        server.use(ConditionalGetMiddleware())
        server.use(ETagMiddleware())
        server.run(port=8080)           # blocks until shutdown()

    From another thread:

        threading.Thread(target=server.run, daemon=True).start()
        server.wait_until_ready(5)
        host, port = server.address
        ...
        server.shutdown()

    =========================================================================

    Args:
        app: The application. Defaults to a static handler for
            ``config.static_dir`` when set, otherwise to a 404 app.
        config: Server configuration, validated here.
    """

    def __init__(self, app: Optional[App] = None, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        if app is None:
            app = self._default_app()
        self.app = app

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._middleware = MiddlewarePipeline()

        # Built when run() starts: middleware wrapped around the app.
        self._handler: Optional[App] = None
        self._running = False

    def _default_app(self) -> App:
        if self.config.static_dir:
            from .handlers import serve_static
            return serve_static(self.config.static_dir)
        return not_found_app

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def use(self, middleware: Middleware) -> "HTTPServer":
        """
        Add middleware. The first one added is the outermost.

        Returns self for chaining.
        """
        self._middleware.add(middleware)
        return self

    @property
    def middleware(self) -> MiddlewarePipeline:
        return self._middleware

    @property
    def address(self) -> tuple:
        """(host, port) actually bound once running."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Serve until ``shutdown()`` or SIGINT/SIGTERM (blocking).

        Args:
            host: Override config host.
            port: Override config port.
        """
        if host:
            self.config.host = host
        if port is not None:
            self.config.port = port

        self._setup_logging()

        self._handler = self._middleware.wrap(self.app)
        self._thread_pool.start()
        self._running = True

        protocols = "HTTP/1.1, HTTP/2" if self.config.http2 else "HTTP/1.1"
        logger.info(
            f"Starting {self.config.server_name} ({protocols}) on "
            f"{self.config.host}:{self.config.port}, "
            f"{self.config.min_workers}-{self.config.max_workers} workers"
        )

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        """Stop accepting connections; ``run()`` returns once workers finish."""
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server is listening. False on timeout."""
        return self._socket_server.wait_until_ready(timeout)

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("httpware").setLevel(level)

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(wait=True, timeout=30.0)
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Hand a new connection to the pool, or turn it away with 503."""
        submitted = self._thread_pool.submit(
            self._process_connection,
            args=(conn,),
            block=False,
        )

        if not submitted:
            logger.warning(f"[{conn.id}] Thread pool full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            conn.close()

    def _process_connection(self, conn: Connection):
        """
        Keep-alive loop for one connection (worker thread).

            read ─► parse ─► app ─► write ─► keep-alive? ─► read ...
              │
              └─ HTTP/2 preface ─► H2Session owns the socket from here on
        """
        with conn:
            while self._running:
                try:
                    try:
                        raw_request = conn.read_request()
                    except TimeoutError:
                        self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                        break
                    except ValueError as e:
                        logger.warning(f"[{conn.id}] {e}")
                        self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, "Request too large")
                        break

                    if raw_request is None:
                        break

                    if self.config.http2 and raw_request.startswith(H2_PREFACE_START):
                        self._serve_http2(conn, raw_request)
                        break

                    try:
                        request = self._parser.parse(raw_request, conn.address)
                    except HTTPParseError as e:
                        logger.debug(f"[{conn.id}] Bad request: {e}")
                        self._send_error(conn, HTTPStatus(e.status_code), str(e))
                        break

                    conn.state = ConnectionState.PROCESSING
                    response = self._call_app(conn, request)

                    keep_alive = request.is_keep_alive and self.config.keep_alive and self._running
                    if keep_alive:
                        if not response.has_header("Connection"):
                            response.headers["Connection"] = "keep-alive"
                        if not response.has_header("Keep-Alive"):
                            response.headers["Keep-Alive"] = f"timeout={int(self.config.keep_alive_timeout)}"
                    else:
                        response.set_header("Connection", "close")

                    if not self._send_response(conn, request, response):
                        break

                    if not keep_alive:
                        break

                    conn.set_keep_alive()

                except Exception as e:
                    logger.exception(f"[{conn.id}] Connection error: {e}")
                    break

    def _serve_http2(self, conn: Connection, preface: bytes):
        logger.debug(f"[{conn.id}] Switching to HTTP/2")
        conn.state = ConnectionState.PROCESSING

        session = H2Session(
            conn.socket,
            self._handler,
            client_address=conn.address,
            server_name=self.config.server_name,
            initial_data=preface + conn.take_buffer(),
            buffer_size=max(self.config.buffer_size, 65535),
        )
        session.run()
        conn.requests_handled += session.streams_handled

    def _call_app(self, conn: Connection, request: HTTPRequest) -> HTTPResponse:
        try:
            return self._handler(request)
        except Exception as e:
            logger.exception(f"[{conn.id}] Handler error: {e}")
            return (ResponseBuilder()
                .status(HTTPStatus.INTERNAL_SERVER_ERROR)
                .json({"error": "Internal Server Error"})
                .build())

    # =========================================================================
    # WRITING
    # =========================================================================

    def _send_response(self, conn: Connection, request: HTTPRequest, response: HTTPResponse) -> bool:
        """
        Write head and body. Returns False when the connection cannot carry
        another request (peer gone, or the body was close-delimited).
        """
        try:
            send_body = response.allows_body and not request.is_head
            transfer_encoding = (response.get_header("Transfer-Encoding") or "").lower()
            chunked = transfer_encoding == "chunked"
            reusable = True

            if not response.is_streaming:
                if send_body and not response.has_header("Content-Length") and not chunked:
                    response.headers["Content-Length"] = str(len(response.body))
            elif send_body and not chunked and not response.has_header("Content-Length"):
                if request.version == "HTTP/1.1":
                    response.headers["Transfer-Encoding"] = "chunked"
                    chunked = True
                else:
                    response.set_header("Connection", "close")
                    reusable = False

            if not conn.send_response(response.head_bytes(self.config.server_name)):
                return False

            if not send_body:
                return reusable

            if chunked:
                for chunk in response.iter_body():
                    if not conn.send_chunk(chunk):
                        return False
                return conn.finish_chunked() and reusable

            for chunk in response.iter_body():
                if not conn.send_response(chunk):
                    return False
            return reusable

        finally:
            response.close()

    def _send_error(self, conn: Connection, status: HTTPStatus, message: str):
        """Error for failures before the app runs (parse errors, timeouts)."""
        response = (ResponseBuilder()
            .status(status)
            .json({"error": message})
            .close_connection()
            .build())

        conn.send_response(response.to_bytes(self.config.server_name))


# =============================================================================
# ADAPTER
# =============================================================================

def run(app: App, host: Optional[str] = None, port: Optional[int] = None, **options) -> HTTPServer:
    """
    Serve ``app`` with environment-dependent defaults (blocking).

    ``HTTPWARE_ENV`` selects the environment (``development`` when unset);
    the default host is ``localhost`` in development and ``0.0.0.0``
    anywhere else. Extra keyword arguments become ServerConfig fields.

        run(my_app, port=9292, http2=True)
    """
    environment = options.pop("environment", None) or os.getenv("HTTPWARE_ENV", DEVELOPMENT)

    config = ServerConfig(
        host=host or default_host(environment),
        port=DEFAULT_PORT if port is None else int(port),
        environment=environment,
        **options,
    )

    server = HTTPServer(app, config)
    server.run()
    return server


def valid_options(environment: Optional[str] = None) -> dict[str, str]:
    """Options ``run()`` understands, with their defaults, for help output."""
    environment = environment or os.getenv("HTTPWARE_ENV", DEVELOPMENT)
    return {
        "Host=HOST": f"Hostname to listen on (default: {default_host(environment)})",
        "Port=PORT": f"Port to listen on (default: {DEFAULT_PORT})",
    }
