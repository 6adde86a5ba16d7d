"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

All tunables of the server in one dataclass:

    ┌──────────────┬──────────────────────────────────────────────────────┐
    │ network      │ host, port, backlog, buffer_size, timeout            │
    │ http         │ keep_alive, keep_alive_timeout, max_request_size,    │
    │              │ http2, server_name                                   │
    │ threading    │ min_workers, max_workers                             │
    │ static files │ static_dir                                           │
    │ logging      │ log_level, log_format                                │
    │ deployment   │ environment                                          │
    └──────────────┴──────────────────────────────────────────────────────┘

Built directly, or from ``HTTPWARE_*`` environment variables:

    HTTPWARE_PORT=3000 HTTPWARE_HTTP2=1 python -m httpware ./public

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


DEFAULT_PORT = 8080
DEVELOPMENT = "development"

_TRUE_VALUES = ("1", "true", "yes", "on")


def default_host(environment: str) -> str:
    """Loopback while developing, every interface anywhere else."""
    return "localhost" if environment == DEVELOPMENT else "0.0.0.0"


@dataclass
class ServerConfig:
    """
    Configuration for HTTPServer.

        ServerConfig(host="0.0.0.0", port=80, max_workers=32, http2=True)
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """Address to bind. IPv6 literals are accepted."""

    port: int = DEFAULT_PORT
    """Port to listen on. 0 picks a free port, see HTTPServer.address."""

    backlog: int = 128
    buffer_size: int = 8192

    timeout: Optional[float] = 30.0
    """Socket timeout for the first request on a connection. None blocks."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0

    max_request_size: int = 10 * 1024 * 1024
    """Upper bound for head plus body; larger requests get 413."""

    http2: bool = False
    """Accept HTTP/2 with prior knowledge (connection preface) on the same port."""

    server_name: str = "httpware"
    """Value of the Server header."""

    # ─────────────────────────────────────────────────────────────────────
    # THREADING
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16

    # ─────────────────────────────────────────────────────────────────────
    # STATIC FILES / LOGGING / DEPLOYMENT
    # ─────────────────────────────────────────────────────────────────────

    static_dir: Optional[str] = None
    log_level: str = "INFO"

    log_format: str = "text"
    """Access log format, 'text' or 'json'."""

    environment: str = DEVELOPMENT

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Build a config from environment variables.

            HTTPWARE_HOST        bind address (default depends on HTTPWARE_ENV)
            HTTPWARE_PORT        port (8080)
            HTTPWARE_WORKERS     max worker threads (16)
            HTTPWARE_TIMEOUT     socket timeout in seconds (30)
            HTTPWARE_STATIC_DIR  directory to serve
            HTTPWARE_LOG_LEVEL   logging level (INFO)
            HTTPWARE_ENV         deployment environment (development)
            HTTPWARE_HTTP2       enable HTTP/2 prior knowledge (off)
        """
        environment = os.getenv("HTTPWARE_ENV", DEVELOPMENT)
        workers = int(os.getenv("HTTPWARE_WORKERS", "16"))
        return cls(
            host=os.getenv("HTTPWARE_HOST", default_host(environment)),
            port=int(os.getenv("HTTPWARE_PORT", str(DEFAULT_PORT))),
            min_workers=min(4, workers),
            max_workers=workers,
            timeout=float(os.getenv("HTTPWARE_TIMEOUT", "30")),
            static_dir=os.getenv("HTTPWARE_STATIC_DIR"),
            log_level=os.getenv("HTTPWARE_LOG_LEVEL", "INFO"),
            environment=environment,
            http2=os.getenv("HTTPWARE_HTTP2", "").lower() in _TRUE_VALUES,
        )

    def validate(self) -> None:
        """Raise ValueError on the first invalid setting."""
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"Unknown log_format: {self.log_format!r}")
