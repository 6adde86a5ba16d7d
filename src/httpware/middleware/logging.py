"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

One log line per request on the ``httpware.access`` logger, with timing and
a correlation id that is echoed back as ``X-Request-ID``.

    TEXT (common-log style, default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 127.0.0.1 - - [10/Jun/2024:10:55:36 +0000] "GET /a.mp4" 206 1024 3.1ms│
    │ IP          Timestamp          Method/Path  Status Size Duration    │
    └─────────────────────────────────────────────────────────────────────┘

    JSON (for log shippers):
    {"request_id": "4f1c2a9e", "method": "GET", "path": "/a.mp4",
     "status_code": 206, "content_length": 1024, "duration_ms": 3.1, ...}

Streaming bodies are not consumed to measure them: the size comes from the
Content-Length header, or is logged as ``-`` (0 in JSON) when unknown.

Route the access log separately from the server's own log if needed:

    logging.getLogger("httpware.access").addHandler(file_handler)

=============================================================================
"""

import time
import json
import uuid
import logging
from typing import Optional
from dataclasses import dataclass, asdict

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger("httpware.access")


@dataclass
class RequestLog:
    """One access log entry."""

    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: Optional[int]
    duration_ms: float
    timestamp: str
    original_method: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        data["content_length"] = self.content_length or 0
        if self.original_method is None:
            del data["original_method"]
        return data

    def to_text(self) -> str:
        size = "-" if self.content_length is None else self.content_length
        method = self.method
        if self.original_method:
            method = f"{self.original_method}->{self.method}"
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{method} {self.path}" {self.status_code} '
            f'{size} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Request logging middleware. Add it first so it sees every request and
    its timing covers the whole chain.

        pipeline.add(LoggingMiddleware(log_format="json", skip_paths=["/favicon.ico"]))

    Args:
        log_format: "text" or "json".
        include_request_id: Add X-Request-ID to responses.
        log_level: Level for successful requests.
        skip_paths: Paths that are served but not logged.
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[list[str]] = None,
    ):
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = str(uuid.uuid4())[:8]
        start_time = time.monotonic()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.monotonic() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.monotonic() - start_time) * 1000

        if self.include_request_id:
            response.set_header("X-Request-ID", request_id)

        if request.path in self.skip_paths:
            return response

        log_entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            query=str(request.query_params) if request.query_params else "",
            client_ip=request.client_address[0],
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            content_length=self._response_size(response),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
            original_method=request.original_method,
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(log_entry.to_dict()))
        else:
            logger.log(self.log_level, log_entry.to_text())

        return response

    def _response_size(self, response: HTTPResponse) -> Optional[int]:
        if not response.is_streaming:
            return len(response.body)
        try:
            return int(response.get_header("Content-Length", ""))
        except ValueError:
            return None
