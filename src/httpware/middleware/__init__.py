"""
=============================================================================
MIDDLEWARE
=============================================================================

Composable request/response processing around an app. The order the CLI
server uses, outermost first:

    ┌─────────────────────────────────────────────────────────────────────┐
    │   LoggingMiddleware          access log, X-Request-ID               │
    │   RuntimeMiddleware          X-Runtime                              │
    │   LockMiddleware             one request at a time (optional)       │
    │   MethodOverrideMiddleware   POST + _method=PUT → PUT               │
    │   HeadMiddleware             drop HEAD bodies                       │
    │   ConditionalGetMiddleware   fresh 200 → 304                        │
    │   ETagMiddleware             W/"md5" + Cache-Control                │
    │   ContentLengthMiddleware    buffer body, set Content-Length        │
    │        │                                                             │
    │        ▼                                                             │
    │   app (e.g. StaticFileHandler)                                      │
    └─────────────────────────────────────────────────────────────────────┘

ConditionalGet has to sit outside ETag, which produces the validator it
compares against. Head sits outside all three so a HEAD response carries
the same Content-Length and ETag as the GET would.

=============================================================================
"""

from .base import (
    Middleware,
    MiddlewarePipeline,
    NextHandler,
    FunctionMiddleware,
    function_middleware,
)
from .conditional_get import ConditionalGetMiddleware
from .content_length import ContentLengthMiddleware
from .etag import ETagMiddleware
from .head import HeadMiddleware
from .lock import LockMiddleware
from .logging import LoggingMiddleware, RequestLog
from .method_override import MethodOverrideMiddleware
from .runtime import RuntimeMiddleware

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "FunctionMiddleware",
    "function_middleware",
    "ConditionalGetMiddleware",
    "ContentLengthMiddleware",
    "ETagMiddleware",
    "HeadMiddleware",
    "LockMiddleware",
    "LoggingMiddleware",
    "RequestLog",
    "MethodOverrideMiddleware",
    "RuntimeMiddleware",
]
