"""
=============================================================================
HTTP MESSAGE LAYER
=============================================================================

Everything the middleware reads and writes:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py       HTTPRequest, RequestParser, HTTPParseError         │
    │ response.py      HTTPResponse, ResponseBuilder, BodyProxy,          │
    │                  ok / not_found / ... helpers                       │
    │ dates.py         format_http_date, parse_http_date                  │
    │ ranges.py        parse_range_header, byte_ranges, ByteRange         │
    │ status_codes.py  HTTPStatus, STATUS_WITH_NO_ENTITY_BODY             │
    │ mime_types.py    extension → Content-Type                           │
    └─────────────────────────────────────────────────────────────────────┘

Message framing on HTTP/1.x (RFC 9112):

    REQUEST:                          RESPONSE:
    ─────────                         ──────────
    GET /path HTTP/1.1\\r\\n            HTTP/1.1 206 Partial Content\\r\\n
    Range: bytes=0-99\\r\\n             Content-Range: bytes 0-99/1000\\r\\n
    \\r\\n                              \\r\\n
    [body]                            [body]

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError
from .response import (
    HTTPResponse,
    ResponseBuilder,
    BodyProxy,
    ok,
    created,
    no_content,
    redirect,
    bad_request,
    unauthorized,
    forbidden,
    not_found,
    method_not_allowed,
    internal_error,
    plain_error,
)
from .dates import format_http_date, parse_http_date
from .ranges import ByteRange, byte_ranges, parse_range_header
from .status_codes import HTTPStatus, STATUS_WITH_NO_ENTITY_BODY
from .mime_types import get_mime_type, get_content_type

__all__ = [
    # Requests
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",

    # Responses
    "HTTPResponse",
    "ResponseBuilder",
    "BodyProxy",
    "ok",
    "created",
    "no_content",
    "redirect",
    "bad_request",
    "unauthorized",
    "forbidden",
    "not_found",
    "method_not_allowed",
    "internal_error",
    "plain_error",

    # Header values
    "format_http_date",
    "parse_http_date",
    "ByteRange",
    "byte_ranges",
    "parse_range_header",

    "HTTPStatus",
    "STATUS_WITH_NO_ENTITY_BODY",
    "get_mime_type",
    "get_content_type",
]
