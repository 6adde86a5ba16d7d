"""
=============================================================================
HTTP RESPONSE MODEL AND BUILDER
=============================================================================

Responses travel back out through the middleware chain before the server
serialises them, so every middleware sees the same object:
    app ──► HTTPResponse ──► ContentLength ──► ETag ──► ... ──► Head ──► server
    app ──► HTTPResponse ──► Head ──► ContentLength ──► ETag ──► ... ──► server
                  │
                  ├── status    HTTPStatus
                  ├── headers   dict, case preserved, lookups case-insensitive
                  └── body      bytes  OR  iterable of bytes chunks

=============================================================================
BUFFERED AND STREAMING BODIES
=============================================================================

    ┌──────────────────┬───────────────────────────────────────────────────┐
    │  Body            │  Typical producer                                 │
    ├──────────────────┼───────────────────────────────────────────────────┤
    │  b"..."          │  ResponseBuilder, ContentLength, ETag             │
    │  FileBody        │  StaticFileHandler (streams 8 KiB chunks)         │
    │  generator       │  application code                                 │
    │  BodyProxy       │  Lock (runs a callback when the body is closed)   │
    └──────────────────┴───────────────────────────────────────────────────┘

Whoever consumes an iterable body also closes it. ``read_body()`` does both
and leaves the buffered bytes in place; the server closes streamed bodies
after the last chunk is written.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Union, Iterable, Iterator, Callable
import json

from .status_codes import HTTPStatus, STATUS_WITH_NO_ENTITY_BODY
from .mime_types import get_content_type
from .dates import format_http_date


Body = Union[bytes, Iterable[bytes]]

DEFAULT_SERVER_NAME = "httpware"


class BodyProxy:
    """
    Wraps an iterable body and runs ``on_close`` exactly once when closed.

    Attribute lookups fall through to the wrapped body, so a proxied
    ``FileBody`` still exposes ``path``.
    """

    def __init__(self, body: Iterable[bytes], on_close: Callable[[], None]):
        self._body = body
        self._on_close = on_close
        self._closed = False

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._body)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._body, name)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            close = getattr(self._body, "close", None)
            if close is not None:
                close()
        finally:
            self._on_close()


def split_header_value(name: str, value: str) -> list[str]:
    """
    Field values to emit for one header.

    A value may hold several newline-separated entries. Set-Cookie entries
    go out as separate fields; everything else is folded into one value
    joined with ", " (RFC 9110 section 5.3).
    """
    value = str(value)
    if "\n" not in value:
        return [value]
    parts = [part.strip() for part in value.split("\n") if part.strip()]
    if name.lower() == "set-cookie":
        return parts
    return [", ".join(parts)]


def close_body(body: Body) -> None:
    """Close an iterable body if it knows how to be closed."""
    if isinstance(body, (bytes, bytearray)):
        return
    close = getattr(body, "close", None)
    if close is not None:
        close()


@dataclass
class HTTPResponse:
    """
    An HTTP response on its way back to the client.

    =========================================================================
    RESPONSE LIFECYCLE
    =========================================================================

        app returns            middleware                server writes
        HTTPResponse  ─────►   rewrites       ─────►     head_bytes()
                               status/headers/body       + iter_body()
                                                         then close()

    =========================================================================
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: Body = b""
    version: str = "HTTP/1.1"

    def __post_init__(self):
        if not isinstance(self.status, HTTPStatus):
            try:
                self.status = HTTPStatus(int(self.status))
            except ValueError:
                self.status = int(self.status)
        if isinstance(self.body, str):
            self.body = self.body.encode("utf-8")

    @property
    def status_line(self) -> str:
        """``HTTP/1.1 206 Partial Content``"""
        phrase = self.status.phrase if isinstance(self.status, HTTPStatus) else "Unknown"
        return f"{self.version} {int(self.status)} {phrase}"

    @property
    def is_streaming(self) -> bool:
        return not isinstance(self.body, (bytes, bytearray))

    @property
    def allows_body(self) -> bool:
        return self.status not in STATUS_WITH_NO_ENTITY_BODY

    # =========================================================================
    # HEADERS
    # =========================================================================

    def _find_header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key in self.headers:
            if key.lower() == lowered:
                return key
        return None

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Header value by case-insensitive name."""
        key = self._find_header(name)
        return self.headers[key] if key is not None else default

    def has_header(self, name: str) -> bool:
        return self._find_header(name) is not None

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """
        Set a header, replacing any existing spelling of the same name.

        Returns self for chaining.
        """
        self.delete_header(name)
        self.headers[name] = value
        return self

    def delete_header(self, name: str) -> Optional[str]:
        """Remove every spelling of ``name``; returns the removed value."""
        removed = None
        lowered = name.lower()
        for key in [k for k in self.headers if k.lower() == lowered]:
            removed = self.headers.pop(key)
        return removed

    def set_content_type(self, content_type: str) -> "HTTPResponse":
        return self.set_header("Content-Type", content_type)

    # =========================================================================
    # BODY
    # =========================================================================

    def set_body(self, body: Union[str, Body]) -> "HTTPResponse":
        """Replace the body; strings are encoded as UTF-8."""
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.body = body
        return self

    def iter_body(self) -> Iterator[bytes]:
        """Yield the body as non-empty chunks without buffering it."""
        if isinstance(self.body, (bytes, bytearray)):
            if self.body:
                yield bytes(self.body)
            return
        for chunk in self.body:
            if chunk:
                yield chunk

    def read_body(self) -> bytes:
        """
        Buffer the whole body, close the original iterable, and keep the
        bytes as the new body.
        """
        if not self.is_streaming:
            return bytes(self.body)

        original = self.body
        try:
            data = b"".join(self.iter_body())
        finally:
            close_body(original)
        self.body = data
        return data

    def close(self) -> None:
        close_body(self.body)

    # =========================================================================
    # SERIALISATION
    # =========================================================================

    def head_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """
        Status line and headers, terminated by the blank line.

        Date and Server are added when missing. Content-Length is left to
        the caller because a streaming body's length is not known here.
        """
        response_headers = dict(self.headers)

        if not self.has_header("Date"):
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))
        if not self.has_header("Server"):
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.extend(f"{name}: {v}" for v in split_header_value(name, value))
        lines.append("")

        return "\r\n".join(lines).encode("latin-1") + b"\r\n"

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """
        Serialise a complete response.

            HTTP/1.1 200 OK\\r\\n
            Content-Type: text/plain\\r\\n
            Content-Length: 5\\r\\n        ← added unless the status forbids a body
            Date: ...\\r\\n                ← added
            Server: httpware\\r\\n         ← added
            \\r\\n
            hello

        Streaming bodies are buffered first.
        """
        body = self.read_body()
        if not self.allows_body:
            body = b""
        elif not self.has_header("Content-Length") and not self.has_header("Transfer-Encoding"):
            self.headers["Content-Length"] = str(len(body))

        return self.head_bytes(server_name) + body


class ResponseBuilder:
    """
    Fluent builder for responses.

        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .json({"message": "Hello"})
            .header("X-Custom", "value")
            .cache(max_age=3600)
            .build())

    Every method except ``build()`` and ``to_bytes()`` returns the builder.
    """

    def __init__(self, server_name: str = DEFAULT_SERVER_NAME):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: Body = b""
        self._server_name = server_name

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    # =========================================================================
    # HEADER METHODS
    # =========================================================================

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    # =========================================================================
    # BODY METHODS
    # =========================================================================

    def body(self, body: Union[str, Body]) -> "ResponseBuilder":
        """
        Raw body: bytes, a string (UTF-8 encoded), or an iterable of byte
        chunks to stream.
        """
        if isinstance(body, str):
            body = body.encode("utf-8")
        self._body = body
        return self

    def stream(self, chunks: Iterable[bytes], content_type: Optional[str] = None) -> "ResponseBuilder":
        """Stream ``chunks``; the server decides on chunked or close-delimited framing."""
        self._body = chunks
        if content_type:
            self._headers["Content-Type"] = content_type
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def html(self, html: str) -> "ResponseBuilder":
        self._body = html.encode("utf-8")
        self._headers["Content-Type"] = "text/html; charset=utf-8"
        return self

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        """Serialise ``data`` as UTF-8 JSON (non-ASCII kept as-is)."""
        indent = 2 if pretty else None
        self._body = json.dumps(data, indent=indent, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self

    def file(self, content: bytes, filename: str) -> "ResponseBuilder":
        """In-memory file content, Content-Type from the extension."""
        self._body = content
        self._headers["Content-Type"] = get_content_type(filename)
        return self

    # =========================================================================
    # REDIRECT AND CACHING
    # =========================================================================

    def redirect(self, location: str, permanent: bool = False) -> "ResponseBuilder":
        """301 when ``permanent``, else 302."""
        self._status = HTTPStatus.MOVED_PERMANENTLY if permanent else HTTPStatus.FOUND
        self._headers["Location"] = location
        return self

    def no_cache(self) -> "ResponseBuilder":
        """
        Forbid caching.

        ETagMiddleware leaves responses carrying ``no-cache`` alone.
        """
        self._headers["Cache-Control"] = "no-store, no-cache, must-revalidate"
        self._headers["Pragma"] = "no-cache"
        self._headers["Expires"] = "0"
        return self

    def cache(self, max_age: int = 3600) -> "ResponseBuilder":
        self._headers["Cache-Control"] = f"public, max-age={max_age}"
        return self

    def last_modified(self, dt: datetime) -> "ResponseBuilder":
        self._headers["Last-Modified"] = format_http_date(dt)
        return self

    def etag(self, value: str, weak: bool = False) -> "ResponseBuilder":
        """Set a quoted entity tag, ``W/``-prefixed when ``weak``."""
        tag = f'"{value}"'
        self._headers["ETag"] = f"W/{tag}" if weak else tag
        return self

    def close_connection(self) -> "ResponseBuilder":
        self._headers["Connection"] = "close"
        return self

    # =========================================================================
    # BUILD
    # =========================================================================

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
        )

    def to_bytes(self) -> bytes:
        return self.build().to_bytes(self._server_name)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
# One-liners for the common cases:
#
#     return ok({"message": "Success"})
#     return not_found("User not found")
#     return redirect("/login")
#
# Error helpers produce {"error": message} JSON bodies.
#
# =============================================================================

def ok(body: Union[str, bytes, dict, list] = "", content_type: Optional[str] = None) -> HTTPResponse:
    """
    200 OK. dict/list bodies become JSON, strings text/plain, bytes are
    sent as-is.
    """
    builder = ResponseBuilder().status(HTTPStatus.OK)

    if isinstance(body, (dict, list)):
        builder.json(body)
    elif isinstance(body, str):
        builder.text(body, content_type or "text/plain; charset=utf-8")
    else:
        builder.body(body)
        if content_type:
            builder.content_type(content_type)

    return builder.build()


def created(body: Union[str, bytes, dict, list] = "", location: Optional[str] = None) -> HTTPResponse:
    """201 Created, with a Location header when given."""
    builder = ResponseBuilder().status(HTTPStatus.CREATED)

    if isinstance(body, (dict, list)):
        builder.json(body)
    elif body:
        builder.body(body)

    if location:
        builder.header("Location", location)

    return builder.build()


def no_content() -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.NO_CONTENT).build()


def redirect(location: str, permanent: bool = False) -> HTTPResponse:
    return ResponseBuilder().redirect(location, permanent).build()


def bad_request(message: str = "Bad Request") -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.BAD_REQUEST).json({"error": message}).build()


def unauthorized(message: str = "Unauthorized") -> HTTPResponse:
    """401, with a Basic ``WWW-Authenticate`` challenge."""
    return (ResponseBuilder()
        .status(HTTPStatus.UNAUTHORIZED)
        .header("WWW-Authenticate", 'Basic realm="Access Required"')
        .json({"error": message})
        .build())


def forbidden(message: str = "Forbidden") -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.FORBIDDEN).json({"error": message}).build()


def not_found(message: str = "Not Found") -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.NOT_FOUND).json({"error": message}).build()


def method_not_allowed(allowed_methods: list[str]) -> HTTPResponse:
    """405 with the Allow header listing ``allowed_methods``."""
    return (ResponseBuilder()
        .status(HTTPStatus.METHOD_NOT_ALLOWED)
        .header("Allow", ", ".join(allowed_methods))
        .json({"error": "Method Not Allowed", "allowed": allowed_methods})
        .build())


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.INTERNAL_SERVER_ERROR).json({"error": message}).build()


def plain_error(status: HTTPStatus, message: str, headers: Optional[Dict[str, str]] = None) -> HTTPResponse:
    """
    Plain-text error used by the static file handler: body ``message\\n``
    with an exact Content-Length.
    """
    body = f"{message}\n".encode("utf-8")
    response_headers = {
        "Content-Type": "text/plain",
        "Content-Length": str(len(body)),
    }
    if headers:
        response_headers.update(headers)
    return HTTPResponse(status=status, headers=response_headers, body=body)
