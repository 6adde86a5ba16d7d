"""
=============================================================================
HTTP REQUEST MODEL AND PARSER
=============================================================================

Parses raw HTTP/1.x request bytes into ``HTTPRequest`` objects and gives
middleware a small, uniform view of the request (RFC 9112 message syntax).

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     WHAT MIDDLEWARE READS                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   GET /video.mp4 HTTP/1.1                 → method, path, version    │
    │   Range: bytes=0-1023                     → StaticFileHandler        │
    │   If-None-Match: W/"9a0364b9e99bb480dd"   → ConditionalGet           │
    │   If-Modified-Since: Wed, 21 Oct 2015 ... → ConditionalGet, static   │
    │   X-HTTP-Method-Override: DELETE          → MethodOverride           │
    │                                                                      │
    │   _method=PUT  (urlencoded POST body)     → MethodOverride           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Header names are stored lowercase, so ``request.get_header("Range")`` and
``request.headers["range"]`` see the same value.

The HTTP/2 session builds ``HTTPRequest`` objects directly from decoded
header blocks; only HTTP/1.x goes through ``RequestParser``.

=============================================================================
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Dict, Any
from urllib.parse import parse_qs, urlparse, unquote
import re
import json


class HTTPParseError(Exception):
    """
    Raised when a request cannot be parsed.

    Carries the status code the server should answer with:

        400 Bad Request                 malformed syntax
        405 Method Not Allowed          unknown method
        413 Payload Too Large           request exceeds the size limit
        505 HTTP Version Not Supported  not HTTP/1.0 or HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method:          Effective method seen by downstream handlers.
        path:            URL-decoded path without the query string.
        version:         "HTTP/1.0", "HTTP/1.1" or "HTTP/2".
        headers:         Header dict with lowercase names.
        query_params:    "?a=1&a=2" → {"a": ["1", "2"]}
        body:            Raw body bytes.
        client_address:  (ip, port) of the peer.
        raw:             Original request bytes (HTTP/1.x only).
        scheme:          "http" or "https".
        original_method: Method the client sent when MethodOverride
                         rewrote ``method``; None otherwise.

    =========================================================================
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""

    path_params: Dict[str, str] = field(default_factory=dict)

    client_address: tuple[str, int] = ("", 0)
    raw: bytes = b""
    scheme: str = "http"
    original_method: Optional[str] = None

    _body_json: Optional[Any] = field(default=None, repr=False)
    _form: Optional[Dict[str, list[str]]] = field(default=None, repr=False)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def content_type(self) -> Optional[str]:
        """Media type of the body without parameters, lowercased."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_get(self) -> bool:
        return self.method == "GET"

    @property
    def is_head(self) -> bool:
        return self.method == "HEAD"

    @property
    def is_options(self) -> bool:
        return self.method == "OPTIONS"

    @property
    def is_json(self) -> bool:
        return self.content_type == "application/json"

    @property
    def is_form(self) -> bool:
        return self.content_type == FORM_CONTENT_TYPE

    @property
    def json(self) -> Any:
        """
        Body parsed as JSON, cached after the first access.

        Raises:
            HTTPParseError: body is not valid JSON.
        """
        if self._body_json is None and self.body:
            try:
                self._body_json = json.loads(self.body.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise HTTPParseError(f"Invalid JSON body: {e}")
        return self._body_json

    @property
    def form(self) -> Dict[str, list[str]]:
        """
        Fields of an ``application/x-www-form-urlencoded`` body.

        Any other content type yields an empty dict.

        Raises:
            HTTPParseError: body is not valid UTF-8.
        """
        if self._form is None:
            if not (self.is_form and self.body):
                self._form = {}
            else:
                try:
                    text = self.body.decode("utf-8")
                except UnicodeDecodeError as e:
                    raise HTTPParseError(f"Invalid form body: {e}")
                self._form = parse_qs(text, keep_blank_values=True)
        return self._form

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the connection should stay open after this exchange.

            HTTP/1.1: open unless "Connection: close"
            HTTP/1.0: closed unless "Connection: keep-alive"
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        """Header value by case-insensitive name."""
        return self.headers.get(name.lower(), default)

    def has_header(self, name: str) -> bool:
        return name.lower() in self.headers

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default

    def get_query_list(self, name: str) -> list[str]:
        return self.query_params.get(name, [])

    def get_form(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a form field."""
        values = self.form.get(name, [])
        return values[0] if values else default

    def with_method(self, method: str) -> "HTTPRequest":
        """
        Copy of this request carrying ``method``.

        ``original_method`` remembers what the client actually sent, so a
        chain of rewrites still reports the wire method.
        """
        return replace(
            self,
            method=method,
            original_method=self.original_method or self.method,
        )


class RequestParser:
    """
    Parses raw HTTP/1.x request bytes into HTTPRequest objects.

        raw bytes
           │
           ├─ size check ─────────────► 413
           ├─ split at CRLF CRLF ─────► 400 when missing
           ├─ request line ───────────► 400 / 405 / 505
           ├─ headers (lowercased, repeated names joined with ", ")
           └─ body (exactly Content-Length bytes)
    """

    VALID_METHODS = {
        "GET",
        "POST",
        "PUT",
        "DELETE",
        "PATCH",
        "HEAD",
        "OPTIONS",
        "TRACE",
        "CONNECT",
        "LINK",
        "UNLINK",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0),
        scheme: str = "http",
    ) -> HTTPRequest:
        """
        Parse one complete request.

        Args:
            data: Request bytes as returned by ``Connection.read_request``.
            client_address: Peer (ip, port).
            scheme: "http" or "https".

        Raises:
            HTTPParseError: the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        # Extra bytes belong to the next pipelined request.
        body = body[:content_length]

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body,
            client_address=client_address,
            raw=data,
            scheme=scheme,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, Dict[str, list[str]], str]:
        """
        Split ``METHOD SP request-target SP HTTP-version``.

        The path is URL-decoded here; handlers never decode it again.
        Dot segments are left in place for the handler to resolve.
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        parsed = urlparse(uri)
        path = unquote(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        if "\x00" in path:
            raise HTTPParseError("Invalid path: contains NUL byte")

        return method, path, query_params, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a lowercase-keyed dict.

        Obsolete line folding is joined with a space; repeated fields are
        combined with ", " (RFC 9110 section 5.3). Lines without a colon are
        skipped.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024
) -> HTTPRequest:
    """One-shot helper around ``RequestParser.parse``."""
    parser = RequestParser(max_request_size=max_size)
    return parser.parse(data, client_address)
