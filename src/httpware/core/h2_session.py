"""
=============================================================================
HTTP/2 SESSION
=============================================================================

Serves one HTTP/2 connection (prior knowledge, RFC 9113 section 3.3) with the
same app and middleware as HTTP/1.1. Framing, HPACK and flow-control
bookkeeping come from the ``h2`` state machine; this module moves bytes
between it and a blocking socket.

    socket bytes ──► H2Connection.receive_data() ──► events
                                                       │
        RequestReceived  → start collecting the stream's headers
        DataReceived     → append body, hand the window back to the peer
        StreamEnded      → stream ready: build HTTPRequest, call the app
        StreamReset      → drop the stream and anything still to send
        WindowUpdated    → a blocked send may continue
        ConnectionTerminated / EOF → session over

Streams are answered one at a time, in the order they complete. While a
response waits for flow-control window, incoming frames keep being
processed, so new requests queue up behind it instead of stalling the peer.

=============================================================================
"""

import logging
import socket
from datetime import datetime, timezone
from collections import deque
from dataclasses import dataclass, field
from typing import Callable
from urllib.parse import urlparse, unquote, parse_qs

from h2.config import H2Configuration
from h2.connection import H2Connection
from h2.errors import ErrorCodes
from h2.events import (
    ConnectionTerminated,
    DataReceived,
    RequestReceived,
    StreamEnded,
    StreamReset,
    WindowUpdated,
)
from h2.exceptions import ProtocolError, StreamClosedError

from ..http.request import HTTPRequest
from ..http.response import (
    HTTPResponse,
    internal_error,
    split_header_value,
    DEFAULT_SERVER_NAME,
)
from ..http.dates import format_http_date


logger = logging.getLogger(__name__)

# RFC 9113 section 8.2.2: never valid in an HTTP/2 message.
CONNECTION_SPECIFIC_HEADERS = frozenset([
    "connection",
    "keep-alive",
    "proxy-connection",
    "transfer-encoding",
    "upgrade",
])


@dataclass
class _StreamState:
    headers: list = field(default_factory=list)
    body: bytearray = field(default_factory=bytearray)


class H2Session:
    """
    One HTTP/2 server connection over a connected, blocking socket.

    Args:
        sock: The client socket.
        handler: App called with each ``HTTPRequest``.
        client_address: Peer (ip, port) recorded on requests.
        server_name: Value for the ``server`` response header.
        initial_data: Bytes already read from the socket, starting with the
            client preface.
    """

    def __init__(
        self,
        sock: socket.socket,
        handler: Callable[[HTTPRequest], HTTPResponse],
        client_address: tuple[str, int] = ("", 0),
        server_name: str = DEFAULT_SERVER_NAME,
        initial_data: bytes = b"",
        buffer_size: int = 65535,
    ):
        self.sock = sock
        self.handler = handler
        self.client_address = client_address
        self.server_name = server_name
        self.initial_data = initial_data
        self.buffer_size = buffer_size

        config = H2Configuration(client_side=False, header_encoding="utf-8")
        self.conn = H2Connection(config=config)

        self._streams: dict[int, _StreamState] = {}
        self._ready: deque[int] = deque()
        self._reset: set[int] = set()
        self._closed = False
        self.streams_handled = 0

    @property
    def closed(self) -> bool:
        return self._closed

    # =========================================================================
    # MAIN LOOP
    # =========================================================================

    def run(self):
        """Serve streams until the peer goes away or sends GOAWAY."""
        self.conn.initiate_connection()
        self._flush()

        if self.initial_data:
            self._receive(self.initial_data)

        while not self._closed:
            while self._ready and not self._closed:
                self._dispatch(self._ready.popleft())

            if self._closed:
                break

            data = self._recv()
            if not data:
                break
            self._receive(data)

        self._close()
        logger.debug(f"HTTP/2 session ended after {self.streams_handled} streams")

    def _recv(self) -> bytes:
        try:
            return self.sock.recv(self.buffer_size)
        except socket.timeout:
            logger.debug("HTTP/2 connection idle timeout")
            return b""
        except (ConnectionResetError, BrokenPipeError, OSError):
            return b""

    def _flush(self):
        data = self.conn.data_to_send()
        if not data:
            return
        try:
            self.sock.sendall(data)
        except (ConnectionResetError, BrokenPipeError, OSError) as e:
            logger.warning(f"HTTP/2 send failed: {e}")
            self._closed = True

    def _close(self):
        if not self._closed:
            try:
                self.conn.close_connection()
            except ProtocolError:
                pass
            self._flush()
        self._closed = True

    # =========================================================================
    # EVENTS
    # =========================================================================

    def _receive(self, data: bytes):
        try:
            events = self.conn.receive_data(data)
        except ProtocolError as e:
            logger.warning(f"HTTP/2 protocol error from {self.client_address[0]}: {e}")
            self._flush()
            self._closed = True
            return

        for event in events:
            if isinstance(event, RequestReceived):
                self._streams[event.stream_id] = _StreamState(headers=list(event.headers))

            elif isinstance(event, DataReceived):
                state = self._streams.get(event.stream_id)
                if state is not None:
                    state.body.extend(event.data)
                try:
                    self.conn.acknowledge_received_data(
                        event.flow_controlled_length, event.stream_id
                    )
                except StreamClosedError:
                    pass

            elif isinstance(event, StreamEnded):
                if event.stream_id in self._streams:
                    self._ready.append(event.stream_id)

            elif isinstance(event, StreamReset):
                logger.debug(f"Stream {event.stream_id} reset by peer ({event.error_code})")
                self._reset.add(event.stream_id)
                self._streams.pop(event.stream_id, None)

            elif isinstance(event, WindowUpdated):
                pass

            elif isinstance(event, ConnectionTerminated):
                logger.debug(f"Peer closed HTTP/2 connection ({event.error_code})")
                self._closed = True

        self._flush()

    # =========================================================================
    # REQUEST / RESPONSE
    # =========================================================================

    def _build_request(self, state: _StreamState) -> HTTPRequest:
        """
        Map an HTTP/2 header block onto ``HTTPRequest``.

        ``:authority`` becomes ``host`` unless a host header was sent too.
        Repeated fields are joined with ", " (cookies with "; ").
        """
        pseudo: dict[str, str] = {}
        headers: dict[str, str] = {}

        for name, value in state.headers:
            if name.startswith(":"):
                pseudo[name] = value
                continue
            if name in headers:
                separator = "; " if name == "cookie" else ", "
                headers[name] += separator + value
            else:
                headers[name] = value

        if ":authority" in pseudo and "host" not in headers:
            headers["host"] = pseudo[":authority"]

        parsed = urlparse(pseudo.get(":path", "/"))

        return HTTPRequest(
            method=pseudo.get(":method", "GET"),
            path=unquote(parsed.path) or "/",
            version="HTTP/2",
            headers=headers,
            query_params=parse_qs(parsed.query, keep_blank_values=True),
            body=bytes(state.body),
            client_address=self.client_address,
            scheme=pseudo.get(":scheme", "http"),
        )

    def _dispatch(self, stream_id: int):
        state = self._streams.pop(stream_id, None)
        if state is None:
            # Reset before it was dispatched.
            self._reset.discard(stream_id)
            return

        request = self._build_request(state)

        try:
            response = self.handler(request)
        except Exception as e:
            logger.exception(f"Handler error on stream {stream_id}: {e}")
            response = internal_error()

        self.streams_handled += 1
        self._send_response(stream_id, response, head_only=request.is_head)

    def _response_headers(self, response: HTTPResponse) -> list[tuple[str, str]]:
        headers = [(":status", str(int(response.status)))]
        seen = set()

        for name, value in response.headers.items():
            lowered = name.lower()
            if lowered in CONNECTION_SPECIFIC_HEADERS:
                continue
            seen.add(lowered)
            headers.extend((lowered, v) for v in split_header_value(lowered, value))

        if "date" not in seen:
            headers.append(("date", format_http_date(datetime.now(timezone.utc))))
        if "server" not in seen:
            headers.append(("server", self.server_name))

        return headers

    def _send_response(self, stream_id: int, response: HTTPResponse, head_only: bool = False):
        try:
            if stream_id in self._reset:
                return

            headers = self._response_headers(response)
            bodiless = head_only or not response.allows_body

            try:
                self.conn.send_headers(stream_id, headers, end_stream=bodiless)
            except (ProtocolError, StreamClosedError) as e:
                logger.debug(f"Could not send headers on stream {stream_id}: {e}")
                return
            self._flush()

            if bodiless:
                return

            for chunk in response.iter_body():
                if not self._send_data(stream_id, chunk):
                    return

            try:
                self.conn.end_stream(stream_id)
            except StreamClosedError:
                return
            self._flush()

        finally:
            response.close()
            self._reset.discard(stream_id)

    def _send_data(self, stream_id: int, data: bytes) -> bool:
        """
        Send ``data`` as DATA frames within the flow-control window and the
        peer's maximum frame size.

        Returns False when the stream or connection went away meanwhile.
        """
        view = memoryview(data)

        while view:
            if self._closed or stream_id in self._reset:
                return False

            try:
                window = self.conn.local_flow_control_window(stream_id)
            except StreamClosedError:
                return False

            if window <= 0:
                incoming = self._recv()
                if not incoming:
                    self._closed = True
                    return False
                self._receive(incoming)
                continue

            size = min(window, len(view), self.conn.max_outbound_frame_size)
            try:
                self.conn.send_data(stream_id, view[:size].tobytes())
            except StreamClosedError:
                return False
            self._flush()
            view = view[size:]

        return True

    def reset_stream(self, stream_id: int, error_code: ErrorCodes = ErrorCodes.CANCEL):
        """Abort one stream with RST_STREAM."""
        self._reset.add(stream_id)
        self._streams.pop(stream_id, None)
        try:
            self.conn.reset_stream(stream_id, error_code=error_code)
        except StreamClosedError:
            return
        self._flush()
