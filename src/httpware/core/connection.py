"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket: buffered request reads, response writes
(fixed-length, chunked or close-delimited) and a clean TCP close.

TCP is a byte stream, so a request can arrive split over several recv()
calls, and one recv() can hold the tail of one request plus the start of
the next. ``_buffer`` carries leftover bytes between reads:

    recv() → "GET /a HTTP/1.1\\r\\nHost: x\\r\\n\\r\\nGET /b HT"
              ─────────────── request 1 ──────────  ─ kept ─

=============================================================================
RESPONSE FRAMING
=============================================================================

    ┌────────────────────────┬──────────────────────────────────────────────┐
    │ Body                   │ Wire format                                  │
    ├────────────────────────┼──────────────────────────────────────────────┤
    │ Content-Length known   │ head + exactly N bytes                       │
    │ streaming, HTTP/1.1    │ head + "Transfer-Encoding: chunked" chunks   │
    │                        │   1f4\\r\\n<500 bytes>\\r\\n ... 0\\r\\n\\r\\n      │
    │ streaming, HTTP/1.0    │ head + bytes, then the server closes         │
    └────────────────────────┴──────────────────────────────────────────────┘

=============================================================================
HTTP/2 PRIOR KNOWLEDGE
=============================================================================

The HTTP/2 client preface is

    PRI * HTTP/2.0\\r\\n\\r\\nSM\\r\\n\\r\\n

so ``read_request()`` returns ``PRI * HTTP/2.0\\r\\n\\r\\n`` like any other
header block and leaves ``SM\\r\\n\\r\\n`` plus the first frames in the buffer.
``take_buffer()`` hands those bytes to the HTTP/2 session.

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)

H2_PREFACE_START = b"PRI * HTTP/2.0\r\n\r\n"


class ConnectionState(Enum):
    """Connection lifecycle states, used for logging and cleanup."""
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier used in log lines.
        state: Current ConnectionState.
        requests_handled: Number of requests read on this connection.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: float = 30.0             # first request
    keep_alive_timeout: float = 5.0   # subsequent requests
    max_request_size: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def age(self) -> float:
        return time.time() - self.created_at

    @property
    def idle_time(self) -> float:
        return time.time() - self.last_activity

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request (headers plus Content-Length body).

        Returns:
            The request bytes, or None when the client closed the connection
            or went quiet past the keep-alive timeout.

        Raises:
            TimeoutError: the first request did not arrive in time.
            ValueError: the request exceeds ``max_request_size``.
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None

                self._buffer += chunk
                if len(self._buffer) > self.max_request_size:
                    raise ValueError(f"Request too large: {len(self._buffer)} bytes")

            header_end = self._buffer.find(b"\r\n\r\n")
            header_section = self._buffer[:header_end]
            body_start = header_end + 4

            content_length = self._parse_content_length(header_section)
            if body_start + content_length > self.max_request_size:
                raise ValueError(
                    f"Request too large: {body_start + content_length} bytes"
                )

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break
                self._buffer += chunk

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            self.last_activity = time.time()
            return request_data

        except socket.timeout:
            if self.requests_handled > 0:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            if not self.is_closed:
                self.socket.settimeout(self.timeout)

    def take_buffer(self) -> bytes:
        """Return and clear bytes received past the last request."""
        data, self._buffer = self._buffer, b""
        return data

    def _recv(self) -> bytes:
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            return b""

    def _parse_content_length(self, headers: bytes) -> int:
        """
        Content-Length from raw header bytes, 0 when absent or invalid.

        The parser validates the value properly later; here it only decides
        how many body bytes to wait for.
        """
        try:
            header_str = headers.decode("latin-1").lower()
            for line in header_str.split("\r\n"):
                if line.startswith("content-length:"):
                    return max(int(line.split(":", 1)[1].strip()), 0)
        except (ValueError, IndexError):
            pass
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send raw bytes with sendall().

        Returns:
            True on success, False when the peer has gone away.
        """
        self.state = ConnectionState.WRITING
        self.last_activity = time.time()

        try:
            self.socket.sendall(data)
            self.last_activity = time.time()
            return True
        except (ConnectionResetError, BrokenPipeError, OSError) as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def send_chunk(self, data: bytes) -> bool:
        """
        Send one ``Transfer-Encoding: chunked`` chunk.

        Empty data is skipped, since a zero-length chunk ends the body.
        """
        if not data:
            return True
        return self.send_response(f"{len(data):x}\r\n".encode("ascii") + data + b"\r\n")

    def finish_chunked(self) -> bool:
        """Send the terminating zero-length chunk."""
        return self.send_response(b"0\r\n\r\n")

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close gracefully: shutdown(SHUT_WR) sends FIN, remaining input is
        drained briefly, then the descriptor is released.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except (socket.timeout, OSError):
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
