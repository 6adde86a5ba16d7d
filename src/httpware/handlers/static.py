"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Serves files below a root directory, with single byte-range support.

    GET /media/clip.mp4
    Range: bytes=1000-1999
            │
            ├─ verb check ───────────── not GET/HEAD/OPTIONS → 405 + Allow
            ├─ clean path ───────────── "/a/./b/../clip.mp4" → "/a/clip.mp4"
            ├─ resolve under root ───── missing / unreadable / outside → 404
            ├─ OPTIONS ──────────────── 200 + Allow, Content-Length: 0
            ├─ If-Modified-Since ────── equals Last-Modified → 304
            ├─ HEAD ─────────────────── 200 headers only
            └─ Range
                 none / invalid / multi → 200 whole file
                 nothing satisfiable    → 416  Content-Range: bytes */<size>
                 one range              → 206  Content-Range: bytes 1000-1999/<size>

=============================================================================
FILE BODIES
=============================================================================

The body is a ``FileBody``: nothing is read until the server iterates it,
then the selected range streams in 8 KiB chunks. Its ``path`` attribute
marks it as file-backed, which ETagMiddleware uses to leave it alone.

=============================================================================
PATH SAFETY
=============================================================================

``..`` segments are resolved lexically first, so they can never climb above
the root. The resolved filesystem path is then checked against the resolved
root, which also catches symlinks pointing outside it.

=============================================================================
"""

import os
import logging
from pathlib import Path
from typing import Dict, Iterator, Optional, Union
from datetime import datetime, timezone

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, plain_error
from ..http.status_codes import HTTPStatus
from ..http.mime_types import MIME_TYPES
from ..http.dates import format_http_date
from ..http.ranges import ByteRange, byte_ranges


logger = logging.getLogger(__name__)

ALLOWED_VERBS = ("GET", "HEAD", "OPTIONS")
ALLOW_HEADER = ", ".join(ALLOWED_VERBS)
CHUNK_SIZE = 8192


def clean_path_info(path_info: str) -> str:
    """
    Resolve ``.`` and ``..`` segments without touching the filesystem.

    ``..`` at the top is dropped, so the result never escapes the root:

        >>> clean_path_info("/a/./b/../c")
        '/a/c'
        >>> clean_path_info("/../../etc/passwd")
        '/etc/passwd'
    """
    separators = "/" + (os.altsep or "")
    for sep in separators[1:]:
        path_info = path_info.replace(sep, "/")

    parts = path_info.split("/")
    clean: list[str] = []

    for part in parts:
        if not part or part == ".":
            continue
        if part == "..":
            if clean:
                clean.pop()
            continue
        clean.append(part)

    if not parts or not parts[0]:
        return "/" + "/".join(clean)
    return "/".join(clean)


class FileBody:
    """
    Lazily read byte range of a file, iterated in ``chunk_size`` pieces.

    The file is opened when iteration starts and closed when it finishes or
    ``close()`` is called, whichever comes first.
    """

    def __init__(self, path: Union[str, Path], byte_range: ByteRange, chunk_size: int = CHUNK_SIZE):
        self.path = str(path)
        self.range = byte_range
        self.chunk_size = chunk_size
        self._iterator: Optional[Iterator[bytes]] = None

    @property
    def length(self) -> int:
        return max(self.range.length, 0)

    def __iter__(self) -> Iterator[bytes]:
        self._iterator = self._read_chunks()
        return self._iterator

    def _read_chunks(self) -> Iterator[bytes]:
        with open(self.path, "rb") as f:
            f.seek(self.range.start)
            remaining = self.length
            while remaining > 0:
                part = f.read(min(self.chunk_size, remaining))
                if not part:
                    break
                remaining -= len(part)
                yield part

    def close(self) -> None:
        if self._iterator is not None:
            self._iterator.close()
            self._iterator = None

    def __repr__(self) -> str:
        return f"FileBody({self.path!r}, {self.range.start}-{self.range.end})"


class StaticFileHandler:
    """
    App serving files below ``root``.

    =========================================================================
    USAGE
    =========================================================================

        static = StaticFileHandler("/var/www", headers={"Cache-Control": "public, max-age=60"})
        server = HTTPServer(app=static)

        # or mounted below a prefix
        static = StaticFileHandler("/var/www/assets", url_prefix="/assets")

    =========================================================================

    Args:
        root: Directory to serve.
        headers: Extra headers added to every 200/206 file response.
        default_mime: Content-Type for unknown extensions; None omits the
            header.
        url_prefix: Leading URL path stripped before lookup.
        chunk_size: Read size for file bodies.
    """

    def __init__(
        self,
        root: Union[str, Path],
        headers: Optional[Dict[str, str]] = None,
        default_mime: Optional[str] = "text/plain",
        url_prefix: str = "",
        chunk_size: int = CHUNK_SIZE,
    ):
        self.root = Path(root).resolve()
        self.headers = dict(headers or {})
        self.default_mime = default_mime
        self.url_prefix = url_prefix.rstrip("/")
        self.chunk_size = chunk_size

        if not self.root.is_dir():
            raise ValueError(f"Static root directory does not exist: {root}")

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        return self.handle(request)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        if request.method not in ALLOWED_VERBS:
            return plain_error(
                HTTPStatus.METHOD_NOT_ALLOWED,
                "Method Not Allowed",
                {"Allow": ALLOW_HEADER},
            )

        path_info = self._path_info(request)
        full_path = self._resolve(clean_path_info(path_info))

        if full_path is None or not self._available(full_path):
            return plain_error(HTTPStatus.NOT_FOUND, f"File not found: {path_info}")

        try:
            return self._serving(request, full_path)
        except OSError as e:
            # File vanished or became unreadable between the check and the stat.
            logger.warning(f"Error serving {full_path}: {e}")
            return plain_error(HTTPStatus.NOT_FOUND, f"File not found: {path_info}")

    # ─────────────────────────────────────────────────────────────────────
    # PATH RESOLUTION
    # ─────────────────────────────────────────────────────────────────────

    def _path_info(self, request: HTTPRequest) -> str:
        """Request path relative to the mount point. Already URL-decoded."""
        if "path" in request.path_params:
            return "/" + request.path_params["path"].lstrip("/")

        path = request.path
        if self.url_prefix and (path == self.url_prefix or path.startswith(self.url_prefix + "/")):
            path = path[len(self.url_prefix):] or "/"
        return path

    def _resolve(self, clean_path: str) -> Optional[Path]:
        full_path = (self.root / clean_path.lstrip("/")).resolve()
        try:
            full_path.relative_to(self.root)
        except ValueError:
            logger.warning(f"Path escapes static root: {clean_path}")
            return None
        return full_path

    def _available(self, path: Path) -> bool:
        try:
            return path.is_file() and os.access(path, os.R_OK)
        except OSError:
            return False

    # ─────────────────────────────────────────────────────────────────────
    # SERVING
    # ─────────────────────────────────────────────────────────────────────

    def _serving(self, request: HTTPRequest, path: Path) -> HTTPResponse:
        if request.is_options:
            return HTTPResponse(
                status=HTTPStatus.OK,
                headers={"Allow": ALLOW_HEADER, "Content-Length": "0"},
            )

        stat = path.stat()
        last_modified = format_http_date(
            datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        )

        if request.get_header("If-Modified-Since") == last_modified:
            return HTTPResponse(status=HTTPStatus.NOT_MODIFIED)

        headers = {"Last-Modified": last_modified}
        mime_type = self.mime_type(path)
        if mime_type:
            headers["Content-Type"] = mime_type
        headers.update(self.headers)

        size = self.filesize(path, stat.st_size)

        if request.is_head:
            headers["Content-Length"] = str(size)
            return HTTPResponse(status=HTTPStatus.OK, headers=headers)

        ranges = byte_ranges(request.get_header("Range") or None, size)

        if ranges is None or len(ranges) > 1:
            # Multiple ranges would need multipart/byteranges; send it all.
            status = HTTPStatus.OK
            byte_range = ByteRange(0, size - 1)
        elif not ranges:
            return plain_error(
                HTTPStatus.RANGE_NOT_SATISFIABLE,
                "Byte range unsatisfiable",
                {"Content-Range": f"bytes */{size}"},
            )
        else:
            status = HTTPStatus.PARTIAL_CONTENT
            byte_range = ranges[0]
            headers["Content-Range"] = byte_range.content_range(size)

        body = FileBody(path, byte_range, self.chunk_size)
        headers["Content-Length"] = str(body.length)

        return HTTPResponse(status=status, headers=headers, body=body)

    def mime_type(self, path: Path) -> Optional[str]:
        return MIME_TYPES.get(path.suffix.lower(), self.default_mime)

    def filesize(self, path: Path, stat_size: int) -> int:
        """
        Size from stat, or by reading the file when stat reports 0
        (procfs and similar report 0 for files that do have content).
        """
        if stat_size:
            return stat_size
        with open(path, "rb") as f:
            return len(f.read())


def serve_static(root: Union[str, Path], **kwargs) -> StaticFileHandler:
    """
    Shorthand for ``StaticFileHandler(root, **kwargs)``.

        server = HTTPServer(app=serve_static("./public"))
    """
    return StaticFileHandler(root, **kwargs)
