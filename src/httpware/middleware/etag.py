"""
=============================================================================
ETAG MIDDLEWARE
=============================================================================

Computes a weak entity tag from the response body so ConditionalGet can
answer repeat requests with 304.

    app ──► 200, body b"hello"
              │
              ├── md5(b"hello") = 5d41402abc4b2a76b9719d911017c592
              ├── ETag: W/"5d41402abc4b2a76b9719d911017c592"
              └── Cache-Control: max-age=0, private, must-revalidate

The tag is weak (``W/``) because it is computed over whatever the app
produced, which may differ byte-for-byte from other representations that
are semantically the same.

=============================================================================
WHEN THE ETAG IS SKIPPED
=============================================================================

    status not 200/201             nothing cacheable to validate
    body has a ``path``            file bodies: the file server sets
                                   Last-Modified, and digesting would read
                                   the whole file
    response has ETag              the app chose its own validator
    response has Last-Modified     the app chose its own validator
    Cache-Control has no-cache     caching disabled

Whatever happens, a response without Cache-Control gets ``cache_control``
when a digest was produced and ``no_cache_control`` otherwise; ``None``
leaves the header unset.

=============================================================================
"""

import hashlib
import logging
from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, close_body
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)

DEFAULT_CACHE_CONTROL = "max-age=0, private, must-revalidate"


class ETagMiddleware(Middleware):
    """
    Sets ``ETag: W/"<md5>"`` on buffered 200/201 responses.

    Args:
        no_cache_control: Cache-Control for responses that got no ETag.
        cache_control: Cache-Control for responses that got one.
    """

    ETAG_STATUSES = (HTTPStatus.OK, HTTPStatus.CREATED)

    def __init__(
        self,
        no_cache_control: Optional[str] = None,
        cache_control: Optional[str] = DEFAULT_CACHE_CONTROL,
    ):
        self.no_cache_control = no_cache_control
        self.cache_control = cache_control

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        response = next(request)
        digest = None

        if (
            response.status in self.ETAG_STATUSES
            and self._etag_body(response)
            and not self._skip_caching(response)
        ):
            digest = self._digest_body(response)
            if digest:
                response.set_header("ETag", f'W/"{digest}"')

        if not response.has_header("Cache-Control"):
            if digest:
                if self.cache_control:
                    response.set_header("Cache-Control", self.cache_control)
            elif self.no_cache_control:
                response.set_header("Cache-Control", self.no_cache_control)

        return response

    def _etag_body(self, response: HTTPResponse) -> bool:
        return getattr(response.body, "path", None) is None

    def _skip_caching(self, response: HTTPResponse) -> bool:
        cache_control = response.get_header("Cache-Control") or ""
        return (
            "no-cache" in cache_control
            or response.has_header("ETag")
            or response.has_header("Last-Modified")
        )

    def _digest_body(self, response: HTTPResponse) -> Optional[str]:
        """
        Buffer the body and hash its non-empty parts.

        Returns None when every part was empty.
        """
        parts = []
        digest = None

        original = response.body
        try:
            for part in response.iter_body():
                parts.append(part)
                if not part:
                    continue
                if digest is None:
                    digest = hashlib.md5(usedforsecurity=False)
                digest.update(part)
        finally:
            close_body(original)

        response.body = b"".join(parts)
        return digest.hexdigest() if digest else None
