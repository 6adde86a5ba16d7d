"""
=============================================================================
CONDITIONAL GET MIDDLEWARE
=============================================================================

Answers a GET or HEAD with 304 Not Modified when the client's cached copy is
still current, using the validators the app put on its 200 response.

    Client                                  Server
      │  GET /logo.png                        │
      │  If-None-Match: W/"5d41402abc4b"      │
      │  ───────────────────────────────────► │  app builds 200 + ETag W/"5d41402abc4b"
      │                                       │  validators match
      │  ◄─────────────────────────────────── │
      │  304 Not Modified  (no body)          │

A request is fresh when it carries at least one validator and every
validator it carries succeeds:

    If-None-Match      equals the response ETag exactly
    If-Modified-Since  parses as a date, the response Last-Modified parses,
                       and If-Modified-Since >= Last-Modified

On a 304 the Content-Type and Content-Length headers go away and the body
is closed unread, so lazily generated bodies are never produced.

=============================================================================
"""

import logging
from datetime import datetime
from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, close_body
from ..http.dates import parse_http_date
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


class ConditionalGetMiddleware(Middleware):
    """
    Turns fresh 200 responses to GET/HEAD into 304 Not Modified.

    Place it outside whatever sets ETag or Last-Modified:

        pipeline.add(ConditionalGetMiddleware())
        pipeline.add(ETagMiddleware())
    """

    CONDITIONAL_METHODS = ("GET", "HEAD")

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        response = next(request)

        if request.method not in self.CONDITIONAL_METHODS:
            return response

        if response.status == HTTPStatus.OK and self.is_fresh(request, response):
            logger.debug(f"Not modified: {request.path}")
            response.status = HTTPStatus.NOT_MODIFIED
            response.delete_header("Content-Type")
            response.delete_header("Content-Length")

            original = response.body
            response.body = b""
            close_body(original)

        return response

    def is_fresh(self, request: HTTPRequest, response: HTTPResponse) -> bool:
        modified_since = request.get_header("If-Modified-Since") or None
        none_match = request.get_header("If-None-Match") or None

        if modified_since is None and none_match is None:
            return False

        if modified_since is not None:
            if not self._modified_since(parse_http_date(modified_since), response):
                return False

        if none_match is not None:
            if not self._etag_matches(none_match, response):
                return False

        return True

    def _etag_matches(self, none_match: str, response: HTTPResponse) -> bool:
        etag = response.get_header("ETag")
        return etag is not None and etag == none_match

    def _modified_since(self, modified_since: Optional[datetime], response: HTTPResponse) -> bool:
        last_modified = parse_http_date(response.get_header("Last-Modified"))
        if last_modified is None or modified_since is None:
            return False
        return modified_since >= last_modified
