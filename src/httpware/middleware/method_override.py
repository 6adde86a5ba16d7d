"""
=============================================================================
METHOD OVERRIDE MIDDLEWARE
=============================================================================

HTML forms can only submit GET and POST. This middleware lets a POST stand
in for another method:

    POST /articles/7                        POST /articles/7
    Content-Type: application/x-www-...     X-HTTP-Method-Override: DELETE

    _method=put&title=Hi
            │                                       │
            ▼                                       ▼
    downstream sees PUT                     downstream sees DELETE
    original_method == "POST"               original_method == "POST"

The form field wins over the header. Values are upper-cased and must name
one of ``HTTP_METHODS``; anything else leaves the request untouched.

=============================================================================
"""

import logging
from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest, HTTPParseError
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


class MethodOverrideMiddleware(Middleware):
    """Rewrites POST requests to the method named by ``_method`` or the header."""

    HTTP_METHODS = frozenset([
        "GET", "HEAD", "PUT", "POST", "DELETE", "OPTIONS", "PATCH", "LINK", "UNLINK",
    ])
    ALLOWED_METHODS = frozenset(["POST"])

    METHOD_OVERRIDE_PARAM_KEY = "_method"
    HTTP_METHOD_OVERRIDE_HEADER = "X-HTTP-Method-Override"

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        if request.method in self.ALLOWED_METHODS:
            method = self.method_override(request)
            if method in self.HTTP_METHODS:
                logger.debug(f"Method override: {request.method} -> {method} {request.path}")
                request = request.with_method(method)

        return next(request)

    def method_override(self, request: HTTPRequest) -> str:
        """Requested method, upper-cased; "" when none was given."""
        method = self._method_override_param(request) or request.get_header(
            self.HTTP_METHOD_OVERRIDE_HEADER
        )
        return (method or "").upper()

    def _method_override_param(self, request: HTTPRequest) -> Optional[str]:
        try:
            return request.get_form(self.METHOD_OVERRIDE_PARAM_KEY)
        except HTTPParseError as e:
            logger.debug(f"Ignoring unreadable form body: {e}")
            return None
