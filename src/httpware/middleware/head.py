"""Empties the body of responses to HEAD requests."""

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, close_body


class HeadMiddleware(Middleware):
    """
    HEAD responses keep every header, Content-Length included, but lose
    their body. Other requests pass through unchanged.
    """

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        response = next(request)

        if request.is_head:
            original = response.body
            response.body = b""
            close_body(original)

        return response
