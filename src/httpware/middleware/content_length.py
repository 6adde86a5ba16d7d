"""
Content-Length middleware.

Buffers the downstream body and sets Content-Length to its size, so
streaming bodies go out with a fixed length instead of chunked framing.
"""

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse
from ..http.status_codes import STATUS_WITH_NO_ENTITY_BODY


class ContentLengthMiddleware(Middleware):
    """
    Sets Content-Length on responses that may carry a body and do not
    already declare Content-Length or Transfer-Encoding.

    Responses that already declare their framing, such as file bodies from
    StaticFileHandler, pass through unbuffered.
    """

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        response = next(request)

        if (
            response.status in STATUS_WITH_NO_ENTITY_BODY
            or response.has_header("Content-Length")
            or response.has_header("Transfer-Encoding")
        ):
            return response

        body = response.read_body()
        response.set_header("Content-Length", str(len(body)))
        return response
