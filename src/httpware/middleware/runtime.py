"""
Request timing middleware.

Adds ``X-Runtime`` (or ``X-Runtime-<name>``) with the time spent downstream,
in seconds:

    X-Runtime: 0.004213

Put it right in front of the app to time the app alone, or outermost to
include every other middleware. Naming instances lets several of them
report side by side.
"""

import time
from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


class RuntimeMiddleware(Middleware):

    FORMAT_STRING = "%0.6f"
    HEADER_NAME = "X-Runtime"

    def __init__(self, name: Optional[str] = None):
        self.header_name = self.HEADER_NAME
        if name:
            self.header_name += f"-{name}"

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        start_time = time.monotonic()
        response = next(request)
        request_time = time.monotonic() - start_time

        # An inner instance with the same name already reported.
        if not response.has_header(self.header_name):
            response.set_header(self.header_name, self.FORMAT_STRING % request_time)

        return response
