"""
=============================================================================
LOCK MIDDLEWARE
=============================================================================

Serialises request handling through one mutex, for apps that are not
thread-safe but run on the threaded server.

    Worker-0 ──acquire──► app ──► body sent ──► release
    Worker-1 ─────────── waits ───────────────────────────►acquire──► app ...

The mutex covers body generation too. A buffered response releases it as
soon as the app returns; a streaming body is wrapped in ``BodyProxy`` and
the mutex is released when the server closes that body.

=============================================================================
"""

import logging
import threading
from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, BodyProxy


logger = logging.getLogger(__name__)


class LockMiddleware(Middleware):
    """
    Runs each request while holding ``mutex``.

    Args:
        mutex: Any object with acquire()/release(); defaults to a new
            ``threading.Lock``.
    """

    def __init__(self, mutex: Optional[threading.Lock] = None):
        self.mutex = mutex if mutex is not None else threading.Lock()

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        self.mutex.acquire()
        try:
            response = next(request)
        except BaseException:
            self.mutex.release()
            raise

        if not response.is_streaming:
            self.mutex.release()
            return response

        response.body = BodyProxy(response.body, self.mutex.release)
        return response
