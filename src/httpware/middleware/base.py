"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

The middleware contract and the pipeline that composes middleware around an
app.

    app         (request) -> HTTPResponse
    middleware  (request, next) -> HTTPResponse

A middleware may rewrite the request before calling ``next``, rewrite the
response after it, or return a response without calling ``next`` at all.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          REQUEST FLOW                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Request ────────────────────────────────────────────────►         │
    │                                                                      │
    │   ┌──────────┐    ┌──────────┐    ┌──────────┐    ┌──────────┐      │
    │   │ Runtime  │───►│  Method  │───►│   ETag   │───►│   App    │      │
    │   │          │    │ Override │    │          │    │          │      │
    │   └────┬─────┘    └────┬─────┘    └────┬─────┘    └────┬─────┘      │
    │        │               │               │               │            │
    │   [before]        [before]        [before]          [exec]          │
    │   start clock     POST → PUT      -                 build           │
    │                                                     response        │
    │   [after]         [after]         [after]                           │
    │   X-Runtime       -               digest body,                      │
    │                                   set ETag                          │
    │                                                                      │
    │   ◄──────────────────────────────────────────────── Response        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Exceptions raised by the app travel out through every middleware; only the
server turns them into a 500 response.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Union
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# The rest of the chain: the next middleware, or the app itself.
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware.

        class StampMiddleware(Middleware):
            def __call__(self, request, next):
                response = next(request)
                response.set_header("X-Stamp", "1")
                return response

    Middleware that rewrites a response body must close the body it
    replaces; the server only closes the body it finally receives.
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process one request.

        Args:
            request: The incoming request.
            next: The rest of the chain.

        Returns:
            The response, from ``next`` or produced here.
        """

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Ordered middleware around an app. The first added is the outermost.

        pipeline = MiddlewarePipeline()
        pipeline.add(RuntimeMiddleware())         # outermost
        pipeline.add(ConditionalGetMiddleware())
        pipeline.add(ETagMiddleware())            # closest to the app

        app = pipeline.wrap(static_handler)
        response = app(request)

    Requests pass Runtime → ConditionalGet → ETag → app; responses come back
    in the reverse order.
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(
        self,
        middleware: Union[Middleware, Callable[[HTTPRequest, NextHandler], HTTPResponse]]
    ) -> "MiddlewarePipeline":
        """
        Append middleware. Plain ``(request, next)`` functions are lifted
        with ``FunctionMiddleware``.

        Returns self for chaining.
        """
        if not isinstance(middleware, Middleware):
            middleware = FunctionMiddleware(middleware)
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        """Append several middleware in order."""
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Build the chain around ``handler``.

        Wrapping runs in reverse, so for [A, B, C] the result is
        A(B(C(handler))).
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler
    ) -> NextHandler:
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)

        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)


# =============================================================================
# FUNCTION MIDDLEWARE
# =============================================================================

class FunctionMiddleware(Middleware):
    """
    A ``(request, next) -> response`` function used as middleware.

        def add_header(request, next):
            response = next(request)
            response.set_header("X-Custom", "value")
            return response

        pipeline.add(FunctionMiddleware(add_header, name="add_header"))
    """

    def __init__(
        self,
        func: Callable[[HTTPRequest, NextHandler], HTTPResponse],
        name: Optional[str] = None
    ):
        self._func = func
        self._name = name or getattr(func, "__name__", func.__class__.__name__)

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        return self._func(request, next)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(
    func: Callable[[HTTPRequest, NextHandler], HTTPResponse]
) -> FunctionMiddleware:
    """
    Decorator form of ``FunctionMiddleware``.

        @function_middleware
        def stamp(request, next):
            response = next(request)
            response.set_header("X-Stamp", "1")
            return response

        pipeline.add(stamp)
    """
    return FunctionMiddleware(func)
