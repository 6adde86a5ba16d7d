"""
Request handlers: apps that produce responses at the end of the chain.
"""

from .static import (
    StaticFileHandler,
    FileBody,
    serve_static,
    clean_path_info,
    ALLOWED_VERBS,
    ALLOW_HEADER,
)

__all__ = [
    "StaticFileHandler",
    "FileBody",
    "serve_static",
    "clean_path_info",
    "ALLOWED_VERBS",
    "ALLOW_HEADER",
]
