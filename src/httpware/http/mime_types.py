"""
=============================================================================
MIME TYPE LOOKUP
=============================================================================

Maps file extensions to media types for the Content-Type header set by the
static file handler.

    report.PDF ──► suffix ".pdf" ──► lowercase ──► MIME_TYPES ──► application/pdf
    notes.xyz  ──► suffix ".xyz" ──► (unknown) ──► fallback argument

The fallback is the caller's choice: the static file handler passes its
configured ``default_mime`` (``text/plain`` unless overridden), everything
else gets ``application/octet-stream``.

=============================================================================
"""

from pathlib import Path
from typing import Optional, Union


MIME_TYPES = {
    # Text
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".json": "application/json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",

    # Images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".bmp": "image/bmp",

    # Fonts
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",

    # Audio / video (the usual targets of range requests)
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".flac": "audio/flac",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".mkv": "video/x-matroska",

    # Documents and archives
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".tar": "application/x-tar",
    ".gz": "application/gzip",
    ".7z": "application/x-7z-compressed",
    ".wasm": "application/wasm",
    ".map": "application/json",

    # Source and config files are served as text
    ".py": "text/x-python",
    ".rb": "text/x-ruby",
    ".sh": "text/x-shellscript",
    ".yaml": "text/yaml",
    ".yml": "text/yaml",
    ".toml": "text/x-toml",
}

DEFAULT_MIME_TYPE = "application/octet-stream"

_TEXT_LIKE_TYPES = {
    "application/json",
    "application/xml",
    "application/javascript",
    "image/svg+xml",
}


def get_mime_type(path: Union[str, Path], default: Optional[str] = None) -> str:
    """
    Media type for ``path`` based on its extension.

    Examples:
        >>> get_mime_type("clip.MP4")
        'video/mp4'
        >>> get_mime_type("data.xyz", default="text/plain")
        'text/plain'
    """
    extension = Path(path).suffix.lower()
    return MIME_TYPES.get(extension, default or DEFAULT_MIME_TYPE)


def is_text_type(mime_type: str) -> bool:
    """True for text/* and the text-based application types."""
    return mime_type.startswith("text/") or mime_type in _TEXT_LIKE_TYPES


def get_content_type(path: Union[str, Path], charset: str = "utf-8") -> str:
    """
    Full Content-Type value for ``path``: the media type, plus a charset
    parameter when the type is text-based.
    """
    mime_type = get_mime_type(path)
    if is_text_type(mime_type):
        return f"{mime_type}; charset={charset}"
    return mime_type
