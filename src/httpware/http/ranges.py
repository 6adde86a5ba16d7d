"""
=============================================================================
BYTE RANGES (RFC 7233)
=============================================================================

Turns a ``Range`` request header into concrete byte offsets for a resource
of known size.

    Range: bytes=0-499        → first 500 bytes
    Range: bytes=500-         → everything from offset 500
    Range: bytes=-500         → last 500 bytes
    Range: bytes=0-0,-1       → first and last byte (two ranges)

Two steps:

    parse_range_header("bytes=10-,-5")      syntax only
        → [(10, None), (None, 5)]

    byte_ranges("bytes=10-,-5", size=100)   resolved against the size
        → [ByteRange(10, 99), ByteRange(95, 99)]

``byte_ranges`` has three distinct outcomes, and the static file handler maps
each one to a different status:

    None   header missing or malformed        → 200, whole file
    []     well formed, nothing satisfiable   → 416
    [...]  inclusive ranges, clamped to size  → 206 (single range)

=============================================================================
"""

from typing import NamedTuple, Optional
import re


RangeSpec = tuple[Optional[int], Optional[int]]

_SPEC_PATTERN = re.compile(r"^(\d*)-(\d*)$")


class ByteRange(NamedTuple):
    """Inclusive byte offsets ``start..end``."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, size: int) -> str:
        """Value for the Content-Range header: ``bytes 0-499/1234``."""
        return f"bytes {self.start}-{self.end}/{size}"


def parse_range_header(value: Optional[str]) -> Optional[list[RangeSpec]]:
    """
    Parse the syntax of a ``Range`` header.

    Returns a list of ``(start, end)`` specs:

        (start, end)    "0-499"
        (start, None)   "500-"
        (None, suffix)  "-500"

    or None when the header is missing, uses a unit other than bytes, or any
    spec is malformed.

    Examples:
        >>> parse_range_header("bytes=0-499")
        [(0, 499)]
        >>> parse_range_header("bytes=-500")
        [(None, 500)]
        >>> parse_range_header("items=0-1") is None
        True
    """
    if not value:
        return None

    value = value.strip()
    if not value.lower().startswith("bytes="):
        return None

    specs: list[RangeSpec] = []
    for raw_spec in value[6:].split(","):
        match = _SPEC_PATTERN.match(raw_spec.strip())
        if not match:
            return None

        start_str, end_str = match.groups()
        if not start_str and not end_str:
            return None

        start = int(start_str) if start_str else None
        end = int(end_str) if end_str else None
        specs.append((start, end))

    return specs


def byte_ranges(value: Optional[str], size: int) -> Optional[list[ByteRange]]:
    """
    Resolve a ``Range`` header against a resource of ``size`` bytes.

    Rules:
        - suffix ranges larger than the resource start at offset 0
        - end offsets past the resource are clamped to ``size - 1``
        - a backwards range (end < start) invalidates the whole header
        - ranges starting at or past ``size`` are dropped

    Examples:
        >>> byte_ranges("bytes=0-9999", 100)
        [ByteRange(start=0, end=99)]
        >>> byte_ranges("bytes=200-", 100)
        []
        >>> byte_ranges("bytes=5-1", 100) is None
        True
    """
    specs = parse_range_header(value)
    if specs is None:
        return None

    ranges: list[ByteRange] = []
    for start, end in specs:
        if start is None:
            # Suffix range: the last `end` bytes.
            first = max(size - end, 0)
            last = size - 1
        else:
            first = start
            if end is None:
                last = size - 1
            else:
                if end < start:
                    return None
                last = min(end, size - 1)

        if first <= last:
            ranges.append(ByteRange(first, last))

    return ranges
