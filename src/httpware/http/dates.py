"""
HTTP date helpers.

HTTP dates are always GMT and use the IMF-fixdate form on output:

    Wed, 21 Oct 2015 07:28:00 GMT

Parsing is lenient and accepts anything RFC 2822 allows, which covers the
obsolete RFC 850 and asctime forms clients still send now and then.
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional


_DAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

# Length of "1 Nov 97 09:55 A", the shortest date RFC 2822 accepts.
MIN_HTTP_DATE_LENGTH = 16


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date.

    Naive datetimes are taken to be UTC; aware ones are converted.
    Sub-second precision is dropped.

        >>> format_http_date(datetime(2015, 10, 21, 7, 28, tzinfo=timezone.utc))
        'Wed, 21 Oct 2015 07:28:00 GMT'
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return (
        f"{_DAYS[dt.weekday()]}, "
        f"{dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an HTTP date header into an aware UTC datetime.

    Returns None for missing, too-short, or unparseable values so callers can
    treat "no usable date" uniformly.
    """
    if not value or len(value) < MIN_HTTP_DATE_LENGTH:
        return None

    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None

    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
