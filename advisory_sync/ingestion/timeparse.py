"""
Lenient timestamp parsing for feed documents.

Advisory feeds carry dates in several shapes, including version-control
keyword strings. All results are naive datetimes in UTC, matching the
TIMESTAMP columns of the store.
"""
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

EPOCH = datetime(1970, 1, 1)

_PLACEHOLDERS = {"", "$Date$", "$Date:$", "$Date: $", "$Date", "$$"}
_KEYWORD = re.compile(r"^\$Date:\s*(.*?)\s*\$?$")
_PAREN_SUFFIX = re.compile(r"\s*\(.*\)\s*$")

_FORMATS = (
    "%Y-%m-%d %H:%M:%S %z",
    "%a %b %d %H:%M:%S %Y %z",
    "%Y-%m-%d",
)


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def from_epoch(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)


def to_epoch(value: datetime) -> int:
    return int(value.replace(tzinfo=timezone.utc).timestamp())


def parse_feed_time(value) -> Optional[datetime]:
    """
    Parse a feed timestamp.

    Accepted forms:
        2024-01-15T12:00:00Z, 2024-01-15T12:00:00+02:00 (ISO 8601)
        2011-08-09 08:20:34 +0200 (Tue, 09 Aug 2011)
        Fri, 11 Nov 2011 14:42:28 +0100 (RFC 2822)
        $Date: 2012-02-17 16:05:26 +0100 (Fr, 17. Feb 2012) $
        epoch seconds (int/float)

    Returns:
        Naive UTC datetime, or None for empty values and $Date$ placeholders
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_utc_naive(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return from_epoch(value)

    text = str(value).strip()
    if text in _PLACEHOLDERS:
        return None

    keyword = _KEYWORD.match(text)
    if keyword:
        text = keyword.group(1).strip()
        if not text:
            return None

    text = _PAREN_SUFFIX.sub("", text)

    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return to_utc_naive(datetime.fromisoformat(iso))
    except ValueError:
        pass

    for fmt in _FORMATS:
        try:
            return to_utc_naive(datetime.strptime(text, fmt))
        except ValueError:
            continue

    try:
        return to_utc_naive(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError):
        return None
