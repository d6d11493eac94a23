"""Clock used for every timestamp written to the store."""

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current UTC time as a naive datetime.

    SQLite stores DateTime columns without timezone information, so every
    timestamp handled by the engine is naive UTC.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
