from collections.abc import Callable
from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from hubz.config.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def local_today(clock: Clock, timezone: str | None) -> date:
    """Today's date in the user's timezone, UTC when the name does not resolve to a zone."""
    try:
        zone = ZoneInfo(timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError, OSError):
        logger.warning("Unknown timezone, using UTC", timezone=timezone)
        zone = ZoneInfo("UTC")
    return clock().astimezone(zone).date()
