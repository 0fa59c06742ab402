from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


def local_timezone() -> Optional[tzinfo]:
    return datetime.now().astimezone().tzinfo


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    if not name:
        return local_timezone()
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        logger.warning("Failed to load timezone %s via zoneinfo (%s)", name, exc)
    local_tz = local_timezone()
    logger.warning("Using system local timezone instead: %s", getattr(local_tz, "key", local_tz))
    return local_tz


def now_in_tz(tz: Optional[tzinfo]) -> datetime:
    if tz:
        return datetime.now(tz)
    return datetime.now().astimezone()


def seconds_until_next_period(now_ts: float, period: float) -> float:
    """Delay until the next wall-clock multiple of ``period`` seconds."""
    remaining = period - (now_ts % period)
    return remaining if remaining > 0 else period
