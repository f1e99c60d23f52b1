"""
Dojo-local calendar.

Billing periods and exam dates follow the dojo's wall clock, not the server's,
so "today" is always taken in the timezone configured under dojo.timezone.
"""

import logging
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


def local_today(timezone_name: Optional[str] = None) -> date:
    """Current date in the given IANA timezone; unknown zones fall back to UTC"""
    try:
        zone = ZoneInfo(timezone_name) if timezone_name else timezone.utc
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{timezone_name}', using UTC")
        zone = timezone.utc
    return datetime.now(zone).date()
