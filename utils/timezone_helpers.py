from __future__ import annotations

import os
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

DEFAULT_SCHOOL_TIMEZONE = "Africa/Nairobi"


def school_timezone(name: Optional[str] = None) -> ZoneInfo:
    """Timezone used to decide what "today" means for due dates."""
    return ZoneInfo(name or os.environ.get("SCHOOL_TIMEZONE") or DEFAULT_SCHOOL_TIMEZONE)


def school_now(tz_name: Optional[str] = None) -> datetime:
    return datetime.now(school_timezone(tz_name))


def school_today(tz_name: Optional[str] = None) -> date:
    """Calendar date in the school's timezone, independent of the server's."""
    return school_now(tz_name).date()
