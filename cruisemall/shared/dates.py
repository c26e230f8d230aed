"""Wall-clock helpers. Send times and backup folder names use the service's local time."""

import re
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from ..config import APP_TIMEZONE

HHMM_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def local_now() -> datetime:
    """Naive datetime in APP_TIMEZONE, matching how rows are stored"""
    return datetime.now(ZoneInfo(APP_TIMEZONE)).replace(tzinfo=None)


def parse_hhmm(value: Optional[str]) -> Optional[tuple[int, int]]:
    """'09:30' -> (9, 30); None for anything else"""
    if not value:
        return None
    match = HHMM_PATTERN.match(value.strip())
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))
