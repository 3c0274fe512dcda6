# timezone_utils.py
"""
Timezone utilities for calibration table metadata.
Timestamps are stored as UTC ISO-8601 text and shown in the site timezone.
"""

import os
from datetime import datetime, timezone
from typing import Optional

import pytz
from dotenv import load_dotenv

load_dotenv()

# Site timezone used for display (e.g. "America/Bogota"); storage is always UTC
LOCAL_TIMEZONE = pytz.timezone(os.getenv("GAUGING_TIMEZONE", "UTC"))


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def to_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None

    # If datetime is naive (no timezone), assume it's UTC
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)

    return dt.astimezone(timezone.utc)


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Serialize to ISO-8601 UTC text, None passes through"""
    utc_dt = to_utc(dt)
    return utc_dt.isoformat() if utc_dt is not None else None


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse a stored timestamp back into an aware UTC datetime.

    Accepts datetimes, ISO-8601 text (a trailing 'Z' is allowed) and
    returns None for empty or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return to_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def format_local_datetime(dt: Optional[datetime], format_str: str = "%Y-%m-%d %H:%M:%S") -> str:
    """Format a stored timestamp in the local timezone ("" for None)."""
    if dt is None:
        return ""
    return to_utc(dt).astimezone(LOCAL_TIMEZONE).strftime(format_str)
