"""Display formatting helpers."""

from datetime import datetime, timezone
from typing import Optional


def display_timestamp(now: Optional[datetime] = None) -> str:
    """
    Formats a timestamp the way request dates are shown in the dashboard,
    e.g. ``Sunday 05 January 2025 14:03``.
    """

    now = now or datetime.now()
    return now.strftime("%A %d %B %Y %H:%M")


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()
