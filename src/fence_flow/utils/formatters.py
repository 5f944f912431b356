"""Formatting utilities for display values."""

from datetime import datetime
from typing import Optional

from fence_flow.utils.constants import STATUS_LABELS


def format_currency(value: Optional[float]) -> str:
    """Format a float as USD currency."""
    return f"${(value or 0):,.2f}"


def format_percent(value: Optional[float]) -> str:
    if value is None:
        return "—"
    return f"{value:.1f}%"


def format_status(status: Optional[str]) -> str:
    """Human label for a status code."""
    if not status:
        return ""
    return STATUS_LABELS.get(status, status.replace("_", " ").title())


def format_duration(start: Optional[str], end: Optional[str]) -> str:
    """Elapsed time between two ISO timestamps, e.g. '2d 3h' or '45m'."""
    if not start or not end:
        return ""
    delta = datetime.fromisoformat(end) - datetime.fromisoformat(start)
    minutes = int(delta.total_seconds() // 60)
    if minutes < 0:
        return ""
    days, minutes = divmod(minutes, 24 * 60)
    hours, minutes = divmod(minutes, 60)
    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_linear_feet(value: Optional[float]) -> str:
    if value is None:
        return ""
    return f"{value:,.0f} LF"
