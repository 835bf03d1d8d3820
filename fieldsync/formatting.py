"""Display helpers for anchors."""
from __future__ import annotations

from datetime import datetime
import math
from typing import Optional

from .models import as_utc, utc_now


def format_coordinate(value: float, kind: str) -> str:
    """'12.34568° N' style, five decimals with a hemisphere suffix."""
    if value is None or not math.isfinite(value):
        return "—"
    if kind == "lat":
        suffix = "N" if value >= 0 else "S"
    else:
        suffix = "E" if value >= 0 else "W"
    return f"{abs(value):.5f}° {suffix}"


def format_accuracy(accuracy: Optional[float]) -> Optional[str]:
    if accuracy is None:
        return None
    return f"±{round(accuracy)} m"


def format_datetime(value: datetime) -> str:
    return as_utc(value).strftime("%b %d · %H:%M")


def format_relative(value: datetime, now: Optional[datetime] = None) -> str:
    now = as_utc(now) if now else utc_now()
    minutes = round((now - as_utc(value)).total_seconds() / 60)
    if minutes < 1:
        return "just now"
    if minutes == 1:
        return "1 minute ago"
    if minutes < 60:
        return f"{minutes} minutes ago"
    hours = round(minutes / 60)
    if hours == 1:
        return "1 hour ago"
    if hours < 24:
        return f"{hours} hours ago"
    days = round(hours / 24)
    if days == 1:
        return "1 day ago"
    return f"{days} days ago"
