"""
Shared Helper Utilities
Common functions used across the invoicing services
"""

from datetime import date, datetime, timezone
from typing import Optional
from uuid import uuid4


def generate_id(prefix: str = "") -> str:
    """Generate a unique ID with optional prefix using UUID"""
    unique_id = uuid4().hex[:12]
    return f"{prefix}_{unique_id}" if prefix else unique_id


def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def parse_date(date_str: Optional[str]) -> Optional[datetime]:
    """Parse ISO date string to datetime"""
    if not date_str:
        return None
    try:
        return datetime.fromisoformat(date_str.replace('Z', '+00:00'))
    except (ValueError, AttributeError):
        return None


def parse_calendar_date(date_str: Optional[str]) -> Optional[date]:
    """Parse the calendar-date part of an ISO string (time and zone are ignored)"""
    if not date_str or not isinstance(date_str, str):
        return None
    try:
        return date.fromisoformat(date_str[:10])
    except ValueError:
        return None
