# Shared utilities
from .helpers import (
    generate_id,
    utc_now,
    parse_date,
    parse_calendar_date,
)

__all__ = [
    'generate_id',
    'utc_now',
    'parse_date',
    'parse_calendar_date',
]
