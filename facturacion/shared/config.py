"""
Runtime settings read from the environment (a .env file is loaded by main)
"""

import os
from typing import Optional

DEFAULT_PORT = 8004
DEFAULT_PAYMENT_MAX_ATTEMPTS = 3
DEFAULT_STORE_TIMEOUT_SECONDS = 10.0


def _positive_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be greater than zero, got {raw!r}")
    return value


def port() -> int:
    return int(os.getenv("PORT", DEFAULT_PORT))


def log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


def payment_max_attempts() -> int:
    return int(_positive_float("PAYMENT_MAX_ATTEMPTS", DEFAULT_PAYMENT_MAX_ATTEMPTS))


def store_timeout() -> Optional[float]:
    """Per-call deadline for Firestore reads, writes and queries"""
    return _positive_float("STORE_TIMEOUT_SECONDS", DEFAULT_STORE_TIMEOUT_SECONDS)
