"""
core/clock.py -- Time source for every expiry and window calculation.

Components take a `clock` callable (default: utcnow) instead of calling
datetime.now() inline, so tests can advance time deterministically.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ms(value: int) -> timedelta:
    """Milliseconds -> timedelta. Configuration expresses windows in ms."""
    return timedelta(milliseconds=value)


def to_ms(delta: timedelta) -> int:
    """timedelta -> whole milliseconds, rounded up so a retry hint is never early."""
    micros = delta // timedelta(microseconds=1)
    return max(0, -(-micros // 1000))
