"""
tests/helpers.py -- Plain helpers shared by the test modules and conftest.py.

Kept out of conftest.py so test modules can import them directly without
pytest loading conftest a second time under another module name.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from core.config import Settings

TEST_SECRET = "test-secret-key-0123456789abcdef-0123456789"
PASSWORD = "correct-horse-battery"
EMAIL = "ada@example.com"
NAME = "Ada Lovelace"

START = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: int = 0, seconds: float = 0) -> None:
        self.now += timedelta(milliseconds=ms, seconds=seconds)


def make_settings(**overrides) -> Settings:
    """Fast deterministic settings: bcrypt cost 4, fixed key, roomy rate limit."""
    values = {
        "debug": True,
        "secret_key": TEST_SECRET,
        "hash_cost_factor": 4,
        "rate_limit_max": 100,
    }
    values.update(overrides)
    return Settings(**values)


def memory_db_url(prefix: str = "auth") -> str:
    return f"sqlite:///file:test_{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
