"""
tests/test_rate_limit.py -- Fixed-window RateLimitService.

Covers:
  - max requests per window, then RATE_LIMITED with a retry hint
  - window reset at exactly window_ms after the first request
  - counter saturation at max + 1 while rejecting
  - independent sources, disabled limiter, cleanup (direct and via the
    AuthService periodic purge)
  - no lost updates under concurrent checks
"""

from __future__ import annotations

import threading

from auth.rate_limit import RateLimitService
from core.result import ErrorCode
from tests.helpers import FakeClock, make_settings


def _limiter(clock: FakeClock, **overrides) -> RateLimitService:
    values = {"rate_limit_max": 3, "rate_limit_window_ms": 1000}
    values.update(overrides)
    return RateLimitService(make_settings(**values), clock=clock)


class TestFixedWindow:
    def test_allows_up_to_max_then_rejects(self) -> None:
        clock = FakeClock()
        limiter = _limiter(clock)
        for _ in range(3):
            assert limiter.check("10.0.0.1").ok
        result = limiter.check("10.0.0.1")
        assert not result.ok
        assert result.code == ErrorCode.RATE_LIMITED
        assert result.details["retry_after_ms"] == 1000
        assert result.details["limit"] == 3

    def test_retry_hint_shrinks_with_time(self) -> None:
        clock = FakeClock()
        limiter = _limiter(clock)
        for _ in range(3):
            limiter.check("ip")
        clock.advance(ms=400)
        assert limiter.check("ip").details["retry_after_ms"] == 600

    def test_window_resets_at_boundary(self) -> None:
        """now - window_start == window starts a fresh window."""
        clock = FakeClock()
        limiter = _limiter(clock)
        for _ in range(4):
            limiter.check("ip")
        clock.advance(ms=999)
        assert not limiter.check("ip").ok
        clock.advance(ms=1)
        assert limiter.check("ip").ok
        assert limiter.peek("ip").count == 1

    def test_count_saturates(self) -> None:
        clock = FakeClock()
        limiter = _limiter(clock)
        for _ in range(10):
            limiter.check("ip")
        assert limiter.peek("ip").count == 4

    def test_sources_are_independent(self) -> None:
        clock = FakeClock()
        limiter = _limiter(clock, rate_limit_max=1)
        assert limiter.check("a").ok
        assert not limiter.check("a").ok
        assert limiter.check("b").ok


class TestAdministration:
    def test_disabled_always_allows(self) -> None:
        limiter = _limiter(FakeClock(), rate_limit_enabled=False, rate_limit_max=1)
        for _ in range(5):
            assert limiter.check("ip").ok
        assert limiter.peek("ip") is None

    def test_reset_forgets_source(self) -> None:
        limiter = _limiter(FakeClock(), rate_limit_max=1)
        limiter.check("ip")
        assert not limiter.check("ip").ok
        limiter.reset("ip")
        assert limiter.check("ip").ok

    def test_cleanup_drops_elapsed_windows(self) -> None:
        clock = FakeClock()
        limiter = _limiter(clock)
        limiter.check("old")
        clock.advance(ms=600)
        limiter.check("new")
        clock.advance(ms=400)
        assert limiter.cleanup() == 1
        assert limiter.peek("old") is None
        assert limiter.peek("new") is not None


class TestConcurrency:
    def test_exactly_max_allowed_across_threads(self) -> None:
        limiter = _limiter(FakeClock(), rate_limit_max=50)
        allowed = []
        guard = threading.Lock()

        def hammer() -> None:
            for _ in range(20):
                ok = limiter.check("shared").ok
                with guard:
                    allowed.append(ok)

        threads = [threading.Thread(target=hammer) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert allowed.count(True) == 50
        assert len(allowed) == 200


class TestPeriodicPurge:
    def test_purge_drops_windows_of_departed_sources(self, service, clock: FakeClock) -> None:
        for n in range(50):
            service.sign_in("nobody@example.com", "wrong-password", f"198.51.100.{n}")
        assert len(service.rate_limiter) == 50

        clock.advance(ms=service.settings.rate_limit_window_ms)
        service.purge_expired_sessions()
        assert len(service.rate_limiter) == 0

    def test_purge_keeps_live_windows(self, service, clock: FakeClock) -> None:
        service.sign_in("nobody@example.com", "wrong-password", "198.51.100.1")
        clock.advance(ms=service.settings.rate_limit_window_ms - 1)
        service.sign_in("nobody@example.com", "wrong-password", "198.51.100.2")
        clock.advance(ms=1)
        service.purge_expired_sessions()
        assert service.rate_limiter.peek("198.51.100.1") is None
        assert service.rate_limiter.peek("198.51.100.2") is not None
