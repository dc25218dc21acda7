"""Unit tests for the rate limiter and retry helper."""

from datetime import datetime, timedelta

import pytest

from integrations.exceptions import (
    ProviderAPIError,
    ProviderAuthError,
    ProviderConnectionError,
)
from models import RateLimitWindow
from services.rate_limiter import RateLimiter, execute_with_backoff, is_retriable

T0 = datetime(2026, 5, 4, 8, 0, 0)


class TestReserve:
    def test_first_call_runs_immediately(self, db):
        limiter = RateLimiter(max_calls_per_minute=30, min_interval=1.0)
        assert limiter.reserve(db, "realm-1", now=T0) == 0

    def test_enforces_minimum_spacing(self, db):
        limiter = RateLimiter(max_calls_per_minute=30, min_interval=1.0)
        delays = [limiter.reserve(db, "realm-1", now=T0) for _ in range(3)]
        assert delays == [0, 1.0, 2.0]

    def test_companies_are_independent(self, db):
        limiter = RateLimiter(max_calls_per_minute=30, min_interval=1.0)
        limiter.reserve(db, "realm-1", now=T0)
        assert limiter.reserve(db, "realm-2", now=T0) == 0

    def test_per_minute_cap_pushes_to_next_window(self, db):
        limiter = RateLimiter(max_calls_per_minute=2, min_interval=0.0)
        assert limiter.reserve(db, "realm-1", now=T0) == 0
        assert limiter.reserve(db, "realm-1", now=T0) == 0
        assert limiter.reserve(db, "realm-1", now=T0) == 60.0

    def test_window_resets_after_a_minute(self, db):
        limiter = RateLimiter(max_calls_per_minute=2, min_interval=0.0)
        limiter.reserve(db, "realm-1", now=T0)
        limiter.reserve(db, "realm-1", now=T0)
        assert limiter.reserve(db, "realm-1", now=T0 + timedelta(minutes=1, seconds=1)) == 0

    def test_state_is_shared_through_the_database(self, db):
        RateLimiter(max_calls_per_minute=30, min_interval=1.0).reserve(db, "realm-1", now=T0)
        second_worker = RateLimiter(max_calls_per_minute=30, min_interval=1.0)
        assert second_worker.reserve(db, "realm-1", now=T0) == 1.0

        db.expire_all()
        row = db.get(RateLimitWindow, "realm-1")
        assert row.call_count == 2
        assert row.version == 2

    def test_wait_sleeps_for_the_slot(self, db):
        sleeps = []
        limiter = RateLimiter(max_calls_per_minute=30, min_interval=0.5, sleep=sleeps.append)
        limiter.reserve(db, "realm-1")
        limiter.wait(db, "realm-1")
        assert len(sleeps) == 1
        assert 0 < sleeps[0] <= 0.5


class TestIsRetriable:
    @pytest.mark.parametrize(
        "exc, expected",
        [
            (ProviderAPIError("rate limited", status_code=429), True),
            (ProviderAPIError("server", status_code=503), True),
            (ProviderAPIError("bad request", status_code=400), False),
            (ProviderConnectionError("refused"), True),
            (ProviderConnectionError("timeout", retriable=False), False),
            (ProviderAuthError("401"), False),
            (ValueError("nope"), False),
        ],
    )
    def test_classification(self, exc, expected):
        assert is_retriable(exc) is expected


class TestExecuteWithBackoff:
    def test_returns_first_success(self):
        assert execute_with_backoff(lambda: "ok", sleep=lambda s: None) == "ok"

    def test_exponential_delays_with_jitter(self):
        sleeps = []
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ProviderAPIError("busy", status_code=503)
            return "done"

        result = execute_with_backoff(
            flaky, max_attempts=3, base_delay=1.0, sleep=sleeps.append, jitter=lambda: 0.25
        )

        assert result == "done"
        assert sleeps == [1.25, 2.25]

    def test_gives_up_after_max_attempts(self):
        sleeps = []
        retries = []

        def always_fails():
            raise ProviderConnectionError("down")

        with pytest.raises(ProviderConnectionError):
            execute_with_backoff(
                always_fails,
                max_attempts=3,
                base_delay=1.0,
                sleep=sleeps.append,
                jitter=lambda: 0.0,
                on_retry=lambda attempt, exc: retries.append(attempt),
            )
        assert sleeps == [1.0, 2.0]
        assert retries == [1, 2]

    def test_non_retriable_raises_immediately(self):
        sleeps = []

        def unauthorized():
            raise ProviderAuthError("401")

        with pytest.raises(ProviderAuthError):
            execute_with_backoff(unauthorized, max_attempts=3, sleep=sleeps.append)
        assert sleeps == []
