"""
Tests for the bounded polling primitive.
"""

import pytest

from sonar_infra.errors import StageTimeoutError
from sonar_infra.polling import TimeoutPolicy, poll_until


class Counter:
    """Predicate that succeeds on a given attempt (never if None)."""

    def __init__(self, succeed_on=None):
        self.succeed_on = succeed_on
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.succeed_on is not None and self.calls >= self.succeed_on


class TestPollUntil:
    """Test poll_until attempt accounting and timeout policies."""

    def test_fatal_policy_raises_after_exactly_max_attempts(self, no_sleep):
        """A predicate that never succeeds is called exactly N times."""
        predicate = Counter()

        with pytest.raises(StageTimeoutError, match="after 60 attempt"):
            poll_until(predicate, max_attempts=60, interval=2,
                       policy=TimeoutPolicy.FATAL, description="namespace")

        assert predicate.calls == 60
        assert no_sleep.durations == [2] * 59

    def test_degraded_policy_returns_false(self, no_sleep):
        """Exhaustion under DEGRADED returns False instead of raising."""
        predicate = Counter()

        assert poll_until(predicate, max_attempts=4, interval=1,
                          policy=TimeoutPolicy.DEGRADED, description="pods") is False
        assert predicate.calls == 4

    def test_returns_on_first_success(self, no_sleep):
        """Success on attempt 3 stops polling after two intervals."""
        predicate = Counter(succeed_on=3)

        assert poll_until(predicate, max_attempts=60, interval=2,
                          policy=TimeoutPolicy.FATAL, description="namespace") is True
        assert predicate.calls == 3
        assert no_sleep.total == 4

    def test_single_attempt_never_sleeps(self, no_sleep):
        """A one-shot wait performs one call and no sleep."""
        predicate = Counter()

        assert poll_until(predicate, max_attempts=1, interval=0,
                          policy=TimeoutPolicy.DEGRADED, description="wait") is False
        assert predicate.calls == 1
        assert no_sleep.durations == []

    def test_predicate_exception_propagates(self, no_sleep):
        """Errors raised by the predicate are not retried."""
        calls = []

        def _boom():
            calls.append(1)
            raise ValueError("broken")

        with pytest.raises(ValueError, match="broken"):
            poll_until(_boom, max_attempts=5, interval=1,
                       policy=TimeoutPolicy.FATAL, description="boom")
        assert len(calls) == 1

    def test_custom_sleep_is_used(self):
        """An explicit sleep function replaces time.sleep."""
        slept = []
        predicate = Counter(succeed_on=2)

        poll_until(predicate, max_attempts=3, interval=0.5,
                   policy=TimeoutPolicy.FATAL, description="x", sleep=slept.append)

        assert slept == [0.5]

    def test_deadline_stops_before_max_attempts(self, monkeypatch):
        """Attempts stop once the deadline passes and sleeps never cross it."""
        now = [0.0]
        slept = []

        def _sleep(seconds):
            slept.append(seconds)
            now[0] += seconds

        def _slow_check():
            now[0] += 3
            return False

        monkeypatch.setattr("sonar_infra.polling.time.monotonic", lambda: now[0])

        result = poll_until(_slow_check, max_attempts=100, interval=5,
                            policy=TimeoutPolicy.DEGRADED, description="x",
                            sleep=_sleep, deadline=20.0)

        assert result is False
        assert slept == [5, 5, 1]
        assert now[0] == 23
