import asyncio

import pytest

from roundsync.exceptions import LockContentionError, ScoreValidationError
from roundsync.services.retry import RetryPolicy, score_retry_policy


def _recording_sleep(delays):
    async def sleep(delay):
        delays.append(delay)

    return sleep


def test_retries_lock_contention_until_success():
    delays = []
    attempts = []

    async def operation():
        attempts.append(1)
        if len(attempts) < 3:
            raise LockContentionError()
        return "stored"

    policy = RetryPolicy(max_attempts=5, base_delay=1.0, jitter=0, sleep=_recording_sleep(delays))
    assert asyncio.run(policy.run(operation)) == "stored"
    assert len(attempts) == 3
    assert delays == [1.0, 2.0]


def test_gives_up_after_max_attempts():
    delays = []

    async def operation():
        raise LockContentionError(timeout=True)

    policy = RetryPolicy(max_attempts=3, base_delay=0.5, jitter=0, sleep=_recording_sleep(delays))
    with pytest.raises(LockContentionError):
        asyncio.run(policy.run(operation))
    assert len(delays) == 2


def test_validation_errors_are_not_retried():
    delays = []
    attempts = []

    async def operation():
        attempts.append(1)
        raise ScoreValidationError("Scores must total 24 points (got 25).")

    policy = RetryPolicy(sleep=_recording_sleep(delays))
    with pytest.raises(ScoreValidationError):
        asyncio.run(policy.run(operation))
    assert attempts == [1]
    assert delays == []


def test_delay_grows_and_is_capped():
    policy = RetryPolicy(base_delay=1.0, multiplier=2.0, max_delay=5.0, jitter=0)
    assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]


def test_jitter_stays_within_twenty_percent():
    policy = RetryPolicy(base_delay=1.0, multiplier=2.0, max_delay=100.0)
    for _ in range(50):
        assert 2.0 <= policy.delay_for(2) <= 2.4


def test_score_policy_defaults():
    policy = score_retry_policy()
    assert policy.max_attempts == 6
    assert policy.base_delay == 0.5
    assert policy.multiplier == 1.5
    assert policy.max_delay == 5.0
