import pytest

from efi_analytics.adapters import rate_limit
from efi_analytics.adapters.rate_limit import TokenBucket, backoff_delay


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_bucket_allows_burst_then_refills():
    clock = FakeClock()
    bucket = TokenBucket(rate=1.0, capacity=2, clock=clock, sleep=clock.sleep)

    assert bucket.try_acquire()
    assert bucket.try_acquire()
    assert not bucket.try_acquire()

    clock.now += 1.0
    assert bucket.try_acquire()
    assert not bucket.try_acquire()


def test_refill_never_exceeds_capacity():
    clock = FakeClock()
    bucket = TokenBucket(rate=5.0, capacity=3, clock=clock, sleep=clock.sleep)

    clock.now += 60.0
    granted = sum(1 for _ in range(10) if bucket.try_acquire())

    assert granted == 3


def test_acquire_waits_for_the_next_token():
    clock = FakeClock()
    bucket = TokenBucket(rate=4.0, capacity=1, clock=clock, sleep=clock.sleep)

    assert bucket.acquire() == 0.0
    waited = bucket.acquire()

    assert waited == pytest.approx(0.25)
    assert clock.sleeps == [pytest.approx(0.25)]


def test_rate_must_be_positive():
    with pytest.raises(ValueError):
        TokenBucket(rate=0)


def test_backoff_doubles_until_capped():
    delays = [backoff_delay(attempt, base_delay=0.5, max_delay=3.0) for attempt in range(5)]

    assert delays == [0.5, 1.0, 2.0, 3.0, 3.0]


def test_backoff_adds_jitter(monkeypatch):
    monkeypatch.setattr(rate_limit.random, "uniform", lambda low, high: high)

    assert backoff_delay(1, base_delay=0.5, max_delay=10.0, jitter=0.25) == pytest.approx(1.25)
