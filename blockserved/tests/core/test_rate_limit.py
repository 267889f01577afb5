from blockserved.core.rate_limit import InMemoryRateLimiter


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_bucket_empties_and_refills():
    clock = Clock()
    limiter = InMemoryRateLimiter(capacity=2, refill_per_sec=1.0, clock=clock)

    assert limiter.allow("10.0.0.1", "access")
    assert limiter.allow("10.0.0.1", "access")
    assert not limiter.allow("10.0.0.1", "access")
    assert limiter.allow("10.0.0.2", "access")

    clock.now += 1.0
    assert limiter.allow("10.0.0.1", "access")


def test_refilled_buckets_are_dropped():
    clock = Clock()
    limiter = InMemoryRateLimiter(capacity=2, refill_per_sec=1.0, clock=clock)

    for i in range(50):
        limiter.allow(f"10.0.1.{i}", "access")
    assert len(limiter) == 50

    clock.now += 2.0
    assert limiter.allow("10.0.2.1", "access")
    assert len(limiter) == 1


def test_drained_bucket_survives_the_sweep():
    clock = Clock()
    limiter = InMemoryRateLimiter(capacity=2, refill_per_sec=0.5, clock=clock)

    limiter.allow("10.0.0.1", "access")
    clock.now += 3.0
    assert limiter.allow("10.0.0.2", "access")
    assert limiter.allow("10.0.0.2", "access")

    clock.now += 1.0
    assert limiter.allow("10.0.0.3", "access")
    assert len(limiter) == 2
    # the drained bucket kept its state
    assert not limiter.allow("10.0.0.2", "access")
