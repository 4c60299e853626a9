"""Tests for backoff delays and human-like pacing."""

import random

import pytest

from tweet_collector.backoff import BackoffPolicy, human_delay, rate_limit_policy, transport_policy

pytestmark = pytest.mark.unit


class TestBackoffPolicy:
    def test_doubling_without_jitter(self):
        policy = BackoffPolicy(base_delay=60.0, max_delay=900.0)
        assert [policy.compute_delay(n, jitter=False) for n in range(1, 6)] == [
            60.0, 120.0, 240.0, 480.0, 900.0,
        ]

    def test_monotonic_and_capped(self):
        policy = BackoffPolicy(base_delay=60_000, max_delay=900_000)
        delays = [policy.compute_delay(n, jitter=False) for n in range(1, 6)]
        assert delays == sorted(delays)
        assert max(delays) <= 900_000

    def test_jitter_bounds(self):
        policy = BackoffPolicy(base_delay=60.0, max_delay=900.0, jitter_ratio=0.1, rng=random.Random(7))
        for _ in range(200):
            delay = policy.compute_delay(2)
            assert 120.0 <= delay <= 132.0

    def test_jitter_never_exceeds_ceiling(self):
        policy = BackoffPolicy(base_delay=60.0, max_delay=900.0, jitter_ratio=0.2, rng=random.Random(1))
        assert all(policy.compute_delay(10) <= 900.0 for _ in range(100))

    def test_zero_retries(self):
        assert BackoffPolicy().compute_delay(0) == 0.0

    def test_huge_retry_count(self):
        assert BackoffPolicy(base_delay=1.0, max_delay=30.0).compute_delay(10_000, jitter=False) == 30.0

    def test_policies_from_settings(self, settings):
        rate = rate_limit_policy(settings)
        transport = transport_policy(settings)
        assert (rate.base_delay, rate.max_delay) == (60.0, 900.0)
        assert (transport.base_delay, transport.max_delay) == (5.0, 60.0)


class TestHumanDelay:
    def test_within_range(self):
        rng = random.Random(3)
        samples = [human_delay(1.0, 2.0, rng) for _ in range(500)]
        assert all(1.0 <= s <= 2.0 for s in samples)

    def test_concentrated_near_midpoint(self):
        rng = random.Random(11)
        samples = [human_delay(0.0, 10.0, rng) for _ in range(2000)]
        central = sum(1 for s in samples if 2.5 <= s <= 7.5)
        assert central / len(samples) > 0.85

    def test_degenerate_range(self):
        assert human_delay(2.0, 2.0) == 2.0
        assert human_delay(3.0, 1.0) == 3.0
