"""Backoff delays for retries and human-like pacing for the rendered view."""

from __future__ import annotations

import random
from dataclasses import dataclass, field

from .config import Settings


@dataclass
class BackoffPolicy:
    """Exponential backoff: ``base * 2^(retry_count-1)`` capped at ``max_delay``.

    Delays are in seconds. ``compute_delay`` depends only on the retry count
    (plus jitter); the counters themselves belong to the caller.
    """

    base_delay: float = 60.0
    max_delay: float = 900.0
    jitter_ratio: float = 0.1
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def raw_delay(self, retry_count: int) -> float:
        """Delay for given retry (1-indexed), without jitter."""
        if retry_count < 1:
            return 0.0
        # Cap the exponent so very large counts don't overflow
        delay = self.base_delay * (2 ** min(retry_count - 1, 32))
        return min(delay, self.max_delay)

    def compute_delay(self, retry_count: int, jitter: bool = True) -> float:
        delay = self.raw_delay(retry_count)
        if jitter and delay > 0 and self.jitter_ratio > 0:
            delay += delay * self.jitter_ratio * self.rng.random()
        return min(delay, self.max_delay)


def rate_limit_policy(settings: Settings, rng: random.Random | None = None) -> BackoffPolicy:
    return BackoffPolicy(
        base_delay=settings.rate_limit_base_delay,
        max_delay=settings.rate_limit_max_delay,
        jitter_ratio=settings.jitter_ratio,
        rng=rng or random.Random(),
    )


def transport_policy(settings: Settings, rng: random.Random | None = None) -> BackoffPolicy:
    return BackoffPolicy(
        base_delay=settings.transport_base_delay,
        max_delay=settings.transport_max_delay,
        jitter_ratio=settings.jitter_ratio,
        rng=rng or random.Random(),
    )


def human_delay(min_sec: float, max_sec: float, rng: random.Random | None = None) -> float:
    """Bell-shaped delay in ``[min_sec, max_sec]``.

    The mean of six uniform draws approximates a normal distribution centred
    on the midpoint, which avoids fixed-interval request patterns.
    """
    rng = rng or random
    if max_sec <= min_sec:
        return min_sec
    sample = sum(rng.random() for _ in range(6)) / 6
    return min_sec + sample * (max_sec - min_sec)
