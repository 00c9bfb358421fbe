"""Retry delay policy for push jobs."""

import random


def compute_backoff(
    attempt: int,
    base: float = 1.0,
    cap: float = 60.0,
    jitter_ratio: float = 0.1,
) -> float:
    """
    Delay before retrying a job whose ``attempt``-th try just failed.

    Exponential (base, 2*base, 4*base, ...) up to ``cap``, plus up to
    ``jitter_ratio`` of that delay in random jitter. Below the cap the
    jitter window of one attempt never overlaps the next, so delays are
    strictly increasing.

    Args:
        attempt: Attempt number that failed, starting at 1
        base: Delay after the first failure, in seconds
        cap: Upper bound for the exponential part
        jitter_ratio: Maximum jitter as a fraction of the delay

    Returns:
        Delay in seconds
    """
    delay = min(cap, base * (2 ** max(attempt - 1, 0)))
    return delay + random.uniform(0, delay * jitter_ratio)
