"""Backoff utilities.

`backoff_delay` computes the delay for a given consecutive-failure count without
sleeping, so callers can wait on their own terms (e.g. interruptibly on a stop event).
"""


def backoff_delay(
    failures: int,
    initial_delay: float,
    max_delay: float,
    multiplier: float,
) -> float:
    if failures <= 0:
        return 0.0
    return min(initial_delay * (multiplier ** (failures - 1)), max_delay)
