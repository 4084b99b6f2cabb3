"""Delay helpers shared by the scraper and the fetch retry loop."""

import random
import time
from typing import Callable


def exponential_backoff(attempt: int, base_delay: float = 2.0, max_delay: float = 30.0) -> float:
    """
    Delay before the next retry: min(base_delay * 2**attempt, max_delay).

    Args:
        attempt: Attempt number that just failed (1-based)
        base_delay: Base delay in seconds
        max_delay: Cap in seconds

    Returns:
        Delay in seconds
    """
    return min(base_delay * (2 ** attempt), max_delay)


def random_delay(min_delay: float = 1.0, max_delay: float = 3.0) -> float:
    """Random delay between min_delay and max_delay seconds."""
    return random.uniform(min_delay, max_delay)


def random_sleep(
    min_delay: float = 1.0,
    max_delay: float = 3.0,
    sleep: Callable[[float], None] = time.sleep
) -> float:
    """Sleep for a random duration. Returns the delay slept."""
    delay = random_delay(min_delay, max_delay)
    if delay > 0:
        sleep(delay)
    return delay
