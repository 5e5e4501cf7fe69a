"""
Bounded retry for optimistic-concurrency conflicts.

A stage mutation reads current state, computes the new state and commits
conditionally on the state being unchanged. When the commit finds a newer
version the whole read-compute-write sequence is retried with exponential
backoff; once the attempts are used up the caller gets a ConflictError.
"""

import logging
import random
import time
from typing import Callable, Optional, TypeVar

from smkc.tournament_core.config import DEFAULT_CONFIG, EngineConfig
from smkc.tournament_core.exceptions import ConflictError, StaleEntryError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def calculate_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    rng: Optional[random.Random] = None,
) -> float:
    """Exponential backoff capped at max_delay, plus up to base_delay of jitter."""
    rng = rng or random
    delay = min(base_delay * (2 ** attempt), max_delay)
    return delay + rng.random() * base_delay


def update_with_retry(
    operation: Callable[[], T],
    config: EngineConfig = DEFAULT_CONFIG,
    sleep: Callable[[float], None] = time.sleep,
    rng: Optional[random.Random] = None,
) -> T:
    """Run operation, retrying it on StaleEntryError.

    The operation is attempted once plus config.max_retry_attempts retries.

    Raises:
        ConflictError: If every attempt hit a concurrent modification
    """
    attempts = config.max_retry_attempts + 1
    for attempt in range(attempts):
        try:
            return operation()
        except StaleEntryError as e:
            if attempt == attempts - 1:
                logger.warning(
                    "Giving up after %d attempts: %s", attempts, e
                )
                raise ConflictError(attempts) from e

            delay = calculate_delay(
                attempt, config.retry_base_delay, config.retry_max_delay, rng
            )
            logger.info(
                "Concurrent modification (%s), retrying in %.3fs (attempt %d/%d)",
                e, delay, attempt + 1, attempts,
            )
            sleep(delay)

    # Unreachable: the loop either returns or raises
    raise ConflictError(attempts)
