"""
Bounded retry for order store writes.

Conflict (another writer bumped the order version between our read and our
conditional write) and PersistenceUnavailable are retried with exponential
backoff plus jitter. The decorated coroutine must re-read the record on
every attempt. Every other error propagates immediately.
"""

import asyncio
import functools
import logging
import random
from typing import Optional

from ..config import get_settings
from ..exceptions import Conflict, PersistenceUnavailable

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int) -> float:
    """Seconds to wait before the next attempt."""
    settings = get_settings()
    base_delay = settings.retry_base_delay_ms / 1000.0
    max_delay = settings.retry_max_delay_ms / 1000.0
    jitter = random.uniform(0, settings.retry_jitter_ms / 1000.0)
    return min(base_delay * (2 ** (attempt - 1)), max_delay) + jitter


def with_store_retry(
    conflict_attempts: Optional[int] = None,
    persistence_attempts: Optional[int] = None,
):
    """
    Decorator for async read-modify-write operations against the order store.

    Each limit counts total attempts, the first call included, so a limit
    of 1 never retries. Limits default to the configured
    conflict_max_attempts and persistence_max_attempts.

    Usage:
        @with_store_retry()
        async def advance(...):
            order = await store.get_order(...)
            ...
            return await store.update_order(..., expected_version=order.version)
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            settings = get_settings()
            max_conflicts = conflict_attempts
            if max_conflicts is None:
                max_conflicts = settings.conflict_max_attempts
            max_outages = persistence_attempts
            if max_outages is None:
                max_outages = settings.persistence_max_attempts
            conflicts = 0
            outages = 0

            while True:
                try:
                    return await func(*args, **kwargs)
                except Conflict:
                    conflicts += 1
                    if conflicts >= max_conflicts:
                        logger.error(
                            "Version conflict unresolved after %d attempts for %s",
                            conflicts,
                            func.__name__,
                        )
                        raise
                    delay = backoff_delay(conflicts)
                    logger.warning(
                        "Version conflict on attempt %d/%d for %s, retrying in %.3fs",
                        conflicts,
                        max_conflicts,
                        func.__name__,
                        delay,
                    )
                except PersistenceUnavailable:
                    outages += 1
                    if outages >= max_outages:
                        logger.error(
                            "Order store unavailable after %d attempts for %s",
                            outages,
                            func.__name__,
                        )
                        raise
                    delay = backoff_delay(outages)
                    logger.warning(
                        "Order store unavailable on attempt %d/%d for %s, retrying in %.3fs",
                        outages,
                        max_outages,
                        func.__name__,
                        delay,
                    )
                await asyncio.sleep(delay)

        return wrapper

    return decorator
