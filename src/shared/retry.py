"""Caller-side retry for retryable store failures.

The detector and the rollback engine never loop on a failing store; the
layer that drives them (CLI replay, orchestration) decides to retry.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from src.contracts.errors import SentinelError

log = logging.getLogger(__name__)

T = TypeVar("T")

_MAX_ATTEMPTS = 3
_BASE_DELAY_SEC = 0.15


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = _MAX_ATTEMPTS,
    base_delay: float = _BASE_DELAY_SEC,
    what: str = "operation",
) -> T:
    """Run *fn* until it succeeds, retrying only ``retryable`` errors.

    The delay doubles after every failed attempt.  The last error is
    re-raised once *attempts* are exhausted.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except SentinelError as exc:
            if not exc.retryable or attempt == attempts:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            log.warning(
                "%s failed (attempt %d/%d): %s — retrying in %.2fs",
                what, attempt, attempts, exc, delay,
            )
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")
