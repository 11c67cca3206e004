"""Bounded store calls.

Every store call made by the detector or the engine goes through
:func:`bounded`, so a stuck backend surfaces as a retryable
``StoreTimeoutError`` instead of a hung operation.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from src.contracts.errors import StoreTimeoutError, StoreUnavailableError

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_STORE_TIMEOUT_SEC = 5.0


async def bounded(
    call: Awaitable[T],
    *,
    operation: str,
    timeout: float = DEFAULT_STORE_TIMEOUT_SEC,
) -> T:
    """Await *call* with a deadline and normalise transport failures."""
    try:
        return await asyncio.wait_for(call, timeout)
    except TimeoutError as exc:
        log.warning("Store call %s timed out after %.1fs", operation, timeout)
        raise StoreTimeoutError(operation, timeout) from exc
    except (ConnectionError, OSError) as exc:
        log.warning("Store call %s failed: %s", operation, exc)
        raise StoreUnavailableError(operation, exc) from exc
